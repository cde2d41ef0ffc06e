"""Tournament domain services: clock, resolution, catch-up and projection.

This package contains pure(ish) bracket logic that should be imported by
HTTP routes, socket handlers and the polling client, keeping transport
concerns separated from the progression state machine.
"""
