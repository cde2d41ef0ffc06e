"""Polling client for the bracket timer.

Mirrors what a viewer does: poll ``/api/timer`` on a fixed cadence, keep the
newest state it has seen, and work out the stage and the matchup images from
winner rows alone. Network trouble never stops the loop; the viewer keeps its
last known state and tries again on the next tick.
"""

import logging
import threading
import time
from dataclasses import dataclass, field, replace
from typing import Dict, Iterable, List, Optional

import httpx
from tenacity import (
    Retrying,
    before_sleep_log,
    retry_if_exception,
    stop_after_attempt,
    wait_chain,
    wait_fixed,
    wait_none,
)

from matchup.services.tournament.bracket import DEFAULT_SEED_URL, STAGES, round_for_stage, round_of
from matchup.services.tournament.projector import EMPTY_PAIR, ImageCache, ImagePair, project_slot
from matchup.services.tournament.stage import detect_stage

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 5.5
# Delay before each attempt; the first attempt goes out immediately
DEFAULT_BACKOFF = (0.0, 1.2, 2.4)
DEFAULT_INTERVAL = 2.0
MAX_KEYS_PER_REQUEST = 64


class TransientError(Exception):
    """The timer could not be reached; retry on the next poll."""


# Anything that can go wrong on one poll; the loop carries on regardless.
# ValueError covers undecodable bodies, KeyError bodies without a state.
POLL_ERRORS = (TransientError, httpx.HTTPError, ValueError, KeyError)


def _is_transient(exc: BaseException) -> bool:
    if isinstance(exc, httpx.TransportError):
        return True
    return isinstance(exc, httpx.HTTPStatusError) and exc.response.status_code >= 500


class TimerClient:
    """HTTP access to the timer and tournament endpoints."""

    def __init__(
        self,
        base_url: str,
        timeout: float = DEFAULT_TIMEOUT,
        backoff: Iterable[float] = DEFAULT_BACKOFF,
        transport: Optional[httpx.BaseTransport] = None,
        headers: Optional[Dict[str, str]] = None,
    ):
        self.base_url = base_url.rstrip('/')
        self.backoff = tuple(backoff) or (0.0,)
        self.http = httpx.Client(
            base_url=self.base_url,
            timeout=timeout,
            transport=transport,
            headers=headers,
        )

    def close(self) -> None:
        self.http.close()

    def _retrying(self) -> Retrying:
        waits = [wait_fixed(delay) for delay in self.backoff[1:]]
        return Retrying(
            stop=stop_after_attempt(len(self.backoff)),
            wait=wait_chain(*waits) if waits else wait_none(),
            retry=retry_if_exception(_is_transient),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )

    def _request(self, method: str, path: str, **kwargs) -> dict:
        if self.backoff[0]:
            time.sleep(self.backoff[0])
        try:
            for attempt in self._retrying():
                with attempt:
                    response = self.http.request(method, path, **kwargs)
                    response.raise_for_status()
        except httpx.HTTPError as exc:
            if _is_transient(exc):
                raise TransientError(f'{method} {path} failed: {exc}') from exc
            raise
        return response.json()

    def fetch_state(self) -> dict:
        return self._request('GET', '/api/timer')['state']

    def post_action(self, action: str, **extra) -> dict:
        return self._request('POST', '/api/timer', json={'action': action, **extra})['state']

    def winners(self, keys: List[str]) -> Dict[str, str]:
        found: Dict[str, str] = {}
        for i in range(0, len(keys), MAX_KEYS_PER_REQUEST):
            chunk = keys[i:i + MAX_KEYS_PER_REQUEST]
            data = self._request('GET', '/api/winners', params=[('key', k) for k in chunk])
            found.update(data.get('winners') or {})
        return found


class HttpWinnerLookup:
    """Winner lookup backed by the HTTP API, for the stage detector and projector."""

    def __init__(self, client: TimerClient):
        self.client = client

    def __call__(self, keys: List[str]) -> Dict[str, str]:
        return self.client.winners(list(keys))


@dataclass
class AppState:
    base_iso: Optional[str] = None
    cycle_start: Optional[str] = None
    period_sec: int = 100
    paused: bool = False
    last_checkpoint: int = 0
    remaining_sec: Optional[int] = None
    phase_end_at: Optional[str] = None
    updated_at: Optional[str] = None
    stage: str = STAGES[0]
    active_slot: str = 'r32_1'
    offline: bool = False
    last_sync_at: float = 0.0
    images: ImageCache = field(default_factory=ImageCache, repr=False, compare=False)


def _order_key(base_iso: Optional[str], phase_end_at: Optional[str], updated_at: Optional[str]):
    # Bases only grow across resets, so a newer cycle outranks any end time
    return (base_iso or '', phase_end_at or '', updated_at or '')


def apply_timer_state(state: AppState, payload: dict, now: Optional[float] = None) -> AppState:
    """Fold a timer payload into ``state``; older payloads are ignored.

    Ordering is by cycle base, then phase end, then update time, never by
    arrival order, so duplicated or reordered responses are harmless.
    Returns ``state`` itself when the payload is stale.
    """
    incoming = _order_key(
        payload.get('base_iso'), payload.get('phase_end_at'), payload.get('updated_at')
    )
    if state.phase_end_at is not None and incoming < _order_key(
        state.base_iso, state.phase_end_at, state.updated_at
    ):
        logger.debug('ignoring stale timer state %s', incoming)
        return state

    new = replace(
        state,
        base_iso=payload.get('base_iso'),
        cycle_start=payload.get('cycle_start'),
        period_sec=payload.get('period_sec', state.period_sec),
        paused=bool(payload.get('paused')),
        last_checkpoint=payload.get('last_checkpoint', state.last_checkpoint),
        remaining_sec=payload.get('remaining_sec'),
        phase_end_at=payload.get('phase_end_at'),
        updated_at=payload.get('updated_at'),
        offline=False,
        last_sync_at=time.time() if now is None else now,
    )
    if new.base_iso != state.base_iso:
        new.images.bind(new.base_iso)
        new = replace(new, stage=STAGES[0], active_slot='r32_1')
    return new


def voting_open(state: AppState, slot: str) -> bool:
    return round_of(slot) == round_for_stage(state.stage)


def slot_finished(state: AppState, slot: str) -> bool:
    return round_of(slot) < round_for_stage(state.stage)


class Poller:
    """Single scheduled poll loop for one viewer."""

    def __init__(
        self,
        client: TimerClient,
        state: Optional[AppState] = None,
        template: str = DEFAULT_SEED_URL,
    ):
        self.client = client
        self.state = state or AppState()
        self.template = template
        self.lookup = HttpWinnerLookup(client)
        self._generation = 0
        self._lock = threading.Lock()

    def switch_slot(self, slot: str) -> AppState:
        """Change the viewed matchup; any poll still in flight is abandoned."""
        round_of(slot)
        with self._lock:
            self._generation += 1
            self.state = replace(self.state, active_slot=slot)
            return self.state

    def poll_once(self) -> AppState:
        with self._lock:
            generation = self._generation
        try:
            payload = self.client.fetch_state()
            stage = detect_stage(payload.get('base_iso'), self.lookup)
        except POLL_ERRORS as exc:
            logger.warning('poll failed, keeping last known state: %r', exc)
            with self._lock:
                self.state = replace(self.state, offline=True)
                return self.state

        with self._lock:
            if generation != self._generation:
                logger.debug('discarding poll result for an abandoned view')
                return self.state
            new = apply_timer_state(self.state, payload)
            if new is not self.state:
                new = replace(new, stage=stage)
                self.state = new
            return self.state

    def images_for(self, slot: Optional[str] = None) -> ImagePair:
        state = self.state
        if not state.base_iso:
            return EMPTY_PAIR
        try:
            return project_slot(
                slot or state.active_slot,
                state.base_iso,
                self.lookup,
                self.template,
                cache=state.images,
            )
        except POLL_ERRORS as exc:
            logger.warning('could not resolve images: %s', exc)
            return EMPTY_PAIR

    def run(self, stop_event: threading.Event, interval: float = DEFAULT_INTERVAL) -> None:
        """Poll until ``stop_event`` is set; setting it also cuts the wait short."""
        while not stop_event.is_set():
            self.poll_once()
            if stop_event.wait(interval):
                break
