"""Work out which seed images meet in a later-round matchup.

Only round-of-32 images are fixed. Any other slot is resolved by walking back
through its parents' winner colors until the seeds are reached; a missing
winner anywhere on that walk means the matchup is not ready yet.
"""

import threading
from collections import OrderedDict
from typing import Callable, Dict, List, Optional, Tuple

from flask import current_app

from .bracket import (
    ALL_SLOTS,
    DEFAULT_SEED_URL,
    RED,
    parents_of,
    phase_key,
    round_for_stage,
    round_of,
    seed_pair,
    slot_label,
)
from .stage import WinnerLookup

ImagePair = Tuple[str, str]
EMPTY_PAIR: ImagePair = ('', '')


class ImageCache:
    """Bounded LRU of phase key -> image pair for one cycle.

    Binding a different base timestamp drops everything cached for the old
    cycle. Pairs are only stored once fully resolved, and winners never change
    after that, so entries need no other invalidation.
    """

    def __init__(self, maxsize: int = 256):
        self.maxsize = max(1, int(maxsize))
        self.base_iso: Optional[str] = None
        self._items: 'OrderedDict[str, ImagePair]' = OrderedDict()
        self._lock = threading.Lock()

    def bind(self, base_iso: Optional[str]) -> None:
        with self._lock:
            if base_iso != self.base_iso:
                self._items.clear()
                self.base_iso = base_iso

    def get(self, key: str) -> Optional[ImagePair]:
        with self._lock:
            pair = self._items.get(key)
            if pair is not None:
                self._items.move_to_end(key)
            return pair

    def put(self, key: str, pair: ImagePair) -> None:
        with self._lock:
            self._items[key] = pair
            self._items.move_to_end(key)
            while len(self._items) > self.maxsize:
                self._items.popitem(last=False)

    def clear(self) -> None:
        with self._lock:
            self._items.clear()

    def __contains__(self, key: str) -> bool:
        with self._lock:
            return key in self._items

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)


def get_image_cache() -> ImageCache:
    """The app-wide cache shared by every request of this process."""
    cache = current_app.extensions.get('matchup_image_cache')
    if cache is None:
        cache = ImageCache(current_app.config.get('IMAGE_CACHE_SIZE', 256))
        current_app.extensions['matchup_image_cache'] = cache
    return cache


def project_slot(
    slot: str,
    base_iso: str,
    lookup: WinnerLookup,
    template: str = DEFAULT_SEED_URL,
    cache: Optional[ImageCache] = None,
) -> ImagePair:
    key = phase_key(base_iso, slot)
    if cache is not None:
        cache.bind(base_iso)
        hit = cache.get(key)
        if hit is not None:
            return hit

    parents = parents_of(slot)
    if parents is None:
        pair = seed_pair(base_iso, slot, template)
    else:
        parent_keys = [phase_key(base_iso, p) for p in parents]
        colors = lookup(parent_keys)
        if not all(k in colors for k in parent_keys):
            return EMPTY_PAIR
        picks = []
        for parent, parent_key in zip(parents, parent_keys):
            a, b = project_slot(parent, base_iso, lookup, template, cache)
            if not (a and b):
                return EMPTY_PAIR
            picks.append(a if colors[parent_key] == RED else b)
        pair = (picks[0], picks[1])

    if cache is not None:
        cache.put(key, pair)
    return pair


def bracket_rows(
    base_iso: str,
    stage: str,
    lookup: WinnerLookup,
    tally: Callable[[str], Dict[str, int]],
    template: str = DEFAULT_SEED_URL,
    cache: Optional[ImageCache] = None,
) -> List[dict]:
    """Plain-data view of all 31 matchups for rendering a bracket."""
    current = round_for_stage(stage)
    rows = []
    for slot in ALL_SLOTS:
        key = phase_key(base_iso, slot)
        round_num = round_of(slot)
        a, b = project_slot(slot, base_iso, lookup, template, cache)
        label = slot_label(slot)
        rows.append({
            'slot': slot,
            'phase_key': key,
            'round': label['round'],
            'title': label['title'],
            'images': {'A': a, 'B': b},
            'decided': round_num < current,
            'live': round_num == current,
            'score': tally(key),
        })
    return rows
