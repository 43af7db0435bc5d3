"""
Autocomplete — previously-seen search terms and product names.

Both pools share one logical clock: an entry's ``last_seen`` is the tick of
its latest search (terms) or indexing (names). Ranking is recency first,
then frequency, then the text itself for determinism.
"""

from __future__ import annotations

from bisect import bisect_left, insort
from dataclasses import dataclass
from itertools import count

from cartflow._types import ProductId


@dataclass(slots=True)
class _Entry:
    text: str
    last_seen: int
    frequency: int


class SuggestionBook:
    def __init__(self, max_terms: int = 1_000) -> None:
        self._clock = count(1)
        self._max_terms = max_terms
        self._terms: dict[str, _Entry] = {}
        self._term_keys: list[str] = []
        self._names: dict[str, _Entry] = {}
        self._name_keys: list[str] = []
        self._name_owners: dict[str, set[ProductId]] = {}

    # ═══════════════════════════════════════════════════════════════════════════
    # Search terms
    # ═══════════════════════════════════════════════════════════════════════════

    def record(self, term: str) -> None:
        text = " ".join(term.split())
        if not text:
            return
        key = text.casefold()
        tick = next(self._clock)

        entry = self._terms.get(key)
        if entry is not None:
            entry.last_seen = tick
            entry.frequency += 1
            entry.text = text
            return

        if len(self._terms) >= self._max_terms:
            self._evict_oldest_term()
        self._terms[key] = _Entry(text, tick, 1)
        insort(self._term_keys, key)

    def _evict_oldest_term(self) -> None:
        oldest = min(self._terms, key=lambda k: (self._terms[k].last_seen, self._terms[k].frequency))
        del self._terms[oldest]
        del self._term_keys[bisect_left(self._term_keys, oldest)]

    # ═══════════════════════════════════════════════════════════════════════════
    # Product names
    # ═══════════════════════════════════════════════════════════════════════════

    def add_name(self, product_id: ProductId, name: str) -> None:
        key = name.casefold()
        owners = self._name_owners.setdefault(key, set())
        owners.add(product_id)

        tick = next(self._clock)
        entry = self._names.get(key)
        if entry is None:
            self._names[key] = _Entry(name, tick, 0)
            insort(self._name_keys, key)
        else:
            entry.last_seen = tick

    def remove_name(self, product_id: ProductId, name: str) -> None:
        key = name.casefold()
        owners = self._name_owners.get(key)
        if owners is None:
            return
        owners.discard(product_id)
        if not owners:
            del self._name_owners[key]
            del self._names[key]
            del self._name_keys[bisect_left(self._name_keys, key)]

    # ═══════════════════════════════════════════════════════════════════════════
    # Lookup
    # ═══════════════════════════════════════════════════════════════════════════

    def suggest(self, prefix: str, limit: int) -> tuple[str, ...]:
        if limit <= 0:
            return ()
        needle = " ".join(prefix.split()).casefold()

        found: dict[str, _Entry] = {}
        for keys, pool in ((self._term_keys, self._terms), (self._name_keys, self._names)):
            i = bisect_left(keys, needle)
            while i < len(keys) and keys[i].startswith(needle):
                key = keys[i]
                entry = pool[key]
                current = found.get(key)
                if current is None or (entry.last_seen, entry.frequency) > (current.last_seen, current.frequency):
                    found[key] = entry
                i += 1

        ranked = sorted(found.values(), key=lambda e: (-e.last_seen, -e.frequency, e.text.casefold()))
        return tuple(e.text for e in ranked[:limit])


__all__ = ("SuggestionBook",)
