"""
Inverted text index with incremental maintenance.

Postings map term → {product_id: weight}. A sorted vocabulary supports
prefix expansion of the last query token so partially typed words match
while the user is still typing.
"""

from __future__ import annotations

import re
from bisect import bisect_left, insort
from collections import Counter
from collections.abc import Iterator

from cartflow._types import ProductId

NAME_WEIGHT = 3.0
DESCRIPTION_WEIGHT = 1.0
PREFIX_FACTOR = 0.5

_TOKEN = re.compile(r"\w+")


def tokenize(text: str) -> list[str]:
    return _TOKEN.findall(text.casefold())


class TextIndex:
    def __init__(self) -> None:
        self._postings: dict[str, dict[ProductId, float]] = {}
        self._vocabulary: list[str] = []
        self._doc_terms: dict[ProductId, set[str]] = {}

    def __contains__(self, product_id: ProductId) -> bool:
        return product_id in self._doc_terms

    def add(self, product_id: ProductId, name: str, description: str) -> None:
        if product_id in self._doc_terms:
            self.remove(product_id)

        weights: Counter[str] = Counter()
        for term in tokenize(name):
            weights[term] += NAME_WEIGHT
        for term in tokenize(description):
            weights[term] += DESCRIPTION_WEIGHT

        for term, weight in weights.items():
            posting = self._postings.get(term)
            if posting is None:
                posting = self._postings[term] = {}
                insort(self._vocabulary, term)
            posting[product_id] = weight

        self._doc_terms[product_id] = set(weights)

    def remove(self, product_id: ProductId) -> None:
        for term in self._doc_terms.pop(product_id, ()):
            posting = self._postings[term]
            del posting[product_id]
            if not posting:
                del self._postings[term]
                i = bisect_left(self._vocabulary, term)
                del self._vocabulary[i]

    def terms_with_prefix(self, prefix: str) -> Iterator[str]:
        i = bisect_left(self._vocabulary, prefix)
        while i < len(self._vocabulary) and self._vocabulary[i].startswith(prefix):
            yield self._vocabulary[i]
            i += 1

    def search(self, text: str) -> dict[ProductId, float] | None:
        """
        Score products against ``text``.

        Every token must match (AND). The last token also matches as a
        prefix, at a reduced weight. Returns None when ``text`` has no
        tokens, so the caller can skip the text filter entirely.
        """
        tokens = tokenize(text)
        if not tokens:
            return None

        scores: dict[ProductId, float] | None = None
        for position, token in enumerate(tokens):
            matches: dict[ProductId, float] = dict(self._postings.get(token, {}))
            if position == len(tokens) - 1:
                for term in self.terms_with_prefix(token):
                    if term == token:
                        continue
                    for pid, weight in self._postings[term].items():
                        matches[pid] = max(matches.get(pid, 0.0), weight * PREFIX_FACTOR)

            if scores is None:
                scores = matches
            else:
                scores = {pid: s + matches[pid] for pid, s in scores.items() if pid in matches}
            if not scores:
                return {}

        return scores or {}


__all__ = ("TextIndex", "tokenize")
