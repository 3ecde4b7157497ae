"""Session-scoped duplicate detection on question stems."""

import re
from typing import Set

FINGERPRINT_LENGTH = 140

_RE_WHITESPACE = re.compile(r'\s+')


def fingerprint(stem: str) -> str:
    """Lower-case, collapse whitespace, keep the first 140 chars."""
    return _RE_WHITESPACE.sub(' ', (stem or "").lower()).strip()[:FINGERPRINT_LENGTH]


class Deduplicator:
    """Fingerprints of every stem accepted so far in one generation session.

    Shared by all tiers of the session, so a question the primary stream
    already delivered is rejected when a fallback prompt produces it again.
    """

    def __init__(self):
        self._seen: Set[str] = set()

    def __contains__(self, stem: str) -> bool:
        return fingerprint(stem) in self._seen

    def __len__(self) -> int:
        return len(self._seen)

    def add(self, stem: str) -> bool:
        """Record a stem. Returns False if an equal fingerprint was already recorded."""
        key = fingerprint(stem)
        if key in self._seen:
            return False
        self._seen.add(key)
        return True
