"""Field-keyed anonymization cache.

The fields that get anonymized are the same on every event, so the hashed
value is computed once per field name and reused. The cache is keyed by the
field name, not by the raw value: once "userId" has been hashed, later calls
for "userId" return that first hash even if the raw value changed.
"""

from typing import Callable, Dict

ShaFn = Callable[[str], str]


def identity_sha(value: str) -> str:
    """Default hash function used when none is provided (no-op)."""
    return value


class AnonymizationCache:
    """Memoizes ``hash_fn`` output per field name."""

    def __init__(self, hash_fn: ShaFn = identity_sha):
        self._hash_fn = hash_fn
        self._anonymized: Dict[str, str] = {}

    def anonymize(self, field: str, value: str) -> str:
        if field not in self._anonymized:
            self._anonymized[field] = self._hash_fn(value)
        return self._anonymized[field]

    def __contains__(self, field: str) -> bool:
        return field in self._anonymized

    def __len__(self) -> int:
        return len(self._anonymized)
