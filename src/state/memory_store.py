from __future__ import annotations

from typing import Dict, Optional, Tuple

from .errors import MissingKeyError, OptimisticLockError


class MemoryStore:
    """
    Dict-backed key-value store for a single campaign instance.

    Same interface as `S3Store`:
    - `get(key)` returns `(value, version)` or raises `MissingKeyError`.
    - `set(key, value, if_match=None)` overwrites and returns the new version.
      With `if_match`, the write only happens if the current version matches.
    - `has(key)` reports whether anything is stored under the key.

    Versions are monotonically increasing strings, one counter per key.
    """

    def __init__(self) -> None:
        self._items: Dict[str, Tuple[bytes, str]] = {}
        self._counter = 0

    def has(self, key: str) -> bool:
        return key in self._items

    def get(self, key: str) -> Tuple[bytes, str]:
        try:
            return self._items[key]
        except KeyError:
            raise MissingKeyError(key) from None

    def set(self, key: str, value: bytes, *, if_match: Optional[str] = None) -> str:
        if if_match is not None:
            current = self._items.get(key)
            if current is None or current[1] != if_match:
                raise OptimisticLockError(f"Version mismatch for key {key!r}")
        self._counter += 1
        version = f"v{self._counter}"
        self._items[key] = (bytes(value), version)
        return version
