from __future__ import annotations

import json
import logging
from typing import Iterable, List, Optional, Set

from .errors import AuthorizationError, InvalidArgument


logger = logging.getLogger(__name__)


def parse_identities(raw: Optional[str]) -> Set[str]:
    """Parse authorized identities from CSV or JSON array.

    Accepts either:
    - JSON array: e.g., "[\"GCREATOR\", \"GADMIN\"]"
    - CSV (commas/newlines/spaces treated as separators): "GCREATOR, GADMIN"

    Returns a set of identity strings. Empty input yields an empty set.
    """
    if not raw or not isinstance(raw, str):
        return set()

    # Try JSON first
    try:
        data = json.loads(raw)
    except ValueError:
        data = None
    if isinstance(data, list):
        out: Set[str] = set()
        for item in data:
            if isinstance(item, str) and item.strip():
                out.add(item.strip())
        return out

    # Fallback to CSV parsing; split on commas/newlines/spaces
    norm = raw.replace("\n", ",").replace(" ", ",")
    items: List[str] = [tok.strip() for tok in norm.split(",") if tok.strip()]
    out2: Set[str] = set()
    for tok in items:
        if (tok.startswith('"') and tok.endswith('"')) or (tok.startswith("'") and tok.endswith("'")):
            tok = tok[1:-1]
        if tok:
            out2.add(tok)
    return out2


def check_identity(identity: object, what: str = "identity") -> str:
    """Return `identity` if it is a usable opaque identity (non-empty str)."""
    if not isinstance(identity, str) or not identity.strip():
        raise InvalidArgument(f"{what} must be a non-empty string, got {identity!r}")
    return identity


class InvocationAuth:
    """
    Authorization capability for one invocation.

    Holds the identities whose proofs were verified before the invocation
    reached the campaign core; signature checking itself happens upstream.

    - `require_auth(identity)` aborts with `AuthorizationError` unless the
      identity is among the verified ones (or `allow_all` is set).
    - `required` lists every identity the core asked for, in call order.
    """

    def __init__(self, verified: Iterable[str] = (), *, allow_all: bool = False) -> None:
        self._verified = frozenset(verified)
        self._allow_all = allow_all
        self.required: List[str] = []

    @classmethod
    def from_raw(cls, raw: Optional[str]) -> "InvocationAuth":
        return cls(parse_identities(raw))

    @classmethod
    def mock_all(cls) -> "InvocationAuth":
        """Capability that accepts every identity; for local tooling and tests."""
        return cls(allow_all=True)

    def is_authorized(self, identity: str) -> bool:
        return self._allow_all or identity in self._verified

    def require_auth(self, identity: str) -> None:
        self.required.append(identity)
        if not self.is_authorized(identity):
            logger.warning("Missing authorization proof for %s", identity)
            raise AuthorizationError(f"Invocation is not authorized by {identity}")
