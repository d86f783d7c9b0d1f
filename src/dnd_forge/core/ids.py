"""Process-unique document identifiers.

Host documents (items, activities, effects) are addressed by 16-character
alphanumeric ids. Ids handed out by an IdRegistry are never repeated within
the process; ``derive_id`` produces stable ids for records the repair
engine adds, so repeated repairs of the same input stay identical.
"""

from __future__ import annotations

import hashlib
import re
import secrets
import string
import threading
from collections import deque

from dnd_forge.core.constants import ID_LENGTH


_ALPHABET = string.ascii_letters + string.digits
_ID_PATTERN = re.compile(rf"^[A-Za-z0-9]{{{ID_LENGTH}}}$")
DEFAULT_REGISTRY_CAPACITY = 100_000


class IdRegistry:
    """Issues identifiers never repeated among the most recent ``capacity`` ids.

    Older ids are forgotten so memory stays bounded; a repeat against them
    would need a collision in a 62**16 space.
    """

    def __init__(self, capacity: int = DEFAULT_REGISTRY_CAPACITY) -> None:
        self._issued: set[str] = set()
        self._order: deque[str] = deque()
        self._capacity = capacity
        self._lock = threading.Lock()

    def new_id(self, length: int = ID_LENGTH) -> str:
        """Return a fresh random identifier not among the remembered ones."""
        with self._lock:
            while True:
                candidate = "".join(secrets.choice(_ALPHABET) for _ in range(length))
                if candidate not in self._issued:
                    self._remember(candidate)
                    return candidate

    def _remember(self, value: str) -> None:
        if len(self._order) >= self._capacity:
            self._issued.discard(self._order.popleft())
        self._order.append(value)
        self._issued.add(value)

    def __len__(self) -> int:
        return len(self._issued)


_registry = IdRegistry()


def random_id(length: int = ID_LENGTH) -> str:
    """Return a process-unique random identifier."""
    return _registry.new_id(length)


def is_valid_id(value: object) -> bool:
    """Check that ``value`` looks like a host document id."""
    return isinstance(value, str) and bool(_ID_PATTERN.match(value))


def derive_id(*parts: str) -> str:
    """Derive a deterministic id from its parts."""
    digest = hashlib.sha1("|".join(parts).encode("utf-8")).hexdigest()
    return digest[:ID_LENGTH]


__all__ = ["IdRegistry", "random_id", "is_valid_id", "derive_id"]
