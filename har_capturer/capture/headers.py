"""Ordered HTTP header collection with HAR merge semantics.

CDP reports headers as JSON objects, but a HAR header list is not a map:
the same name may legitimately appear several times and insertion order is
significant. ``HeaderSet`` keeps the pairs as observed and implements the
merge rule used when headers captured at a lower protocol layer (the
``*ExtraInfo`` events) are folded into an entry.
"""

from typing import Any, Iterator, List, Mapping, Optional, Tuple

from ..models.har import HeaderEntry


class HeaderSet:
    """Insertion-ordered list of ``(name, value)`` pairs."""

    def __init__(self, pairs: Optional[List[Tuple[str, str]]] = None):
        self._pairs: List[Tuple[str, str]] = list(pairs or [])

    @classmethod
    def from_mapping(cls, mapping: Optional[Mapping[str, Any]]) -> "HeaderSet":
        """Build from a CDP header object.

        Multi-valued headers are reported by Chrome as a single value joined
        with newlines (e.g. ``Set-Cookie``); those become one pair per line.
        """
        headers = cls()
        for name, value in _iter_pairs(mapping):
            headers.append(name, value)
        return headers

    def append(self, name: str, value: str) -> None:
        self._pairs.append((name, value))

    def contains(self, name: str, value: str) -> bool:
        """Check for a pair matching ``name`` case-insensitively and ``value`` exactly."""
        lowered = name.lower()
        return any(n.lower() == lowered and v == value for n, v in self._pairs)

    def merge(self, name: str, value: str) -> bool:
        """Fold one header into the set.

        Nothing happens when an entry with the same name (case-insensitive)
        and the exact same value already exists; otherwise the pair is
        appended verbatim, even if the name is already present with another
        value.

        Returns:
            True if a new pair was appended
        """
        if self.contains(name, value):
            return False
        self.append(name, value)
        return True

    def merge_all(self, mapping: Optional[Mapping[str, Any]]) -> int:
        """Merge every pair of a CDP header object, returning the number appended."""
        appended = 0
        for name, value in _iter_pairs(mapping):
            if self.merge(name, value):
                appended += 1
        return appended

    def get(self, name: str, default: Any = None) -> Any:
        """First value whose name matches case-insensitively."""
        lowered = name.lower()
        for n, v in self._pairs:
            if n.lower() == lowered:
                return v
        return default

    def count(self, name: str) -> int:
        lowered = name.lower()
        return sum(1 for n, _ in self._pairs if n.lower() == lowered)

    def raw_size(self, first_line: str) -> int:
        """Length of the HTTP/1.x header block starting with ``first_line``."""
        lines = [first_line]
        lines.extend(f"{name}: {value}" for name, value in self._pairs)
        lines.extend(['', ''])
        return len('\r\n'.join(lines).encode('utf-8'))

    def to_har(self) -> List[HeaderEntry]:
        return [HeaderEntry(name=name, value=value) for name, value in self._pairs]

    def __iter__(self) -> Iterator[Tuple[str, str]]:
        return iter(self._pairs)

    def __len__(self) -> int:
        return len(self._pairs)

    def __repr__(self) -> str:
        return f"HeaderSet({self._pairs!r})"


def _iter_pairs(mapping: Optional[Mapping[str, Any]]) -> Iterator[Tuple[str, str]]:
    if not mapping:
        return
    for name, value in mapping.items():
        values = value if isinstance(value, (list, tuple)) else [value]
        for item in values:
            if item is None:
                continue
            for line in str(item).split('\n'):
                yield str(name), line
