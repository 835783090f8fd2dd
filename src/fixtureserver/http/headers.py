"""
=============================================================================
HTTP HEADERS
=============================================================================

A case-insensitive, multi-valued header map shared by requests and
responses.

=============================================================================
WHY NOT A PLAIN DICT?
=============================================================================

HTTP header names are case-insensitive, and a header may legally appear
more than once:

    GET /empty.html HTTP/1.1
    Host: localhost:8907
    X-Test: 1
    Cookie: a=1
    cookie: b=2            ← same header, different spelling

A dict keyed by lowercase name loses the second value unless we join them
with commas, and joining is wrong for headers like Set-Cookie whose values
may themselves contain commas. So we keep every (name, value) pair in
arrival order and index them by lowercase name:

    ┌────────────────────────────────────────────────────────────────────┐
    │  _items:  [("Host", "localhost:8907"),                             │
    │            ("X-Test", "1"),                                        │
    │            ("Cookie", "a=1"),                                      │
    │            ("cookie", "b=2")]                                      │
    │                                                                    │
    │  get("COOKIE")     → "a=1"           (first value)                 │
    │  get_all("cookie") → ["a=1", "b=2"]  (every value, in order)       │
    └────────────────────────────────────────────────────────────────────┘

=============================================================================
"""

from typing import Iterable, Iterator, List, Optional, Tuple


class Headers:
    """
    Ordered multi-map of HTTP headers with case-insensitive names.

    Example:
        headers = Headers()
        headers.add("Set-Cookie", "a=1")
        headers.add("Set-Cookie", "b=2")
        headers.get_all("set-cookie")   # ["a=1", "b=2"]
    """

    def __init__(self, items: Optional[Iterable[Tuple[str, str]]] = None):
        self._items: List[Tuple[str, str]] = []
        for name, value in items or ():
            self.add(name, value)

    def add(self, name: str, value: str) -> None:
        """Append a value, keeping any existing values for the name."""
        self._items.append((name, str(value)))

    def set(self, name: str, value: str) -> None:
        """Replace every value of a header with a single value."""
        self.remove(name)
        self._items.append((name, str(value)))

    def setdefault(self, name: str, value: str) -> str:
        """Set the header only if it is not present yet."""
        existing = self.get(name)
        if existing is not None:
            return existing
        self.add(name, value)
        return value

    def get(self, name: str, default: Optional[str] = None) -> Optional[str]:
        """Return the first value of a header, or ``default``."""
        key = name.lower()
        for item_name, value in self._items:
            if item_name.lower() == key:
                return value
        return default

    def get_all(self, name: str) -> List[str]:
        """Return every value of a header in arrival order."""
        key = name.lower()
        return [value for item_name, value in self._items if item_name.lower() == key]

    def remove(self, name: str) -> None:
        key = name.lower()
        self._items = [item for item in self._items if item[0].lower() != key]

    def items(self) -> List[Tuple[str, str]]:
        """All (name, value) pairs, names in their original spelling."""
        return list(self._items)

    def names(self) -> List[str]:
        """Distinct header names, lowercase, in first-seen order."""
        seen: List[str] = []
        for name, _ in self._items:
            lowered = name.lower()
            if lowered not in seen:
                seen.append(lowered)
        return seen

    def copy(self) -> "Headers":
        return Headers(self._items)

    def __contains__(self, name: object) -> bool:
        if not isinstance(name, str):
            return False
        return self.get(name) is not None

    def __getitem__(self, name: str) -> str:
        value = self.get(name)
        if value is None:
            raise KeyError(name)
        return value

    def __setitem__(self, name: str, value: str) -> None:
        self.set(name, value)

    def __iter__(self) -> Iterator[Tuple[str, str]]:
        return iter(list(self._items))

    def __len__(self) -> int:
        return len(self._items)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Headers):
            return NotImplemented
        return [(n.lower(), v) for n, v in self._items] == [
            (n.lower(), v) for n, v in other._items
        ]

    def __repr__(self) -> str:
        return f"Headers({self._items!r})"
