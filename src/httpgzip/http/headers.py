"""
=============================================================================
HTTP HEADER MAP
=============================================================================

A case-insensitive, multi-valued header container.

=============================================================================
WHY NOT A PLAIN DICT?
=============================================================================

1. CASE INSENSITIVITY: "content-type" and "Content-Type" are the same
   header (RFC 7230 section 3.2). We store canonical names so lookups with
   any casing hit the same entry.

2. MULTIPLE VALUES: Some headers legitimately appear more than once:

       Vary: Accept-Encoding
       Vary: Origin
       Set-Cookie: a=1
       Set-Cookie: b=2

   A middleware that adds "Vary: Accept-Encoding" must NOT clobber a
   "Vary: Origin" added by another middleware. So we keep a list of values
   per name and distinguish set() (replace) from add() (append).

    ┌─────────────────────────────────────────────────────────────────────┐
    │   headers.add("Vary", "Origin")                                     │
    │   headers.add("vary", "Accept-Encoding")                            │
    │                                                                      │
    │   {"Vary": ["Origin", "Accept-Encoding"]}                           │
    │                                                                      │
    │   headers.get("VARY")    → "Origin"        (first value)            │
    │   headers.values("Vary") → ["Origin", "Accept-Encoding"]            │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
"""

from datetime import datetime, timezone
from typing import Dict, Iterable, Iterator, List, Optional, Tuple


def canonical_header_name(name: str) -> str:
    """
    Canonicalize a header name.

    The first letter and any letter following a hyphen are upper-cased,
    everything else is lower-cased:

        "content-type"     → "Content-Type"
        "ACCEPT-ENCODING"  → "Accept-Encoding"
        "x-request-id"     → "X-Request-Id"
    """
    return "-".join(part[:1].upper() + part[1:].lower() for part in name.strip().split("-"))


class Headers:
    """Case-insensitive multi-valued header map."""

    def __init__(self, initial: Optional[Iterable[Tuple[str, str]]] = None):
        self._values: Dict[str, List[str]] = {}
        if initial is not None:
            if isinstance(initial, dict):
                initial = initial.items()
            for name, value in initial:
                self.add(name, value)

    def get(self, name: str, default: str = "") -> str:
        """Return the first value for ``name``, or ``default``."""
        values = self._values.get(canonical_header_name(name))
        return values[0] if values else default

    def values(self, name: str) -> List[str]:
        """Return a copy of every value stored for ``name``."""
        return list(self._values.get(canonical_header_name(name), []))

    def set(self, name: str, value: str) -> None:
        """Replace all values for ``name`` with a single value."""
        self._values[canonical_header_name(name)] = [str(value)]

    def add(self, name: str, value: str) -> None:
        """Append a value for ``name``, keeping existing values."""
        self._values.setdefault(canonical_header_name(name), []).append(str(value))

    def setdefault(self, name: str, value: str) -> str:
        if name not in self:
            self.set(name, value)
        return self.get(name)

    def delete(self, name: str) -> None:
        """Remove ``name`` entirely. Missing names are ignored."""
        self._values.pop(canonical_header_name(name), None)

    def items(self) -> Iterator[Tuple[str, str]]:
        """Yield (name, value) pairs, one pair per value."""
        for name, values in self._values.items():
            for value in values:
                yield name, value

    def copy(self) -> "Headers":
        clone = Headers()
        clone._values = {name: list(values) for name, values in self._values.items()}
        return clone

    def to_lines(self) -> List[str]:
        """Serialize as "Name: value" lines, one per value."""
        return [f"{name}: {value}" for name, value in self.items()]

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and canonical_header_name(name) in self._values

    def __len__(self) -> int:
        return len(self._values)

    def __iter__(self) -> Iterator[str]:
        return iter(self._values)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Headers):
            return NotImplemented
        return self._values == other._values

    def __repr__(self) -> str:
        return f"Headers({self._values!r})"


_DAYS = ["Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun"]
_MONTHS = ["Jan", "Feb", "Mar", "Apr", "May", "Jun",
           "Jul", "Aug", "Sep", "Oct", "Nov", "Dec"]


def format_http_date(dt: Optional[datetime] = None) -> str:
    """
    Format a datetime as an HTTP-date (RFC 7231), always in GMT.

        >>> format_http_date(datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc))
        'Thu, 01 Jan 2026 12:00:00 GMT'

    Naive datetimes are taken as UTC. Defaults to now.
    """
    if dt is None:
        dt = datetime.now(timezone.utc)
    elif dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc)
    return (
        f"{_DAYS[dt.weekday()]}, "
        f"{dt.day:02d} {_MONTHS[dt.month - 1]} {dt.year} "
        f"{dt.hour:02d}:{dt.minute:02d}:{dt.second:02d} GMT"
    )
