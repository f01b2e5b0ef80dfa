from dataclasses import dataclass, field
from typing import ClassVar, Iterable, Iterator, List, Optional, Tuple, Union


def normalize_keyword(raw: Optional[str]) -> str:
    """Trim surrounding whitespace and lowercase a raw keyword."""
    if raw is None:
        return ""
    return str(raw).strip().lower()


class KeywordSet:
    """
    Ordered collection of keywords that is unique under case-insensitive comparison.

    Every entry is stored normalized (trimmed, lowercase) and keeps the position
    it was first added at, so display order follows insertion order.
    """

    def __init__(self, keywords: Iterable[str] = ()) -> None:
        self._items: List[str] = []
        for keyword in keywords:
            self.add(keyword)

    def add(self, raw: str) -> Optional[str]:
        """
        Append a keyword if it is not empty and not already present.

        Returns:
            The normalized keyword that was appended, or None if nothing changed
        """
        keyword = normalize_keyword(raw)
        if not keyword or keyword in self._items:
            return None
        self._items.append(keyword)
        return keyword

    def remove(self, raw: str) -> Optional[str]:
        """
        Remove the entry matching a keyword.

        Returns:
            The normalized keyword that was removed, or None if it was absent
        """
        keyword = normalize_keyword(raw)
        if keyword not in self._items:
            return None
        self._items.remove(keyword)
        return keyword

    def clear(self) -> None:
        self._items.clear()

    def copy(self) -> "KeywordSet":
        return KeywordSet(self._items)

    def snapshot(self) -> Tuple[str, ...]:
        return tuple(self._items)

    def __contains__(self, raw: object) -> bool:
        if not isinstance(raw, str):
            return False
        return normalize_keyword(raw) in self._items

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._items))

    def __len__(self) -> int:
        return len(self._items)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, KeywordSet):
            return self._items == other._items
        if isinstance(other, (list, tuple)):
            return self._items == list(other)
        return NotImplemented

    def __repr__(self) -> str:
        return f"KeywordSet({self._items!r})"


@dataclass(frozen=True)
class User:
    """A signed-in user as reported by the session layer."""

    id: str
    name: Optional[str] = None
    avatar_url: Optional[str] = None

    @property
    def display_name(self) -> str:
        return self.name if self.name else self.id

    def __str__(self) -> str:
        return self.display_name


@dataclass(frozen=True)
class SignedIn:
    user: User


@dataclass(frozen=True)
class SignedOut:
    pass


SessionEvent = Union[SignedIn, SignedOut]


@dataclass(frozen=True)
class KeywordChange:
    """Base for change notifications; carries the keyword and the resulting set."""

    keyword: str
    keywords: Tuple[str, ...] = field(default_factory=tuple)

    action: ClassVar[str] = "changed"


@dataclass(frozen=True)
class Added(KeywordChange):
    action: ClassVar[str] = "added"


@dataclass(frozen=True)
class Removed(KeywordChange):
    action: ClassVar[str] = "removed"


ChangeNotification = Union[Added, Removed]
