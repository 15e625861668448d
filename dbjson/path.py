"""
Rooted store paths.

A StorePath addresses a subtree inside a replica document. Callers may
pass either a dotted string ("songs.Petrichor.tags") or a sequence of
segments (["songs", "Petrichor", "tags"]); both normalize to the same
rooted tuple ("database", "songs", "Petrichor", "tags").

Invariants:
    - segments[0] is always the root key
    - No segment is empty
    - Two paths are equal iff their segment tuples are equal
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterator, Sequence, Tuple, Union

from .config import DEFAULT_ROOT_KEY
from .errors import InvalidRequestError

PathLike = Union[str, Sequence[Union[str, int]], "StorePath"]


@dataclass(frozen=True)
class StorePath:
    """Normalized, rooted path into a replica tree."""

    segments: Tuple[str, ...]

    @classmethod
    def parse(cls, value: PathLike, root: str = DEFAULT_ROOT_KEY) -> StorePath:
        """Normalize a dotted string or segment sequence.

        Args:
            value: Dotted string, sequence of segments, or StorePath
            root: Root key to prefix when missing

        Returns:
            Rooted StorePath

        Raises:
            InvalidRequestError: If the path is malformed
        """
        if isinstance(value, StorePath):
            if value.segments[0] != root:
                return cls((root,) + value.segments)
            return value

        if isinstance(value, str):
            parts = value.split(".") if value else []
        elif isinstance(value, (list, tuple)):
            parts = []
            for seg in value:
                if isinstance(seg, bool) or not isinstance(seg, (str, int)):
                    raise InvalidRequestError(f"Invalid path segment {seg!r}")
                parts.append(str(seg))
        else:
            raise InvalidRequestError(f"Invalid path {value!r}: expected string or list")

        if any(part == "" for part in parts):
            raise InvalidRequestError(f"Invalid path {value!r}: empty segment")

        if not parts or parts[0] != root:
            parts.insert(0, root)
        return cls(tuple(parts))

    @property
    def root(self) -> str:
        return self.segments[0]

    @property
    def is_root(self) -> bool:
        return len(self.segments) == 1

    @property
    def name(self) -> str:
        return self.segments[-1]

    @property
    def parent(self) -> StorePath:
        if self.is_root:
            return self
        return StorePath(self.segments[:-1])

    @property
    def relative(self) -> Tuple[str, ...]:
        """Segments below the root key."""
        return self.segments[1:]

    def child(self, *names: Union[str, int]) -> StorePath:
        """Return a path extended by one or more segments."""
        extra = tuple(str(n) for n in names)
        if any(n == "" for n in extra):
            raise InvalidRequestError("Invalid path: empty segment")
        return StorePath(self.segments + extra)

    def __iter__(self) -> Iterator[str]:
        return iter(self.segments)

    def __len__(self) -> int:
        return len(self.segments)

    def __str__(self) -> str:
        return ".".join(self.segments)
