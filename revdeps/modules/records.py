# revdeps/modules/records.py
"""
Package records as seen by the reverse-dependency query.

A registry maps names to *entries*. An entry is usually a PackageRecord, but
it may also be a Deferred value (evaluated on first use, and allowed to fail)
or anything else a registry happens to hold. Build inputs are entries too,
typically PackageRef objects that resolve a name through the registry.
"""

from __future__ import annotations
import threading
from dataclasses import dataclass, field
from typing import Any, Callable, FrozenSet, Iterable, Optional, Tuple

ALL = "all"
NONE = "none"
SPECIFIC = "specific"


@dataclass(frozen=True)
class PlatformSet:
    """All | None | Specific(platforms). Compared structurally."""

    kind: str = ALL
    platforms: FrozenSet[str] = frozenset()

    @classmethod
    def all(cls) -> "PlatformSet":
        return cls(ALL)

    @classmethod
    def none(cls) -> "PlatformSet":
        return cls(NONE)

    @classmethod
    def specific(cls, platforms: Iterable[str]) -> "PlatformSet":
        platforms = frozenset(platforms)
        # an empty platform list means "no platforms"
        if not platforms:
            return cls.none()
        return cls(SPECIFIC, platforms)

    @property
    def is_all(self) -> bool:
        return self.kind == ALL

    @property
    def is_none(self) -> bool:
        return self.kind == NONE

    def contains(self, system: str) -> bool:
        if self.kind == ALL:
            return True
        if self.kind == NONE:
            return False
        return system in self.platforms

    def __str__(self) -> str:
        if self.kind == SPECIFIC:
            return "[" + ", ".join(sorted(self.platforms)) + "]"
        return self.kind


@dataclass(frozen=True)
class Metadata:
    broken: bool = False
    hydra_platforms: PlatformSet = field(default_factory=PlatformSet.all)
    platforms: PlatformSet = field(default_factory=PlatformSet.all)


@dataclass(frozen=True)
class PackageRecord:
    name: str
    version: Optional[str] = None
    build_inputs: Optional[Tuple[Any, ...]] = None
    metadata: Optional[Metadata] = None
    build: Tuple[str, ...] = ()
    source: Optional[str] = None

    def try_metadata(self) -> Optional[Metadata]:
        return self.metadata

    def try_build_inputs(self) -> Optional[Tuple[Any, ...]]:
        return self.build_inputs


class Deferred:
    """
    Entry whose value is produced on first use.

    The loader may raise; the error is raised again on every force() so a
    broken entry stays broken. A successful value is cached.
    """

    def __init__(self, name: str, loader: Callable[[], Any]):
        self.name = name
        self._loader = loader
        self._lock = threading.Lock()
        self._done = False
        self._value = None

    def force(self) -> Any:
        if self._done:
            return self._value
        with self._lock:
            if not self._done:
                self._value = self._loader()
                self._done = True
        return self._value

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.name}>"


class PackageRef(Deferred):
    """Reference to another registry entry, resolved by name."""

    def __init__(self, name: str, registry):
        super().__init__(name, lambda: registry.get_entry(name))
        self.registry = registry


def force(entry: Any) -> Any:
    """Evaluate an entry completely; may raise."""
    seen = 0
    while isinstance(entry, Deferred):
        entry = entry.force()
        seen += 1
        if seen > 64:
            raise RecursionError("too many levels of deferred entries")
    return entry


def entry_name(entry: Any, fallback: Optional[str] = None) -> Optional[str]:
    """Best-effort display name without forcing anything."""
    if isinstance(entry, (Deferred, PackageRecord)):
        return entry.name
    return fallback


