# revdeps/modules/classifier.py
"""
Usability classification of a single registry entry.

The rules below are checked top to bottom and the first one that matches
decides the status. Anything raised while evaluating or inspecting the entry
is reported as EVALUATION_ERROR, so classify() never raises.
"""

from __future__ import annotations
import platform
from enum import Enum
from typing import Any, Callable, Optional, Tuple

from revdeps.modules import logger as _logger
from revdeps.modules.config import config as _default_config
from revdeps.modules.records import PackageRecord, entry_name, force


class UsabilityStatus(Enum):
    USABLE = "not broken"
    NOT_A_RECORD = "not a package"
    NO_METADATA = "no meta"
    MARKED_BROKEN = "broken"
    PLATFORM_EXCLUDED_BY_HYDRA = "hydra platforms none"
    PLATFORM_EXCLUDED_NATIVELY = "platforms none"
    PLATFORM_UNSUPPORTED = "platform not supported"
    EVALUATION_ERROR = "eval error"


_USABILITY = {
    UsabilityStatus.USABLE: True,
    UsabilityStatus.NOT_A_RECORD: False,
    UsabilityStatus.NO_METADATA: False,
    UsabilityStatus.MARKED_BROKEN: False,
    UsabilityStatus.PLATFORM_EXCLUDED_BY_HYDRA: False,
    UsabilityStatus.PLATFORM_EXCLUDED_NATIVELY: False,
    UsabilityStatus.PLATFORM_UNSUPPORTED: False,
    UsabilityStatus.EVALUATION_ERROR: False,
}


def host_system() -> str:
    """Platform id of the running host, e.g. x86_64-linux."""
    machine = platform.machine().lower() or "unknown"
    machine = {"amd64": "x86_64", "arm64": "aarch64"}.get(machine, machine)
    return f"{machine}-{platform.system().lower() or 'unknown'}"


def default_system() -> str:
    return _default_config.get("revdeps", "system", fallback=None) or host_system()


# -------------------------
# Guard rules
# -------------------------
class _Context:
    __slots__ = ("system", "allow_broken")

    def __init__(self, system: str, allow_broken: bool):
        self.system = system
        self.allow_broken = allow_broken


def _not_a_record(value: Any, ctx: _Context) -> bool:
    return not isinstance(value, PackageRecord)


def _no_metadata(record: PackageRecord, ctx: _Context) -> bool:
    return record.try_metadata() is None


def _marked_broken(record: PackageRecord, ctx: _Context) -> bool:
    if ctx.allow_broken:
        return False
    return bool(record.try_metadata().broken)


def _hydra_none(record: PackageRecord, ctx: _Context) -> bool:
    return record.try_metadata().hydra_platforms.is_none


def _platforms_none(record: PackageRecord, ctx: _Context) -> bool:
    return record.try_metadata().platforms.is_none


def _platform_unsupported(record: PackageRecord, ctx: _Context) -> bool:
    return not record.try_metadata().platforms.contains(ctx.system)


RULES: Tuple[Tuple[UsabilityStatus, Callable[[Any, _Context], bool]], ...] = (
    (UsabilityStatus.NOT_A_RECORD, _not_a_record),
    (UsabilityStatus.NO_METADATA, _no_metadata),
    (UsabilityStatus.MARKED_BROKEN, _marked_broken),
    (UsabilityStatus.PLATFORM_EXCLUDED_BY_HYDRA, _hydra_none),
    (UsabilityStatus.PLATFORM_EXCLUDED_NATIVELY, _platforms_none),
    (UsabilityStatus.PLATFORM_UNSUPPORTED, _platform_unsupported),
)


class BrokennessClassifier:
    def __init__(self, system: Optional[str] = None, logger: Optional[_logger.Logger] = None):
        self.system = system or default_system()
        self.log = logger or _logger.Logger("classifier")

    def _evaluate(self, entry: Any, allow_broken: bool) -> UsabilityStatus:
        ctx = _Context(self.system, allow_broken)
        value = force(entry)
        for status, rule in RULES:
            if rule(value, ctx):
                return status
        return UsabilityStatus.USABLE

    def classify(self, entry: Any, allow_broken: bool = False,
                 name: Optional[str] = None) -> UsabilityStatus:
        name = name or entry_name(entry, "<unnamed>")
        try:
            status = self._evaluate(entry, allow_broken)
        except Exception as e:
            self.log.trace(f"eval error: {name}: {e}")
            return UsabilityStatus.EVALUATION_ERROR

        if status is UsabilityStatus.PLATFORM_UNSUPPORTED:
            self.log.trace(f"system platform ({self.system}) not supported for package: {name}")
        elif status is not UsabilityStatus.USABLE:
            self.log.trace(f"{status.value}: {name}")
        return status

    def is_usable(self, entry: Any, allow_broken: bool = False,
                  name: Optional[str] = None) -> bool:
        status = self.classify(entry, allow_broken, name)
        try:
            return _USABILITY[status]
        except KeyError:
            raise RuntimeError(f"unknown return value from classify: {status!r}") from None
