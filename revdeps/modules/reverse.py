# revdeps/modules/reverse.py
"""
Reverse dependency filter.

A registry entry is a reverse dependency of the target when:
 - it is usable itself
 - it exposes build inputs
 - one of its build inputs has the target's name
 - none of its build inputs is unusable

Only direct build inputs are checked. A package whose input is usable but
depends on something broken further down is still selected.
"""

from __future__ import annotations
from concurrent.futures import ThreadPoolExecutor
from enum import Enum
from typing import Any, Dict, Optional, Tuple

from revdeps.modules import logger as _logger
from revdeps.modules.classifier import BrokennessClassifier
from revdeps.modules.records import PackageRecord, entry_name, force
from revdeps.modules.registry import PackageRegistry

ResultSet = Dict[str, PackageRecord]


class Verdict(Enum):
    INCLUDED = "included"
    UNUSABLE = "unusable"
    NO_BUILD_INPUTS = "no build inputs"
    NO_DEPENDENCY = "no dependency on target"
    UNUSABLE_INPUTS = "has dependencies that cannot be built"


class ReverseDependencyFilter:
    def __init__(self,
                 classifier: Optional[BrokennessClassifier] = None,
                 workers: int = 1,
                 logger: Optional[_logger.Logger] = None):
        self.log = logger or _logger.Logger("reverse")
        self.classifier = classifier or BrokennessClassifier(logger=self.log)
        self.workers = max(1, int(workers))

    # ---------------------------
    # Single entry
    # ---------------------------
    @staticmethod
    def _input_name(dep: Any) -> Optional[str]:
        try:
            value = force(dep)
        except Exception:
            return None
        if isinstance(value, PackageRecord):
            return value.name
        return None

    def verdict(self, name: str, entry: Any, target: PackageRecord,
                allow_broken: bool = False) -> Verdict:
        if not self.classifier.is_usable(entry, allow_broken, name):
            return Verdict.UNUSABLE

        record = force(entry)
        inputs = record.try_build_inputs()
        if inputs is None:
            self.log.trace(f"no build inputs: {name}")
            return Verdict.NO_BUILD_INPUTS

        if not any(self._input_name(dep) == target.name for dep in inputs):
            return Verdict.NO_DEPENDENCY

        unusable = [dep for dep in inputs
                    if not self.classifier.is_usable(dep, allow_broken, entry_name(dep))]
        if unusable:
            self.log.trace(f"has dependencies that cannot be built: {name} "
                           f"({', '.join(entry_name(d, '?') for d in unusable)})")
            return Verdict.UNUSABLE_INPUTS
        return Verdict.INCLUDED

    # ---------------------------
    # Registry scan
    # ---------------------------
    def _scan(self, registry: PackageRegistry, target_name: str,
              allow_broken: bool) -> Tuple[PackageRecord, Dict[str, Verdict]]:
        target = registry.lookup(target_name)
        items = registry.iterate()

        def check(item):
            name, entry = item
            return name, self.verdict(name, entry, target, allow_broken)

        if self.workers > 1 and len(items) > 1:
            with ThreadPoolExecutor(max_workers=self.workers) as ex:
                verdicts = dict(ex.map(check, items))
        else:
            verdicts = dict(check(item) for item in items)
        return target, verdicts

    def explain(self, registry: PackageRegistry, target_name: str,
                allow_broken: bool = False) -> Dict[str, Verdict]:
        _, verdicts = self._scan(registry, target_name, allow_broken)
        return {name: verdicts[name] for name in sorted(verdicts)}

    def select(self, registry: PackageRegistry, target_name: str,
               allow_broken: bool = False) -> Tuple[ResultSet, Dict[str, Verdict]]:
        """Result set and sorted verdicts from a single registry scan."""
        target, verdicts = self._scan(registry, target_name, allow_broken)
        verdicts = {name: verdicts[name] for name in sorted(verdicts)}
        result = {
            name: force(registry.get_entry(name))
            for name, verdict in verdicts.items()
            if verdict is Verdict.INCLUDED
        }
        self.log.info(f"{len(result)} reverse dependencies of {target.name} "
                      f"({len(verdicts)} packages scanned)")
        return result, verdicts

    def filter(self, registry: PackageRegistry, target_name: str,
               allow_broken: bool = False) -> ResultSet:
        result, _ = self.select(registry, target_name, allow_broken)
        return result
