# revdeps/modules/engine.py
"""
Command based build engine.

Realizes a BuildTarget:
 - closure of the target members and their build inputs
 - topological order (Kahn), grouped in levels
 - parallel builds per level
 - each record runs its `build` commands inside its source directory
 - dry-run only logs what would run

A target is realized as a whole: if any package fails, realize() raises
BuildError naming every failure.
"""

from __future__ import annotations
import os
import subprocess
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from datetime import datetime
from typing import Any, Dict, List, Optional, Set

from revdeps.modules import logger as _logger
from revdeps.modules.records import PackageRecord, entry_name, force


class BuildError(Exception):
    def __init__(self, message: str, failed: Optional[List[str]] = None):
        super().__init__(message)
        self.failed = failed or []


class CommandResult:
    """Outcome of one build command"""

    def __init__(self, command, returncode, stdout, stderr, duration):
        self.command = command
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr
        self.duration = duration
        self.timestamp = datetime.now().isoformat()

    def ok(self):
        return self.returncode == 0


def topological_sort(nodes: Set[str], deps: Dict[str, List[str]]) -> List[str]:
    # Kahn's algorithm; each edge counts once
    in_deg = {n: 0 for n in nodes}
    for n, ds in deps.items():
        for d in set(ds):
            if d in in_deg:
                in_deg[n] += 1
    q = sorted(n for n, deg in in_deg.items() if deg == 0)
    ordered = []
    while q:
        n = q.pop(0)
        ordered.append(n)
        for m in sorted(deps):
            if n in deps[m]:
                in_deg[m] -= 1
                if in_deg[m] == 0:
                    q.append(m)
    if len(ordered) != len(nodes):
        cyclic = sorted(set(nodes) - set(ordered))
        raise BuildError(f"Cyclic dependency detected: {', '.join(cyclic)}", cyclic)
    return ordered


def levels_from_order(order: List[str], deps: Dict[str, List[str]]) -> List[List[str]]:
    remain = list(order)
    levels = []
    built: Set[str] = set()
    while remain:
        this = [n for n in remain if set(deps.get(n, [])).issubset(built)]
        if not this:
            raise BuildError("Cannot form build levels (cycle?)", sorted(remain))
        for n in this:
            remain.remove(n)
        built.update(this)
        levels.append(sorted(this))
    return levels


class CommandBuildEngine:
    def __init__(self,
                 workers: int = 4,
                 dry_run: bool = False,
                 logger: Optional[_logger.Logger] = None):
        self.workers = max(1, int(workers))
        self.dry_run = dry_run
        self.log = logger or _logger.Logger("engine")
        self.metrics = self._fresh_metrics()

    @staticmethod
    def _fresh_metrics() -> Dict[str, Any]:
        return {
            "built": 0,
            "skipped": 0,
            "failed": 0,
            "start_time": None,
            "end_time": None,
            "packages": {},
        }

    # ---------------------------
    # Graph utilities
    # ---------------------------
    def closure(self, members) -> (Dict[str, PackageRecord], Dict[str, List[str]]):
        """
        Members plus everything reachable through build inputs.
        Returns (pkg_map, deps) keyed by record name.
        """
        pkg_map: Dict[str, PackageRecord] = {}
        deps: Dict[str, List[str]] = {}
        stack = list(members)
        while stack:
            record = stack.pop()
            if record.name in pkg_map:
                continue
            pkg_map[record.name] = record
            names = []
            for dep in record.try_build_inputs() or ():
                try:
                    value = force(dep)
                except Exception as e:
                    raise BuildError(f"cannot evaluate dependency {entry_name(dep, '?')} "
                                     f"of {record.name}: {e}", [record.name]) from e
                if not isinstance(value, PackageRecord):
                    raise BuildError(f"dependency {entry_name(dep, '?')} of {record.name} "
                                     f"is not a package", [record.name])
                # aliases and repeated inputs collapse to one edge
                if value.name not in names:
                    names.append(value.name)
                stack.append(value)
            deps[record.name] = names
        return pkg_map, deps

    # ---------------------------
    # Build orchestration
    # ---------------------------
    def realize(self, target) -> Dict[str, Any]:
        self.metrics = self._fresh_metrics()
        self.metrics["start_time"] = time.time()
        pkg_map, deps = self.closure(target.paths)
        order = topological_sort(set(pkg_map), deps)
        levels = levels_from_order(order, deps)
        self.log.info(f"Realizing {target.name}: {len(target.paths)} members, "
                      f"{len(pkg_map)} packages, {len(levels)} levels")

        results: Dict[str, Any] = {}
        failed: List[str] = []
        for idx, level in enumerate(levels):
            self.log.debug(f"Building level {idx}: {level}")
            with ThreadPoolExecutor(max_workers=self.workers) as ex:
                future_to_name = {ex.submit(self._build_single, pkg_map[name]): name
                                  for name in level}
                for fut in as_completed(future_to_name):
                    name = future_to_name[fut]
                    try:
                        res = fut.result()
                        results[name] = {"ok": True, "result": res}
                        self.metrics["packages"][name] = {"status": "built" if res else "skipped"}
                        if res:
                            self.metrics["built"] += 1
                        else:
                            self.metrics["skipped"] += 1
                    except Exception as e:
                        results[name] = {"ok": False, "error": str(e)}
                        self.metrics["failed"] += 1
                        self.metrics["packages"][name] = {"status": "failed", "error": str(e)}
                        self.log.error(f"Failed building {name}: {e}")
                        failed.append(name)
            if failed:
                break
        self.metrics["end_time"] = time.time()

        if failed:
            failed.sort()
            raise BuildError(f"{target.name}: failed to build {', '.join(failed)}", failed)
        self.log.success(f"{target.name} realized ({self.metrics['built']} builds)")
        return results

    # ---------------------------
    # Single package
    # ---------------------------
    def _build_single(self, record: PackageRecord) -> List[CommandResult]:
        if not record.build:
            self.log.debug(f"{record.name}: nothing to build")
            return []
        cwd = record.source if record.source and os.path.isdir(record.source) else None
        env = os.environ.copy()
        env["REVDEPS_PACKAGE"] = record.name
        if record.version:
            env["REVDEPS_VERSION"] = record.version

        out = []
        for cmd in record.build:
            self.log.info(f"[{record.name}] {cmd}")
            if self.dry_run:
                out.append(CommandResult(cmd, 0, "[dry-run]", "", 0))
                continue
            start = time.time()
            proc = subprocess.run(cmd, shell=True, cwd=cwd, env=env,
                                  stdout=subprocess.PIPE, stderr=subprocess.PIPE, text=True)
            result = CommandResult(cmd, proc.returncode, proc.stdout, proc.stderr,
                                   time.time() - start)
            out.append(result)
            if not result.ok():
                raise BuildError(f"command failed ({result.returncode}): {cmd}\n"
                                 f"stderr: {result.stderr.strip()}", [record.name])
        return out
