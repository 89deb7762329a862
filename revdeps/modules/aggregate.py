# revdeps/modules/aggregate.py
"""
Turns a reverse dependency result set into an output artifact:

 - manifest: text file, one package name per line
 - build target: a single target whose dependencies are all the results
"""

from __future__ import annotations
import os
from dataclasses import dataclass
from typing import Any, List, Tuple, Union

from revdeps.modules.records import PackageRecord

PREFIX = "all-reverse-dependencies-of-"


def manifest_name(target_name: str) -> str:
    return f"{PREFIX}{target_name}"


def env_name(target_name: str) -> str:
    return f"{PREFIX}{target_name}-env"


@dataclass(frozen=True)
class ManifestArtifact:
    name: str
    content: str

    def lines(self) -> List[str]:
        return self.content.splitlines()

    def write(self, path: str) -> str:
        if os.path.isdir(path):
            path = os.path.join(path, self.name)
        with open(path, "w", encoding="utf-8") as fh:
            fh.write(self.content)
        return path


@dataclass(frozen=True)
class BuildTarget:
    name: str
    paths: Tuple[PackageRecord, ...]

    def member_names(self) -> List[str]:
        return [r.name for r in self.paths]

    def realize(self, engine: Any) -> Any:
        """All or nothing: the engine either realizes every member or raises."""
        return engine.realize(self)


class ResultAggregator:
    def manifest(self, target_name: str, result_set) -> ManifestArtifact:
        content = "".join(f"{record.name}\n" for record in result_set.values())
        return ManifestArtifact(manifest_name(target_name), content)

    def build_target(self, target_name: str, result_set) -> BuildTarget:
        return BuildTarget(env_name(target_name), tuple(result_set.values()))

    def aggregate(self, target_name: str, result_set,
                  just_print_all_deps: bool = False) -> Union[ManifestArtifact, BuildTarget]:
        if just_print_all_deps:
            return self.manifest(target_name, result_set)
        return self.build_target(target_name, result_set)
