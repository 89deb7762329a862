"""
Test fixtures: in-memory registries, a capturing logger and a recipes tree
on disk.
"""

import pytest
import yaml

from revdeps.modules.records import Metadata, PackageRecord, PlatformSet
from revdeps.modules.registry import PackageRegistry

HOST = "x86_64-linux"


class ListLogger:
    """Logger stand-in that keeps (level, message) pairs."""

    def __init__(self):
        self.records = []

    def _add(self, level, message):
        self.records.append((level, message))

    def trace(self, message):
        self._add("trace", message)

    def debug(self, message):
        self._add("debug", message)

    def info(self, message):
        self._add("info", message)

    def success(self, message):
        self._add("success", message)

    def warning(self, message):
        self._add("warning", message)

    def error(self, message):
        self._add("error", message)

    def messages(self, level=None):
        return [m for lvl, m in self.records if level is None or lvl == level]


@pytest.fixture
def log():
    return ListLogger()


def package(registry, name, deps=(), broken=False, hydra=None, platforms=None,
            meta=True, inputs=True, build=(), version=None, source=None):
    metadata = None
    if meta:
        metadata = Metadata(
            broken=broken,
            hydra_platforms=hydra or PlatformSet.all(),
            platforms=platforms or PlatformSet.all(),
        )
    return PackageRecord(
        name=name,
        version=version,
        build_inputs=tuple(registry.ref(d) for d in deps) if inputs else None,
        metadata=metadata,
        build=tuple(build),
        source=source,
    )


@pytest.fixture
def make_registry(log):
    """
    make_registry({"a": {}, "b": {"deps": ["a"]}, "junk": 42})

    dict values are keyword arguments for `package`; anything else is stored
    as the raw registry entry.
    """
    def factory(packages):
        reg = PackageRegistry(logger=log)
        for name, value in packages.items():
            if isinstance(value, dict):
                kwargs = dict(value)
                record_name = kwargs.pop("name", name)
                reg.add(name, package(reg, record_name, **kwargs))
            else:
                reg.add(name, value)
        return reg
    return factory


def write_recipe(root, dirname, recipe):
    d = root / dirname
    d.mkdir(parents=True, exist_ok=True)
    path = d / "recipe.yaml"
    if isinstance(recipe, str):
        path.write_text(recipe, encoding="utf-8")
    else:
        path.write_text(yaml.safe_dump(recipe, sort_keys=False), encoding="utf-8")
    return path


@pytest.fixture
def recipes_dir(tmp_path):
    root = tmp_path / "recipes"
    write_recipe(root, "conduit", {
        "name": "conduit", "version": "1.3.4",
        "build_inputs": ["base"], "meta": {"broken": False},
    })
    write_recipe(root, "base", {
        "name": "base", "version": "4.18", "build_inputs": [], "meta": {},
    })
    write_recipe(root, "pkg1", {
        "name": "pkg1", "version": "1.0",
        "build_inputs": ["conduit", "base"], "meta": {"platforms": [HOST]},
    })
    write_recipe(root, "pkg2", {
        "name": "pkg2", "depends": ["conduit"], "meta": {},
    })
    write_recipe(root, "pkg3", {
        "name": "pkg3", "build_inputs": ["base"], "meta": {},
    })
    write_recipe(root, "old-thing", {
        "name": "old-thing", "build_inputs": ["conduit"], "meta": {"broken": True},
    })
    write_recipe(root, "garbled", "name: [unterminated\n")
    return root
