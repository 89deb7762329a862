# revdeps/modules/registry.py
"""
Package registry: name -> entry.

Backends:
 - recipes directory (one recipe.yaml per subdirectory, keyed by directory name)
 - index file (YAML or JSON mapping name -> recipe dict)
 - in-memory mapping (records, recipe dicts or arbitrary values)

Recipes are parsed lazily. A recipe that fails to load only breaks its own
entry; the error shows up when that entry is forced.
"""

from __future__ import annotations
import json
import os
from collections.abc import Mapping
from typing import Any, Dict, Iterator, List, Optional, Tuple

import yaml

from revdeps.modules import logger as _logger
from revdeps.modules import recipe as _recipe
from revdeps.modules.records import Deferred, PackageRecord, PackageRef, force


class RegistryError(Exception):
    pass


class RegistryLookupError(RegistryError, LookupError):
    pass


class PackageRegistry(Mapping):
    def __init__(self,
                 entries: Optional[Dict[str, Any]] = None,
                 logger: Optional[_logger.Logger] = None):
        self._entries: Dict[str, Any] = dict(entries or {})
        self.log = logger or _logger.Logger("registry")

    # -----------------------
    # Mapping protocol
    # -----------------------
    def __getitem__(self, name: str) -> Any:
        return self._entries[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    # -----------------------
    # Queries
    # -----------------------
    def get_entry(self, name: str) -> Any:
        """Entry as stored (possibly deferred)."""
        try:
            return self._entries[name]
        except KeyError:
            raise RegistryLookupError(f"package '{name}' not found in registry") from None

    def lookup(self, name: str) -> PackageRecord:
        """Resolve `name` to an evaluated PackageRecord. Raises RegistryLookupError."""
        entry = self.get_entry(name)
        try:
            value = force(entry)
        except Exception as e:
            raise RegistryLookupError(f"package '{name}' failed to evaluate: {e}") from e
        if not isinstance(value, PackageRecord):
            raise RegistryLookupError(f"'{name}' is not a package ({type(value).__name__})")
        return value

    def iterate(self) -> List[Tuple[str, Any]]:
        return list(self._entries.items())

    def ref(self, name: str) -> PackageRef:
        return PackageRef(name, self)

    # -----------------------
    # Backends
    # -----------------------
    def add(self, name: str, entry: Any):
        if name in self._entries:
            raise RegistryError(f"duplicate package name: {name}")
        self._entries[name] = entry

    def add_recipe(self, name: str, recipe: Any, mgr: "_recipe.RecipeManager",
                   source_dir: Optional[str] = None):
        def load():
            if not isinstance(recipe, dict):
                raise _recipe.RecipeError(f"recipe for '{name}' must be a mapping")
            return mgr.to_record(recipe, self.ref, source_dir)
        self.add(name, Deferred(name, load))

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, Any],
                     mgr: Optional["_recipe.RecipeManager"] = None,
                     logger: Optional[_logger.Logger] = None) -> "PackageRegistry":
        """
        Records and arbitrary values are stored as-is; dicts are treated as
        recipes and loaded lazily.
        """
        reg = cls(logger=logger)
        mgr = mgr or _recipe.RecipeManager(logger=reg.log)
        for name, value in mapping.items():
            if isinstance(value, dict):
                reg.add_recipe(name, value, mgr)
            else:
                reg.add(name, value)
        return reg

    @classmethod
    def from_index_file(cls, path: str,
                        mgr: Optional["_recipe.RecipeManager"] = None,
                        logger: Optional[_logger.Logger] = None) -> "PackageRegistry":
        path = os.path.abspath(path)
        try:
            with open(path, "r", encoding="utf-8") as fh:
                if path.endswith(".json"):
                    data = json.load(fh)
                else:
                    data = yaml.safe_load(fh) or {}
        except (OSError, ValueError, yaml.YAMLError) as e:
            raise RegistryError(f"cannot read registry index {path}: {e}") from e
        if not isinstance(data, dict):
            raise RegistryError(f"registry index {path} must be a mapping of name -> recipe")
        # "packages:" wrapper is optional
        if isinstance(data.get("packages"), dict):
            data = data["packages"]
        reg = cls.from_mapping(data, mgr=mgr, logger=logger)
        reg.log.info(f"Registry loaded from {path} ({len(reg)} packages)")
        return reg

    @classmethod
    def from_recipes_dir(cls, repo_path: str,
                         mgr: Optional["_recipe.RecipeManager"] = None,
                         logger: Optional[_logger.Logger] = None) -> "PackageRegistry":
        repo_path = os.path.abspath(repo_path)
        if not os.path.isdir(repo_path):
            raise RegistryError(f"recipes directory not found: {repo_path}")
        reg = cls(logger=logger)
        mgr = mgr or _recipe.RecipeManager(logger=reg.log)
        reg.log.info(f"Indexing recipes in {repo_path} ...")
        for root, dirs, files in os.walk(repo_path):
            dirs.sort()
            if _recipe.RECIPE_FILE not in files:
                continue
            name = os.path.basename(root)
            recipe_path = os.path.join(root, _recipe.RECIPE_FILE)
            if name in reg:
                reg.log.warning(f"Duplicate recipe ignored: {recipe_path} ({name} already indexed)")
                continue
            reg.add(name, Deferred(name, lambda p=recipe_path: mgr.load_record(p, reg.ref)))
        reg.log.info(f"{len(reg)} recipes found")
        return reg

    @classmethod
    def open(cls, path: str, logger: Optional[_logger.Logger] = None) -> "PackageRegistry":
        """Directory -> recipes backend, file -> index backend."""
        if os.path.isdir(path):
            return cls.from_recipes_dir(path, logger=logger)
        if os.path.isfile(path):
            return cls.from_index_file(path, logger=logger)
        raise RegistryError(f"registry not found: {path}")
