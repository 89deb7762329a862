# revdeps/modules/recipe.py
"""
Recipe manager - carregar, validar e converter recipe.yaml em PackageRecord.

Formato:

    name: conduit
    version: 1.3.4
    build_inputs: [base, resourcet]     # "depends" também é aceito
    meta:
      broken: false
      hydra_platforms: all              # all | none | [x86_64-linux, ...]
      platforms: [x86_64-linux]
    build:
      - make

Ausência de "meta" significa que o pacote não expõe metadados; ausência de
"build_inputs"/"depends" significa que não expõe build inputs.
"""

from __future__ import annotations
import os
from typing import Any, Callable, Dict, List, Optional

import yaml

from revdeps.modules import logger as _logger
from revdeps.modules.records import Metadata, PackageRecord, PlatformSet

RECIPE_FILE = "recipe.yaml"
PACKAGE_KIND = "package"


class RecipeError(Exception):
    pass


def parse_platforms(value: Any, field_name: str = "platforms") -> PlatformSet:
    if value is None:
        return PlatformSet.all()
    if isinstance(value, str):
        v = value.strip().lower()
        if v == "all":
            return PlatformSet.all()
        if v == "none":
            return PlatformSet.none()
        return PlatformSet.specific([value.strip()])
    if isinstance(value, (list, tuple, set)):
        if not all(isinstance(p, str) for p in value):
            raise RecipeError(f"Campo '{field_name}' deve conter apenas strings")
        return PlatformSet.specific(value)
    raise RecipeError(f"Campo '{field_name}' inválido: {value!r}")


class RecipeManager:
    REQUIRED_FIELDS = ["name"]

    def __init__(self, logger: Optional[_logger.Logger] = None):
        self.log = logger or _logger.Logger("recipe")

    # -------------------------
    # I/O
    # -------------------------
    def load(self, path: str) -> Dict[str, Any]:
        """Carrega recipe.yaml de um diretório ou de um arquivo específico"""
        path = os.path.abspath(path)
        if os.path.isdir(path):
            candidate = os.path.join(path, RECIPE_FILE)
        else:
            candidate = path

        if not os.path.exists(candidate):
            raise RecipeError(f"Arquivo de recipe não encontrado: {candidate}")

        try:
            with open(candidate, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise RecipeError(f"Recipe inválida {candidate}: {e}") from e
        if not isinstance(data, dict):
            raise RecipeError(f"Recipe {candidate} deve ser um mapeamento")
        self.log.debug(f"Recipe carregada: {candidate}")
        return data

    # -------------------------
    # Validação
    # -------------------------
    def validate(self, recipe: Dict[str, Any]) -> bool:
        """Valida que campos essenciais existam e tenham formato razoável"""
        missing = [f for f in self.REQUIRED_FIELDS if f not in recipe or not recipe[f]]
        if missing:
            raise RecipeError(f"Campos obrigatórios faltando: {missing}")

        for key in ("build_inputs", "depends", "build"):
            if key in recipe and recipe[key] is not None and not isinstance(recipe[key], list):
                raise RecipeError(f"Campo '{key}' deve ser uma lista")

        if "meta" in recipe and recipe["meta"] is not None and not isinstance(recipe["meta"], dict):
            raise RecipeError("Campo 'meta' deve ser um dicionário")

        if "version" in recipe and recipe["version"] is not None:
            if not isinstance(recipe["version"], (str, int, float)):
                raise RecipeError("Campo 'version' deve ser string ou número")

        return True

    def is_package(self, recipe: Dict[str, Any]) -> bool:
        return recipe.get("kind", PACKAGE_KIND) == PACKAGE_KIND

    # -------------------------
    # Conversão
    # -------------------------
    def build_inputs_of(self, recipe: Dict[str, Any]) -> Optional[List[str]]:
        if "build_inputs" in recipe:
            deps = recipe["build_inputs"]
        elif "depends" in recipe:
            deps = recipe["depends"]
        else:
            return None
        return [str(d) for d in (deps or [])]

    def metadata_of(self, recipe: Dict[str, Any]) -> Optional[Metadata]:
        if "meta" not in recipe:
            return None
        meta = recipe["meta"] or {}
        broken = meta.get("broken", False)
        if not isinstance(broken, bool):
            raise RecipeError(f"meta.broken deve ser booleano, não {broken!r}")
        return Metadata(
            broken=broken,
            hydra_platforms=parse_platforms(meta.get("hydra_platforms"), "hydra_platforms"),
            platforms=parse_platforms(meta.get("platforms"), "platforms"),
        )

    def to_record(self,
                  recipe: Dict[str, Any],
                  ref: Callable[[str], Any],
                  source_dir: Optional[str] = None) -> Any:
        """
        Converte a recipe em PackageRecord. `ref` transforma o nome de uma
        dependência em uma referência (normalmente PackageRegistry.ref).

        Recipes com kind diferente de "package" são devolvidas como dict cru.
        """
        self.validate(recipe)
        if not self.is_package(recipe):
            return dict(recipe)

        deps = self.build_inputs_of(recipe)
        version = recipe.get("version")
        return PackageRecord(
            name=str(recipe["name"]),
            version=str(version) if version is not None else None,
            build_inputs=tuple(ref(d) for d in deps) if deps is not None else None,
            metadata=self.metadata_of(recipe),
            build=tuple(str(c) for c in (recipe.get("build") or [])),
            source=source_dir,
        )

    def load_record(self, path: str, ref: Callable[[str], Any]) -> Any:
        path = os.path.abspath(path)
        source_dir = path if os.path.isdir(path) else os.path.dirname(path)
        return self.to_record(self.load(path), ref, source_dir)
