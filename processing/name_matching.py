"""
name_matching.py - Name normalization and entity resolution

Bridges the two datasets the index is built from:
- the municipal GeoJSON, whose features carry an INE code and an upper-case
  ``nombre`` ("PUERTO MENOR DE RURRENABAQUE")
- the entity registry, whose documents carry labels such as
  "Municipio de Nuevo Manoa (Nueva Esperanza)"

Both sides are reduced to the same normalized key. Where the names diverge
too much, the manual override tables (ops/overrides.yaml) take over.
"""

import re
import unicodedata
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Set, Union

import yaml  # type: ignore[import-untyped]
from loguru import logger

DEFAULT_SENTINEL = "__no_entity__"
DEFAULT_GEOMETRY_PREFIXES = ("TIOC-", "PUERTO MAYOR DE ", "PUERTO MENOR DE ")

TRAILING_PARENTHETICAL = re.compile(r"\s*\(.*?\)\s*$")

# Resolution outcomes
MATCHED = "matched"
EXCLUDED = "excluded"
UNMATCHED = "unmatched"


def normalize(value: str) -> str:
    """Lowercase, accent-free, trimmed form used for every name comparison."""
    decomposed = unicodedata.normalize("NFD", value)
    stripped = "".join(ch for ch in decomposed if unicodedata.category(ch) != "Mn")
    return stripped.lower().strip()


def entity_key_from_label(label: str, prefix: str = "municipio") -> str:
    """
    Extract the normalized municipality key from a registry label.

    Examples:
        "Municipio de Ixiamas"                       -> "ixiamas"
        "Municipio de Nuevo Manoa (Nueva Esperanza)" -> "nuevo manoa"
    """
    name = label.strip()
    name = re.sub(rf"^{re.escape(prefix)}\s+de\s+", "", name, flags=re.IGNORECASE)
    name = TRAILING_PARENTHETICAL.sub("", name)
    return normalize(name)


def clean_geometry_name(raw_name: str, prefixes: Iterable[str] = DEFAULT_GEOMETRY_PREFIXES) -> str:
    """Normalize a GeoJSON ``nombre`` after dropping feed-specific decorations."""
    name = raw_name.strip()
    for prefix in prefixes:
        name = re.sub(rf"^{re.escape(prefix)}", "", name, flags=re.IGNORECASE)
    name = TRAILING_PARENTHETICAL.sub("", name)
    name = name.replace('"', "")
    return normalize(name)


def build_registry_keys(documents: Iterable[Mapping[str, Any]], marker: str = "municipio") -> Dict[str, str]:
    """
    Map normalized municipality keys to registry ids.

    Only documents whose label contains ``marker`` are considered. A later
    document with the same key replaces an earlier one.
    """
    keys: Dict[str, str] = {}
    marker_lower = marker.lower()
    for doc in documents:
        label = doc.get("label") or ""
        doc_id = doc.get("$id") or doc.get("id")
        if not label or not doc_id or marker_lower not in label.lower():
            continue
        key = entity_key_from_label(label, prefix=marker)
        if not key:
            continue
        if key in keys and keys[key] != doc_id:
            logger.debug(f"  Registry key '{key}' reassigned {keys[key]} -> {doc_id}")
        keys[key] = str(doc_id)
    return keys


@dataclass
class OverrideTable:
    """Manual INE-code corrections between the GeoJSON and the registry."""

    name_keys: Dict[str, str] = field(default_factory=dict)
    entity_ids: Dict[str, str] = field(default_factory=dict)
    sentinel: str = DEFAULT_SENTINEL

    @classmethod
    def from_yaml(cls, path: Union[str, Path]) -> "OverrideTable":
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Override file not found: {path}")
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            raise ValueError(f"Override file {path} must contain a mapping")

        table = cls.from_dict(data)
        logger.debug(
            f"📋 Loaded overrides from {path}: {len(table.name_keys)} name keys, "
            f"{len(table.entity_ids)} direct ids"
        )
        return table

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "OverrideTable":
        name_keys = data.get("name_keys") or {}
        entity_ids = data.get("entity_ids") or {}
        for section, table in (("name_keys", name_keys), ("entity_ids", entity_ids)):
            if not isinstance(table, dict):
                raise ValueError(f"Override section '{section}' must be a mapping")
            short_codes = [code for code in table if not isinstance(code, str)]
            if short_codes:
                # Unquoted YAML codes lose their leading zeros
                raise ValueError(f"Override codes in '{section}' must be quoted strings: {short_codes}")
        return cls(
            name_keys={code: str(key) for code, key in name_keys.items()},
            entity_ids={code: str(entity_id) for code, entity_id in entity_ids.items()},
            sentinel=str(data.get("sentinel") or DEFAULT_SENTINEL),
        )

    def is_excluded(self, ine_code: str) -> bool:
        return self.name_keys.get(ine_code) == self.sentinel


@dataclass(frozen=True)
class Resolution:
    status: str
    entity_id: Optional[str] = None
    lookup_key: Optional[str] = None
    method: Optional[str] = None

    @property
    def matched(self) -> bool:
        return self.status == MATCHED


class EntityResolver:
    """
    Resolve GeoJSON features (INE code + name) to registry entity ids.

    Order of precedence:
        1. direct id override
        2. sentinel override -> excluded on purpose
        3. override key, else the cleaned GeoJSON name
        4. plain cleaned name, when an override key missed
    """

    def __init__(
        self,
        registry_keys: Mapping[str, str],
        overrides: Optional[OverrideTable] = None,
        name_prefixes: Iterable[str] = DEFAULT_GEOMETRY_PREFIXES,
    ):
        self.registry_keys = dict(registry_keys)
        self.overrides = overrides or OverrideTable()
        self.name_prefixes = tuple(name_prefixes)
        self.used_keys: Set[str] = set()

    def resolve(self, ine_code: str, raw_name: str) -> Resolution:
        direct_id = self.overrides.entity_ids.get(ine_code)
        if direct_id:
            return Resolution(MATCHED, direct_id, method="direct_id")

        if self.overrides.is_excluded(ine_code):
            return Resolution(EXCLUDED, method="sentinel")

        normalized_name = clean_geometry_name(raw_name, self.name_prefixes)
        override_key = self.overrides.name_keys.get(ine_code)
        lookup_key = override_key if override_key is not None else normalized_name

        entity_id = self.registry_keys.get(lookup_key)
        if entity_id:
            self.used_keys.add(lookup_key)
            return Resolution(MATCHED, entity_id, lookup_key, "override_key" if override_key else "name")

        if override_key is not None:
            entity_id = self.registry_keys.get(normalized_name)
            if entity_id:
                logger.debug(f"  Override key '{override_key}' for {ine_code} missed; matched by name")
                self.used_keys.add(normalized_name)
                return Resolution(MATCHED, entity_id, normalized_name, "fallback_name")

        return Resolution(UNMATCHED, lookup_key=lookup_key)

    def unused_registry_keys(self) -> List[str]:
        """Registry keys no feature has matched so far, in registry order."""
        return [key for key in self.registry_keys if key not in self.used_keys]
