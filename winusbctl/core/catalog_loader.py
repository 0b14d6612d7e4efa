"""Catalog loading and validation for YAML-based device family tables."""

from __future__ import annotations

import json
import logging
import os
import re
from collections.abc import Iterable
from dataclasses import dataclass
from importlib import resources
from importlib.resources.abc import Traversable
from pathlib import Path
from typing import Any

import yaml
from jsonschema import ValidationError, validators

from winusbctl.core.catalog import DeviceCatalog
from winusbctl.core.errors import CatalogLoadError, CatalogValidationError
from winusbctl.core.model import (
    ALL_MODES,
    CatalogEntry,
    DriverCheck,
    DriverPackage,
    FlagLegend,
    Predicate,
    QueryMode,
    Role,
)

_HEX_ID_RE = re.compile(r"^(?:0x)?([0-9a-f]{1,4})$")
LOGGER = logging.getLogger(__name__)


class UniqueKeyLoader(yaml.SafeLoader):
    """YAML loader that rejects duplicate mapping keys."""


UniqueKeyLoader.yaml_implicit_resolvers = {
    key: list(value) for key, value in yaml.SafeLoader.yaml_implicit_resolvers.items()
}

for first_char, mappings in list(UniqueKeyLoader.yaml_implicit_resolvers.items()):
    UniqueKeyLoader.yaml_implicit_resolvers[first_char] = [
        (tag, regexp)
        for tag, regexp in mappings
        if tag != "tag:yaml.org,2002:bool"
    ]


def _construct_mapping(loader: UniqueKeyLoader, node: yaml.Node, deep: bool = False) -> dict[str, Any]:
    mapping: dict[str, Any] = {}
    for key_node, value_node in node.value:
        key = loader.construct_object(key_node, deep=deep)
        if key in mapping:
            raise CatalogValidationError(f"Duplicate key '{key}' in YAML document")
        mapping[key] = loader.construct_object(value_node, deep=deep)
    return mapping


UniqueKeyLoader.add_constructor(
    yaml.resolver.BaseResolver.DEFAULT_MAPPING_TAG,
    _construct_mapping,
)


@dataclass(frozen=True)
class LoadedCatalog:
    catalog: DeviceCatalog
    warnings: tuple[str, ...]


def _load_schema_validator() -> Any:
    schema_text = resources.files("winusbctl.schemas").joinpath("catalog.schema.json").read_text(
        encoding="utf-8"
    )
    schema = json.loads(schema_text)
    validator_cls = validators.validator_for(schema)
    validator_cls.check_schema(schema)
    return validator_cls(schema)


def _catalog_dirs() -> tuple[Path, Path]:
    xdg_config = Path(os.environ.get("XDG_CONFIG_HOME", Path.home() / ".config"))
    xdg_data = Path(os.environ.get("XDG_DATA_HOME", Path.home() / ".local/share"))
    return xdg_config / "winusbctl/catalogs", xdg_data / "winusbctl/catalogs"


def _read_yaml(path: Path | Traversable) -> dict[str, Any]:
    try:
        content = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise CatalogLoadError(f"Could not read catalog file {path}: {exc}") from exc

    try:
        loaded = yaml.load(content, Loader=UniqueKeyLoader)
    except yaml.YAMLError as exc:
        raise CatalogValidationError(f"Invalid YAML in {path}: {exc}") from exc

    if not isinstance(loaded, dict):
        raise CatalogValidationError(f"Catalog file {path} must contain a mapping at root")
    return loaded


def _normalize_usb_id(value: Any, *, context: str) -> int:
    if isinstance(value, bool):
        raise CatalogValidationError(f"{context} must be a 16-bit USB id")
    if isinstance(value, int):
        number = value
    else:
        match = _HEX_ID_RE.match(str(value).strip().lower())
        if not match:
            raise CatalogValidationError(f"{context} must be a hex string like '15ba' or an integer")
        number = int(match.group(1), 16)
    if not 0 <= number <= 0xFFFF:
        raise CatalogValidationError(f"{context} must fit in 16 bits")
    return number


def _normalize_bool(value: Any, *, context: str) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered == "true":
            return True
        if lowered == "false":
            return False
    raise CatalogValidationError(f"{context} must be boolean true/false")


def _normalize_modes(values: list[str] | None) -> frozenset[QueryMode]:
    if values is None:
        return ALL_MODES
    return frozenset(QueryMode(v) for v in values)


def _build_check(spec: dict[str, Any]) -> DriverCheck:
    driver = spec.get("driver")
    if "predicate" in spec:
        predicate = Predicate(spec["predicate"])
    else:
        predicate = Predicate.MISSING_OR_WRONG if driver else Predicate.PRESENT
    return DriverCheck(
        required_driver=driver,
        flag_bit=int(spec["flag"]),
        predicate=predicate,
        tag=spec.get("tag", ""),
        modes=_normalize_modes(spec.get("modes")),
    )


def _build_entry(spec: dict[str, Any], family_id: str) -> CatalogEntry:
    context = f"{family_id}.{spec['id']}"
    install = spec.get("install")
    return CatalogEntry(
        id=spec["id"],
        vendor_id=_normalize_usb_id(spec["vid"], context=f"{context}.vid"),
        product_id=_normalize_usb_id(spec["pid"], context=f"{context}.pid"),
        interface_index=int(spec.get("interface", 0)),
        is_composite=_normalize_bool(spec.get("composite", False), context=f"{context}.composite"),
        description=spec["description"],
        role=Role(spec.get("role", Role.PRIMARY.value)),
        checks=tuple(_build_check(check) for check in spec["checks"]),
        modes=_normalize_modes(spec.get("modes")),
        install=DriverPackage(inf_name=install["inf_name"], directory=install["directory"])
        if install
        else None,
    )


def _build_family(
    doc: dict[str, Any], source: Path | Traversable
) -> tuple[list[CatalogEntry], list[FlagLegend]]:
    validator = _load_schema_validator()
    try:
        validator.validate(doc)
    except ValidationError as exc:
        path = ".".join(str(p) for p in exc.path)
        where = f" ({path})" if path else ""
        raise CatalogValidationError(f"Schema validation failed for {source}{where}: {exc.message}") from exc

    entries = [_build_entry(spec, doc["id"]) for spec in doc["devices"]]
    legends = [
        FlagLegend(
            bit=int(flag["bit"]),
            exists_message=flag.get("exists"),
            install_message=flag.get("install"),
        )
        for flag in doc.get("flags", [])
    ]
    return entries, legends


def _iter_packaged_catalog_paths() -> list[Traversable]:
    catalog_root = resources.files("winusbctl.catalogs")
    return [item for item in catalog_root.iterdir() if item.name.endswith((".yml", ".yaml"))]


def _iter_user_catalog_paths() -> list[Path]:
    paths: list[Path] = []
    for directory in _catalog_dirs():
        if not directory.exists() or not directory.is_dir():
            continue
        paths.extend(sorted(p for p in directory.iterdir() if p.suffix in {".yml", ".yaml"}))
    return paths


def load_catalog(extra_paths: Iterable[Path] = ()) -> LoadedCatalog:
    """Load packaged, user, and explicitly given families into one catalog.

    User entries replace packaged entries with the same id. Match key
    uniqueness is checked once everything is merged, so a user family that
    collides with another entry fails the whole load.
    """
    entries: dict[str, CatalogEntry] = {}
    legends: dict[int, FlagLegend] = {}
    warnings: list[str] = []

    for path in sorted(_iter_packaged_catalog_paths(), key=lambda p: p.name):
        family_entries, family_legends = _build_family(_read_yaml(path), path)
        for entry in family_entries:
            if entry.id in entries:
                raise CatalogValidationError(f"Duplicate catalog entry id '{entry.id}' in {path}")
            entries[entry.id] = entry
        for legend in family_legends:
            legends[legend.bit] = legend

    for path in [*_iter_user_catalog_paths(), *extra_paths]:
        family_entries, family_legends = _build_family(_read_yaml(path), path)
        for entry in family_entries:
            if entry.id in entries:
                warning = f"User catalog entry '{entry.id}' overrides packaged entry"
                LOGGER.warning(warning)
                warnings.append(warning)
            entries[entry.id] = entry
        for legend in family_legends:
            if legend.bit in legends and legends[legend.bit] != legend:
                warning = f"User catalog legend for flag {legend.bit:#04x} overrides packaged legend"
                LOGGER.warning(warning)
                warnings.append(warning)
            legends[legend.bit] = legend

    catalog = DeviceCatalog(entries.values(), legends.values())
    LOGGER.debug("Loaded %d catalog entries", len(catalog))
    return LoadedCatalog(catalog=catalog, warnings=tuple(warnings))
