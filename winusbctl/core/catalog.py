"""Immutable device catalog keyed by USB identity."""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from types import MappingProxyType

from winusbctl.core.errors import CatalogValidationError
from winusbctl.core.model import (
    CatalogEntry,
    ConnectedDevice,
    FlagLegend,
    Predicate,
    QueryMode,
)

MAX_FLAG_BIT = 0x40


def _is_single_bit(value: int) -> bool:
    return value > 0 and value & (value - 1) == 0


def _validate_entry(entry: CatalogEntry) -> None:
    if not 0 <= entry.vendor_id <= 0xFFFF:
        raise CatalogValidationError(f"{entry.id}: vendor id {entry.vendor_id:#x} out of range")
    if not 0 <= entry.product_id <= 0xFFFF:
        raise CatalogValidationError(f"{entry.id}: product id {entry.product_id:#x} out of range")
    if not 0 <= entry.interface_index <= 0xFF:
        raise CatalogValidationError(f"{entry.id}: interface {entry.interface_index} out of range")
    if not entry.modes:
        raise CatalogValidationError(f"{entry.id}: entry must participate in at least one query mode")
    if QueryMode.CHECK_EXIST in entry.modes and not any(QueryMode.CHECK_EXIST in c.modes for c in entry.checks):
        raise CatalogValidationError(
            f"{entry.id}: entry takes part in check_exist but has no check active in that mode"
        )

    for index, check in enumerate(entry.checks):
        context = f"{entry.id}.checks[{index}]"
        if not _is_single_bit(check.flag_bit) or check.flag_bit > MAX_FLAG_BIT:
            raise CatalogValidationError(
                f"{context}: flag bit {check.flag_bit:#x} must be a single bit between 0x01 and {MAX_FLAG_BIT:#04x}"
            )
        if check.predicate is Predicate.MISSING_OR_WRONG and not check.required_driver:
            raise CatalogValidationError(f"{context}: predicate 'missing_or_wrong' requires a driver name")
        if check.predicate is not Predicate.MISSING_OR_WRONG and check.required_driver:
            raise CatalogValidationError(
                f"{context}: predicate '{check.predicate.value}' does not take a driver name"
            )


class DeviceCatalog:
    """Known device identities, validated once at construction.

    Lookup is exact equality on ``(vendor_id, product_id, interface_index,
    is_composite)``. The tuple must be unique across the catalog, so no match
    precedence exists. Instances are never mutated after ``__init__`` and may
    be shared between threads.
    """

    def __init__(self, entries: Iterable[CatalogEntry], legends: Iterable[FlagLegend] = ()) -> None:
        by_key: dict[tuple[int, int, int, bool], CatalogEntry] = {}
        by_id: dict[str, CatalogEntry] = {}
        for entry in entries:
            _validate_entry(entry)
            if entry.id in by_id:
                raise CatalogValidationError(f"Duplicate catalog entry id '{entry.id}'")
            existing = by_key.get(entry.key)
            if existing is not None:
                raise CatalogValidationError(
                    f"Catalog entries '{existing.id}' and '{entry.id}' share match key "
                    f"{entry.vendor_id:04x}:{entry.product_id:04x}:{entry.interface_index:x}:{int(entry.is_composite)}"
                )
            by_key[entry.key] = entry
            by_id[entry.id] = entry

        by_bit: dict[int, FlagLegend] = {}
        for legend in legends:
            if not _is_single_bit(legend.bit) or legend.bit > MAX_FLAG_BIT:
                raise CatalogValidationError(f"Legend bit {legend.bit:#x} is not a valid flag bit")
            by_bit[legend.bit] = legend

        self._by_key = MappingProxyType(by_key)
        self._by_id = MappingProxyType(by_id)
        self._legends = MappingProxyType(by_bit)

    def __len__(self) -> int:
        return len(self._by_key)

    def __iter__(self) -> Iterator[CatalogEntry]:
        return iter(self._by_key.values())

    @property
    def entries(self) -> tuple[CatalogEntry, ...]:
        return tuple(self._by_key.values())

    @property
    def legends(self) -> tuple[FlagLegend, ...]:
        return tuple(self._legends[bit] for bit in sorted(self._legends))

    def get(self, entry_id: str) -> CatalogEntry | None:
        return self._by_id.get(entry_id)

    def legend(self, bit: int) -> FlagLegend | None:
        return self._legends.get(bit)

    def match(self, device: ConnectedDevice, mode: QueryMode | None = None) -> CatalogEntry | None:
        try:
            entry = self._by_key.get(device.key)
        except TypeError:
            # unhashable field values in a malformed snapshot row
            return None
        if entry is None:
            return None
        if mode is not None and mode not in entry.modes:
            return None
        return entry
