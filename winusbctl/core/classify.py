"""Device classification and driver-state aggregation."""

from __future__ import annotations

import logging
from collections.abc import Iterable

from winusbctl.core.catalog import DeviceCatalog
from winusbctl.core.errors import InvalidQueryModeError
from winusbctl.core.model import (
    AggregateResult,
    CatalogEntry,
    ClassificationResult,
    ConnectedDevice,
    DriverCheck,
    Predicate,
    QueryMode,
)

LOGGER = logging.getLogger(__name__)

REPORT_FORMAT = "Device: {vid:04x}:{pid:04x}:{mi:x}:{composite:x} {driver:>12} {tag:<10} {desc}"
NO_DRIVER_MARKER = "-"


def coerce_mode(mode: QueryMode | str) -> QueryMode:
    if isinstance(mode, QueryMode):
        return mode
    if isinstance(mode, str):
        try:
            return QueryMode(mode)
        except ValueError:
            pass
    allowed = ", ".join(m.value for m in QueryMode)
    raise InvalidQueryModeError(f"Unsupported query mode {mode!r}. Allowed: {allowed}")


def is_flagged(check: DriverCheck, current_driver: str | None, mode: QueryMode) -> bool:
    if mode is QueryMode.CHECK_EXIST:
        return True
    if check.predicate is Predicate.PRESENT:
        return current_driver is not None
    if check.predicate is Predicate.ABSENT:
        return current_driver is None
    return current_driver is None or current_driver != check.required_driver


def _format_line(device: ConnectedDevice, tag: str) -> str:
    try:
        return REPORT_FORMAT.format(
            vid=device.vendor_id,
            pid=device.product_id,
            mi=device.interface_index,
            composite=int(bool(device.is_composite)),
            driver=device.current_driver or NO_DRIVER_MARKER,
            tag=tag,
            desc=device.description or "",
        )
    except (TypeError, ValueError):
        return f"Device: {device!r}"


def classify_device(
    catalog: DeviceCatalog,
    device: ConnectedDevice,
    mode: QueryMode,
    *,
    list_all: bool = False,
) -> ClassificationResult:
    entry: CatalogEntry | None = catalog.match(device, mode)
    flag_bits = 0
    tags: list[str] = []

    if entry is not None:
        for check in entry.checks:
            if mode not in check.modes:
                continue
            if is_flagged(check, device.current_driver, mode):
                flag_bits |= check.flag_bit
                if check.tag and check.tag not in tags:
                    tags.append(check.tag)

    flagged = flag_bits != 0
    report_line: str | None = None
    if flagged or list_all:
        tag = " ".join(tags) if mode is QueryMode.CHECK_DRIVER else ""
        report_line = _format_line(device, tag)

    return ClassificationResult(
        device=device,
        matched_entry=entry,
        flagged=flagged,
        flag_bits=flag_bits,
        tags=tuple(tags),
        report_line=report_line,
    )


def legend_lines(catalog: DeviceCatalog, bitmask: int, mode: QueryMode) -> list[str]:
    lines: list[str] = []
    bit = 1
    while bit <= bitmask:
        if bitmask & bit:
            legend = catalog.legend(bit)
            message = legend.message_for(mode) if legend else None
            lines.append(f"  {message or f'FLAG_{bit:#04x}'}({bit:#04x})")
        bit <<= 1
    return lines


def classify(
    catalog: DeviceCatalog,
    snapshot: Iterable[ConnectedDevice],
    mode: QueryMode | str,
    *,
    list_all: bool = False,
) -> AggregateResult:
    """Match a device snapshot against the catalog and fold the results.

    The bitmask is the OR of every flagged check's bit, so it depends only on
    the catalog, the set of devices, and the mode. Snapshot order only changes
    the order of report lines. ``list_all`` widens reporting to unmatched and
    unflagged devices and never affects the bitmask.
    """
    query_mode = coerce_mode(mode)

    results: list[ClassificationResult] = []
    bitmask = 0
    any_match_found = False
    for device in snapshot:
        result = classify_device(catalog, device, query_mode, list_all=list_all)
        results.append(result)
        bitmask |= result.flag_bits
        if result.matched_entry is not None:
            any_match_found = True
            LOGGER.debug(
                "Matched %s (flags=%#04x) for %s",
                result.matched_entry.id,
                result.flag_bits,
                result.device.description,
            )

    lines = [r.report_line for r in results if r.report_line is not None]
    lines.append(f"Return code: {bitmask}")
    lines.extend(legend_lines(catalog, bitmask, query_mode))

    return AggregateResult(
        mode=query_mode,
        bitmask=bitmask,
        any_match_found=any_match_found,
        results=tuple(results),
        report_text="\n".join(lines) + "\n",
    )
