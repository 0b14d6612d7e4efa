from __future__ import annotations

from pathlib import Path

import pytest

from winusbctl.core.errors import CatalogValidationError
from winusbctl.core.catalog_loader import load_catalog
from winusbctl.core.model import Predicate, QueryMode, Role


def _write_catalog(path: Path, content: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")


def test_load_packaged_catalog() -> None:
    loaded = load_catalog()
    catalog = loaded.catalog
    assert loaded.warnings == ()

    olimex = catalog.get("olimex-tiny-h")
    assert olimex is not None
    assert olimex.key == (0x15BA, 0x002A, 0, True)
    assert olimex.required_driver == "WinUSB"
    assert olimex.flag_bit == 0x01
    assert olimex.install is not None
    assert olimex.install.inf_name == "sifive_olimex_winusb.inf"

    arty = catalog.get("digilent-arty")
    assert arty is not None
    assert [c.flag_bit for c in arty.checks] == [0x02, 0x08, 0x10]
    assert arty.checks[2].predicate is Predicate.ABSENT
    assert arty.checks[1].modes == frozenset({QueryMode.CHECK_DRIVER})

    vcx = catalog.get("digilent-vcx")
    assert vcx is not None
    assert vcx.is_composite is False

    vcp = catalog.get("digilent-arty-vcp")
    assert vcp is not None
    assert vcp.role is Role.VIRTUAL_COM_PORT
    assert vcp.modes == frozenset({QueryMode.CHECK_DRIVER})

    legend = catalog.legend(0x04)
    assert legend is not None
    assert legend.install_message == "INSTALL_HIFIVE2_WINUSB"


def test_user_entry_overrides_packaged(tmp_path: Path) -> None:
    _write_catalog(
        tmp_path / "cfg" / "winusbctl" / "catalogs" / "override.yaml",
        """
id: local
name: Local override
devices:
  - id: hifive2
    vid: "0403"
    pid: "6011"
    interface: 0
    composite: true
    description: Patched HiFive2
    checks:
      - driver: libusbK
        flag: 0x04
""",
    )

    loaded = load_catalog()
    entry = loaded.catalog.get("hifive2")
    assert entry is not None
    assert entry.description == "Patched HiFive2"
    assert entry.required_driver == "libusbK"
    assert any("overrides" in warning for warning in loaded.warnings)


def test_extra_path_adds_family(tmp_path: Path) -> None:
    path = tmp_path / "extra.yaml"
    _write_catalog(
        path,
        """
id: extra
name: Extra boards
flags:
  - bit: 0x20
    exists: EXTRA_EXISTS
devices:
  - id: extra-board
    vid: 0x1209
    pid: 0x0001
    description: Extra board
    role: secondary_unused
    checks:
      - flag: 0x20
""",
    )

    loaded = load_catalog(extra_paths=[path])
    catalog = loaded.catalog
    assert loaded.warnings == ("User catalog legend for flag 0x20 overrides packaged legend",)
    legend = catalog.legend(0x20)
    assert legend is not None
    assert legend.exists_message == "EXTRA_EXISTS"
    entry = catalog.get("extra-board")
    assert entry is not None
    assert entry.is_composite is False
    assert entry.interface_index == 0
    assert entry.required_driver is None
    assert entry.checks[0].predicate is Predicate.PRESENT


def test_match_key_collision_with_packaged_rejected(tmp_path: Path) -> None:
    _write_catalog(
        tmp_path / "data" / "winusbctl" / "catalogs" / "clash.yaml",
        """
id: clash
name: Clash
devices:
  - id: not-olimex
    vid: 0x15ba
    pid: 0x002a
    interface: 0
    composite: true
    description: Same identity, new id
    checks:
      - driver: WinUSB
        flag: 0x01
""",
    )

    with pytest.raises(CatalogValidationError, match="share match key"):
        load_catalog()


def test_missing_required_keys_rejected(tmp_path: Path) -> None:
    _write_catalog(
        tmp_path / "cfg" / "winusbctl" / "catalogs" / "missing.yaml",
        """
id: missing
name: Missing
devices:
  - id: missing-checks
    vid: 0x1209
    pid: 0x0002
    description: No checks
""",
    )

    with pytest.raises(CatalogValidationError):
        load_catalog()


def test_reserved_flag_bit_rejected(tmp_path: Path) -> None:
    _write_catalog(
        tmp_path / "cfg" / "winusbctl" / "catalogs" / "bit.yaml",
        """
id: bit
name: Reserved bit
devices:
  - id: high-bit
    vid: 0x1209
    pid: 0x0003
    description: Uses the error bit
    checks:
      - driver: WinUSB
        flag: 0x80
""",
    )

    with pytest.raises(CatalogValidationError):
        load_catalog()


def test_duplicate_yaml_keys_rejected(tmp_path: Path) -> None:
    _write_catalog(
        tmp_path / "cfg" / "winusbctl" / "catalogs" / "dup.yaml",
        """
id: dup
name: Duplicate
devices:
  - id: dup-board
    vid: 0x1209
    vid: 0x1210
    pid: 0x0004
    description: Duplicate key
    checks: []
""",
    )

    with pytest.raises(CatalogValidationError):
        load_catalog()


def test_bad_usb_id_rejected(tmp_path: Path) -> None:
    _write_catalog(
        tmp_path / "cfg" / "winusbctl" / "catalogs" / "badid.yaml",
        """
id: badid
name: Bad id
devices:
  - id: bad-id
    vid: "xyz"
    pid: 0x0005
    description: Not hex
    checks: []
""",
    )

    with pytest.raises(CatalogValidationError):
        load_catalog()
