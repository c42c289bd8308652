from pathlib import Path

import pytest

from imbue.machine.drivers.vsphere.boot_image import get_cached_iso_path
from imbue.machine.drivers.vsphere.boot_image import prepare_boot_iso
from imbue.machine.errors import DriverOptionError


def test_local_path_is_copied_into_store(tmp_path: Path) -> None:
    source = tmp_path / "custom.iso"
    source.write_bytes(b"iso-bytes")
    store_path = tmp_path / "machines" / "node-1"

    result = prepare_boot_iso(str(source), store_path)

    assert result == store_path / "boot2docker.iso"
    assert result.read_bytes() == b"iso-bytes"


def test_missing_local_path_is_rejected(tmp_path: Path) -> None:
    with pytest.raises(DriverOptionError):
        prepare_boot_iso(str(tmp_path / "missing.iso"), tmp_path / "machines" / "node-1")


def test_empty_url_uses_populated_cache(tmp_path: Path) -> None:
    store_path = tmp_path / "machines" / "node-1"
    cached = get_cached_iso_path(store_path)
    cached.parent.mkdir(parents=True)
    cached.write_bytes(b"cached-iso")

    result = prepare_boot_iso("", store_path)

    assert cached == tmp_path / "cache" / "boot2docker.iso"
    assert result.read_bytes() == b"cached-iso"
