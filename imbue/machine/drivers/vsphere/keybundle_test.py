import io
import tarfile
from pathlib import Path

from imbue.machine.drivers.vsphere.keybundle import B2D_USERDATA_MAGIC
from imbue.machine.drivers.vsphere.keybundle import build_extract_bundle_command
from imbue.machine.drivers.vsphere.keybundle import build_userdata_bundle
from imbue.machine.drivers.vsphere.keybundle import write_userdata_bundle


def _members(bundle: bytes) -> list[tarfile.TarInfo]:
    with tarfile.open(fileobj=io.BytesIO(bundle), mode="r") as archive:
        return archive.getmembers()


def test_bundle_starts_with_magic_entry() -> None:
    members = _members(build_userdata_bundle("ssh-rsa AAAA test"))

    assert members[0].name == B2D_USERDATA_MAGIC


def test_bundle_carries_key_in_both_authorized_keys_files() -> None:
    bundle = build_userdata_bundle("ssh-rsa AAAA test")

    with tarfile.open(fileobj=io.BytesIO(bundle), mode="r") as archive:
        names = archive.getnames()
        ssh_dir = archive.getmember(".ssh")
        keys = archive.extractfile(".ssh/authorized_keys")
        keys2 = archive.extractfile(".ssh/authorized_keys2")
        assert keys is not None and keys2 is not None
        assert keys.read() == b"ssh-rsa AAAA test"
        assert keys2.read() == b"ssh-rsa AAAA test"

    assert names == [B2D_USERDATA_MAGIC, ".ssh", ".ssh/authorized_keys", ".ssh/authorized_keys2"]
    assert ssh_dir.isdir()
    assert ssh_dir.mode == 0o700


def test_write_userdata_bundle_writes_into_store(tmp_path: Path) -> None:
    path = write_userdata_bundle(tmp_path, "ssh-rsa AAAA test")

    assert path == tmp_path / "userdata.tar"
    assert [member.name for member in _members(path.read_bytes())][0] == B2D_USERDATA_MAGIC


def test_extract_command_chowns_home() -> None:
    command = build_extract_bundle_command()

    assert command.startswith("tar xvf /home/docker/userdata.tar -C /home/docker")
    assert command.endswith("chown -R docker:staff /home/docker")
