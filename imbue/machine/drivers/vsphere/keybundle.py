"""The userdata bundle that hands the host's SSH key to a boot2docker guest.

boot2docker looks for /var/lib/boot2docker/userdata.tar on boot. An archive that
starts with the magic entry is unpacked into the docker user's home.
"""

import io
import tarfile
import time
from pathlib import Path
from typing import Final

B2D_USERDATA_MAGIC: Final[str] = "boot2docker, this is vmware speaking"
GUEST_BUNDLE_PATH: Final[str] = "/home/docker/userdata.tar"
GUEST_BUNDLE_PERSIST_PATH: Final[str] = "/var/lib/boot2docker/userdata.tar"


def _add_file(archive: tarfile.TarFile, name: str, content: bytes, mode: int) -> None:
    info = tarfile.TarInfo(name=name)
    info.size = len(content)
    info.mode = mode
    info.mtime = int(time.time())
    archive.addfile(info, io.BytesIO(content))


def _add_dir(archive: tarfile.TarFile, name: str, mode: int) -> None:
    info = tarfile.TarInfo(name=name)
    info.type = tarfile.DIRTYPE
    info.mode = mode
    info.mtime = int(time.time())
    archive.addfile(info)


def build_userdata_bundle(public_key: str) -> bytes:
    buffer = io.BytesIO()
    key_bytes = public_key.encode("utf-8")
    with tarfile.open(fileobj=buffer, mode="w") as archive:
        _add_file(archive, B2D_USERDATA_MAGIC, B2D_USERDATA_MAGIC.encode("utf-8"), 0o644)
        _add_dir(archive, ".ssh", 0o700)
        _add_file(archive, ".ssh/authorized_keys", key_bytes, 0o644)
        _add_file(archive, ".ssh/authorized_keys2", key_bytes, 0o644)
    return buffer.getvalue()


def write_userdata_bundle(store_path: Path, public_key: str) -> Path:
    bundle_path = store_path / "userdata.tar"
    bundle_path.write_bytes(build_userdata_bundle(public_key))
    return bundle_path


def build_extract_bundle_command() -> str:
    """The shell command that unpacks the uploaded bundle into the docker user's home."""
    return (
        f"tar xvf {GUEST_BUNDLE_PATH} -C /home/docker > /var/log/userdata.log 2>&1"
        " && chown -R docker:staff /home/docker"
    )
