import shutil
from pathlib import Path
from typing import Final

import httpx
from loguru import logger

from imbue.machine.errors import BackendUnavailableError
from imbue.machine.errors import DriverOptionError

BOOT_ISO_NAME: Final[str] = "boot2docker.iso"
DEFAULT_BOOT2DOCKER_URL: Final[str] = (
    "https://github.com/boot2docker/boot2docker/releases/latest/download/boot2docker.iso"
)
_DOWNLOAD_TIMEOUT_SECONDS: Final[float] = 600.0


def get_cached_iso_path(store_path: Path) -> Path:
    """The shared ISO cache, next to the per-host stores (<store_dir>/cache/boot2docker.iso)."""
    return store_path.parent.parent / "cache" / BOOT_ISO_NAME


def download_file(url: str, destination: Path) -> None:
    logger.info("Downloading {} to {}", url, destination)
    destination.parent.mkdir(parents=True, exist_ok=True)
    partial = destination.with_name(f"{destination.name}.part")
    try:
        with httpx.stream("GET", url, follow_redirects=True, timeout=_DOWNLOAD_TIMEOUT_SECONDS) as response:
            response.raise_for_status()
            with partial.open("wb") as f:
                for chunk in response.iter_bytes():
                    f.write(chunk)
    except httpx.HTTPError as e:
        partial.unlink(missing_ok=True)
        raise BackendUnavailableError(f"Failed to download {url}: {e}") from e
    partial.replace(destination)


def prepare_boot_iso(boot2docker_url: str, store_path: Path) -> Path:
    """Place the boot ISO at <store_path>/boot2docker.iso and return that path.

    An empty URL uses the shared cache, filling it from the latest release when empty.
    http(s) URLs are downloaded; anything else is treated as a local file path.
    """
    destination = store_path / BOOT_ISO_NAME
    store_path.mkdir(parents=True, exist_ok=True)

    if not boot2docker_url:
        cached = get_cached_iso_path(store_path)
        if not cached.exists():
            download_file(DEFAULT_BOOT2DOCKER_URL, cached)
        shutil.copyfile(cached, destination)
    elif boot2docker_url.startswith(("http://", "https://")):
        download_file(boot2docker_url, destination)
    else:
        source = Path(boot2docker_url.removeprefix("file://")).expanduser()
        if not source.is_file():
            raise DriverOptionError("vmwarevsphere-boot2docker-url", f"no such file: {source}")
        shutil.copyfile(source, destination)

    logger.debug("Boot ISO ready at {}", destination)
    return destination
