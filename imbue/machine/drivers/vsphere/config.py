from collections.abc import Mapping
from typing import Any
from typing import Final

from pydantic import Field
from pydantic import SecretStr

from imbue.machine.errors import DriverOptionError
from imbue.machine.interfaces.data_types import CreateFlag
from imbue.machine.primitives import DriverName
from imbue.machine.primitives import FlagKind
from imbue.machine.utils.model_base import FrozenModel

VSPHERE_DRIVER_NAME: Final = DriverName("vmwarevsphere")

DEFAULT_CPU_COUNT: Final[int] = 2
DEFAULT_MEMORY_MB: Final[int] = 2048
DEFAULT_DISK_SIZE_MB: Final[int] = 20480
DEFAULT_VCENTER_PORT: Final[int] = 443
DEFAULT_NETWORK: Final[str] = "VM Network"

# boot2docker guest defaults
GUEST_USERNAME: Final[str] = "docker"
GUEST_PASSWORD: Final[str] = "tcuser"
SSH_USERNAME: Final[str] = "docker"


def _flag(suffix: str, kind: FlagKind, usage: str, default: Any = None) -> CreateFlag:
    return CreateFlag(
        name=f"vmwarevsphere-{suffix}",
        kind=kind,
        usage=usage,
        env_var=f"VSPHERE_{suffix.upper().replace('-', '_')}",
        default=default,
    )


VSPHERE_CREATE_FLAGS: Final[tuple[CreateFlag, ...]] = (
    _flag("cpu-count", FlagKind.INT, "vSphere CPU number for docker VM", DEFAULT_CPU_COUNT),
    _flag("memory-size", FlagKind.INT, "vSphere size of memory for docker VM (in MB)", DEFAULT_MEMORY_MB),
    _flag("disk-size", FlagKind.INT, "vSphere size of disk for docker VM (in MB)", DEFAULT_DISK_SIZE_MB),
    _flag("boot2docker-url", FlagKind.STRING, "vSphere URL for boot2docker image", ""),
    _flag("vcenter", FlagKind.STRING, "vSphere IP/hostname for vCenter", ""),
    _flag("vcenter-port", FlagKind.INT, "vSphere Port for vCenter", DEFAULT_VCENTER_PORT),
    _flag("username", FlagKind.STRING, "vSphere username", ""),
    _flag("password", FlagKind.STRING, "vSphere password", ""),
    _flag("network", FlagKind.STRING_LIST, "vSphere network where the docker VM will be attached", ()),
    _flag("datastore", FlagKind.STRING, "vSphere datastore for docker VM", ""),
    _flag("datacenter", FlagKind.STRING, "vSphere datacenter for docker VM", ""),
    _flag("folder", FlagKind.STRING, "vSphere folder for the docker VM", ""),
    _flag("pool", FlagKind.STRING, "vSphere resource pool for docker VM", ""),
    _flag("hostsystem", FlagKind.STRING, "vSphere compute resource where the docker VM will be instantiated", ""),
    _flag("cfgparam", FlagKind.STRING_LIST, "vSphere vm configuration parameters (key=value)", ()),
    _flag("cloudinit", FlagKind.STRING, "vSphere cloud-init filepath or url to add to guestinfo", ""),
)


class VSphereDriverConfig(FrozenModel):
    """Resolved create options of one vSphere host."""

    cpu_count: int = Field(default=DEFAULT_CPU_COUNT)
    memory_mb: int = Field(default=DEFAULT_MEMORY_MB)
    disk_size_mb: int = Field(default=DEFAULT_DISK_SIZE_MB)
    boot2docker_url: str = Field(default="", description="Boot ISO URL or local path; empty uses the cached ISO")
    vcenter: str = Field(description="vCenter or ESX address")
    vcenter_port: int = Field(default=DEFAULT_VCENTER_PORT)
    username: str = Field(description="vSphere user")
    password: SecretStr = Field(description="vSphere password")
    networks: tuple[str, ...] = Field(default=(), description="Networks to attach, in NIC order")
    datastore: str = Field(default="")
    datacenter: str = Field(default="")
    folder: str = Field(default="", description="VM folder relative to the datacenter's VM folder")
    pool: str = Field(default="")
    host_system: str = Field(default="")
    cfg_params: tuple[str, ...] = Field(default=(), description="Extra VM config in key=value form")
    cloud_init: str = Field(default="", description="cloud-init config file path or URL")

    @property
    def effective_networks(self) -> tuple[str, ...]:
        return self.networks or (DEFAULT_NETWORK,)

    @classmethod
    def from_options(cls, options: Mapping[str, Any]) -> "VSphereDriverConfig":
        """Build the config from resolved create options (see resolve_create_options)."""

        def get(suffix: str) -> Any:
            return options.get(f"vmwarevsphere-{suffix}")

        for required in ("vcenter", "username", "password"):
            if not get(required):
                raise DriverOptionError(f"vmwarevsphere-{required}", "a value is required")

        return cls(
            cpu_count=get("cpu-count") or DEFAULT_CPU_COUNT,
            memory_mb=get("memory-size") or DEFAULT_MEMORY_MB,
            disk_size_mb=get("disk-size") or DEFAULT_DISK_SIZE_MB,
            boot2docker_url=get("boot2docker-url") or "",
            vcenter=get("vcenter"),
            vcenter_port=get("vcenter-port") or DEFAULT_VCENTER_PORT,
            username=get("username"),
            password=SecretStr(get("password")),
            networks=tuple(get("network") or ()),
            datastore=get("datastore") or "",
            datacenter=get("datacenter") or "",
            folder=(get("folder") or "").strip("/"),
            pool=get("pool") or "",
            host_system=get("hostsystem") or "",
            cfg_params=tuple(get("cfgparam") or ()),
            cloud_init=get("cloudinit") or "",
        )
