"""The boundary between the vSphere driver and a vSphere API client.

The driver only talks to these interfaces. A plugin supplies the concrete client
through the provide_backend_client hook; drivers/vsphere/testing.py holds an
in-memory implementation.
"""

from abc import ABC
from abc import abstractmethod
from collections.abc import Mapping
from collections.abc import Sequence
from pathlib import Path
from types import TracebackType
from typing import Self

from pydantic import Field
from pydantic import SecretStr

from imbue.machine.utils.model_base import FrozenModel


class VSphereConnectionInfo(FrozenModel):
    """Where and as whom to log in to vCenter or ESX."""

    host: str = Field(description="vCenter or ESX address")
    port: int = Field(description="SDK port")
    username: str = Field(description="API user")
    password: SecretStr = Field(description="API password")

    @property
    def sdk_url(self) -> str:
        return f"https://{self.host}:{self.port}/sdk"


class InventoryRef(FrozenModel):
    """A reference to an object in the vSphere inventory."""

    kind: str = Field(description="Object kind, e.g. 'Datacenter', 'Folder', 'VirtualMachine'")
    name: str = Field(description="Object name")
    inventory_path: str = Field(description="Full inventory path")


class VmCreateSpec(FrozenModel):
    """Initial configuration of a new virtual machine."""

    name: str
    guest_id: str = "otherLinux64Guest"
    vm_path_name: str = Field(description="Datastore location of the VM files, e.g. '[datastore1]'")
    num_cpus: int
    memory_mb: int
    scsi_controller_type: str = "pvscsi"


class DiskDeviceSpec(FrozenModel):
    """A virtual disk on the SCSI controller."""

    datastore_path: str = Field(description="e.g. '[datastore1] node-1/node-1.vmdk'")
    capacity_kb: int


class CdromDeviceSpec(FrozenModel):
    """A CD-ROM on the IDE controller with an ISO inserted."""

    iso_datastore_path: str


class NicDeviceSpec(FrozenModel):
    """An ethernet card attached to a network."""

    network: InventoryRef
    adapter_type: str = "vmxnet3"


VirtualDeviceSpec = DiskDeviceSpec | CdromDeviceSpec | NicDeviceSpec


class GuestCredentials(FrozenModel):
    """Credentials for guest operations through the VM tools."""

    username: str
    password: SecretStr


class GuestProgramSpec(FrozenModel):
    """A program to start inside the guest."""

    program_path: str
    arguments: str


class VSphereSessionInterface(ABC):
    """An authenticated vSphere API session.

    Lookup methods taking name=None return the default object of their kind (the only
    datacenter, the default datastore, ...). Lookups raise VSphereNotFoundError when the
    object does not exist. Task-based calls return once the task has finished.
    """

    def __enter__(self) -> Self:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_value: BaseException | None,
        traceback: TracebackType | None,
    ) -> None:
        self.logout()

    @abstractmethod
    def logout(self) -> None: ...

    # Inventory lookups (read-only)

    @abstractmethod
    def find_datacenter(self, name: str | None) -> InventoryRef: ...

    @abstractmethod
    def get_vm_folder(self, datacenter: InventoryRef) -> InventoryRef: ...

    @abstractmethod
    def find_folder(self, datacenter: InventoryRef, path: str) -> InventoryRef: ...

    @abstractmethod
    def find_datastore(self, datacenter: InventoryRef, name: str | None) -> InventoryRef: ...

    @abstractmethod
    def find_network(self, datacenter: InventoryRef, name: str | None) -> InventoryRef: ...

    @abstractmethod
    def find_host_system(self, datacenter: InventoryRef, name: str | None) -> InventoryRef: ...

    @abstractmethod
    def find_resource_pool(self, datacenter: InventoryRef, name: str) -> InventoryRef: ...

    @abstractmethod
    def get_host_resource_pool(self, host_system: InventoryRef) -> InventoryRef: ...

    @abstractmethod
    def get_default_resource_pool(self, datacenter: InventoryRef) -> InventoryRef: ...

    @abstractmethod
    def find_vm(self, datacenter: InventoryRef, path: str) -> InventoryRef: ...

    @abstractmethod
    def get_power_state(self, vm: InventoryRef) -> str:
        """The VM's runtime power state: 'poweredOn', 'poweredOff' or 'suspended'."""

    @abstractmethod
    def wait_for_guest_ips(self, vm: InventoryRef) -> Sequence[Sequence[str]]:
        """Block until the guest tools report addresses; one address list per NIC, in NIC order."""

    # Mutations

    @abstractmethod
    def create_vm(
        self,
        folder: InventoryRef,
        spec: VmCreateSpec,
        resource_pool: InventoryRef,
        host_system: InventoryRef | None,
    ) -> InventoryRef: ...

    @abstractmethod
    def upload_datastore_file(
        self,
        local_path: Path,
        datacenter: InventoryRef,
        datastore: InventoryRef,
        remote_path: str,
    ) -> None: ...

    @abstractmethod
    def delete_datastore_file(self, datacenter: InventoryRef, datastore: InventoryRef, remote_path: str) -> None:
        """Delete a datastore file. Raises VSphereFileNotFoundError if it does not exist."""

    @abstractmethod
    def add_devices(self, vm: InventoryRef, devices: Sequence[VirtualDeviceSpec]) -> None: ...

    @abstractmethod
    def set_extra_config(self, vm: InventoryRef, options: Mapping[str, str]) -> None: ...

    @abstractmethod
    def power_on(self, vm: InventoryRef) -> None: ...

    @abstractmethod
    def shutdown_guest(self, vm: InventoryRef) -> None: ...

    @abstractmethod
    def power_off(self, vm: InventoryRef) -> None: ...

    @abstractmethod
    def destroy_vm(self, vm: InventoryRef) -> None: ...

    @abstractmethod
    def upload_file_to_guest(
        self,
        vm: InventoryRef,
        credentials: GuestCredentials,
        guest_path: str,
        local_path: Path,
        permissions: int,
    ) -> None: ...

    @abstractmethod
    def start_guest_program(self, vm: InventoryRef, credentials: GuestCredentials, spec: GuestProgramSpec) -> None: ...


class VSphereClientInterface(ABC):
    """Opens sessions against a vSphere endpoint."""

    @abstractmethod
    def login(self, connection: VSphereConnectionInfo) -> VSphereSessionInterface:
        """Log in. Raises BackendUnavailableError if the endpoint cannot be reached or rejects the credentials."""
