"""In-memory vSphere client for tests."""

from collections.abc import Mapping
from collections.abc import Sequence
from pathlib import Path

from imbue.machine.drivers.vsphere.client import GuestCredentials
from imbue.machine.drivers.vsphere.client import GuestProgramSpec
from imbue.machine.drivers.vsphere.client import InventoryRef
from imbue.machine.drivers.vsphere.client import VirtualDeviceSpec
from imbue.machine.drivers.vsphere.client import VmCreateSpec
from imbue.machine.drivers.vsphere.client import VSphereClientInterface
from imbue.machine.drivers.vsphere.client import VSphereConnectionInfo
from imbue.machine.drivers.vsphere.client import VSphereSessionInterface
from imbue.machine.errors import BackendUnavailableError
from imbue.machine.errors import VSphereFileNotFoundError
from imbue.machine.errors import VSphereNotFoundError


class FakeVSphereInventory:
    """The state shared by every session of a FakeVSphereClient."""

    def __init__(self) -> None:
        self.datacenter = "dc1"
        self.folders: set[str] = set()
        self.datastores: set[str] = {"datastore1"}
        self.networks: set[str] = {"VM Network"}
        self.host_systems: set[str] = {"esx1"}
        self.resource_pools: set[str] = {"Resources"}
        # VM path -> power state
        self.vms: dict[str, str] = {}
        self.guest_ips: list[list[str]] = [["10.20.0.5"]]
        # (datastore, path) -> local source
        self.datastore_files: dict[tuple[str, str], Path] = {}
        self.devices: dict[str, list[VirtualDeviceSpec]] = {}
        self.extra_config: dict[str, dict[str, str]] = {}
        self.guest_uploads: list[tuple[str, str, bytes, int]] = []
        self.guest_programs: list[tuple[str, GuestProgramSpec]] = []
        # Calls that change anything, in order
        self.mutations: list[str] = []
        self.logins: list[VSphereConnectionInfo] = []


class FakeVSphereSession(VSphereSessionInterface):
    def __init__(self, inventory: FakeVSphereInventory) -> None:
        self.inventory = inventory
        self.is_logged_out = False

    def logout(self) -> None:
        self.is_logged_out = True

    def _ref(self, kind: str, name: str, path: str | None = None) -> InventoryRef:
        return InventoryRef(kind=kind, name=name, inventory_path=path or f"/{self.inventory.datacenter}/{name}")

    def _lookup(self, kind: str, names: set[str], name: str | None) -> InventoryRef:
        if name is None:
            if len(names) != 1:
                raise VSphereNotFoundError(kind, "(default)")
            name = next(iter(names))
        if name not in names:
            raise VSphereNotFoundError(kind, name)
        return self._ref(kind, name)

    def find_datacenter(self, name: str | None) -> InventoryRef:
        if name is not None and name != self.inventory.datacenter:
            raise VSphereNotFoundError("Datacenter", name)
        return self._ref("Datacenter", self.inventory.datacenter, f"/{self.inventory.datacenter}")

    def get_vm_folder(self, datacenter: InventoryRef) -> InventoryRef:
        return self._ref("Folder", "vm", f"/{datacenter.name}/vm")

    def find_folder(self, datacenter: InventoryRef, path: str) -> InventoryRef:
        return self._lookup("Folder", self.inventory.folders, path)

    def find_datastore(self, datacenter: InventoryRef, name: str | None) -> InventoryRef:
        return self._lookup("Datastore", self.inventory.datastores, name)

    def find_network(self, datacenter: InventoryRef, name: str | None) -> InventoryRef:
        return self._lookup("Network", self.inventory.networks, name)

    def find_host_system(self, datacenter: InventoryRef, name: str | None) -> InventoryRef:
        return self._lookup("HostSystem", self.inventory.host_systems, name)

    def find_resource_pool(self, datacenter: InventoryRef, name: str) -> InventoryRef:
        return self._lookup("ResourcePool", self.inventory.resource_pools, name)

    def get_host_resource_pool(self, host_system: InventoryRef) -> InventoryRef:
        return self._ref("ResourcePool", "Resources")

    def get_default_resource_pool(self, datacenter: InventoryRef) -> InventoryRef:
        return self._ref("ResourcePool", "Resources")

    def find_vm(self, datacenter: InventoryRef, path: str) -> InventoryRef:
        if path not in self.inventory.vms:
            raise VSphereNotFoundError("VirtualMachine", path)
        return self._ref("VirtualMachine", path.rsplit("/", 1)[-1], f"/{datacenter.name}/vm/{path}")

    def get_power_state(self, vm: InventoryRef) -> str:
        return self.inventory.vms[self._vm_key(vm)]

    def wait_for_guest_ips(self, vm: InventoryRef) -> Sequence[Sequence[str]]:
        return self.inventory.guest_ips

    def _vm_key(self, vm: InventoryRef) -> str:
        return vm.inventory_path.split("/vm/", 1)[1]

    def create_vm(
        self,
        folder: InventoryRef,
        spec: VmCreateSpec,
        resource_pool: InventoryRef,
        host_system: InventoryRef | None,
    ) -> InventoryRef:
        self.inventory.mutations.append("create_vm")
        path = spec.name if folder.name == "vm" else f"{folder.name}/{spec.name}"
        self.inventory.vms[path] = "poweredOff"
        return self._ref("VirtualMachine", spec.name, f"/{self.inventory.datacenter}/vm/{path}")

    def upload_datastore_file(
        self,
        local_path: Path,
        datacenter: InventoryRef,
        datastore: InventoryRef,
        remote_path: str,
    ) -> None:
        self.inventory.mutations.append("upload_datastore_file")
        self.inventory.datastore_files[(datastore.name, remote_path)] = local_path

    def delete_datastore_file(self, datacenter: InventoryRef, datastore: InventoryRef, remote_path: str) -> None:
        self.inventory.mutations.append("delete_datastore_file")
        if self.inventory.datastore_files.pop((datastore.name, remote_path), None) is None:
            raise VSphereFileNotFoundError(f"[{datastore.name}] {remote_path}")

    def add_devices(self, vm: InventoryRef, devices: Sequence[VirtualDeviceSpec]) -> None:
        self.inventory.mutations.append("add_devices")
        self.inventory.devices.setdefault(self._vm_key(vm), []).extend(devices)

    def set_extra_config(self, vm: InventoryRef, options: Mapping[str, str]) -> None:
        self.inventory.mutations.append("set_extra_config")
        self.inventory.extra_config.setdefault(self._vm_key(vm), {}).update(options)

    def power_on(self, vm: InventoryRef) -> None:
        self.inventory.mutations.append("power_on")
        self.inventory.vms[self._vm_key(vm)] = "poweredOn"

    def shutdown_guest(self, vm: InventoryRef) -> None:
        self.inventory.mutations.append("shutdown_guest")
        self.inventory.vms[self._vm_key(vm)] = "poweredOff"

    def power_off(self, vm: InventoryRef) -> None:
        self.inventory.mutations.append("power_off")
        self.inventory.vms[self._vm_key(vm)] = "poweredOff"

    def destroy_vm(self, vm: InventoryRef) -> None:
        self.inventory.mutations.append("destroy_vm")
        del self.inventory.vms[self._vm_key(vm)]

    def upload_file_to_guest(
        self,
        vm: InventoryRef,
        credentials: GuestCredentials,
        guest_path: str,
        local_path: Path,
        permissions: int,
    ) -> None:
        self.inventory.mutations.append("upload_file_to_guest")
        self.inventory.guest_uploads.append((credentials.username, guest_path, local_path.read_bytes(), permissions))

    def start_guest_program(self, vm: InventoryRef, credentials: GuestCredentials, spec: GuestProgramSpec) -> None:
        self.inventory.mutations.append("start_guest_program")
        self.inventory.guest_programs.append((credentials.username, spec))


class FakeVSphereClient(VSphereClientInterface):
    def __init__(self, inventory: FakeVSphereInventory | None = None, login_error: str | None = None) -> None:
        self.inventory = inventory or FakeVSphereInventory()
        self.login_error = login_error

    def login(self, connection: VSphereConnectionInfo) -> VSphereSessionInterface:
        self.inventory.logins.append(connection)
        if self.login_error is not None:
            raise BackendUnavailableError(self.login_error)
        return FakeVSphereSession(self.inventory)
