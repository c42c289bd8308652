import base64
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Final
from urllib.parse import urlparse

from loguru import logger
from pydantic import Field
from pydantic import SecretStr

from imbue.machine.drivers.lifecycle import restart_policy
from imbue.machine.drivers.lifecycle import restart_with_fallback
from imbue.machine.drivers.vsphere.boot_image import BOOT_ISO_NAME
from imbue.machine.drivers.vsphere.boot_image import prepare_boot_iso
from imbue.machine.drivers.vsphere.client import CdromDeviceSpec
from imbue.machine.drivers.vsphere.client import DiskDeviceSpec
from imbue.machine.drivers.vsphere.client import GuestCredentials
from imbue.machine.drivers.vsphere.client import GuestProgramSpec
from imbue.machine.drivers.vsphere.client import InventoryRef
from imbue.machine.drivers.vsphere.client import NicDeviceSpec
from imbue.machine.drivers.vsphere.client import VirtualDeviceSpec
from imbue.machine.drivers.vsphere.client import VmCreateSpec
from imbue.machine.drivers.vsphere.client import VSphereClientInterface
from imbue.machine.drivers.vsphere.client import VSphereConnectionInfo
from imbue.machine.drivers.vsphere.client import VSphereSessionInterface
from imbue.machine.drivers.vsphere.config import GUEST_PASSWORD
from imbue.machine.drivers.vsphere.config import GUEST_USERNAME
from imbue.machine.drivers.vsphere.config import SSH_USERNAME
from imbue.machine.drivers.vsphere.config import VSPHERE_CREATE_FLAGS
from imbue.machine.drivers.vsphere.config import VSPHERE_DRIVER_NAME
from imbue.machine.drivers.vsphere.config import VSphereDriverConfig
from imbue.machine.drivers.vsphere.keybundle import GUEST_BUNDLE_PATH
from imbue.machine.drivers.vsphere.keybundle import GUEST_BUNDLE_PERSIST_PATH
from imbue.machine.drivers.vsphere.keybundle import build_extract_bundle_command
from imbue.machine.drivers.vsphere.keybundle import write_userdata_bundle
from imbue.machine.errors import DriverOptionError
from imbue.machine.errors import HostNotRunningError
from imbue.machine.errors import UnsupportedOperationError
from imbue.machine.errors import VSphereFileNotFoundError
from imbue.machine.errors import VSphereNotFoundError
from imbue.machine.interfaces.data_types import CreateFlag
from imbue.machine.interfaces.driver import DriverInterface
from imbue.machine.primitives import DriverName
from imbue.machine.primitives import HostState
from imbue.machine.utils.logging import log_span
from imbue.machine.utils.net import build_engine_url
from imbue.machine.utils.net import select_preferred_ip
from imbue.machine.utils.polling import Deadline
from imbue.machine.utils.ssh_keys import load_or_create_ssh_keypair

_POWER_STATE_TO_HOST_STATE: Final[dict[str, HostState]] = {
    "poweredOn": HostState.RUNNING,
    "poweredOff": HostState.STOPPED,
    "suspended": HostState.SAVED,
}

_GUEST_CREDENTIALS: Final[GuestCredentials] = GuestCredentials(
    username=GUEST_USERNAME,
    password=SecretStr(GUEST_PASSWORD),
)


def build_extra_config(cfg_params: tuple[str, ...], cloud_init: str) -> dict[str, str]:
    """The guestinfo/extra config entries for a new VM.

    cfg_params are key=value pairs. cloud_init is either a URL, passed by reference, or a
    local file whose content is embedded base64-encoded.
    """
    extra_config: dict[str, str] = {}
    for param in cfg_params:
        key, separator, value = param.partition("=")
        if not separator or not key:
            raise DriverOptionError("vmwarevsphere-cfgparam", f"expected key=value, got {param!r}")
        extra_config[key] = value

    if cloud_init:
        if urlparse(cloud_init).scheme in ("http", "https"):
            extra_config["guestinfo.cloud-init.config.url"] = cloud_init
        else:
            cloud_init_path = Path(cloud_init).expanduser()
            if not cloud_init_path.is_file():
                raise DriverOptionError("vmwarevsphere-cloudinit", f"not a URL and no such file: {cloud_init}")
            encoded = base64.b64encode(cloud_init_path.read_bytes()).decode("ascii")
            extra_config["guestinfo.cloud-init.config.data"] = encoded
            extra_config["guestinfo.cloud-init.data.encoding"] = "base64"
    return extra_config


class VSphereDriver(DriverInterface):
    """Hosts running boot2docker as virtual machines on vCenter or ESX.

    Every operation opens its own API session and looks the VM up by its inventory
    path, so no backend handle outlives a call.
    """

    config: VSphereDriverConfig = Field(frozen=True, description="Resolved create options")
    client: VSphereClientInterface = Field(frozen=True, repr=False, description="vSphere API client")

    @property
    def driver_name(self) -> DriverName:
        return VSPHERE_DRIVER_NAME

    @staticmethod
    def get_create_flags() -> tuple[CreateFlag, ...]:
        return VSPHERE_CREATE_FLAGS

    def get_ssh_username(self) -> str:
        return SSH_USERNAME

    # =========================================================================
    # Session helpers
    # =========================================================================

    @contextmanager
    def _session(self) -> Iterator[VSphereSessionInterface]:
        connection = VSphereConnectionInfo(
            host=self.config.vcenter,
            port=self.config.vcenter_port,
            username=self.config.username,
            password=self.config.password,
        )
        with self.client.login(connection) as session:
            yield session

    def _datacenter(self, session: VSphereSessionInterface) -> InventoryRef:
        return session.find_datacenter(self.config.datacenter or None)

    def _folder(self, session: VSphereSessionInterface, datacenter: InventoryRef) -> InventoryRef:
        if self.config.folder:
            return session.find_folder(datacenter, self.config.folder)
        return session.get_vm_folder(datacenter)

    def _host_system(self, session: VSphereSessionInterface, datacenter: InventoryRef) -> InventoryRef | None:
        if self.config.host_system:
            return session.find_host_system(datacenter, self.config.host_system)
        return None

    def _resource_pool(
        self,
        session: VSphereSessionInterface,
        datacenter: InventoryRef,
        host_system: InventoryRef | None,
    ) -> InventoryRef:
        if self.config.pool:
            return session.find_resource_pool(datacenter, self.config.pool)
        if host_system is not None:
            return session.get_host_resource_pool(host_system)
        return session.get_default_resource_pool(datacenter)

    def _vm_path(self) -> str:
        if self.config.folder:
            return f"{self.config.folder}/{self.machine_name}"
        return str(self.machine_name)

    def _find_vm(self, session: VSphereSessionInterface) -> tuple[InventoryRef, InventoryRef]:
        datacenter = self._datacenter(session)
        return datacenter, session.find_vm(datacenter, self._vm_path())

    def _iso_datastore_path(self) -> str:
        return f"{self.machine_name}/{BOOT_ISO_NAME}"

    def _power_on_and_wait_for_ip(self, session: VSphereSessionInterface, vm: InventoryRef) -> None:
        session.power_on(vm)
        logger.debug("Waiting for {} to report an address", self.machine_name)
        session.wait_for_guest_ips(vm)

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def pre_create_check(self) -> None:
        with self._session() as session:
            datacenter = self._datacenter(session)
            if self.config.folder:
                session.find_folder(datacenter, self.config.folder)
            session.find_datastore(datacenter, self.config.datastore or None)
            for network in self.config.effective_networks:
                session.find_network(datacenter, network)
            host_system = self._host_system(session, datacenter)
            self._resource_pool(session, datacenter, host_system)

    def create(self) -> None:
        name = str(self.machine_name)
        extra_config = build_extra_config(self.config.cfg_params, self.config.cloud_init)

        iso_path = prepare_boot_iso(self.config.boot2docker_url, self.store_path)
        public_key = load_or_create_ssh_keypair(self.store_path / "id_rsa")

        with self._session() as session:
            datacenter = self._datacenter(session)
            folder = self._folder(session, datacenter)
            datastore = session.find_datastore(datacenter, self.config.datastore or None)
            networks = [session.find_network(datacenter, network) for network in self.config.effective_networks]
            host_system = self._host_system(session, datacenter)
            resource_pool = self._resource_pool(session, datacenter, host_system)

            with log_span("Creating VM {} on datastore {}", name, datastore.name):
                spec = VmCreateSpec(
                    name=name,
                    vm_path_name=f"[{datastore.name}]",
                    num_cpus=self.config.cpu_count,
                    memory_mb=self.config.memory_mb,
                )
                vm = session.create_vm(folder, spec, resource_pool, host_system)

            with log_span("Uploading boot ISO for {}", name):
                session.upload_datastore_file(iso_path, datacenter, datastore, self._iso_datastore_path())

            devices: list[VirtualDeviceSpec] = [
                DiskDeviceSpec(
                    datastore_path=f"[{datastore.name}] {name}/{name}.vmdk",
                    capacity_kb=self.config.disk_size_mb * 1024,
                ),
                CdromDeviceSpec(iso_datastore_path=f"[{datastore.name}] {self._iso_datastore_path()}"),
            ]
            devices.extend(NicDeviceSpec(network=network) for network in networks)
            session.add_devices(vm, devices)

            if extra_config:
                session.set_extra_config(vm, extra_config)

            with log_span("Powering on {}", name):
                self._power_on_and_wait_for_ip(session, vm)

            with log_span("Installing SSH key bundle on {}", name):
                bundle_path = write_userdata_bundle(self.store_path, public_key)
                session.upload_file_to_guest(vm, _GUEST_CREDENTIALS, GUEST_BUNDLE_PATH, bundle_path, 0o660)
                session.start_guest_program(
                    vm,
                    _GUEST_CREDENTIALS,
                    GuestProgramSpec(
                        program_path="/usr/bin/sudo",
                        arguments=f'/bin/sh -c "{build_extract_bundle_command()}"',
                    ),
                )
                session.start_guest_program(
                    vm,
                    _GUEST_CREDENTIALS,
                    GuestProgramSpec(
                        program_path="/usr/bin/sudo",
                        arguments=f"/bin/mv {GUEST_BUNDLE_PATH} {GUEST_BUNDLE_PERSIST_PATH}",
                    ),
                )

    def start(self) -> None:
        with self._session() as session:
            _, vm = self._find_vm(session)
            state = self._state_of(session, vm)
            match state:
                case HostState.RUNNING:
                    logger.info("Host {} is already running", self.machine_name)
                case HostState.STOPPED | HostState.SAVED:
                    self._power_on_and_wait_for_ip(session, vm)
                case _:
                    logger.warning("Not starting host {} in state {}", self.machine_name, state)

    def stop(self) -> None:
        with self._session() as session:
            _, vm = self._find_vm(session)
            session.shutdown_guest(vm)

    def restart(self, deadline: Deadline | None = None) -> None:
        restart_with_fallback(self, restart_policy(self.poll_settings), self.sleep, deadline)

    def kill(self) -> None:
        with self._session() as session:
            _, vm = self._find_vm(session)
            session.power_off(vm)

    def remove(self) -> None:
        with self._session() as session:
            datacenter = self._datacenter(session)
            try:
                vm: InventoryRef | None = session.find_vm(datacenter, self._vm_path())
            except VSphereNotFoundError:
                logger.info("VM {} does not exist; removing boot media only", self.machine_name)
                vm = None

            if vm is not None and self._state_of(session, vm) == HostState.RUNNING:
                session.power_off(vm)

            datastore = session.find_datastore(datacenter, self.config.datastore or None)
            try:
                session.delete_datastore_file(datacenter, datastore, self._iso_datastore_path())
            except VSphereFileNotFoundError:
                logger.debug("Boot ISO of {} is already gone", self.machine_name)

            if vm is not None:
                session.destroy_vm(vm)

    def upgrade(self) -> None:
        raise UnsupportedOperationError("upgrade is not supported for vsphere driver at this moment")

    # =========================================================================
    # Queries
    # =========================================================================

    @staticmethod
    def _state_of(session: VSphereSessionInterface, vm: InventoryRef) -> HostState:
        return _POWER_STATE_TO_HOST_STATE.get(session.get_power_state(vm), HostState.NONE)

    def get_state(self) -> HostState:
        with self._session() as session:
            _, vm = self._find_vm(session)
            return self._state_of(session, vm)

    def get_ip(self) -> str:
        with self._session() as session:
            _, vm = self._find_vm(session)
            state = self._state_of(session, vm)
            if state != HostState.RUNNING:
                raise HostNotRunningError(str(self.machine_name), state)
            addresses = [address for nic_addresses in session.wait_for_guest_ips(vm) for address in nic_addresses]
        return select_preferred_ip(addresses)

    def get_url(self) -> str:
        return build_engine_url(self.get_ip(), self.engine_port)
