import base64
import io
import tarfile
from pathlib import Path

import pytest
from pydantic import SecretStr

from imbue.machine.drivers.vsphere.client import CdromDeviceSpec
from imbue.machine.drivers.vsphere.client import DiskDeviceSpec
from imbue.machine.drivers.vsphere.client import NicDeviceSpec
from imbue.machine.drivers.vsphere.config import VSphereDriverConfig
from imbue.machine.drivers.vsphere.driver import VSphereDriver
from imbue.machine.drivers.vsphere.driver import build_extra_config
from imbue.machine.drivers.vsphere.keybundle import B2D_USERDATA_MAGIC
from imbue.machine.drivers.vsphere.testing import FakeVSphereClient
from imbue.machine.drivers.vsphere.testing import FakeVSphereInventory
from imbue.machine.errors import BackendUnavailableError
from imbue.machine.errors import DriverOptionError
from imbue.machine.errors import HostNotRunningError
from imbue.machine.errors import UnsupportedOperationError
from imbue.machine.errors import VSphereNotFoundError
from imbue.machine.primitives import HostName
from imbue.machine.primitives import HostState


def _make_driver(tmp_path: Path, client: FakeVSphereClient, **config_overrides) -> VSphereDriver:
    boot_iso = tmp_path / "b2d.iso"
    boot_iso.write_bytes(b"iso")
    config_values = {
        "vcenter": "vcenter.local",
        "username": "admin",
        "password": SecretStr("secret"),
        "boot2docker_url": str(boot_iso),
    }
    config_values.update(config_overrides)
    return VSphereDriver(
        machine_name=HostName("node-1"),
        store_path=tmp_path / "machines" / "node-1",
        config=VSphereDriverConfig(**config_values),
        client=client,
        sleep=lambda _: None,
    )


def test_create_builds_vm_and_installs_key_bundle(tmp_path: Path) -> None:
    client = FakeVSphereClient()
    driver = _make_driver(tmp_path, client, disk_size_mb=100)

    driver.create()

    inventory = client.inventory
    assert inventory.mutations == [
        "create_vm",
        "upload_datastore_file",
        "add_devices",
        "power_on",
        "upload_file_to_guest",
        "start_guest_program",
        "start_guest_program",
    ]
    assert inventory.vms == {"node-1": "poweredOn"}
    assert ("datastore1", "node-1/boot2docker.iso") in inventory.datastore_files

    disk, cdrom, nic = inventory.devices["node-1"]
    assert isinstance(disk, DiskDeviceSpec)
    assert disk.datastore_path == "[datastore1] node-1/node-1.vmdk"
    assert disk.capacity_kb == 100 * 1024
    assert isinstance(cdrom, CdromDeviceSpec)
    assert cdrom.iso_datastore_path == "[datastore1] node-1/boot2docker.iso"
    assert isinstance(nic, NicDeviceSpec)
    assert nic.network.name == "VM Network"

    username, guest_path, bundle, permissions = inventory.guest_uploads[0]
    assert (username, guest_path, permissions) == ("docker", "/home/docker/userdata.tar", 0o660)
    with tarfile.open(fileobj=io.BytesIO(bundle), mode="r") as archive:
        assert archive.getnames()[0] == B2D_USERDATA_MAGIC

    assert (driver.store_path / "id_rsa").exists()
    assert driver.get_state() == HostState.RUNNING


def test_create_rejects_malformed_cfgparam_before_touching_backend(tmp_path: Path) -> None:
    client = FakeVSphereClient()
    driver = _make_driver(tmp_path, client, cfg_params=("no-separator",))

    with pytest.raises(DriverOptionError):
        driver.create()

    assert client.inventory.mutations == []


def test_pre_create_check_reports_missing_network_without_mutation(tmp_path: Path) -> None:
    client = FakeVSphereClient()
    driver = _make_driver(tmp_path, client, networks=("VM Network", "missing-net"))

    with pytest.raises(VSphereNotFoundError, match="missing-net"):
        driver.pre_create_check()

    assert client.inventory.mutations == []


def test_pre_create_check_passes_with_defaults(tmp_path: Path) -> None:
    client = FakeVSphereClient()

    _make_driver(tmp_path, client).pre_create_check()

    assert client.inventory.mutations == []


def test_login_failure_propagates(tmp_path: Path) -> None:
    driver = _make_driver(tmp_path, FakeVSphereClient(login_error="connection refused"))

    with pytest.raises(BackendUnavailableError, match="connection refused"):
        driver.get_state()


def test_suspended_vm_maps_to_saved_and_starts(tmp_path: Path) -> None:
    inventory = FakeVSphereInventory()
    inventory.vms["node-1"] = "suspended"
    driver = _make_driver(tmp_path, FakeVSphereClient(inventory))

    assert driver.get_state() == HostState.SAVED

    driver.start()

    assert inventory.mutations == ["power_on"]
    assert driver.get_state() == HostState.RUNNING


def test_start_on_running_vm_is_a_no_op(tmp_path: Path) -> None:
    inventory = FakeVSphereInventory()
    inventory.vms["node-1"] = "poweredOn"

    _make_driver(tmp_path, FakeVSphereClient(inventory)).start()

    assert inventory.mutations == []


def test_get_ip_skips_bridge_gateway(tmp_path: Path) -> None:
    inventory = FakeVSphereInventory()
    inventory.vms["node-1"] = "poweredOn"
    inventory.guest_ips = [["172.17.0.1"], ["192.168.1.20"]]
    driver = _make_driver(tmp_path, FakeVSphereClient(inventory))

    assert driver.get_ip() == "192.168.1.20"
    assert driver.get_url() == "tcp://192.168.1.20:2376"


def test_get_ip_requires_running_vm(tmp_path: Path) -> None:
    inventory = FakeVSphereInventory()
    inventory.vms["node-1"] = "poweredOff"

    with pytest.raises(HostNotRunningError):
        _make_driver(tmp_path, FakeVSphereClient(inventory)).get_ip()


def test_remove_powers_off_and_deletes_iso_and_vm(tmp_path: Path) -> None:
    client = FakeVSphereClient()
    driver = _make_driver(tmp_path, client)
    driver.create()
    client.inventory.mutations.clear()

    driver.remove()

    assert client.inventory.mutations == ["power_off", "delete_datastore_file", "destroy_vm"]
    assert client.inventory.vms == {}


def test_remove_tolerates_missing_iso_and_vm(tmp_path: Path) -> None:
    client = FakeVSphereClient()

    _make_driver(tmp_path, client).remove()

    assert client.inventory.mutations == ["delete_datastore_file"]


def test_upgrade_is_unsupported(tmp_path: Path) -> None:
    with pytest.raises(UnsupportedOperationError, match="vsphere"):
        _make_driver(tmp_path, FakeVSphereClient()).upgrade()


def test_vm_in_folder_is_found_by_folder_path(tmp_path: Path) -> None:
    inventory = FakeVSphereInventory()
    inventory.folders.add("docker/hosts")
    driver = _make_driver(tmp_path, FakeVSphereClient(inventory), folder="docker/hosts")

    driver.create()

    assert "docker/hosts/node-1" in inventory.vms
    assert driver.get_state() == HostState.RUNNING


def test_extra_config_from_cfgparam_and_cloud_init_url() -> None:
    extra_config = build_extra_config(("a=b", "c=d=e"), "https://example.com/user-data")

    assert extra_config == {
        "a": "b",
        "c": "d=e",
        "guestinfo.cloud-init.config.url": "https://example.com/user-data",
    }


def test_extra_config_embeds_cloud_init_file(tmp_path: Path) -> None:
    user_data = tmp_path / "user-data"
    user_data.write_text("#cloud-config\n")

    extra_config = build_extra_config((), str(user_data))

    assert base64.b64decode(extra_config["guestinfo.cloud-init.config.data"]) == b"#cloud-config\n"
    assert extra_config["guestinfo.cloud-init.data.encoding"] == "base64"


def test_config_from_options_requires_credentials() -> None:
    with pytest.raises(DriverOptionError, match="vmwarevsphere-vcenter"):
        VSphereDriverConfig.from_options({"vmwarevsphere-username": "u", "vmwarevsphere-password": "p"})


def test_config_from_options_trims_folder_and_defaults_network() -> None:
    config = VSphereDriverConfig.from_options(
        {
            "vmwarevsphere-vcenter": "vc",
            "vmwarevsphere-username": "u",
            "vmwarevsphere-password": "p",
            "vmwarevsphere-folder": "/docker/hosts/",
        }
    )

    assert config.folder == "docker/hosts"
    assert config.effective_networks == ("VM Network",)
    assert config.cpu_count == 2
    assert config.memory_mb == 2048
