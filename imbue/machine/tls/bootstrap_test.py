from pathlib import Path
from pathlib import PurePosixPath

import pytest

from imbue.machine.config.data_types import AuthOptions
from imbue.machine.errors import TLSBootstrapError
from imbue.machine.remote.fake_runner import FakeCommandRunner
from imbue.machine.tls.bootstrap import bootstrap_tls
from imbue.machine.tls.bootstrap import ensure_local_certificates
from imbue.machine.tls.bootstrap import get_server_cert_sans
from imbue.machine.tls.certs import certificate_covers_sans
from imbue.machine.tls.certs import find_certificate_problem
from imbue.machine.tls.certs import load_certificate


def _auth(tmp_path: Path) -> AuthOptions:
    return AuthOptions.for_host(tmp_path / "certs", PurePosixPath("/etc/docker"))


def test_first_run_generates_full_set(tmp_path: Path) -> None:
    auth = _auth(tmp_path)

    status = ensure_local_certificates(auth, "node-1", "10.0.0.5")

    assert (status.is_ca_generated, status.is_client_issued, status.is_server_issued) == (True, True, True)
    ca_cert = load_certificate(auth.ca_cert_path)
    assert find_certificate_problem(auth.server_cert_path, auth.server_key_path, issuer=ca_cert) is None
    assert find_certificate_problem(auth.client_cert_path, auth.client_key_path, issuer=ca_cert) is None
    assert certificate_covers_sans(load_certificate(auth.server_cert_path), ("10.0.0.5", "node-1", "localhost"))


def test_second_run_keeps_ca_byte_identical(tmp_path: Path) -> None:
    auth = _auth(tmp_path)
    ensure_local_certificates(auth, "node-1", "10.0.0.5")
    ca_before = auth.ca_cert_path.read_bytes()
    client_before = auth.client_cert_path.read_bytes()
    server_before = auth.server_cert_path.read_bytes()

    status = ensure_local_certificates(auth, "node-1", "10.0.0.5")

    assert (status.is_ca_generated, status.is_client_issued, status.is_server_issued) == (False, False, False)
    assert auth.ca_cert_path.read_bytes() == ca_before
    assert auth.client_cert_path.read_bytes() == client_before
    assert auth.server_cert_path.read_bytes() == server_before


def test_new_address_reissues_only_server_cert(tmp_path: Path) -> None:
    auth = _auth(tmp_path)
    ensure_local_certificates(auth, "node-1", "10.0.0.5")
    ca_before = auth.ca_cert_path.read_bytes()

    status = ensure_local_certificates(auth, "node-1", "10.0.0.6")

    assert status.is_server_issued
    assert not status.is_ca_generated
    assert auth.ca_cert_path.read_bytes() == ca_before
    assert certificate_covers_sans(load_certificate(auth.server_cert_path), ("10.0.0.6",))


def test_corrupt_ca_is_not_silently_replaced(tmp_path: Path) -> None:
    auth = _auth(tmp_path)
    ensure_local_certificates(auth, "node-1", "10.0.0.5")
    auth.ca_cert_path.write_text("garbage")

    with pytest.raises(TLSBootstrapError):
        ensure_local_certificates(auth, "node-1", "10.0.0.5")

    assert auth.ca_cert_path.read_text() == "garbage"


def test_regenerate_replaces_corrupt_set(tmp_path: Path) -> None:
    auth = _auth(tmp_path)
    ensure_local_certificates(auth, "node-1", "10.0.0.5")
    auth.ca_cert_path.write_text("garbage")

    status = ensure_local_certificates(auth, "node-1", "10.0.0.5", regenerate=True)

    assert status.is_ca_generated
    assert find_certificate_problem(auth.ca_cert_path, auth.ca_key_path) is None


def test_mismatched_client_key_is_an_error(tmp_path: Path) -> None:
    auth = _auth(tmp_path)
    ensure_local_certificates(auth, "node-1", "10.0.0.5")
    auth.client_key_path.write_bytes(auth.server_key_path.read_bytes())

    with pytest.raises(TLSBootstrapError, match="Client certificate"):
        ensure_local_certificates(auth, "node-1", "10.0.0.5")


def test_remote_install_writes_root_owned_files(tmp_path: Path) -> None:
    auth = _auth(tmp_path)
    runner = FakeCommandRunner()

    bootstrap_tls(runner, auth, "node-1", "10.0.0.5")

    assert len(runner.commands) == 3
    for remote_path, command in zip(("ca.pem", "server.pem", "server-key.pem"), runner.commands):
        assert f"'/etc/docker/{remote_path}'" in command
        assert "sudo chown root:root" in command
        assert "sudo chmod 600" in command


def test_server_sans_skip_empty_address() -> None:
    auth = AuthOptions.for_host(Path("/tmp/certs"), PurePosixPath("/etc/docker"), server_cert_sans=("extra.local",))

    assert get_server_cert_sans(auth, "node-1", "") == ("node-1", "localhost", "extra.local")
