from pathlib import Path
from pathlib import PurePosixPath

from loguru import logger
from pydantic import Field

from imbue.machine.config.data_types import AuthOptions
from imbue.machine.errors import TLSBootstrapError
from imbue.machine.interfaces.command_runner import CommandRunnerInterface
from imbue.machine.tls.certs import certificate_covers_sans
from imbue.machine.tls.certs import find_certificate_problem
from imbue.machine.tls.certs import generate_ca
from imbue.machine.tls.certs import issue_certificate
from imbue.machine.tls.certs import load_certificate
from imbue.machine.tls.certs import load_private_key
from imbue.machine.tls.certs import write_key_and_cert
from imbue.machine.utils.model_base import FrozenModel
from imbue.machine.utils.shell import build_write_file_command

REMOTE_CERT_OWNER = "root:root"
REMOTE_CERT_MODE = 0o600


class CertificateSetStatus(FrozenModel):
    """What ensure_local_certificates had to do."""

    is_ca_generated: bool = Field(description="A new CA key pair was written")
    is_client_issued: bool = Field(description="A new client certificate was written")
    is_server_issued: bool = Field(description="A new server certificate was written")


def get_server_cert_sans(auth_options: AuthOptions, host_name: str, host_ip: str) -> tuple[str, ...]:
    sans = [host_ip, host_name, "localhost", *auth_options.server_cert_sans]
    return tuple(dict.fromkeys(san for san in sans if san))


def _has_any(*paths: Path) -> bool:
    return any(path.exists() for path in paths)


def ensure_local_certificates(
    auth_options: AuthOptions,
    host_name: str,
    host_ip: str,
    regenerate: bool = False,
) -> CertificateSetStatus:
    """Make sure the host's local store holds a usable CA, client and server certificate.

    Usable material is reused as-is. A CA or client certificate that exists but is
    unusable raises TLSBootstrapError unless regenerate is set; regenerate replaces the
    whole set. The server certificate is re-issued whenever it is unusable or does not
    cover the host's current address and name.
    """
    auth = auth_options
    auth.store_dir.mkdir(parents=True, exist_ok=True)

    is_ca_generated = False
    ca_problem = find_certificate_problem(auth.ca_cert_path, auth.ca_key_path)
    if regenerate or ca_problem is not None:
        if not regenerate and _has_any(auth.ca_cert_path, auth.ca_key_path):
            raise TLSBootstrapError(f"CA certificate in {auth.store_dir} is unusable: {ca_problem}")
        logger.info("Generating CA certificate in {}", auth.store_dir)
        ca_key, ca_cert = generate_ca(f"{host_name} CA")
        write_key_and_cert(ca_key, ca_cert, auth.ca_key_path, auth.ca_cert_path)
        is_ca_generated = True
    else:
        ca_key = load_private_key(auth.ca_key_path)
        ca_cert = load_certificate(auth.ca_cert_path)

    is_client_issued = False
    client_problem = find_certificate_problem(auth.client_cert_path, auth.client_key_path, issuer=ca_cert)
    if is_ca_generated or client_problem is not None:
        if not is_ca_generated and _has_any(auth.client_cert_path, auth.client_key_path):
            raise TLSBootstrapError(f"Client certificate in {auth.store_dir} is unusable: {client_problem}")
        logger.debug("Issuing client certificate in {}", auth.store_dir)
        client_key, client_cert = issue_certificate(ca_key, ca_cert, f"{host_name} client")
        write_key_and_cert(client_key, client_cert, auth.client_key_path, auth.client_cert_path)
        is_client_issued = True

    sans = get_server_cert_sans(auth, host_name, host_ip)
    server_problem = find_certificate_problem(auth.server_cert_path, auth.server_key_path, issuer=ca_cert)
    if server_problem is None and not certificate_covers_sans(load_certificate(auth.server_cert_path), sans):
        server_problem = f"does not cover {', '.join(sans)}"
    is_server_issued = False
    if is_ca_generated or server_problem is not None:
        logger.debug("Issuing server certificate for {} ({})", host_name, server_problem or "new CA")
        server_key, server_cert = issue_certificate(ca_key, ca_cert, host_name, sans, is_server=True)
        write_key_and_cert(server_key, server_cert, auth.server_key_path, auth.server_cert_path)
        is_server_issued = True

    return CertificateSetStatus(
        is_ca_generated=is_ca_generated,
        is_client_issued=is_client_issued,
        is_server_issued=is_server_issued,
    )


def install_remote_certificates(runner: CommandRunnerInterface, auth_options: AuthOptions) -> None:
    """Copy the CA certificate and the server key pair into the remote options directory."""
    pairs: tuple[tuple[Path, PurePosixPath], ...] = (
        (auth_options.ca_cert_path, auth_options.ca_cert_remote_path),
        (auth_options.server_cert_path, auth_options.server_cert_remote_path),
        (auth_options.server_key_path, auth_options.server_key_remote_path),
    )
    for local_path, remote_path in pairs:
        logger.debug("Installing {} as {}", local_path.name, remote_path)
        runner.run_checked(
            build_write_file_command(
                remote_path,
                local_path.read_text(),
                mode=REMOTE_CERT_MODE,
                owner=REMOTE_CERT_OWNER,
            )
        )


def bootstrap_tls(
    runner: CommandRunnerInterface,
    auth_options: AuthOptions,
    host_name: str,
    host_ip: str,
    regenerate: bool = False,
) -> CertificateSetStatus:
    status = ensure_local_certificates(auth_options, host_name, host_ip, regenerate)
    install_remote_certificates(runner, auth_options)
    return status
