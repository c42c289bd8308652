"""X.509 helpers for the per-host certificate set: one CA, one server cert, one client cert."""

import datetime
import ipaddress
from collections.abc import Sequence
from pathlib import Path
from typing import Final

from cryptography import x509
from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.x509.oid import ExtendedKeyUsageOID
from cryptography.x509.oid import NameOID

KEY_SIZE: Final[int] = 2048
CERT_VALIDITY: Final[datetime.timedelta] = datetime.timedelta(days=1080)
ORGANIZATION: Final[str] = "machine"


def generate_private_key() -> rsa.RSAPrivateKey:
    return rsa.generate_private_key(public_exponent=65537, key_size=KEY_SIZE)


def _now() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


def _name(common_name: str) -> x509.Name:
    return x509.Name(
        [
            x509.NameAttribute(NameOID.ORGANIZATION_NAME, ORGANIZATION),
            x509.NameAttribute(NameOID.COMMON_NAME, common_name),
        ]
    )


def _san_entries(sans: Sequence[str]) -> list[x509.GeneralName]:
    entries: list[x509.GeneralName] = []
    for san in dict.fromkeys(sans):
        try:
            entries.append(x509.IPAddress(ipaddress.ip_address(san)))
        except ValueError:
            entries.append(x509.DNSName(san))
    return entries


def generate_ca(common_name: str) -> tuple[rsa.RSAPrivateKey, x509.Certificate]:
    """Generate a self-signed CA key pair."""
    key = generate_private_key()
    name = _name(common_name)
    now = _now()
    ski = x509.SubjectKeyIdentifier.from_public_key(key.public_key())
    cert = (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - datetime.timedelta(minutes=5))
        .not_valid_after(now + CERT_VALIDITY)
        .add_extension(x509.BasicConstraints(ca=True, path_length=0), critical=True)
        .add_extension(
            x509.KeyUsage(
                digital_signature=True,
                content_commitment=False,
                key_encipherment=True,
                data_encipherment=False,
                key_agreement=False,
                key_cert_sign=True,
                crl_sign=True,
                encipher_only=False,
                decipher_only=False,
            ),
            critical=True,
        )
        .add_extension(ski, critical=False)
        .sign(key, hashes.SHA256())
    )
    return key, cert


def issue_certificate(
    ca_key: rsa.RSAPrivateKey,
    ca_cert: x509.Certificate,
    common_name: str,
    sans: Sequence[str] = (),
    is_server: bool = False,
) -> tuple[rsa.RSAPrivateKey, x509.Certificate]:
    """Issue a leaf certificate signed by the CA. Server certificates carry the given SANs."""
    key = generate_private_key()
    now = _now()
    usage = ExtendedKeyUsageOID.SERVER_AUTH if is_server else ExtendedKeyUsageOID.CLIENT_AUTH
    builder = (
        x509.CertificateBuilder()
        .subject_name(_name(common_name))
        .issuer_name(ca_cert.subject)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - datetime.timedelta(minutes=5))
        .not_valid_after(now + CERT_VALIDITY)
        .add_extension(x509.BasicConstraints(ca=False, path_length=None), critical=True)
        .add_extension(
            x509.KeyUsage(
                digital_signature=True,
                content_commitment=False,
                key_encipherment=True,
                data_encipherment=False,
                key_agreement=True,
                key_cert_sign=False,
                crl_sign=False,
                encipher_only=False,
                decipher_only=False,
            ),
            critical=True,
        )
        .add_extension(x509.ExtendedKeyUsage([usage]), critical=False)
    )
    if is_server and sans:
        builder = builder.add_extension(x509.SubjectAlternativeName(_san_entries(sans)), critical=False)
    return key, builder.sign(ca_key, hashes.SHA256())


def write_key_and_cert(
    key: rsa.RSAPrivateKey,
    cert: x509.Certificate,
    key_path: Path,
    cert_path: Path,
) -> None:
    key_path.parent.mkdir(parents=True, exist_ok=True)
    key_path.write_bytes(
        key.private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.TraditionalOpenSSL,
            encryption_algorithm=serialization.NoEncryption(),
        )
    )
    key_path.chmod(0o600)
    cert_path.write_bytes(cert.public_bytes(serialization.Encoding.PEM))
    cert_path.chmod(0o644)


def load_certificate(path: Path) -> x509.Certificate:
    return x509.load_pem_x509_certificate(path.read_bytes())


def load_private_key(path: Path) -> rsa.RSAPrivateKey:
    key = serialization.load_pem_private_key(path.read_bytes(), password=None)
    if not isinstance(key, rsa.RSAPrivateKey):
        raise ValueError(f"{path} does not hold an RSA private key")
    return key


def find_certificate_problem(
    cert_path: Path,
    key_path: Path,
    issuer: x509.Certificate | None = None,
    now: datetime.datetime | None = None,
) -> str | None:
    """Why a stored key pair is unusable, or None if it is usable.

    Checks that both files parse, that the key belongs to the certificate, that the
    certificate is inside its validity window, and (when issuer is given) that the
    issuer signed it.
    """
    if not cert_path.exists() or not key_path.exists():
        return "missing"
    try:
        cert = load_certificate(cert_path)
        key = load_private_key(key_path)
    except ValueError as e:
        return f"unreadable: {e}"

    if cert.public_key().public_numbers() != key.public_key().public_numbers():
        return "private key does not match certificate"

    moment = now or _now()
    if moment < cert.not_valid_before_utc or moment > cert.not_valid_after_utc:
        return f"outside its validity window ({cert.not_valid_before_utc} to {cert.not_valid_after_utc})"

    if issuer is not None:
        try:
            cert.verify_directly_issued_by(issuer)
        except (ValueError, TypeError, InvalidSignature):
            return "not signed by the current CA"
    return None


def certificate_covers_sans(cert: x509.Certificate, sans: Sequence[str]) -> bool:
    try:
        extension = cert.extensions.get_extension_for_class(x509.SubjectAlternativeName)
    except x509.ExtensionNotFound:
        return not sans
    present = {str(ip) for ip in extension.value.get_values_for_type(x509.IPAddress)}
    present.update(extension.value.get_values_for_type(x509.DNSName))
    wanted = set()
    for san in sans:
        try:
            wanted.add(str(ipaddress.ip_address(san)))
        except ValueError:
            wanted.add(san)
    return wanted <= present
