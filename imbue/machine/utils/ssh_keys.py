from pathlib import Path

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa


def generate_ssh_keypair() -> tuple[str, str]:
    """Generate a new RSA keypair for SSH authentication.

    Returns a tuple of (private_key_pem, public_key_openssh).
    """
    private_key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    private_key_pem = private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.TraditionalOpenSSL,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode("utf-8")
    public_key_openssh = (
        private_key.public_key()
        .public_bytes(
            encoding=serialization.Encoding.OpenSSH,
            format=serialization.PublicFormat.OpenSSH,
        )
        .decode("utf-8")
    )
    return private_key_pem, public_key_openssh


def load_or_create_ssh_keypair(private_key_path: Path) -> str:
    """Load the keypair at private_key_path (public half at <path>.pub), creating it if missing.

    Returns the public key in OpenSSH format.
    """
    public_key_path = private_key_path.with_name(f"{private_key_path.name}.pub")
    if private_key_path.exists() and public_key_path.exists():
        return public_key_path.read_text().strip()

    private_key_path.parent.mkdir(parents=True, exist_ok=True)
    private_key_pem, public_key_openssh = generate_ssh_keypair()

    private_key_path.write_text(private_key_pem)
    private_key_path.chmod(0o600)

    public_key_path.write_text(public_key_openssh)
    public_key_path.chmod(0o644)

    return public_key_openssh
