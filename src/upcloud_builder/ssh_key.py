"""Temporary SSH key pair for the build server's login user."""

from __future__ import annotations

from dataclasses import dataclass

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

DEFAULT_KEY_SIZE = 2048
DEFAULT_KEY_COMMENT = "packer-builder-upcloud"


@dataclass(frozen=True, slots=True)
class SSHKeyPair:
    private_key_pem: str
    public_key: str
    """OpenSSH ``authorized_keys`` line: ``ssh-rsa AAAA... comment``."""


def generate_ssh_key_pair(
    *,
    key_size: int = DEFAULT_KEY_SIZE,
    comment: str = DEFAULT_KEY_COMMENT,
) -> SSHKeyPair:
    """Generate an unencrypted RSA key pair for a single build."""
    private_key = rsa.generate_private_key(public_exponent=65537, key_size=key_size)
    private_pem = private_key.private_bytes(
        serialization.Encoding.PEM,
        serialization.PrivateFormat.TraditionalOpenSSL,
        serialization.NoEncryption(),
    ).decode()
    public_openssh = private_key.public_key().public_bytes(
        serialization.Encoding.OpenSSH,
        serialization.PublicFormat.OpenSSH,
    ).decode()
    if comment:
        public_openssh = f"{public_openssh} {comment}"
    return SSHKeyPair(private_key_pem=private_pem, public_key=public_openssh)
