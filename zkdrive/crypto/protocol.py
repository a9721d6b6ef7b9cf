"""
PGP backend protocol definition.

This defines the interface for OpenPGP operations, allowing different
implementations to be swapped without changing the key hierarchy code.
"""

from contextlib import AbstractContextManager
from typing import Protocol, runtime_checkable

from zkdrive.config import KeyAlgorithm
from zkdrive.core.secure_bytes import SecureBytes


@runtime_checkable
class PgpKey(Protocol):
    """Protocol for a loaded (public or encrypted private) key object."""

    @property
    def key_id(self) -> str:
        """Get the primary key ID (16 upper-case hex characters)."""
        ...

    @property
    def fingerprint(self) -> str:
        """Get the key fingerprint."""
        ...

    @property
    def identity(self) -> str | None:
        """Email bound to the key's first user id, if any."""
        ...

    @property
    def is_private(self) -> bool:
        """Whether the key carries its private half."""
        ...

    @property
    def armored(self) -> str:
        """ASCII-armored form of the key as loaded."""
        ...

    @property
    def public_armored(self) -> str:
        """ASCII-armored public half."""
        ...


@runtime_checkable
class PGPBackend(Protocol):
    """
    Abstract interface for OpenPGP operations.

    Parsing failures raise MalformedInputError; failures to open a ciphertext or
    unlock a key raise DecryptionError.
    """

    def load_key(self, armored_key: str) -> PgpKey:
        """
        Load a public or private key from ASCII-armored format.

        Raises:
            MalformedInputError: If the key cannot be parsed.
        """
        ...

    def unlock_key(
        self, private_key: PgpKey, passphrase: SecureBytes
    ) -> AbstractContextManager[PgpKey]:
        """
        Unlock a private key for the duration of a context.

        Raises:
            DecryptionError: If the passphrase is incorrect.
        """
        ...

    def encrypt_with_password(self, data: bytes, password: SecureBytes) -> str:
        """Encrypt data to a password, returning an armored message."""
        ...

    def decrypt_with_password(self, armored_message: str, password: SecureBytes) -> bytes:
        """
        Decrypt a password-encrypted armored message.

        Raises:
            MalformedInputError: If the message cannot be parsed.
            DecryptionError: If the password does not open the message.
        """
        ...

    def encrypt_to_key(self, data: bytes, public_key: PgpKey) -> str:
        """Encrypt data to a public key, returning an armored message."""
        ...

    def decrypt_with_key(
        self, armored_message: str, private_key: PgpKey, passphrase: SecureBytes
    ) -> bytes:
        """
        Decrypt an armored message with a private key.

        Raises:
            MalformedInputError: If the message cannot be parsed.
            DecryptionError: If the key cannot be unlocked or cannot open the message.
        """
        ...

    def sign_detached(self, data: bytes, private_key: PgpKey, passphrase: SecureBytes) -> str:
        """Produce an armored detached signature over data."""
        ...

    def verify_detached(self, data: bytes, armored_signature: str, key: PgpKey) -> str | None:
        """
        Verify a detached signature.

        Returns:
            The signer key ID when the signature is valid for `key`, otherwise None.

        Raises:
            MalformedInputError: If the signature cannot be parsed.
        """
        ...

    def generate_key(
        self,
        name: str,
        email: str,
        passphrase: SecureBytes,
        *,
        algorithm: KeyAlgorithm = KeyAlgorithm.ECC,
        rsa_key_size: int = 3072,
    ) -> PgpKey:
        """Generate a new private key protected by `passphrase`."""
        ...
