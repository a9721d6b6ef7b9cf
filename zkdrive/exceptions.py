"""
zkdrive exception hierarchy.

All exceptions inherit from ZkDriveError for easy catching.
"""

from enum import StrEnum
from typing import Any


class DecryptionReason(StrEnum):
    """Why a password-encrypted message did not open."""

    WRONG_KEY = "wrong_key"
    CORRUPT = "corrupt"


class ZkDriveError(Exception):
    """Base exception for all zkdrive errors."""

    def __init__(self, message: str, **context: Any) -> None:
        super().__init__(message)
        self.message = message
        self.context = context

    def __str__(self) -> str:
        if self.context:
            ctx = ", ".join(f"{k}={v!r}" for k, v in self.context.items())
            return f"{self.message} ({ctx})"
        return self.message


class CryptoError(ZkDriveError):
    """Cryptographic operation failed."""


class DecryptionError(CryptoError):
    """
    Ciphertext could not be decrypted.

    `reason` is set when the failure can be attributed: WRONG_KEY when the secret
    did not recover a session key, CORRUPT when the session key was recovered but
    the data failed its integrity check.
    """

    def __init__(
        self,
        message: str,
        *,
        key_type: str | None = None,
        reason: DecryptionReason | str | None = None,
    ) -> None:
        reason = DecryptionReason(reason) if reason is not None else None
        super().__init__(message, key_type=key_type, reason=reason)
        self.key_type = key_type
        self.reason = reason


class MalformedInputError(CryptoError):
    """Packet, key, ciphertext or argument is structurally invalid."""


class SignatureInvalidError(CryptoError):
    """A signature is present but fails the cryptographic check."""


class IdentityMismatchError(CryptoError):
    """A signature is valid but was not made by the expected key or identity."""


class PacketChainMismatchError(CryptoError):
    """A key packet names a different parent packet than the one used to unseal it."""

    def __init__(
        self,
        message: str,
        *,
        expected_parent_id: str | None = None,
        actual_parent_id: str | None = None,
    ) -> None:
        super().__init__(
            message, expected_parent_id=expected_parent_id, actual_parent_id=actual_parent_id
        )
        self.expected_parent_id = expected_parent_id
        self.actual_parent_id = actual_parent_id


class IntegrityError(CryptoError):
    """Data integrity verification failed (block hash mismatch)."""


class ExecutorError(ZkDriveError):
    """The crypto executor could not accept or correlate a request."""


class NodeError(ZkDriveError):
    """Node-related error."""

    def __init__(self, message: str, *, node_id: str) -> None:
        super().__init__(message, node_id=node_id)
        self.node_id = node_id


class NodeNotFoundError(NodeError):
    """The node source has no descriptor for this id."""


class NodeNotUnlockedError(NodeError):
    """The node is not present in the registry of unlocked nodes."""


class UntrustedNodeError(NodeError):
    """The node failed integrity verification and policy forbids using it."""


class ChainDepthError(NodeError):
    """Ancestor traversal exceeded the configured maximum depth."""


# Failures crossing the executor boundary are rebuilt from their class name.
ERROR_KINDS: dict[str, type[ZkDriveError]] = {
    cls.__name__: cls
    for cls in (
        ZkDriveError,
        CryptoError,
        DecryptionError,
        MalformedInputError,
        SignatureInvalidError,
        IdentityMismatchError,
        PacketChainMismatchError,
        IntegrityError,
        ExecutorError,
    )
}
