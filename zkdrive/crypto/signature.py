"""
Detached signature verification with identity binding.

Verification never raises for bad signatures: callers get a boolean (or a
`SignatureCheck`) and decide how to degrade.
"""

import hmac

import structlog

from zkdrive.crypto.protocol import PgpKey, PGPBackend
from zkdrive.exceptions import (
    IdentityMismatchError,
    SignatureInvalidError,
    ZkDriveError,
)
from zkdrive.models.crypto import SignatureCheck

logger = structlog.get_logger(__name__)


def check_signature(
    signed_payload: bytes | str,
    detached_signature: str,
    verifier_key: PgpKey | str,
    expected_key_id: str | None = None,
    expected_identity: str | None = None,
    *,
    backend: PGPBackend,
) -> SignatureCheck:
    """
    Check a detached signature against a verifier key.

    Args:
        signed_payload: The exact bytes (or text) that were signed.
        detached_signature: Armored detached signature.
        verifier_key: Loaded key or armored key; only its public half is used.
        expected_key_id: Key ID the signature must have been issued by.
        expected_identity: Email the verifier key must be bound to.
    """
    payload = signed_payload.encode("utf-8") if isinstance(signed_payload, str) else signed_payload
    try:
        key = backend.load_key(verifier_key) if isinstance(verifier_key, str) else verifier_key
        signer_id = backend.verify_detached(payload, detached_signature, key)
    except ZkDriveError as e:
        logger.debug("Signature could not be checked", error=str(e))
        return SignatureCheck.INVALID
    if signer_id is None:
        return SignatureCheck.INVALID

    key_id_ok = True
    if expected_key_id is not None:
        key_id_ok = hmac.compare_digest(
            signer_id.upper().encode("utf-8"), expected_key_id.upper().encode("utf-8")
        )
    identity_ok = True
    if expected_identity is not None:
        identity_ok = hmac.compare_digest(
            (key.identity or "").encode("utf-8"), expected_identity.encode("utf-8")
        )

    if key_id_ok and identity_ok:
        return SignatureCheck.VALID
    return SignatureCheck.IDENTITY_MISMATCH


def verify(
    signed_payload: bytes | str,
    detached_signature: str,
    verifier_key: PgpKey | str,
    expected_key_id: str | None = None,
    expected_identity: str | None = None,
    *,
    backend: PGPBackend,
) -> bool:
    """Return True only for a valid signature from the expected key and identity."""
    outcome = check_signature(
        signed_payload,
        detached_signature,
        verifier_key,
        expected_key_id,
        expected_identity,
        backend=backend,
    )
    return outcome == SignatureCheck.VALID


def require_valid_signature(
    signed_payload: bytes | str,
    detached_signature: str,
    verifier_key: PgpKey | str,
    expected_key_id: str | None = None,
    expected_identity: str | None = None,
    *,
    backend: PGPBackend,
) -> None:
    """
    Raises:
        SignatureInvalidError: If the signature does not verify.
        IdentityMismatchError: If it verifies but not for the expected key or identity.
    """
    outcome = check_signature(
        signed_payload,
        detached_signature,
        verifier_key,
        expected_key_id,
        expected_identity,
        backend=backend,
    )
    match outcome:
        case SignatureCheck.INVALID:
            msg = "Signature is invalid"
            raise SignatureInvalidError(msg, expected_key_id=expected_key_id)
        case SignatureCheck.IDENTITY_MISMATCH:
            msg = "Signature was not made by the expected key or identity"
            raise IdentityMismatchError(
                msg, expected_key_id=expected_key_id, expected_identity=expected_identity
            )
