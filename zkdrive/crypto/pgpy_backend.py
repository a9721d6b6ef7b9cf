"""
PGP backend implementation using pgpy library.
"""

import hmac
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass

import pgpy
from cryptography.hazmat.primitives.ciphers import Cipher, modes
from pgpy.constants import (
    CompressionAlgorithm,
    EllipticCurveOID,
    HashAlgorithm,
    KeyFlags,
    PubKeyAlgorithm,
    SymmetricKeyAlgorithm,
)
from pgpy.errors import PGPDecryptionError
from pgpy.packet.packets import SKESessionKey

from zkdrive.config import KeyAlgorithm
from zkdrive.core.secure_bytes import SecureBytes
from zkdrive.exceptions import DecryptionError, DecryptionReason, MalformedInputError

_CIPHER = SymmetricKeyAlgorithm.AES256
_HASH = HashAlgorithm.SHA256
_ENCRYPTION_USAGE = {KeyFlags.EncryptCommunications, KeyFlags.EncryptStorage}


def _passes_quick_check(ciphertext: bytes, symalg: SymmetricKeyAlgorithm, session_key: bytes) -> bool:
    """
    OpenPGP quick check: the random prefix of encrypted data repeats its last
    two bytes, so a wrong session key is caught before the data is touched.
    """
    block = symalg.block_size // 8
    decryptor = Cipher(symalg.cipher(session_key), modes.CFB(b"\x00" * block)).decryptor()
    prefix = decryptor.update(ciphertext[: block + 2])
    return len(prefix) == block + 2 and hmac.compare_digest(
        prefix[block - 2 : block], prefix[block : block + 2]
    )


@dataclass(frozen=True)
class PgpyKey:
    """Wrapper around pgpy.PGPKey to implement the PgpKey protocol."""

    _key: pgpy.PGPKey

    @property
    def key_id(self) -> str:
        return str(self._key.fingerprint.keyid).upper()

    @property
    def fingerprint(self) -> str:
        return str(self._key.fingerprint)

    @property
    def identity(self) -> str | None:
        userids = self._key.userids
        if not userids:
            return None
        return userids[0].email or None

    @property
    def is_private(self) -> bool:
        return not self._key.is_public

    @property
    def armored(self) -> str:
        return str(self._key)

    @property
    def public_armored(self) -> str:
        return str(self.public_key)

    @property
    def public_key(self) -> pgpy.PGPKey:
        return self._key if self._key.is_public else self._key.pubkey

    @property
    def pgpy_key(self) -> pgpy.PGPKey:
        return self._key


class PgpyBackend:
    """
    OpenPGP backend implementation using pgpy.

    Example:
        backend = PgpyBackend()
        key = backend.load_key(armored_key)
        plaintext = backend.decrypt_with_key(encrypted, key, passphrase)
    """

    @staticmethod
    def load_key(armored_key: str) -> PgpyKey:
        """
        Load a key from ASCII-armored format.

        Raises:
            MalformedInputError: If the key cannot be parsed.
        """
        try:
            key, _ = pgpy.PGPKey.from_blob(armored_key)
        except Exception as e:
            msg = f"Failed to load key: {e}"
            raise MalformedInputError(msg) from e
        return PgpyKey(_key=key)

    @contextmanager
    def unlock_key(self, private_key: PgpyKey, passphrase: SecureBytes) -> Iterator[PgpyKey]:
        """
        Unlock a key with its passphrase.

        Only failures to unlock are translated; errors raised inside the context
        propagate unchanged.

        Raises:
            MalformedInputError: If the key has no private half.
            DecryptionError: If the passphrase is incorrect.
        """
        if not private_key.is_private:
            msg = "Cannot unlock a public key"
            raise MalformedInputError(msg)

        unlocker = private_key.pgpy_key.unlock(passphrase.decode())
        try:
            unlocker.__enter__()
        except Exception as e:
            msg = f"Failed to unlock key: {e}"
            raise DecryptionError(msg) from e
        try:
            yield private_key
        finally:
            unlocker.__exit__(None, None, None)

    def encrypt_with_password(self, data: bytes, password: SecureBytes) -> str:
        message = pgpy.PGPMessage.new(bytes(data))
        return str(message.encrypt(password.decode(), cipher=_CIPHER, hash=_HASH))

    def decrypt_with_password(self, armored_message: str, password: SecureBytes) -> bytes:
        """
        Decrypt a password-encrypted message.

        pgpy's own `PGPMessage.decrypt` folds every failure into one error, so the
        session key is unwrapped first and the data packet decrypted separately.

        Raises:
            MalformedInputError: If the message is not password-encrypted.
            DecryptionError: With reason WRONG_KEY if the password does not unwrap
                a session key, CORRUPT if the data fails its integrity check.
        """
        message = self._load_encrypted_message(armored_message)
        symalg, session_key = self._unwrap_session_key(message, password)
        try:
            decrypted = pgpy.PGPMessage()
            decrypted.parse(message.message.decrypt(session_key, symalg))
            content = decrypted.message
        except Exception as e:
            msg = f"Encrypted data failed its integrity check: {e}"
            raise DecryptionError(msg, reason=DecryptionReason.CORRUPT) from e
        return self._normalize_decrypted_content(content)

    def encrypt_to_key(self, data: bytes, public_key: PgpyKey) -> str:
        message = pgpy.PGPMessage.new(bytes(data))
        try:
            return str(public_key.public_key.encrypt(message, cipher=_CIPHER))
        except Exception as e:
            msg = f"Failed to encrypt to key {public_key.key_id}: {e}"
            raise MalformedInputError(msg) from e

    def decrypt_with_key(
        self,
        armored_message: str,
        private_key: PgpyKey,
        passphrase: SecureBytes,
    ) -> bytes:
        message = self._load_encrypted_message(armored_message)
        with self.unlock_key(private_key, passphrase):
            try:
                decrypted = private_key.pgpy_key.decrypt(message)
            except Exception as e:
                msg = f"Failed to decrypt message: {e}"
                raise DecryptionError(msg) from e
        return self._normalize_decrypted_content(decrypted.message)

    def sign_detached(self, data: bytes, private_key: PgpyKey, passphrase: SecureBytes) -> str:
        with self.unlock_key(private_key, passphrase):
            signature = private_key.pgpy_key.sign(bytes(data))
        return str(signature)

    @staticmethod
    def verify_detached(data: bytes, armored_signature: str, key: PgpyKey) -> str | None:
        try:
            signature = pgpy.PGPSignature.from_blob(armored_signature)
        except Exception as e:
            msg = f"Failed to load signature: {e}"
            raise MalformedInputError(msg) from e

        try:
            verification = key.public_key.verify(bytes(data), signature)
        except Exception:
            # pgpy raises when the signature was not issued by this key
            return None
        if not verification:
            return None
        return str(signature.signer).upper()

    @staticmethod
    def generate_key(
        name: str,
        email: str,
        passphrase: SecureBytes,
        *,
        algorithm: KeyAlgorithm = KeyAlgorithm.ECC,
        rsa_key_size: int = 3072,
    ) -> PgpyKey:
        """
        Generate a new protected private key.

        ECC keys use an Ed25519 primary for signing and a Curve25519 subkey for
        encryption; RSA keys use a single primary for both.
        """
        uid = pgpy.PGPUID.new(name or email, email=email)
        preferences = {
            "hashes": [_HASH],
            "ciphers": [_CIPHER],
            "compression": [CompressionAlgorithm.ZLIB, CompressionAlgorithm.Uncompressed],
        }

        if algorithm == KeyAlgorithm.ECC:
            key = pgpy.PGPKey.new(PubKeyAlgorithm.EdDSA, EllipticCurveOID.Ed25519)
            key.add_uid(uid, usage={KeyFlags.Sign, KeyFlags.Certify}, **preferences)
            subkey = pgpy.PGPKey.new(PubKeyAlgorithm.ECDH, EllipticCurveOID.Curve25519)
            key.add_subkey(subkey, usage=_ENCRYPTION_USAGE)
        else:
            key = pgpy.PGPKey.new(PubKeyAlgorithm.RSAEncryptOrSign, rsa_key_size)
            key.add_uid(uid, usage={KeyFlags.Sign, *_ENCRYPTION_USAGE}, **preferences)

        key.protect(passphrase.decode(), _CIPHER, _HASH)
        return PgpyKey(_key=key)

    @staticmethod
    def _load_encrypted_message(armored_message: str) -> pgpy.PGPMessage:
        try:
            message = pgpy.PGPMessage.from_blob(armored_message)
        except Exception as e:
            msg = f"Failed to parse message: {e}"
            raise MalformedInputError(msg) from e
        if not message.is_encrypted:
            msg = "Message is not encrypted"
            raise MalformedInputError(msg)
        return message

    @staticmethod
    def _unwrap_session_key(
        message: pgpy.PGPMessage, password: SecureBytes
    ) -> tuple[SymmetricKeyAlgorithm, bytes]:
        # pgpy has no public accessor for the SKESK packets of a parsed message
        packets = [p for p in message._sessionkeys if isinstance(p, SKESessionKey)]
        if not packets:
            msg = "Message is not password-encrypted"
            raise MalformedInputError(msg)

        passphrase = password.decode()
        ciphertext = bytes(message.message.ct)
        for packet in packets:
            try:
                symalg, session_key = packet.decrypt_sk(passphrase)
                if len(session_key) * 8 != symalg.key_size:
                    continue
                if not _passes_quick_check(ciphertext, symalg, bytes(session_key)):
                    continue
            except (TypeError, ValueError, NotImplementedError, PGPDecryptionError):
                continue
            return symalg, bytes(session_key)

        msg = "Password does not unwrap the message session key"
        raise DecryptionError(msg, reason=DecryptionReason.WRONG_KEY)

    @staticmethod
    def _normalize_decrypted_content(content: bytes | str | bytearray) -> bytes:
        if isinstance(content, (bytes, bytearray)):
            return bytes(content)
        return content.encode("utf-8")
