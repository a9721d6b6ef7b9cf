import pgpy
import pytest
from pgpy.constants import (
    CompressionAlgorithm,
    HashAlgorithm,
    KeyFlags,
    PubKeyAlgorithm,
    SymmetricKeyAlgorithm,
)

from zkdrive.config import KeyAlgorithm
from zkdrive.core.secure_bytes import SecureBytes
from zkdrive.crypto.pgpy_backend import PgpyBackend, PgpyKey
from zkdrive.exceptions import DecryptionError, DecryptionReason, MalformedInputError
from zkdrive.tests.factories import corrupt_message

PASSPHRASE = "test-passphrase"


def _create_test_key(passphrase: str) -> pgpy.PGPKey:
    key = pgpy.PGPKey.new(PubKeyAlgorithm.RSAEncryptOrSign, 2048)
    uid = pgpy.PGPUID.new("Test User", comment="test", email="test@test.com")
    key.add_uid(
        uid,
        usage={KeyFlags.Sign, KeyFlags.EncryptCommunications, KeyFlags.EncryptStorage},
        hashes=[HashAlgorithm.SHA256],
        ciphers=[SymmetricKeyAlgorithm.AES256],
        compression=[CompressionAlgorithm.Uncompressed],
    )
    key.protect(passphrase, SymmetricKeyAlgorithm.AES256, HashAlgorithm.SHA256)
    return key


@pytest.fixture(scope="module")
def test_key() -> PgpyKey:
    return PgpyBackend.load_key(str(_create_test_key(PASSPHRASE)))


def test_load_key_exposes_identity(test_key: PgpyKey) -> None:
    assert test_key.is_private
    assert test_key.identity == "test@test.com"
    assert len(test_key.key_id) == 16
    assert test_key.key_id == test_key.key_id.upper()

    public = PgpyBackend.load_key(test_key.public_armored)
    assert not public.is_private
    assert public.key_id == test_key.key_id


def test_load_key_raises_malformed_on_invalid_key() -> None:
    with pytest.raises(MalformedInputError, match="Failed to load key"):
        PgpyBackend.load_key("not a valid key")


def test_unlock_key_wrong_passphrase_raises_decryption_error(test_key: PgpyKey) -> None:
    backend = PgpyBackend()
    with pytest.raises(DecryptionError), backend.unlock_key(test_key, SecureBytes(b"wrong")):
        pass


def test_unlock_key_lets_inner_errors_through(test_key: PgpyKey) -> None:
    backend = PgpyBackend()
    with (
        pytest.raises(KeyError),
        backend.unlock_key(test_key, SecureBytes.from_string(PASSPHRASE)),
    ):
        raise KeyError("inner")


def test_unlock_public_key_raises_malformed(test_key: PgpyKey) -> None:
    public = PgpyBackend.load_key(test_key.public_armored)
    backend = PgpyBackend()
    with pytest.raises(MalformedInputError), backend.unlock_key(public, SecureBytes(b"x")):
        pass


def test_password_encryption_round_trip() -> None:
    backend = PgpyBackend()
    password = SecureBytes(b"parent-session-key")

    armored = backend.encrypt_with_password(b"packet", password)

    assert armored.startswith("-----BEGIN PGP MESSAGE-----")
    assert backend.decrypt_with_password(armored, password) == b"packet"


def test_decrypt_with_wrong_password_raises_decryption_error() -> None:
    backend = PgpyBackend()
    armored = backend.encrypt_with_password(b"packet", SecureBytes(b"right"))

    with pytest.raises(DecryptionError):
        backend.decrypt_with_password(armored, SecureBytes(b"wrong"))


def test_wrong_password_is_reported_as_wrong_key() -> None:
    backend = PgpyBackend()
    armored = backend.encrypt_with_password(b"packet", SecureBytes(b"right"))

    with pytest.raises(DecryptionError) as exc_info:
        backend.decrypt_with_password(armored, SecureBytes(b"wrong"))

    assert exc_info.value.reason == DecryptionReason.WRONG_KEY


def test_corrupted_ciphertext_is_reported_as_corrupt() -> None:
    backend = PgpyBackend()
    password = SecureBytes(b"right")
    armored = corrupt_message(backend.encrypt_with_password(b"packet payload", password))

    with pytest.raises(DecryptionError) as exc_info:
        backend.decrypt_with_password(armored, password)

    assert exc_info.value.reason == DecryptionReason.CORRUPT


def test_message_encrypted_to_a_key_is_not_password_encrypted(test_key: PgpyKey) -> None:
    backend = PgpyBackend()
    armored = backend.encrypt_to_key(b"secret", test_key)

    with pytest.raises(MalformedInputError, match="not password-encrypted"):
        backend.decrypt_with_password(armored, SecureBytes(b"pw"))


def test_decrypt_garbage_raises_malformed() -> None:
    backend = PgpyBackend()
    with pytest.raises(MalformedInputError):
        backend.decrypt_with_password("garbage", SecureBytes(b"pw"))


def test_public_key_encryption_round_trip(test_key: PgpyKey) -> None:
    backend = PgpyBackend()
    public = backend.load_key(test_key.public_armored)

    armored = backend.encrypt_to_key(b"Hello, World!", public)
    result = backend.decrypt_with_key(armored, test_key, SecureBytes.from_string(PASSPHRASE))

    assert result == b"Hello, World!"


def test_decrypt_with_wrong_key_raises_decryption_error(test_key: PgpyKey) -> None:
    backend = PgpyBackend()
    other = PgpyBackend.load_key(str(_create_test_key("other")))
    armored = backend.encrypt_to_key(b"secret", other)

    with pytest.raises(DecryptionError):
        backend.decrypt_with_key(armored, test_key, SecureBytes.from_string(PASSPHRASE))


def test_sign_and_verify_detached(test_key: PgpyKey) -> None:
    backend = PgpyBackend()
    signature = backend.sign_detached(b"payload", test_key, SecureBytes.from_string(PASSPHRASE))

    assert backend.verify_detached(b"payload", signature, test_key) == test_key.key_id
    assert backend.verify_detached(b"tampered", signature, test_key) is None


def test_verify_detached_with_other_key_returns_none(test_key: PgpyKey) -> None:
    backend = PgpyBackend()
    other = PgpyBackend.load_key(str(_create_test_key("other")))
    signature = backend.sign_detached(b"payload", other, SecureBytes(b"other"))

    assert backend.verify_detached(b"payload", signature, test_key) is None


def test_verify_detached_garbage_signature_raises_malformed(test_key: PgpyKey) -> None:
    with pytest.raises(MalformedInputError):
        PgpyBackend.verify_detached(b"payload", "not a signature", test_key)


def test_generate_rsa_key() -> None:
    passphrase = SecureBytes.random_session_key()
    key = PgpyBackend.generate_key(
        "Alice", "alice@example.com", passphrase, algorithm=KeyAlgorithm.RSA, rsa_key_size=2048
    )

    assert key.is_private
    assert key.identity == "alice@example.com"
    backend = PgpyBackend()
    with backend.unlock_key(backend.load_key(key.armored), passphrase):
        pass


def test_generate_ecc_key_encrypts_and_signs() -> None:
    backend = PgpyBackend()
    passphrase = SecureBytes.random_session_key()
    key = backend.generate_key("Bob", "bob@example.com", passphrase)
    public = backend.load_key(key.public_armored)

    armored = backend.encrypt_to_key(b"name", public)
    assert backend.decrypt_with_key(armored, key, passphrase) == b"name"

    signature = backend.sign_detached(b"packet", key, passphrase)
    assert backend.verify_detached(b"packet", signature, public) == key.key_id
