import base64

import pytest

from zkdrive.core.secure_bytes import SecureBytes
from zkdrive.crypto.root_secret import derive_root_secret
from zkdrive.exceptions import MalformedInputError
from zkdrive.tests.factories import KEY_SALT, PASSWORD


def test_derive_root_secret_is_deterministic() -> None:
    first = derive_root_secret(SecureBytes.from_string(PASSWORD), KEY_SALT)
    second = derive_root_secret(SecureBytes.from_string(PASSWORD), KEY_SALT)

    assert len(first) == 31
    assert first == second


def test_derive_root_secret_depends_on_password_and_salt() -> None:
    base = derive_root_secret(SecureBytes.from_string(PASSWORD), KEY_SALT)
    other_salt = base64.b64encode(bytes(range(1, 17))).decode()

    assert derive_root_secret(SecureBytes.from_string("other"), KEY_SALT) != base
    assert derive_root_secret(SecureBytes.from_string(PASSWORD), other_salt) != base


def test_derive_root_secret_ignores_salt_bytes_past_16() -> None:
    long_salt = base64.b64encode(bytes(range(16)) + b"extra").decode()

    assert derive_root_secret(SecureBytes.from_string(PASSWORD), long_salt) == derive_root_secret(
        SecureBytes.from_string(PASSWORD), KEY_SALT
    )


@pytest.mark.parametrize("salt", ["not base64!", base64.b64encode(bytes(8)).decode()])
def test_derive_root_secret_rejects_bad_salt(salt: str) -> None:
    with pytest.raises(MalformedInputError):
        derive_root_secret(SecureBytes.from_string(PASSWORD), salt)


def test_derive_root_secret_uses_first_72_password_bytes() -> None:
    long_password = SecureBytes(b"x" * 80)

    secret = derive_root_secret(long_password, KEY_SALT)

    assert len(secret) == 31
    assert secret == derive_root_secret(SecureBytes(b"x" * 72), KEY_SALT)
    assert secret != derive_root_secret(SecureBytes(b"x" * 71), KEY_SALT)


def test_derive_root_secret_rejects_empty_password() -> None:
    with pytest.raises(MalformedInputError, match="Password"):
        derive_root_secret(SecureBytes(b""), KEY_SALT)
