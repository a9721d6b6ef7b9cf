from zkdrive.crypto.content import encrypt_payload, generate_content_key
from zkdrive.exceptions import (
    CryptoError,
    DecryptionError,
    MalformedInputError,
    PacketChainMismatchError,
)
from zkdrive.executor.tasks import CryptoFailure, CryptoRequest, TaskType, run_request


def test_run_request_returns_tagged_result() -> None:
    key = generate_content_key()
    request = CryptoRequest(
        request_id="req-1",
        task_type=TaskType.ENCRYPT_PAYLOAD,
        payload={"plaintext": b"data", "content_key": key, "block_index": 3},
    )

    response = run_request(request)

    assert response.ok
    assert response.request_id == "req-1"
    assert response.result == encrypt_payload(b"data", key, block_index=3)


def test_run_request_returns_failure_instead_of_raising() -> None:
    key = generate_content_key()
    ciphertext = encrypt_payload(b"data", key, block_index=0)
    request = CryptoRequest(
        request_id="req-2",
        task_type=TaskType.DECRYPT_PAYLOAD,
        payload={"ciphertext": ciphertext, "content_key": key, "block_index": 1},
    )

    response = run_request(request)

    assert not response.ok
    assert response.request_id == "req-2"
    assert response.failure.kind == "DecryptionError"
    assert isinstance(response.failure.to_error(), DecryptionError)


def test_run_request_rejects_payload_that_does_not_bind() -> None:
    request = CryptoRequest(
        request_id="req-3", task_type=TaskType.ENCRYPT_PAYLOAD, payload={"bogus": 1}
    )

    response = run_request(request)

    assert response.failure.kind == "MalformedInputError"
    assert "Invalid payload" in response.failure.message


def test_run_request_reports_unexpected_errors_as_crypto_error() -> None:
    request = CryptoRequest(
        request_id="req-4",
        task_type=TaskType.ENCRYPT_PAYLOAD,
        payload={"plaintext": b"data", "content_key": "not a key"},
    )

    response = run_request(request)

    assert response.failure.kind == "CryptoError"
    assert "AttributeError" in response.failure.message


def test_failure_round_trip_keeps_context() -> None:
    error = PacketChainMismatchError("Mismatch", expected_parent_id="a", actual_parent_id="b")

    rebuilt = CryptoFailure.from_error(error).to_error()

    assert isinstance(rebuilt, PacketChainMismatchError)
    assert rebuilt.expected_parent_id == "a"
    assert rebuilt.actual_parent_id == "b"


def test_unknown_failure_kind_becomes_crypto_error() -> None:
    rebuilt = CryptoFailure(kind="NodeNotFoundError", message="gone", context={"node_id": "x"}).to_error()

    assert type(rebuilt) is CryptoError
    assert rebuilt.context == {"kind": "NodeNotFoundError", "node_id": "x"}
    assert not isinstance(rebuilt, MalformedInputError)
