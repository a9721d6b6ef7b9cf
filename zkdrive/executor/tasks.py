"""
Worker side of the crypto executor.

`run_request` is the only function a worker runs. It looks the task type up in
the operation table, binds the payload to the operation's keyword arguments and
returns a `CryptoResponse` tagged with the request id. Failures come back as
data, never as raised exceptions.
"""

import inspect
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import StrEnum
from functools import partial
from typing import Any, Self

import structlog

from zkdrive.crypto import content, key_generation, key_packet, names, signature, xattrs
from zkdrive.crypto.node_resolver import resolve_node
from zkdrive.crypto.pgpy_backend import PgpyBackend
from zkdrive.exceptions import (
    ERROR_KINDS,
    CryptoError,
    ExecutorError,
    MalformedInputError,
    ZkDriveError,
)

logger = structlog.get_logger(__name__)


class TaskType(StrEnum):
    UNLOCK_NODE = "unlock_node"
    SEAL_KEY_PACKET = "seal_key_packet"
    UNSEAL_KEY_PACKET = "unseal_key_packet"
    VERIFY_SIGNATURE = "verify_signature"
    UNSEAL_CONTENT_KEY = "unseal_content_key"
    DECRYPT_PAYLOAD = "decrypt_payload"
    ENCRYPT_PAYLOAD = "encrypt_payload"
    DECRYPT_THUMBNAIL = "decrypt_thumbnail"
    ENCRYPT_NAME = "encrypt_name"
    DECRYPT_NAME = "decrypt_name"
    DECRYPT_XATTRS = "decrypt_xattrs"
    GENERATE_FILE_KEYS = "generate_file_keys"
    GENERATE_FOLDER_KEYS = "generate_folder_keys"
    PREPARE_ITEM_MOVE = "prepare_item_move"
    VERIFY_ITEM_INTEGRITY = "verify_item_integrity"
    VERIFY_ROOT_ITEM_INTEGRITY = "verify_root_item_integrity"


@dataclass(frozen=True, kw_only=True)
class CryptoRequest:
    request_id: str
    task_type: TaskType
    payload: dict[str, Any] = field(default_factory=dict, repr=False)


@dataclass(frozen=True, kw_only=True)
class CryptoFailure:
    """A worker-side error in picklable form."""

    kind: str
    message: str
    context: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_error(cls, error: ZkDriveError) -> Self:
        return cls(kind=type(error).__name__, message=error.message, context=dict(error.context))

    def to_error(self) -> ZkDriveError:
        """Rebuild the typed error; unknown kinds become CryptoError."""
        error_class = ERROR_KINDS.get(self.kind)
        if error_class is None:
            return CryptoError(self.message, kind=self.kind, **self.context)
        return error_class(self.message, **self.context)


@dataclass(frozen=True, kw_only=True)
class CryptoResponse:
    request_id: str
    result: Any = field(default=None, repr=False)
    failure: CryptoFailure | None = None

    @property
    def ok(self) -> bool:
        return self.failure is None


_BACKEND = PgpyBackend()

_OPERATIONS: dict[TaskType, Callable[..., Any]] = {
    TaskType.UNLOCK_NODE: partial(resolve_node, backend=_BACKEND),
    TaskType.SEAL_KEY_PACKET: partial(key_packet.seal, backend=_BACKEND),
    TaskType.UNSEAL_KEY_PACKET: partial(key_packet.unseal, backend=_BACKEND),
    TaskType.VERIFY_SIGNATURE: partial(signature.verify, backend=_BACKEND),
    TaskType.UNSEAL_CONTENT_KEY: partial(content.unseal_content_key, backend=_BACKEND),
    TaskType.DECRYPT_PAYLOAD: content.decrypt_payload,
    TaskType.ENCRYPT_PAYLOAD: content.encrypt_payload,
    TaskType.DECRYPT_THUMBNAIL: content.decrypt_thumbnail,
    TaskType.ENCRYPT_NAME: partial(names.encrypt_name, backend=_BACKEND),
    TaskType.DECRYPT_NAME: partial(names.decrypt_name, backend=_BACKEND),
    TaskType.DECRYPT_XATTRS: partial(xattrs.decrypt_xattrs, backend=_BACKEND),
    TaskType.GENERATE_FILE_KEYS: partial(key_generation.generate_file_keys, backend=_BACKEND),
    TaskType.GENERATE_FOLDER_KEYS: partial(key_generation.generate_folder_keys, backend=_BACKEND),
    TaskType.PREPARE_ITEM_MOVE: partial(key_generation.prepare_item_move, backend=_BACKEND),
    TaskType.VERIFY_ITEM_INTEGRITY: partial(
        key_generation.verify_item_integrity, backend=_BACKEND
    ),
    TaskType.VERIFY_ROOT_ITEM_INTEGRITY: partial(
        key_generation.verify_root_item_integrity, backend=_BACKEND
    ),
}


def run_request(request: CryptoRequest) -> CryptoResponse:
    """Execute one request. Runs inside a worker thread or process."""
    try:
        result = _dispatch(request)
    except ZkDriveError as e:
        return CryptoResponse(request_id=request.request_id, failure=CryptoFailure.from_error(e))
    except Exception as e:
        logger.exception(
            "Unexpected error in crypto worker",
            request_id=request.request_id,
            task_type=str(request.task_type),
        )
        failure = CryptoFailure(kind=CryptoError.__name__, message=f"{type(e).__name__}: {e}")
        return CryptoResponse(request_id=request.request_id, failure=failure)
    return CryptoResponse(request_id=request.request_id, result=result)


def _dispatch(request: CryptoRequest) -> Any:
    operation = _OPERATIONS.get(request.task_type)
    if operation is None:
        msg = f"Unknown task type: {request.task_type!r}"
        raise ExecutorError(msg, request_id=request.request_id)

    try:
        inspect.signature(operation).bind(**request.payload)
    except TypeError as e:
        msg = f"Invalid payload for {request.task_type}: {e}"
        raise MalformedInputError(msg) from e
    return operation(**request.payload)
