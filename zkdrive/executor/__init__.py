"""
Async crypto executor and its worker entry point.
"""

from zkdrive.executor.executor import CryptoExecutor
from zkdrive.executor.tasks import (
    CryptoFailure,
    CryptoRequest,
    CryptoResponse,
    TaskType,
    run_request,
)

__all__ = [
    "CryptoExecutor",
    "CryptoFailure",
    "CryptoRequest",
    "CryptoResponse",
    "TaskType",
    "run_request",
]
