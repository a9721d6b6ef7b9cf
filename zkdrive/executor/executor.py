"""
Async crypto executor.

Requests are correlated by id: each submission registers a future under its
request id and the worker's response resolves exactly that future. Workers are
isolated (separate processes by default) and share no crypto state.
"""

import asyncio
import multiprocessing
import pickle
import uuid
from concurrent.futures import BrokenExecutor, Executor, ProcessPoolExecutor, ThreadPoolExecutor
from functools import partial
from typing import Any, Self

import structlog

from zkdrive.config import ExecutorBackend, ZkDriveConfig
from zkdrive.core.wait_group import WaitGroup
from zkdrive.exceptions import ExecutorError
from zkdrive.executor.tasks import CryptoRequest, CryptoResponse, TaskType, run_request

logger = structlog.get_logger(__name__)


class CryptoExecutor:
    """
    Runs crypto operations on a worker pool.

    Cancelling a caller that awaits `submit()` abandons the request: the worker
    still finishes and the response is discarded.

    Example:
        ```python
        async with CryptoExecutor(config) as executor:
            plaintext = await executor.execute(
                TaskType.DECRYPT_PAYLOAD,
                {"ciphertext": block, "content_key": key, "block_index": 3},
            )
        ```
    """

    def __init__(self, config: ZkDriveConfig | None = None) -> None:
        self._config = config or ZkDriveConfig()
        self._pool: Executor | None = None
        self._pending: dict[str, asyncio.Future[CryptoResponse]] = {}
        self._in_flight = WaitGroup()
        self._closed = False

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(
        self, exc_type: type | None, exc_val: BaseException | None, exc_tb: object
    ) -> None:
        await self.close()

    @property
    def is_closed(self) -> bool:
        return self._closed

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    async def submit(
        self,
        request_id: str,
        task_type: TaskType | str,
        payload: dict[str, Any] | None = None,
    ) -> Any:
        """
        Run one request and return its result.

        Raises:
            ExecutorError: If the executor is closed, the id is already in flight,
                the task type is unknown or the worker pool broke.
            ZkDriveError: The typed error raised by the operation in the worker.
        """
        if self._closed:
            msg = "Executor is closed"
            raise ExecutorError(msg, request_id=request_id)
        try:
            task_type = TaskType(task_type)
        except ValueError:
            msg = f"Unknown task type: {task_type!r}"
            raise ExecutorError(msg, request_id=request_id) from None
        if request_id in self._in_flight:
            msg = "Request id is already in flight"
            raise ExecutorError(msg, request_id=request_id)

        request = CryptoRequest(request_id=request_id, task_type=task_type, payload=payload or {})
        loop = asyncio.get_running_loop()
        future = loop.run_in_executor(self._ensure_pool(), run_request, request)
        self._pending[request_id] = future
        self._in_flight.add(request_id)
        future.add_done_callback(partial(self._on_done, request_id))
        logger.debug("Submitted crypto request", request_id=request_id, task_type=task_type.value)

        try:
            response = await asyncio.shield(future)
        except (BrokenExecutor, pickle.PicklingError) as e:
            msg = f"Worker pool failed to run request: {e}"
            raise ExecutorError(msg, request_id=request_id) from e
        return self._resolve(request_id, response)

    async def execute(self, task_type: TaskType | str, payload: dict[str, Any] | None = None) -> Any:
        """Submit with a generated request id."""
        return await self.submit(uuid.uuid4().hex, task_type, payload)

    async def close(self) -> None:
        """Refuse new requests, wait for in-flight ones and shut the pool down."""
        if self._closed:
            return
        self._closed = True
        await self._in_flight.wait()
        if self._pool is not None:
            await asyncio.to_thread(self._pool.shutdown, True)
            self._pool = None
        logger.debug("Crypto executor closed")

    def _ensure_pool(self) -> Executor:
        if self._pool is not None:
            return self._pool

        workers = self._config.max_workers
        match self._config.executor_backend:
            case ExecutorBackend.PROCESS:
                self._pool = ProcessPoolExecutor(
                    max_workers=workers, mp_context=multiprocessing.get_context("spawn")
                )
            case ExecutorBackend.THREAD:
                self._pool = ThreadPoolExecutor(
                    max_workers=workers, thread_name_prefix="zkdrive-crypto"
                )
        logger.debug(
            "Started crypto worker pool",
            backend=self._config.executor_backend.value,
            max_workers=workers,
        )
        return self._pool

    def _on_done(self, request_id: str, future: asyncio.Future[CryptoResponse]) -> None:
        self._pending.pop(request_id, None)
        self._in_flight.done(request_id)
        if not future.cancelled() and future.exception() is not None:
            logger.warning(
                "Crypto request failed in the pool",
                request_id=request_id,
                error=str(future.exception()),
            )

    @staticmethod
    def _resolve(request_id: str, response: CryptoResponse) -> Any:
        if response.request_id != request_id:
            msg = "Response does not correlate with its request"
            raise ExecutorError(msg, request_id=request_id, response_id=response.request_id)
        if response.failure is not None:
            raise response.failure.to_error()
        return response.result
