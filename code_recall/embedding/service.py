"""
Embedding service backed by an isolated worker process.

The native inference runtime under sentence-transformers can leave
background threads that abort the interpreter on an abrupt exit, so
the model is never loaded in the host process. EmbeddingService spawns
the worker on first use, keeps one request in flight at a time and
kills the worker on dispose.
"""

import asyncio
import atexit
import logging
import sys
from typing import Any, Dict, List, Optional, Sequence

from . import protocol
from .base import Embedder, EmbeddingError, EmbeddingWorkerError
from .model import DEFAULT_MODEL


logger = logging.getLogger(__name__)


READ_CHUNK_SIZE = 64 * 1024
GRACEFUL_EXIT_TIMEOUT = 2.0


def default_worker_command(model_name: Optional[str] = None) -> List[str]:
    """Command line that starts the bundled embedding worker."""
    return [
        sys.executable, "-m", "code_recall.embedding.worker",
        "--model", model_name or DEFAULT_MODEL,
    ]


class EmbeddingService(Embedder):
    """
    Embedder that delegates to a child process.

    Usage:
        service = EmbeddingService()
        try:
            vector = await service.embed("the events table uses soft-deletes")
        finally:
            await service.dispose()
    """

    def __init__(
        self,
        model_name: Optional[str] = None,
        command: Optional[Sequence[str]] = None,
        dimensions: Optional[int] = None,
        stderr: Optional[int] = asyncio.subprocess.DEVNULL,
    ):
        """
        Args:
            model_name: Model for the default worker command
            command: Full worker command line, overriding the default
            dimensions: If set, every returned vector must have this length
            stderr: Where the worker's stderr goes (DEVNULL, or None to inherit)
        """
        self.command = list(command) if command else default_worker_command(model_name)
        self.dimensions = dimensions
        self._stderr = stderr

        self._process: Optional[asyncio.subprocess.Process] = None
        self._reader: Optional[asyncio.Task] = None
        self._ready: Optional[asyncio.Future] = None
        self._pending: Optional[asyncio.Future] = None
        self._spawn_lock: Optional[asyncio.Lock] = None
        self._request_lock: Optional[asyncio.Lock] = None
        self._exit_hook_registered = False

    @property
    def running(self) -> bool:
        return self._process is not None and self._process.returncode is None

    @property
    def pid(self) -> Optional[int]:
        return self._process.pid if self._process else None

    async def embed(self, text: str) -> List[float]:
        vectors = await self._request([text])
        return vectors[0]

    async def embed_batch(self, texts: List[str]) -> List[List[float]]:
        if not texts:
            return []
        return await self._request(list(texts))

    async def dispose(self, graceful: bool = False):
        """
        Stop the worker.

        By default the worker is killed immediately. With ``graceful=True``
        it is first asked to exit and given a short grace period.
        """
        process = self._process
        if process is None:
            self._unregister_exit_hook()
            return

        if graceful and process.returncode is None and process.stdin is not None:
            try:
                process.stdin.write(protocol.encode_message(protocol.exit_message()))
                await process.stdin.drain()
                await asyncio.wait_for(process.wait(), GRACEFUL_EXIT_TIMEOUT)
            except (asyncio.TimeoutError, BrokenPipeError, ConnectionResetError):
                logger.debug("Embedding worker did not exit gracefully")

        self._kill()
        if process.returncode is None:
            await process.wait()

        if self._reader is not None:
            self._reader.cancel()
            try:
                await self._reader
            except asyncio.CancelledError:
                pass
            self._reader = None

        self._fail_waiters(EmbeddingWorkerError("Embedding service disposed"))
        self._process = None
        self._unregister_exit_hook()
        logger.debug("Embedding worker disposed")

    async def _request(self, texts: List[str]) -> List[List[float]]:
        if self._request_lock is None:
            self._request_lock = asyncio.Lock()

        async with self._request_lock:
            await self._ensure_worker()
            process = self._process

            loop = asyncio.get_running_loop()
            self._pending = loop.create_future()
            if process is None or self._process is not process:
                self._pending = None
                raise EmbeddingWorkerError("Embedding worker exited unexpectedly")
            try:
                process.stdin.write(protocol.encode_message(protocol.embed_message(texts)))
                await process.stdin.drain()
            except (BrokenPipeError, ConnectionResetError) as e:
                self._pending = None
                raise EmbeddingWorkerError(f"Embedding worker is not accepting requests: {e}") from e

            try:
                response = await self._pending
            finally:
                self._pending = None

        return self._unpack(response, len(texts))

    def _unpack(self, response: Dict[str, Any], expected: int) -> List[List[float]]:
        kind = response.get("type")
        if kind == protocol.ERROR:
            raise EmbeddingError(response.get("message") or "Embedding worker reported an error")
        if kind != protocol.RESULT:
            raise EmbeddingWorkerError(f"Unexpected response from embedding worker: {kind!r}")

        vectors = response.get("vectors")
        if not isinstance(vectors, list) or len(vectors) != expected:
            got = len(vectors) if isinstance(vectors, list) else 0
            raise EmbeddingWorkerError(f"Expected {expected} vectors from embedding worker, got {got}")

        if self.dimensions is not None:
            for vector in vectors:
                if len(vector) != self.dimensions:
                    raise EmbeddingWorkerError(
                        f"Expected {self.dimensions}-dim vectors, got {len(vector)}"
                    )
        return [[float(x) for x in vector] for vector in vectors]

    async def _ensure_worker(self):
        """Spawn the worker if it is not running and wait until it is ready."""
        if self._spawn_lock is None:
            self._spawn_lock = asyncio.Lock()

        async with self._spawn_lock:
            if self.running and self._ready is not None and self._ready.done():
                return
            if not self.running:
                await self._spawn()
            await self._ready

    async def _spawn(self):
        loop = asyncio.get_running_loop()
        self._ready = loop.create_future()

        try:
            self._process = await asyncio.create_subprocess_exec(
                *self.command,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=self._stderr,
            )
        except OSError as e:
            self._process = None
            self._ready = None
            raise EmbeddingWorkerError(f"Failed to start embedding worker: {e}") from e

        logger.debug(f"Started embedding worker (pid {self._process.pid})")
        self._register_exit_hook()
        self._reader = asyncio.create_task(self._read_loop(self._process))

    async def _read_loop(self, process: asyncio.subprocess.Process):
        """Dispatch worker output lines until the worker closes stdout."""
        buffer = bytearray()
        while True:
            chunk = await process.stdout.read(READ_CHUNK_SIZE)
            if not chunk:
                break
            buffer.extend(chunk)
            while True:
                newline = buffer.find(b"\n")
                if newline < 0:
                    break
                line = bytes(buffer[:newline])
                del buffer[:newline + 1]
                self._dispatch(line)

        returncode = await process.wait()
        if process is self._process:
            self._process = None
        logger.debug(f"Embedding worker exited with code {returncode}")

        if self._ready is not None and not self._ready.done():
            self._ready.set_exception(EmbeddingWorkerError(
                f"Embedding worker exited before becoming ready (exit code {returncode})"
            ))
        if self._pending is not None and not self._pending.done():
            self._pending.set_exception(EmbeddingWorkerError(
                f"Embedding worker exited unexpectedly (exit code {returncode})"
            ))

    def _dispatch(self, line: bytes):
        message = protocol.decode_message(line)
        if message is None:
            return

        if message["type"] == protocol.READY:
            if self._ready is not None and not self._ready.done():
                self._ready.set_result(None)
        elif self._pending is not None and not self._pending.done():
            self._pending.set_result(message)

    def _fail_waiters(self, error: Exception):
        for waiter in (self._ready, self._pending):
            if waiter is not None and not waiter.done():
                waiter.set_exception(error)
                # Nobody may be awaiting it any more
                waiter.exception()

    def _kill(self):
        """Kill the worker without waiting. Never raises."""
        process = self._process
        if process is None or process.returncode is not None:
            return
        try:
            process.kill()
        except (ProcessLookupError, OSError, RuntimeError) as e:
            logger.debug(f"Could not kill embedding worker: {e}")

    def _register_exit_hook(self):
        if not self._exit_hook_registered:
            atexit.register(self._kill)
            self._exit_hook_registered = True

    def _unregister_exit_hook(self):
        if self._exit_hook_registered:
            atexit.unregister(self._kill)
            self._exit_hook_registered = False
