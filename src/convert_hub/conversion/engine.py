"""Shared heavy codec engine (ffmpeg) and its reference-counted handle.

The engine is expensive to bring up, so a single :class:`EngineHandle` owns
it for the whole process. Concurrent first-time acquirers are coalesced onto
one load attempt; a failed load is not sticky and the next ``acquire``
retries.

Workspace operations on :class:`FFmpegEngine` take no locks. Callers keep
their file names job scoped (see :meth:`FFmpegEngine.scoped_name`) and the
conversion queue bounds how many jobs touch the engine at once.
"""

from __future__ import annotations

import asyncio
import logging
import shutil
import tempfile
import uuid
from contextlib import asynccontextmanager
from enum import Enum
from pathlib import Path
from typing import (
    AsyncIterator,
    Awaitable,
    Callable,
    Optional,
    Protocol,
    Sequence,
)

from pydub.utils import which

from .errors import EngineCommandError, EngineLoadError

__all__ = [
    "Engine",
    "EngineHandle",
    "EngineLoader",
    "EngineState",
    "FFmpegEngine",
    "load_ffmpeg_engine",
]

_STDERR_TAIL = 2000


class Engine(Protocol):
    """Workspace-style codec engine used by the media and image families."""

    def scoped_name(self, label: str, extension: str) -> str: ...

    async def write(self, name: str, data: bytes) -> None: ...

    async def exec(self, args: Sequence[str]) -> None: ...

    async def read(self, name: str) -> bytes: ...

    async def delete(self, name: str) -> None: ...

    async def close(self) -> None: ...


EngineLoader = Callable[[], Awaitable[Engine]]


class EngineState(Enum):
    UNLOADED = "unloaded"
    LOADING = "loading"
    READY = "ready"
    FAILED = "failed"


class EngineHandle:
    """Own one engine instance and hand it out by reference."""

    def __init__(
        self,
        loader: EngineLoader,
        *,
        release_when_idle: bool = False,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._loader = loader
        self._release_when_idle = release_when_idle
        self._logger = logger or logging.getLogger(__name__)
        self._state = EngineState.UNLOADED
        self._instance: Optional[Engine] = None
        self._error: Optional[EngineLoadError] = None
        self._loading: Optional[asyncio.Future[Engine]] = None
        self._load_task: Optional[asyncio.Task[None]] = None
        self._refs = 0
        self._load_attempts = 0

    @property
    def state(self) -> EngineState:
        return self._state

    @property
    def ref_count(self) -> int:
        return self._refs

    @property
    def load_attempts(self) -> int:
        return self._load_attempts

    @property
    def last_error(self) -> Optional[EngineLoadError]:
        return self._error

    async def acquire(self) -> Engine:
        """Return the shared engine, loading it first if needed.

        Raises :class:`EngineLoadError` when the load attempt this call
        joined (or started) fails; every caller of that attempt receives
        the same exception object.
        """

        if self._state is EngineState.READY and self._instance is not None:
            self._refs += 1
            return self._instance

        if self._state is not EngineState.LOADING:
            self._begin_load()

        waiter = self._loading
        if waiter is None:
            raise RuntimeError("Engine load did not start.")
        # Waiters hold a reference while loading so an early release by a
        # sibling cannot unload the instance before they resume.
        self._refs += 1
        try:
            return await asyncio.shield(waiter)
        except BaseException:
            self._refs -= 1
            raise

    async def release(self) -> None:
        if self._refs <= 0:
            raise RuntimeError("release() called without a matching acquire().")
        self._refs -= 1
        if (
            self._refs == 0
            and self._release_when_idle
            and self._state is EngineState.READY
        ):
            await self._unload()

    @asynccontextmanager
    async def lease(self) -> AsyncIterator[Engine]:
        engine = await self.acquire()
        try:
            yield engine
        finally:
            await self.release()

    async def shutdown(self) -> None:
        """Close the instance regardless of outstanding references."""

        if self._load_task is not None and not self._load_task.done():
            await asyncio.gather(self._load_task, return_exceptions=True)
        if self._refs:
            self._logger.warning(
                "Shutting down engine with active references",
                extra={"ref_count": self._refs},
            )
        if self._state is EngineState.READY:
            await self._unload()

    def _begin_load(self) -> None:
        loop = asyncio.get_running_loop()
        self._state = EngineState.LOADING
        self._error = None
        self._load_attempts += 1
        future: asyncio.Future[Engine] = loop.create_future()
        self._loading = future
        self._load_task = loop.create_task(self._load(future))
        self._logger.info(
            "Loading engine", extra={"attempt": self._load_attempts}
        )

    async def _load(self, future: asyncio.Future[Engine]) -> None:
        try:
            instance = await self._loader()
        except asyncio.CancelledError:
            self._state = EngineState.UNLOADED
            future.cancel()
            raise
        except Exception as exc:
            error = exc if isinstance(exc, EngineLoadError) else None
            if error is None:
                error = EngineLoadError(f"Engine failed to load: {exc}")
                error.__cause__ = exc
            self._state = EngineState.FAILED
            self._error = error
            self._logger.error(
                "Engine failed to load",
                extra={"attempt": self._load_attempts, "reason": str(error)},
            )
            future.set_exception(error)
            # Every waiter may already have been cancelled.
            future.exception()
            return

        self._instance = instance
        self._state = EngineState.READY
        self._logger.info(
            "Engine ready", extra={"attempt": self._load_attempts}
        )
        future.set_result(instance)

    async def _unload(self) -> None:
        instance = self._instance
        self._instance = None
        self._loading = None
        self._state = EngineState.UNLOADED
        if instance is not None:
            await instance.close()
        self._logger.info("Engine released")


class FFmpegEngine:
    """ffmpeg binary plus a private scratch directory acting as its FS."""

    def __init__(
        self,
        binary: str,
        workspace: Path,
        *,
        version: str = "",
        exec_timeout: Optional[float] = 300.0,
        exec_retries: int = 1,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.binary = binary
        self.workspace = workspace
        self.version = version
        self.exec_timeout = exec_timeout
        self.exec_retries = max(0, exec_retries)
        self._logger = logger or logging.getLogger(__name__)

    def scoped_name(self, label: str, extension: str) -> str:
        return f"{uuid.uuid4().hex}-{label}{extension}"

    async def write(self, name: str, data: bytes) -> None:
        await asyncio.to_thread(self._path(name).write_bytes, data)

    async def read(self, name: str) -> bytes:
        try:
            return await asyncio.to_thread(self._path(name).read_bytes)
        except FileNotFoundError as exc:
            raise EngineCommandError(
                f"Engine produced no file named '{name}'.", cause=exc
            ) from exc

    async def delete(self, name: str) -> None:
        await asyncio.to_thread(self._path(name).unlink, missing_ok=True)

    async def exec(self, args: Sequence[str]) -> None:
        """Run ffmpeg with ``args`` inside the workspace.

        A run that exceeds ``exec_timeout`` is killed and retried up to
        ``exec_retries`` times; other failures are raised immediately.
        """

        attempts = self.exec_retries + 1
        for attempt in range(1, attempts + 1):
            try:
                await self._exec_once(args)
                return
            except TimeoutError as exc:
                self._logger.warning(
                    "Engine command timed out",
                    extra={
                        "attempt": attempt,
                        "timeout": self.exec_timeout,
                        "args": list(args),
                    },
                )
                if attempt == attempts:
                    raise EngineCommandError(
                        "ffmpeg timed out after {0}s ({1} attempt(s)).".format(
                            self.exec_timeout, attempts
                        ),
                        cause=exc,
                    ) from exc

    async def close(self) -> None:
        await asyncio.to_thread(
            shutil.rmtree, self.workspace, ignore_errors=True
        )

    async def _exec_once(self, args: Sequence[str]) -> None:
        command = [self.binary, "-hide_banner", "-nostdin", "-y", *args]
        process = await asyncio.create_subprocess_exec(
            *command,
            cwd=str(self.workspace),
            stdout=asyncio.subprocess.DEVNULL,
            stderr=asyncio.subprocess.PIPE,
        )
        try:
            _, stderr = await asyncio.wait_for(
                process.communicate(), timeout=self.exec_timeout
            )
        except TimeoutError:
            process.kill()
            await process.wait()
            raise
        if process.returncode != 0:
            detail = stderr.decode("utf-8", errors="replace")[-_STDERR_TAIL:]
            raise EngineCommandError(
                "ffmpeg exited with status {0}: {1}".format(
                    process.returncode, detail.strip()
                )
            )

    def _path(self, name: str) -> Path:
        if not name or Path(name).name != name:
            raise ValueError(f"Invalid engine workspace name: {name!r}")
        return self.workspace / name


async def load_ffmpeg_engine(
    *,
    scratch_root: Path,
    binary: Optional[str] = None,
    exec_timeout: Optional[float] = 300.0,
    exec_retries: int = 1,
    logger: Optional[logging.Logger] = None,
) -> FFmpegEngine:
    """Locate and probe ffmpeg, then give it a private scratch directory."""

    log = logger or logging.getLogger(__name__)
    located = _locate_binary(binary)
    if located is None:
        raise EngineLoadError(
            "ffmpeg binary '{0}' was not found on PATH. Install ffmpeg or set "
            "engine.binary in the config.".format(binary or "ffmpeg")
        )

    try:
        process = await asyncio.create_subprocess_exec(
            located,
            "-hide_banner",
            "-version",
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        stdout, stderr = await process.communicate()
    except OSError as exc:
        raise EngineLoadError(f"Unable to start ffmpeg: {exc}") from exc
    if process.returncode != 0:
        raise EngineLoadError(
            "ffmpeg version probe failed: {0}".format(
                stderr.decode("utf-8", errors="replace").strip()
            )
        )
    lines = stdout.decode("utf-8", errors="replace").splitlines()
    version = lines[0].strip() if lines else ""

    try:
        scratch_root.mkdir(parents=True, exist_ok=True)
        workspace = Path(
            await asyncio.to_thread(
                tempfile.mkdtemp, prefix="engine-", dir=str(scratch_root)
            )
        )
    except OSError as exc:
        raise EngineLoadError(
            f"Unable to create engine workspace under {scratch_root}: {exc}"
        ) from exc

    log.info(
        "Probed ffmpeg",
        extra={"binary": located, "version": version, "workspace": workspace},
    )
    return FFmpegEngine(
        located,
        workspace,
        version=version,
        exec_timeout=exec_timeout,
        exec_retries=exec_retries,
        logger=log,
    )


def _locate_binary(binary: Optional[str]) -> Optional[str]:
    candidate = binary or "ffmpeg"
    path = Path(candidate).expanduser()
    if path.is_absolute() or path.parent != Path("."):
        return str(path) if path.is_file() else None
    return which(candidate)
