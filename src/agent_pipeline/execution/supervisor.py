"""Supervision of the external tool-execution process.

The supervisor owns at most one child process. Readiness is a future that
resolves when a known marker shows up on stdout and rejects when the process
writes to stderr or exits first; startup is bounded by a timeout.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Sequence
from enum import Enum

from agent_pipeline.errors import ProcessStartupError, ProcessStartupTimeoutError

logger = logging.getLogger(__name__)

READY_MARKERS: tuple[str, ...] = (
    "Server listening on port",
    "ready",
    "Listening on http://localhost",
    "Put this in your client config",
)

INSTALL_CHECK_TIMEOUT_S = 15.0
STREAM_LIMIT_BYTES = 1024 * 1024


class SessionState(str, Enum):
    STOPPED = "stopped"
    STARTING = "starting"
    RUNNING = "running"
    STOPPING = "stopping"
    START_FAILED = "start_failed"


class ProcessSupervisor:
    """Start, watch and stop one external process."""

    def __init__(
        self,
        command: Sequence[str],
        *,
        startup_timeout_s: float = 60.0,
        stop_grace_s: float = 5.0,
        ready_markers: Sequence[str] = READY_MARKERS,
        install_check_command: Sequence[str] | None = None,
        name: str = "execution server",
    ) -> None:
        if not command:
            raise ValueError("command must not be empty")
        self.command = list(command)
        self.startup_timeout_s = startup_timeout_s
        self.stop_grace_s = stop_grace_s
        self.ready_markers = tuple(ready_markers)
        self.install_check_command = list(install_check_command) if install_check_command else None
        self.name = name
        self.start_count = 0

        self._state = SessionState.STOPPED
        self._process: asyncio.subprocess.Process | None = None
        self._ready: asyncio.Future[None] | None = None
        self._watchers: list[asyncio.Task[None]] = []
        self._lifecycle_lock: asyncio.Lock | None = None

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def is_running(self) -> bool:
        return self._state is SessionState.RUNNING

    @property
    def pid(self) -> int | None:
        return self._process.pid if self._process is not None else None

    def _lock(self) -> asyncio.Lock:
        # Created lazily so the lock binds to the loop that first uses it.
        if self._lifecycle_lock is None:
            self._lifecycle_lock = asyncio.Lock()
        return self._lifecycle_lock

    async def start(self) -> None:
        if self.is_running:
            logger.debug("supervisor event=start_skipped name=%s reason=running", self.name)
            return
        async with self._lock():
            if self.is_running:
                return
            await self._start_locked()

    async def _start_locked(self) -> None:
        self.start_count += 1
        self._state = SessionState.STARTING
        logger.info(
            "supervisor event=starting name=%s command=%s timeout_s=%s",
            self.name,
            " ".join(self.command),
            self.startup_timeout_s,
        )
        try:
            process = await asyncio.create_subprocess_exec(
                *self.command,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                limit=STREAM_LIMIT_BYTES,
            )
        except OSError as exc:
            self._state = SessionState.START_FAILED
            raise ProcessStartupError(f"Failed to start {self.name}: {exc}") from exc

        self._process = process
        self._ready = asyncio.get_running_loop().create_future()
        stdout_task = asyncio.create_task(self._watch_stdout(process))
        stderr_task = asyncio.create_task(self._watch_stderr(process))
        exit_task = asyncio.create_task(self._watch_exit(process, (stdout_task, stderr_task)))
        self._watchers = [stdout_task, stderr_task, exit_task]

        try:
            await asyncio.wait_for(asyncio.shield(self._ready), timeout=self.startup_timeout_s)
        except asyncio.TimeoutError:
            installed = await self.probe_installation()
            await self._discard_failed_start()
            message = f"{self.name} failed to start within {self.startup_timeout_s:g}s"
            if installed is False:
                message += (
                    "; the automation tool does not appear to be installed"
                    " (try: npm install @playwright/mcp)"
                )
            logger.error("supervisor event=start_timeout name=%s installed=%s", self.name, installed)
            raise ProcessStartupTimeoutError(
                message,
                timeout_s=self.startup_timeout_s,
                installed=installed,
            ) from None
        except ProcessStartupError:
            await self._discard_failed_start()
            raise

        self._state = SessionState.RUNNING
        logger.info("supervisor event=running name=%s pid=%s", self.name, process.pid)

    async def stop(self) -> None:
        async with self._lock():
            process = self._process
            if process is None:
                self._state = SessionState.STOPPED
                return
            self._state = SessionState.STOPPING
            logger.info("supervisor event=stopping name=%s pid=%s", self.name, process.pid)
            await self._terminate(process)
            await self._cancel_watchers()
            self._process = None
            self._ready = None
            self._state = SessionState.STOPPED
            logger.info("supervisor event=stopped name=%s", self.name)

    async def probe_installation(self) -> bool | None:
        """Report whether the automation tool is installed; None when unknown."""
        if not self.install_check_command:
            return None
        try:
            probe = await asyncio.create_subprocess_exec(
                *self.install_check_command,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.STDOUT,
            )
        except OSError as exc:
            logger.warning("supervisor event=install_check_failed name=%s reason=%s", self.name, exc)
            return False
        try:
            output, _ = await asyncio.wait_for(probe.communicate(), timeout=INSTALL_CHECK_TIMEOUT_S)
        except asyncio.TimeoutError:
            probe.kill()
            await probe.wait()
            return None
        text = output.decode("utf-8", errors="replace")
        installed = probe.returncode == 0 and "Version" in text
        logger.info(
            "supervisor event=install_check name=%s installed=%s output=%s",
            self.name,
            installed,
            text.strip()[:200],
        )
        return installed

    def _is_ready_line(self, line: str) -> bool:
        return any(marker in line for marker in self.ready_markers)

    def _resolve_ready(self) -> None:
        if self._ready is not None and not self._ready.done():
            self._ready.set_result(None)

    def _reject_ready(self, exc: ProcessStartupError) -> None:
        if self._ready is not None and not self._ready.done():
            self._ready.set_exception(exc)

    async def _read_lines(
        self, stream: asyncio.StreamReader, label: str
    ) -> AsyncIterator[str]:
        """Yield non-empty lines until EOF, skipping lines over the reader limit."""
        while True:
            try:
                raw = await stream.readline()
            except ValueError:
                # The reader drops the oversized chunk and stays usable.
                logger.warning(
                    "supervisor event=line_overflow name=%s stream=%s limit=%d",
                    self.name,
                    label,
                    STREAM_LIMIT_BYTES,
                )
                continue
            if not raw:
                return
            line = raw.decode("utf-8", errors="replace").rstrip()
            if line:
                yield line

    async def _watch_stdout(self, process: asyncio.subprocess.Process) -> None:
        assert process.stdout is not None
        async for line in self._read_lines(process.stdout, "stdout"):
            logger.info("[%s] %.500s", self.name, line)
            if self._is_ready_line(line):
                self._resolve_ready()

    async def _watch_stderr(self, process: asyncio.subprocess.Process) -> None:
        assert process.stderr is not None
        async for text in self._read_lines(process.stderr, "stderr"):
            logger.warning("[%s error] %.500s", self.name, text)
            self._reject_ready(ProcessStartupError(f"Failed to start {self.name}: {text}"))

    async def _watch_exit(
        self,
        process: asyncio.subprocess.Process,
        streams: tuple[asyncio.Task[None], ...],
    ) -> None:
        returncode = await process.wait()
        # Let the stream watchers flush so stderr text wins over the bare exit code.
        await asyncio.wait(streams, timeout=1.0)
        self._reject_ready(
            ProcessStartupError(f"{self.name} exited with code {returncode} before becoming ready")
        )
        if process is self._process and self._state is SessionState.RUNNING:
            logger.warning(
                "supervisor event=exited name=%s pid=%s returncode=%s",
                self.name,
                process.pid,
                returncode,
            )
            self._process = None
            self._ready = None
            self._state = SessionState.STOPPED

    async def _terminate(self, process: asyncio.subprocess.Process) -> None:
        if process.returncode is not None:
            return
        try:
            process.terminate()
        except ProcessLookupError:
            return
        try:
            await asyncio.wait_for(process.wait(), timeout=self.stop_grace_s)
        except asyncio.TimeoutError:
            logger.warning("supervisor event=force_kill name=%s pid=%s", self.name, process.pid)
            try:
                process.kill()
            except ProcessLookupError:
                pass
            await process.wait()

    async def _cancel_watchers(self) -> None:
        watchers, self._watchers = self._watchers, []
        for task in watchers:
            if not task.done():
                task.cancel()
        if watchers:
            await asyncio.gather(*watchers, return_exceptions=True)

    async def _discard_failed_start(self) -> None:
        if self._ready is not None and not self._ready.done():
            self._ready.cancel()
        process = self._process
        if process is not None:
            await self._terminate(process)
        await self._cancel_watchers()
        self._process = None
        self._ready = None
        self._state = SessionState.START_FAILED
