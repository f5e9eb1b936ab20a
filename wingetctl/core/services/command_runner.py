"""
Command runner — the SINGLE PLACE the tool is spawned.

Every invocation gets:
- one ``subprocess.Popen`` (no retries; retrying is the caller's call),
- one reader thread per output stream, publishing a StreamEvent for
  each chunk the moment it is read,
- one waiter thread that reaps the process and settles the run's
  ``Future`` exactly once.

Outcomes (set on the future):
    result        exit code 0 (or None) — the aggregated output
    SpawnFailure  the executable could not be launched
    NonZeroExit   any other exit code — captured output as the message
    Cancelled     a cancel request terminated the run, whatever its code

Cancellation is cooperative: ``cancel`` issues termination and returns;
it does not wait for the process to die.  A run that finishes a few
microseconds before its termination signal lands may still be reported
as cancelled.  That race is accepted.
"""

from __future__ import annotations

import codecs
import logging
import os
import signal
import subprocess
import threading
from concurrent.futures import Future
from typing import IO

from wingetctl.core.errors import (
    Cancelled,
    InvalidArgument,
    NonZeroExit,
    SpawnFailure,
    WingetError,
)
from wingetctl.core.models.stream import CancelResult, OperationContext, StreamEvent, StreamName
from wingetctl.core.observability.sanitize import sanitize_for_log
from wingetctl.core.services.event_bus import EventBus
from wingetctl.core.services.process_registry import (
    CANCELLED,
    NOT_RUNNING,
    ProcessRegistry,
)

logger = logging.getLogger(__name__)

_CHUNK_SIZE = 4096
_IS_WINDOWS = os.name == "nt"
# Equivalent of a hidden window for console children on Windows
_CREATION_FLAGS = getattr(subprocess, "CREATE_NO_WINDOW", 0) if _IS_WINDOWS else 0


class CommandRunner:
    """Spawns the tool, streams its output, applies cancellation."""

    def __init__(
        self,
        registry: ProcessRegistry | None = None,
        bus: EventBus | None = None,
        *,
        executable: str = "winget",
        encoding: str = "utf-8",
    ) -> None:
        self.registry = registry or ProcessRegistry()
        self.bus = bus or EventBus()
        self.executable = executable
        self.encoding = encoding

    # ── Run ─────────────────────────────────────────────────────

    def run(self, args: list[str], context: OperationContext | None = None) -> Future[str]:
        """Spawn ``<executable> *args`` and return a future for its output.

        Raises:
            InvalidArgument: blank tracking token, or one already in use.
        """
        context = context or OperationContext()
        track_id = context.track_id
        if track_id is not None and not track_id.strip():
            raise InvalidArgument("Tracking token must not be blank")
        if track_id and self.registry.lookup(track_id) is not None:
            raise InvalidArgument(f"Tracking token already in use: {track_id}")

        future: Future[str] = Future()
        future.set_running_or_notify_cancel()
        argv = [self.executable, *args]
        logger.info("run %s", sanitize_for_log({"args": args, "context": context.as_dict()}))

        try:
            proc = subprocess.Popen(
                argv,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                bufsize=0,
                creationflags=_CREATION_FLAGS,
            )
        except (OSError, ValueError) as e:
            if track_id:
                self.registry.unregister(track_id)
            logger.warning("Failed to launch %s: %s", self.executable, e)
            future.set_exception(SpawnFailure(f"Failed to launch {self.executable}: {e}"))
            return future

        if track_id:
            try:
                self.registry.register(track_id, proc)
            except InvalidArgument:
                # Lost a race with another run for the same token
                proc.kill()
                proc.wait()
                raise

        _Run(self, proc, list(args), context, future).start()
        return future

    # ── Cancel ──────────────────────────────────────────────────

    def cancel(self, track_id: str | None) -> CancelResult:
        """Terminate the run bound to ``track_id``.

        Returns as soon as a termination signal was issued.
        """
        key = str(track_id or "").strip()
        if not key:
            return CancelResult.failure("invalid_track_id")

        try:
            outcome = self.registry.request_cancel(key, self._terminate)
        except Exception as e:
            logger.error("cancel %s failed: %s", key, e)
            return CancelResult.failure(str(e))

        if outcome == CANCELLED:
            logger.info("cancel %s: termination issued", key)
            return CancelResult.cancelled()
        if outcome == NOT_RUNNING:
            logger.debug("cancel %s: not running", key)
        else:
            logger.warning("cancel %s: %s", key, outcome)
        return CancelResult.failure(outcome)

    def _terminate(self, proc: subprocess.Popen) -> bool:
        """Direct termination, plus a tree kill on Windows.

        Returns whether at least one mechanism was issued.
        """
        issued = False
        try:
            proc.terminate()
            issued = True
        except OSError as e:
            logger.debug("terminate pid=%s failed: %s", proc.pid, e)

        # A single signal doesn't reliably take down winget's installer children
        if _IS_WINDOWS and proc.pid:
            try:
                subprocess.Popen(
                    ["taskkill", "/PID", str(proc.pid), "/T", "/F"],
                    stdin=subprocess.DEVNULL,
                    stdout=subprocess.DEVNULL,
                    stderr=subprocess.DEVNULL,
                    creationflags=_CREATION_FLAGS,
                )
                issued = True
            except OSError as e:
                logger.debug("taskkill pid=%s failed: %s", proc.pid, e)

        return issued


class _Run:
    """One spawned process: its reader threads, buffer and settlement."""

    def __init__(
        self,
        runner: CommandRunner,
        proc: subprocess.Popen,
        args: list[str],
        context: OperationContext,
        future: Future[str],
    ) -> None:
        self.runner = runner
        self.proc = proc
        self.args = args
        self.context = context
        self.future = future
        self._chunks: list[str] = []
        self._buffer_lock = threading.Lock()
        self._settle_lock = threading.Lock()

    def start(self) -> None:
        name = self.context.track_id or f"pid{self.proc.pid}"
        readers = [
            threading.Thread(
                target=self._pump, args=("stdout", self.proc.stdout),
                name=f"winget-{name}-stdout", daemon=True,
            ),
            threading.Thread(
                target=self._pump, args=("stderr", self.proc.stderr),
                name=f"winget-{name}-stderr", daemon=True,
            ),
        ]
        for t in readers:
            t.start()
        threading.Thread(
            target=self._wait, args=(readers,), name=f"winget-{name}-wait", daemon=True,
        ).start()

    @property
    def output(self) -> str:
        with self._buffer_lock:
            return "".join(self._chunks)

    def _pump(self, stream: StreamName, pipe: IO[bytes] | None) -> None:
        if pipe is None:
            return
        decoder = codecs.getincrementaldecoder(self.runner.encoding)(errors="replace")
        try:
            while True:
                chunk = pipe.read(_CHUNK_SIZE)
                if not chunk:
                    break
                self._emit(stream, decoder.decode(chunk))
            self._emit(stream, decoder.decode(b"", final=True))
        except (OSError, ValueError) as e:
            logger.debug("%s reader stopped: %s", stream, e)
        finally:
            pipe.close()

    def _emit(self, stream: StreamName, text: str) -> None:
        if not text:
            return
        with self._buffer_lock:
            self._chunks.append(text)
        self.runner.bus.publish(StreamEvent.for_chunk(text, stream, self.args, self.context))

    def _wait(self, readers: list[threading.Thread]) -> None:
        try:
            for t in readers:
                t.join()
            code = self.proc.wait()
        except Exception as e:
            logger.error("waiting on pid=%s failed: %s", self.proc.pid, e, exc_info=True)
            self._finish(None, error=WingetError(f"Lost track of {self.runner.executable}: {e}"))
            return
        self._finish(code)

    def _finish(self, code: int | None, error: WingetError | None = None) -> None:
        # Unregister before anything else so a late cancel can't find a dead handle
        track_id = self.context.track_id
        cancelled = self.runner.registry.release(track_id) if track_id else False

        with self._settle_lock:
            if self.future.done():
                return
            output = self.output
            if cancelled:
                logger.info("run %s cancelled (exit %s)", track_id, code)
                self.future.set_exception(Cancelled(track_id or ""))
            elif error is not None:
                self.future.set_exception(error)
            elif code in (0, None):
                logger.info("run %s finished", sanitize_for_log(self.args))
                self.future.set_result(output)
            else:
                message = output if output.strip() else self._exit_message(code)
                logger.info("run %s failed (exit %s)", sanitize_for_log(self.args), code)
                self.future.set_exception(NonZeroExit(message, exit_code=code, output=output))

    def _exit_message(self, code: int) -> str:
        message = f"{self.runner.executable} exited with code {code}"
        if code < 0:
            try:
                message += f" ({signal.Signals(-code).name})"
            except ValueError:
                pass
        return message
