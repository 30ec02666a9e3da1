"""
keyframes.engine
~~~~~~~~~~~~~~~~
EngineHandle owns the one ffmpeg instance of the session: acquiring it,
running analysis commands inside its virtual filesystem and republishing
what ffmpeg reports while it works.

Signals
-------
log(str)              every non-empty line ffmpeg writes to stderr
progress(float)       0.0 – 1.0 as ffmpeg advances through the input
ready_changed(bool)   emitted when the readiness flag flips

The blocking methods (acquire, execute) are meant to be called from a
worker thread; the signals then reach receivers on their own threads
through Qt's queued connections.
"""

from __future__ import annotations

import http.client
import logging
import re
import subprocess
import threading
from collections import deque
from collections.abc import Callable, Sequence
from pathlib import Path

from PySide6.QtCore import QObject, Signal

from keyframes.command_builder import command_as_string
from keyframes.config import ENGINE_BASE_URL, Settings
from keyframes.downloader import engine_artifacts, fetch_artifact
from keyframes.errors import AcquisitionError, ExecutionCancelled, ExecutionError, ExecutionTimeout
from keyframes.paths import BIN_DIR, ffmpeg_path, validate_binary
from keyframes.vfs import VirtualFilesystem

logger = logging.getLogger(__name__)

_DURATION_RE = re.compile(r"Duration:\s*(\d+):(\d+):(\d+(?:\.\d+)?)")

STDERR_TAIL_LINES = 20


class EngineHandle(QObject):

    log           = Signal(str)
    progress      = Signal(float)
    ready_changed = Signal(bool)

    def __init__(
        self,
        base_url: str = ENGINE_BASE_URL,
        bin_dir: Path = BIN_DIR,
        fs: VirtualFilesystem | None = None,
        parent=None,
    ):
        super().__init__(parent)
        self._artifacts = engine_artifacts(base_url, bin_dir)
        self._binary    = ffmpeg_path(bin_dir)
        self._fs        = fs
        self._ready     = False

        self._acquire_lock = threading.Lock()
        self._abort        = threading.Event()
        self._exec_lock    = threading.Lock()
        self._process: subprocess.Popen | None = None
        self._cancelled = False
        self._duration  = 0.0

        self.last_log_line = ""
        self.last_progress = 0.0

    # ── Properties ────────────────────────────────────────────────────────────

    @property
    def ready(self) -> bool:
        return self._ready

    @property
    def binary(self) -> Path:
        return self._binary

    @property
    def fs(self) -> VirtualFilesystem:
        if self._fs is None:
            raise AcquisitionError("Engine has not been acquired")
        return self._fs

    @property
    def busy(self) -> bool:
        return self._exec_lock.locked()

    # ── Acquisition ───────────────────────────────────────────────────────────

    def acquire(self, on_status: Callable[[str], None] | None = None) -> None:
        """
        Make the engine usable. Returns immediately if it already is.

        Missing artifacts are downloaded, then the binary is launched once to
        prove it runs. Concurrent callers wait for the first one to finish, so
        a retry never fetches twice.

        Raises:
            AcquisitionError – if a download or the verification run fails;
                               the handle stays not-ready and may be retried
        """
        if self._ready:
            return

        def status(message: str) -> None:
            logger.info(message)
            if on_status is not None:
                on_status(message)

        with self._acquire_lock:
            if self._ready:
                return
            self._abort.clear()

            missing = [a for a in self._artifacts if not a.dest.exists()]
            total = len(missing)
            for idx, artifact in enumerate(missing):
                status(f"Downloading {artifact.name}…")
                last_pct = -1

                def on_progress(fraction: float, idx=idx, name=artifact.name) -> None:
                    nonlocal last_pct
                    pct = int((idx + fraction) / total * 100)
                    if pct != last_pct:
                        last_pct = pct
                        status(f"Downloading {name}… {pct}%")

                try:
                    fetch_artifact(artifact, on_progress=on_progress, abort=self._abort)
                except (OSError, ValueError, http.client.HTTPException) as exc:
                    raise AcquisitionError(f"Failed to download {artifact.name}: {exc}") from exc

            status("Starting FFmpeg…")
            try:
                version = self._instantiate()
            except AcquisitionError:
                # A body that downloaded fine but does not run is fetched again on retry.
                for artifact in missing:
                    logger.warning("Removing unusable %s", artifact.dest)
                    artifact.dest.unlink(missing_ok=True)
                raise
            logger.info("Engine ready: %s", version)

            if self._fs is None:
                self._fs = VirtualFilesystem()
            self._set_ready(True)

    def abort_acquisition(self) -> None:
        """Stop an acquisition in progress after its current download chunk."""
        self._abort.set()

    def _instantiate(self) -> str:
        """Run `ffmpeg -version` and return its first line."""
        errors = validate_binary(self._binary)
        if errors:
            raise AcquisitionError("; ".join(errors))

        try:
            result = subprocess.run(
                [str(self._binary), "-hide_banner", "-version"],
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                errors="replace",
                timeout=30,
            )
        except (OSError, subprocess.TimeoutExpired) as exc:
            raise AcquisitionError(f"Could not start {self._binary.name}: {exc}") from exc

        if result.returncode != 0:
            raise AcquisitionError(
                f"{self._binary.name} -version exited with code {result.returncode}: "
                f"{result.stderr.strip()}"
            )
        lines = result.stdout.strip().splitlines()
        return lines[0] if lines else self._binary.name

    def _set_ready(self, ready: bool) -> None:
        if self._ready != ready:
            self._ready = ready
            self.ready_changed.emit(ready)

    # ── Execution ─────────────────────────────────────────────────────────────

    def execute(
        self,
        args: Sequence[str],
        timeout: float | None = None,
        cancel_event: threading.Event | None = None,
    ) -> None:
        """
        Run ffmpeg with *args* inside the virtual filesystem and block until
        it exits.

        *cancel_event* belongs to the caller: once it is set the run ends in
        ExecutionCancelled, even if it was set before ffmpeg had started.

        Raises:
            ExecutionError     – not ready, already running, or non-zero exit
            ExecutionTimeout   – *timeout* seconds elapsed first
            ExecutionCancelled – cancel() was called or *cancel_event* set
        """
        if not self._ready:
            raise ExecutionError("Engine is not ready")
        if not self._exec_lock.acquire(blocking=False):
            raise ExecutionError("Engine is already running a command")
        try:
            self._run(list(args), timeout, cancel_event)
        finally:
            self._exec_lock.release()

    def cancel(self) -> bool:
        """Terminate the running command. Returns False if nothing was running."""
        process = self._process
        if process is None or process.poll() is not None:
            logger.debug("cancel() — no running process to terminate")
            return False
        self._cancelled = True
        process.terminate()
        logger.info("ffmpeg (pid %d) terminated", process.pid)
        return True

    def _run(self, args: list[str], timeout: float | None, cancel_event: threading.Event | None) -> None:
        cmd = [str(self._binary), "-hide_banner", "-nostats", "-progress", "pipe:1", "-y", *args]
        logger.info("Command: %s", command_as_string(cmd))

        self._cancelled = False
        self._duration  = 0.0
        timed_out = threading.Event()

        try:
            process = subprocess.Popen(
                cmd,
                cwd=self.fs.root,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                errors="replace",
            )
        except OSError as exc:
            raise ExecutionError(f"Could not start {self._binary.name}: {exc}") from exc
        self._process = process
        logger.debug("PID = %d", process.pid)

        # cancel() may have run before _process was published.
        if cancel_event is not None and cancel_event.is_set():
            self._cancelled = True
            process.terminate()
            logger.info("ffmpeg (pid %d) terminated on start, run was already cancelled", process.pid)

        # ── Drain stderr in a background thread to prevent pipe deadlock ──────
        # ffmpeg writes its log to stderr; if only stdout were read, a full
        # stderr pipe would block ffmpeg and stall the progress stream.
        stderr_tail: deque[str] = deque(maxlen=STDERR_TAIL_LINES)

        def _drain_stderr():
            for line in process.stderr:
                stripped = line.rstrip()
                if stripped:
                    stderr_tail.append(stripped)
                    self._on_log_line(stripped)

        stderr_thread = threading.Thread(target=_drain_stderr, daemon=True)
        stderr_thread.start()

        timer = None
        if timeout:
            timer = threading.Timer(timeout, self._on_timeout, args=(process, timed_out))
            timer.daemon = True
            timer.start()

        try:
            for line in process.stdout:
                self._on_progress_line(line.strip())
            stderr_thread.join()
            process.wait()
        finally:
            if timer is not None:
                timer.cancel()
            self._process = None

        returncode = process.returncode
        logger.info("ffmpeg exited with code %s", returncode)

        if timed_out.is_set():
            raise ExecutionTimeout(f"analysis timed out after {timeout:g}s", returncode)
        if self._cancelled or (cancel_event is not None and cancel_event.is_set()):
            raise ExecutionCancelled("analysis cancelled", returncode)
        if returncode != 0:
            detail = stderr_tail[-1] if stderr_tail else "no output"
            raise ExecutionError(f"ffmpeg exited with code {returncode}: {detail}", returncode)

    def _on_timeout(self, process: subprocess.Popen, timed_out: threading.Event) -> None:
        if process.poll() is None:
            logger.warning("ffmpeg (pid %d) timed out — killing", process.pid)
            timed_out.set()
            process.kill()

    # ── Event parsing ─────────────────────────────────────────────────────────

    def _on_log_line(self, line: str) -> None:
        if not self._duration:
            match = _DURATION_RE.search(line)
            if match:
                self._duration = hhmmss_to_seconds(*match.groups())
                logger.debug("Input duration = %.2fs", self._duration)
        self.last_log_line = line
        self.log.emit(line)

    def _on_progress_line(self, line: str) -> None:
        fraction = parse_progress_line(line, self._duration)
        if fraction is not None:
            self.last_progress = fraction
            self.progress.emit(fraction)


# ── Progress line parser ───────────────────────────────────────────────────────

def parse_progress_line(line: str, duration: float) -> float | None:
    """
    Turn one `-progress` key=value line into a 0.0 – 1.0 fraction.
    Returns None for lines that carry no position or when *duration* is unknown.
    """
    key, sep, value = line.partition("=")
    if not sep:
        return None
    if key == "progress":
        return 1.0 if value == "end" else None
    if duration <= 0:
        return None

    if key in ("out_time_us", "out_time_ms"):   # both are microseconds
        try:
            seconds = int(value) / 1_000_000
        except ValueError:
            return None
    elif key == "out_time":
        try:
            seconds = hhmmss_to_seconds(*value.split(":"))
        except TypeError:
            return None
    else:
        return None

    return min(max(seconds / duration, 0.0), 1.0)


def hhmmss_to_seconds(hours: str, minutes: str, seconds: str) -> float:
    try:
        return float(hours) * 3600 + float(minutes) * 60 + float(seconds)
    except ValueError:
        return 0.0


# ── Process-wide handle ───────────────────────────────────────────────────────

_shared_lock = threading.Lock()
_shared: EngineHandle | None = None


def get_engine(settings: Settings | None = None) -> EngineHandle:
    """
    Return the session's engine, creating it on first call.
    *settings* only matter for that first call.
    """
    global _shared
    with _shared_lock:
        if _shared is None:
            settings = settings or Settings()
            _shared = EngineHandle(base_url=settings.engine_base_url, bin_dir=settings.bin_dir)
        return _shared
