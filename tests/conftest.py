import stat
import threading
import time
from pathlib import Path

import pytest
from PySide6.QtCore import QCoreApplication, QObject, Signal

from keyframes.command_builder import INPUT_NAME, STATS_NAME
from keyframes.controller import ProcessingController
from keyframes.errors import AcquisitionError, ExecutionCancelled, ExecutionError, ExecutionTimeout
from keyframes.models import SourceAsset
from keyframes.vfs import VirtualFilesystem

TEST_ROOT_DIR: Path = Path(__file__).parent

SAMPLE_STATS = (
    "#options: 320x240 fps=24/1 timebase=1/24 bitdepth=8 cabac=0 ref=1 deblock=0:0:0\n"
    "in:0 out:0 type:I dur:2 cpbdur:2 q:0.00 aq:0.00 tex:0 mv:0 misc:0 imb:0 pmb:0 smb:0 d:- ref:;\n"
    "in:1 out:1 type:P dur:2 cpbdur:2 q:0.00 aq:0.00 tex:0 mv:0 misc:0 imb:0 pmb:0 smb:0 d:- ref:0 ;\n"
)

FAKE_FFMPEG = """#!/bin/sh
case " $* " in *" -version "*) echo "ffmpeg version 6.1.1-fake"; exit 0;; esac
case "$FAKE_FFMPEG_MODE" in
  fail) echo "input.mp4: Invalid data found when processing input" >&2; exit 1;;
  hang) exec sleep 30;;
  nostats) echo "  Duration: 00:00:02.00, start: 0.000000, bitrate: 1 kb/s" >&2; echo "progress=end"; exit 0;;
esac
echo "  Duration: 00:00:02.00, start: 0.000000, bitrate: 1 kb/s" >&2
sleep 0.2
echo "out_time_us=1000000"
echo "progress=continue"
echo "out_time_us=2000000"
echo "progress=end"
printf 'in:0 out:0 type:I dur:2 cpbdur:2 q:0.00 tex:0 mv:0 misc:0 imb:0 pmb:0 smb:0 d:- ref:;\\n' > file.log
exit 0
"""

BROKEN_FFMPEG = """#!/bin/sh
echo "error while loading shared libraries" >&2
exit 127
"""


def write_executable(path: Path, script: str) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(script)
    path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return path


# ── Qt event loop helpers ─────────────────────────────────────────────────────

@pytest.fixture(scope="session")
def qapp():
    return QCoreApplication.instance() or QCoreApplication([])


def pump_until(predicate, timeout: float = 5.0) -> None:
    """Process queued Qt events until *predicate* holds."""
    deadline = time.monotonic() + timeout
    while not predicate():
        if time.monotonic() > deadline:
            raise AssertionError("timed out waiting for the controller")
        QCoreApplication.processEvents()
        time.sleep(0.005)
    QCoreApplication.processEvents()


def wait_idle(controller: ProcessingController, timeout: float = 5.0) -> None:
    pump_until(lambda: not controller.is_busy, timeout)


# ── Fake engine ───────────────────────────────────────────────────────────────

def write_stats(engine, args):
    engine.fs.write_input(STATS_NAME, SAMPLE_STATS.encode())


class FakeEngine(QObject):
    """Stands in for EngineHandle; `behaviour(engine, args)` plays the ffmpeg run."""

    log           = Signal(str)
    progress      = Signal(float)
    ready_changed = Signal(bool)

    def __init__(self, root: Path, acquire_failures: int = 0, behaviour=write_stats):
        super().__init__()
        self.fs = VirtualFilesystem(root)
        self.behaviour = behaviour
        self.acquire_failures = acquire_failures
        self.acquire_calls = 0
        self.fetches = 0
        self.executions: list[list[str]] = []
        self.input_present: list[bool] = []
        self.active = 0
        self.max_active = 0
        self.cancelled = threading.Event()
        self.aborted = threading.Event()
        self.gate = threading.Event()
        self.gate.set()
        self.acquire_gate = threading.Event()
        self.acquire_gate.set()
        self._lock = threading.Lock()
        self._ready = False

    @property
    def ready(self) -> bool:
        return self._ready

    def acquire(self, on_status=None):
        with self._lock:
            self.acquire_calls += 1
            if self._ready:
                return
            self.acquire_gate.wait(5)
            if self.aborted.is_set():
                raise AcquisitionError("Failed to download ffmpeg-linux-x64: download aborted")
            if self.acquire_failures:
                self.acquire_failures -= 1
                raise AcquisitionError("Failed to download ffmpeg-linux-x64: network down")
            if on_status is not None:
                on_status("Downloading ffmpeg… 50%")
            self.fetches += 1
            self._ready = True
        self.ready_changed.emit(True)

    def abort_acquisition(self):
        self.aborted.set()
        self.acquire_gate.set()

    def execute(self, args, timeout=None, cancel_event=None):
        with self._lock:
            self.active += 1
            self.max_active = max(self.max_active, self.active)
            self.executions.append(list(args))
            self.input_present.append(self.fs.exists(INPUT_NAME))
        try:
            if not self.gate.wait(timeout or 5) and timeout:
                raise ExecutionTimeout(f"analysis timed out after {timeout:g}s")
            if self.cancelled.is_set() or (cancel_event is not None and cancel_event.is_set()):
                raise ExecutionCancelled("analysis cancelled")
            self.behaviour(self, list(args))
        finally:
            with self._lock:
                self.active -= 1

    def cancel(self):
        self.cancelled.set()
        self.gate.set()
        return True


def fail_execution(engine, args):
    raise ExecutionError("ffmpeg exited with code 1: Invalid data found when processing input", 1)


def no_stats(engine, args):
    engine.log.emit("frame=   48 fps=0.0 q=-1.0 Lsize=N/A time=00:00:02.00")


def report_progress(engine, args):
    engine.log.emit("Input #0, mov,mp4,m4a,3gp,3g2,mj2, from 'input.mp4':")
    engine.progress.emit(0.256)
    engine.log.emit("frame=   24 fps=0.0 q=-1.0 size=N/A time=00:00:01.00")
    engine.progress.emit(1.0)
    write_stats(engine, args)


# ── Fixtures ──────────────────────────────────────────────────────────────────

@pytest.fixture
def fake_engine(tmp_path):
    return FakeEngine(tmp_path / "vfs")


@pytest.fixture
def make_controller(qapp):
    created = []

    def _make(engine, settings=None):
        controller = ProcessingController(engine=engine, settings=settings)
        created.append(controller)
        return controller

    yield _make
    for controller in created:
        controller.shutdown()
        QCoreApplication.processEvents()


@pytest.fixture
def ready_controller(make_controller, fake_engine):
    controller = make_controller(fake_engine)
    controller.start()
    wait_idle(controller)
    return controller


@pytest.fixture
def mp4_asset():
    return SourceAsset.from_bytes("clip.mp4", b"\x00\x00\x00\x18ftypmp42" + b"\x00" * 64)
