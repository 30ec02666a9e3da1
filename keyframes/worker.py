"""
keyframes.worker
~~~~~~~~~~~~~~~~
QThreads that run the blocking stages of the pipeline off the GUI thread
and report back through signals the controller connects to.

AcquisitionWorker
    status(str)            download / startup status line
    succeeded()
    failed(str)            human-readable error message

AnalysisWorker
    analysis_started()     input written, ffmpeg about to run
    succeeded(object)      stats bytes, or None if ffmpeg wrote none
    failed(object, str)    (Stage, human-readable error message)
"""

from __future__ import annotations

import logging
import threading

from PySide6.QtCore import QThread, Signal

from keyframes.command_builder import INPUT_NAME, STATS_COMPANIONS, STATS_NAME, build_analysis_command
from keyframes.engine import EngineHandle
from keyframes.errors import ArtifactNotFound, EngineIOError, ExecutionCancelled
from keyframes.models import AnalysisParameters, SourceAsset, Stage

logger = logging.getLogger(__name__)


class AcquisitionWorker(QThread):

    status    = Signal(str)
    succeeded = Signal()
    failed    = Signal(str)

    def __init__(self, engine: EngineHandle, parent=None):
        super().__init__(parent)
        self._engine = engine

    def run(self):
        try:
            self._engine.acquire(on_status=self.status.emit)
        except Exception as exc:
            logger.error("Acquisition failed: %s", exc)
            self.failed.emit(str(exc))
            return
        self.succeeded.emit()


class AnalysisWorker(QThread):

    analysis_started = Signal()
    succeeded        = Signal(object)
    failed           = Signal(object, str)

    def __init__(
        self,
        engine: EngineHandle,
        asset: SourceAsset,
        params: AnalysisParameters,
        timeout: float | None = None,
        parent=None,
    ):
        super().__init__(parent)
        self._engine  = engine
        self._asset   = asset
        self._params  = params
        self._timeout = timeout
        self._cancel  = threading.Event()
        logger.debug("AnalysisWorker created for '%s' (%s)", asset.name, params)

    # ── QThread entry point ───────────────────────────────────────────────────

    def run(self):
        logger.info("Run started for '%s'", self._asset.name)

        # ── Intake ────────────────────────────────────────────────────────────
        try:
            fs = self._engine.fs
            # Stats from an earlier run must never be mistaken for this one's.
            fs.discard(*STATS_COMPANIONS)
            fs.write_input(INPUT_NAME, self._asset.source)
        except Exception as exc:
            self._fail(Stage.INTAKE, exc)
            return

        # ── Analysis ──────────────────────────────────────────────────────────
        self.analysis_started.emit()
        try:
            if self._cancel.is_set():
                raise ExecutionCancelled("analysis cancelled")
            cmd = build_analysis_command(INPUT_NAME, self._params)
            self._engine.execute(cmd, timeout=self._timeout, cancel_event=self._cancel)
        except Exception as exc:
            self._fail(Stage.ANALYSIS, exc)
            return

        # ── Result ────────────────────────────────────────────────────────────
        try:
            data = fs.read_output(STATS_NAME)
        except ArtifactNotFound:
            logger.warning("ffmpeg finished without writing %s", STATS_NAME)
            data = None
        except EngineIOError as exc:
            logger.warning("Could not read %s: %s", STATS_NAME, exc)
            data = None

        logger.info("Run finished for '%s'", self._asset.name)
        self.succeeded.emit(data)

    # ── Cancel ────────────────────────────────────────────────────────────────

    def cancel(self) -> None:
        logger.info("cancel() called for '%s'", self._asset.name)
        self._cancel.set()
        self._engine.cancel()

    # ── Internal ──────────────────────────────────────────────────────────────

    def _fail(self, stage: Stage, exc: Exception) -> None:
        logger.error("%s failed for '%s': %s", stage.value, self._asset.name, exc)
        self.failed.emit(stage, str(exc))
