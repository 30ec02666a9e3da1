"""
keyframes.controller
~~~~~~~~~~~~~~~~~~~~
ProcessingController sequences one video through the engine:

    IDLE → ACQUIRING → READY → INTAKE → ANALYZING → SUCCEEDED
                                                  ↘ FAILED(stage)

All state lives in an immutable RunState that is replaced on every change
and broadcast through `state_changed`. Blocking work runs on QThreads; their
signals and the engine's log/progress signals are delivered on the
controller's own thread, so each update is applied as one merge.
"""

from __future__ import annotations

import logging
import math
from pathlib import Path

from PySide6.QtCore import QObject, Signal

from keyframes.config import Settings
from keyframes.engine import EngineHandle, get_engine
from keyframes.models import AnalysisParameters, Phase, RunState, SourceAsset, Stage
from keyframes.worker import AcquisitionWorker, AnalysisWorker

logger = logging.getLogger(__name__)

MSG_LOADING        = "Loading FFmpeg..."
MSG_LOADED         = "FFmpeg loaded successfully!"
MSG_STARTING       = "Starting video processing..."
MSG_COMPLETED      = "Video processing completed successfully!"
MSG_NO_STATS       = "Processing completed but log file could not be read."
NO_STATS_PLACEHOLDER = "Log file not found or empty."

FAILURE_PREFIXES = {
    Stage.ACQUISITION: "Error loading FFmpeg",
    Stage.INTAKE:      "Error reading video",
    Stage.ANALYSIS:    "Error processing video",
}

DEFAULT_LOG_STEM = "video"


def percent_from_fraction(fraction: float) -> int:
    """0.0 – 1.0 to a whole percentage, halves rounded up, clamped to 0 – 100."""
    return min(max(math.floor(fraction * 100 + 0.5), 0), 100)


class ProcessingController(QObject):

    state_changed        = Signal(object)   # RunState
    asset_changed        = Signal(object)   # SourceAsset
    parameters_changed   = Signal(object)   # AnalysisParameters
    engine_ready_changed = Signal(bool)

    def __init__(
        self,
        engine: EngineHandle | None = None,
        settings: Settings | None = None,
        parent=None,
    ):
        super().__init__(parent)
        self._settings = settings or Settings()
        self._engine   = engine if engine is not None else get_engine(self._settings)
        self._params   = self._settings.default_parameters()
        self._state    = RunState()
        self._asset: SourceAsset | None = None
        self._finished_asset: SourceAsset | None = None   # asset whose run reached a terminal state
        self._acquirer: AcquisitionWorker | None = None
        self._worker: AnalysisWorker | None = None

        self._engine.log.connect(self._on_engine_log)
        self._engine.progress.connect(self._on_engine_progress)

    # ── Read-only state ───────────────────────────────────────────────────────

    @property
    def state(self) -> RunState:
        return self._state

    @property
    def asset(self) -> SourceAsset | None:
        return self._asset

    @property
    def parameters(self) -> AnalysisParameters:
        return self._params

    @property
    def engine_ready(self) -> bool:
        return self._engine.ready

    @property
    def is_busy(self) -> bool:
        return self._state.phase in (Phase.ACQUIRING, Phase.INTAKE, Phase.ANALYZING)

    @property
    def can_edit_parameters(self) -> bool:
        return not self._state.in_flight

    @property
    def can_select_asset(self) -> bool:
        if not self._engine.ready:
            return False
        if self._state.phase == Phase.FAILED:
            return self._state.failed_stage != Stage.ACQUISITION
        return self._state.phase in (Phase.READY, Phase.SUCCEEDED)

    @property
    def can_retry_acquisition(self) -> bool:
        return self._state.phase == Phase.FAILED and self._state.failed_stage == Stage.ACQUISITION

    # ── Engine acquisition ────────────────────────────────────────────────────

    def start(self) -> bool:
        """Begin acquiring the engine. Only valid once, from IDLE."""
        if self._state.phase != Phase.IDLE:
            logger.debug("start() ignored in %s", self._state.phase.name)
            return False
        self._acquire()
        return True

    def retry_acquisition(self) -> bool:
        if not self.can_retry_acquisition:
            logger.debug("retry_acquisition() ignored in %s", self._state.phase.name)
            return False
        self._acquire()
        return True

    def _acquire(self) -> None:
        self._set_state(RunState(phase=Phase.ACQUIRING, status_message=MSG_LOADING))

        if self._acquirer is not None and self._acquirer.isFinished():
            self._acquirer.deleteLater()

        self._acquirer = AcquisitionWorker(self._engine, parent=self)
        self._acquirer.status.connect(self._on_acquisition_status)
        self._acquirer.succeeded.connect(self._on_acquired)
        self._acquirer.failed.connect(self._on_acquisition_failed)
        self._acquirer.start()

    def _on_acquisition_status(self, message: str) -> None:
        if self._state.phase == Phase.ACQUIRING:
            self._set_state(self._state.merge(status_message=message))

    def _on_acquired(self) -> None:
        self._set_state(RunState(phase=Phase.READY, status_message=MSG_LOADED))
        self.engine_ready_changed.emit(True)
        self._maybe_start_run()

    def _on_acquisition_failed(self, message: str) -> None:
        self._fail(Stage.ACQUISITION, message)

    # ── Asset & parameters ────────────────────────────────────────────────────

    def select_asset(self, asset: SourceAsset | None) -> bool:
        """
        Offer a new video. Returns False (and changes nothing) if the media
        type is not accepted, the engine is not ready, or a run is in flight.
        """
        if asset is None or not asset.accepted:
            logger.debug("Ignoring asset with media type %r", asset.media_type if asset else None)
            return False
        if not self.can_select_asset:
            logger.info("Ignoring '%s' — cannot accept an asset in %s", asset.name, self._state.phase.name)
            return False

        logger.info("Asset selected: '%s' (%.2f MB)", asset.name, asset.size_mb)
        self._asset = asset
        self._finished_asset = None
        self.asset_changed.emit(asset)

        if not self._maybe_start_run():
            self._set_state(self._state.merge(progress_percent=0, result_log=None))
        return True

    def set_parameters(self, threads: int | None = None, scenecut: int | None = None) -> bool:
        """
        Change analysis parameters for the next run. Ignored while a run is in
        flight; raises ValueError for out-of-range values.
        """
        if not self.can_edit_parameters:
            logger.debug("set_parameters() ignored while %s", self._state.phase.name)
            return False
        params = self._params.with_changes(threads=threads, scenecut=scenecut)
        if params != self._params:
            self._params = params
            self.parameters_changed.emit(params)
        return True

    def rerun(self) -> bool:
        """Analyze the current asset again with the current parameters."""
        if self._asset is None or not self.can_select_asset:
            return False
        self._finished_asset = None
        return self._maybe_start_run()

    def cancel(self) -> bool:
        if not self._state.in_flight or self._worker is None:
            return False
        self._worker.cancel()
        return True

    # ── Run lifecycle ─────────────────────────────────────────────────────────

    def _should_start_run(self) -> bool:
        if self._asset is None or not self._engine.ready:
            return False
        if self._asset is self._finished_asset:
            return False
        phase = self._state.phase
        if phase == Phase.FAILED:
            return self._state.failed_stage != Stage.ACQUISITION
        return phase in (Phase.READY, Phase.SUCCEEDED)

    def _maybe_start_run(self) -> bool:
        if not self._should_start_run():
            return False
        self._start_run()
        return True

    def _start_run(self) -> None:
        asset, params = self._asset, self._params
        logger.info("Starting run for '%s' with threads=%d scenecut=%d",
                    asset.name, params.threads, params.scenecut)
        self._set_state(RunState(phase=Phase.INTAKE, status_message=MSG_STARTING))

        if self._worker is not None and self._worker.isFinished():
            self._worker.deleteLater()

        worker = AnalysisWorker(
            self._engine, asset, params,
            timeout=self._settings.run_timeout_seconds,
            parent=self,
        )
        worker.analysis_started.connect(self._on_analysis_started)
        worker.succeeded.connect(self._on_run_succeeded)
        worker.failed.connect(self._on_run_failed)
        self._worker = worker
        worker.start()

    def _on_analysis_started(self) -> None:
        if self._state.phase == Phase.INTAKE:
            self._set_state(self._state.merge(phase=Phase.ANALYZING, progress_percent=0))

    def _on_run_succeeded(self, data: bytes | None) -> None:
        if not self._state.in_flight:
            return
        self._finished_asset = self._asset
        if data is None:
            result, message = NO_STATS_PLACEHOLDER, MSG_NO_STATS
        else:
            result, message = data.decode("utf-8", errors="replace"), MSG_COMPLETED
        self._set_state(RunState(
            phase=Phase.SUCCEEDED,
            progress_percent=100,
            status_message=message,
            result_log=result,
        ))

    def _on_run_failed(self, stage: Stage, message: str) -> None:
        if not self._state.in_flight:
            return
        self._finished_asset = self._asset
        self._fail(stage, message, progress_percent=self._state.progress_percent)

    def _fail(self, stage: Stage, message: str, progress_percent: int = 0) -> None:
        self._set_state(RunState(
            phase=Phase.FAILED,
            failed_stage=stage,
            progress_percent=progress_percent,
            status_message=f"{FAILURE_PREFIXES[stage]}: {message}",
        ))

    # ── Engine events ─────────────────────────────────────────────────────────

    def _on_engine_log(self, line: str) -> None:
        if self._state.phase == Phase.ANALYZING:
            self._set_state(self._state.merge(status_message=line))

    def _on_engine_progress(self, fraction: float) -> None:
        if self._state.phase != Phase.ANALYZING:
            return
        percent = percent_from_fraction(fraction)
        if percent != self._state.progress_percent:
            self._set_state(self._state.merge(progress_percent=percent))

    # ── Export ────────────────────────────────────────────────────────────────

    def log_filename(self) -> str:
        name = self._asset.name if self._asset is not None else ""
        return f"{name or DEFAULT_LOG_STEM}.log"

    def export_log(self, path: Path) -> Path:
        """Write the keyframes log as UTF-8 text. Raises ValueError if there is none."""
        if self._state.result_log is None:
            raise ValueError("No keyframes log to export")
        path = Path(path)
        path.write_text(self._state.result_log, encoding="utf-8")
        logger.info("Exported keyframes log to %s", path)
        return path

    # ── Shutdown ──────────────────────────────────────────────────────────────

    def shutdown(self, timeout_ms: int = 5000) -> None:
        """
        Cancel any run and wait for worker threads to exit.

        An acquisition in progress is aborted and then waited for without a
        limit: it stops after the download chunk in flight, which the
        downloader's socket timeout bounds.
        """
        if self._worker is not None:
            self._worker.cancel()
            self._worker.wait(timeout_ms)
        if self._acquirer is not None:
            if self._acquirer.isRunning():
                logger.info("Aborting engine acquisition")
                self._engine.abort_acquisition()
            self._acquirer.wait()

    # ── Helpers ───────────────────────────────────────────────────────────────

    def _set_state(self, state: RunState) -> None:
        if state.phase != self._state.phase:
            logger.info("Phase: %s → %s", self._state.phase.name, state.phase.name)
        self._state = state
        self.state_changed.emit(state)
