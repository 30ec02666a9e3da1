import threading

import pytest

from keyframes.command_builder import INPUT_NAME, STATS_NAME
from keyframes.config import Settings
from keyframes.controller import NO_STATS_PLACEHOLDER, ProcessingController, percent_from_fraction
from keyframes.models import AnalysisParameters, Phase, SourceAsset, Stage
from keyframes.vfs import VirtualFilesystem

from conftest import (
    SAMPLE_STATS, FakeEngine, fail_execution, no_stats, pump_until, report_progress, wait_idle, write_stats,
)


def record_phases(controller: ProcessingController) -> list:
    phases = []
    controller.state_changed.connect(lambda state: phases.append(state.phase))
    return phases


# ── Acquisition ───────────────────────────────────────────────────────────────

def test_initial_state(make_controller, fake_engine):
    controller = make_controller(fake_engine)
    assert controller.state.phase == Phase.IDLE
    assert controller.state.result_log is None
    assert controller.parameters == AnalysisParameters(threads=4, scenecut=40)
    assert not controller.can_select_asset


def test_start_acquires_engine(make_controller, fake_engine):
    controller = make_controller(fake_engine)
    phases = record_phases(controller)
    ready = []
    controller.engine_ready_changed.connect(ready.append)

    assert controller.start()
    assert controller.state.phase == Phase.ACQUIRING
    wait_idle(controller)

    assert controller.state.phase == Phase.READY
    assert controller.state.status_message == "FFmpeg loaded successfully!"
    assert phases[0] == Phase.ACQUIRING
    assert ready == [True]
    assert not controller.start()


def test_acquisition_failure_then_retry(make_controller, tmp_path, mp4_asset):
    engine = FakeEngine(tmp_path / "vfs", acquire_failures=1)
    controller = make_controller(engine)
    controller.start()
    wait_idle(controller)

    state = controller.state
    assert state.phase == Phase.FAILED
    assert state.failed_stage == Stage.ACQUISITION
    assert "network down" in state.status_message
    assert state.status_message.startswith("Error loading FFmpeg")

    # Selection stays disabled until the engine is ready.
    assert not controller.select_asset(mp4_asset)
    assert controller.state is state
    assert engine.executions == []

    assert controller.retry_acquisition()
    wait_idle(controller)
    assert controller.state.phase == Phase.READY
    assert engine.fetches == 1

    # Retrying once ready is ignored and never fetches again.
    assert not controller.retry_acquisition()
    engine.acquire()
    assert engine.fetches == 1


def test_shutdown_aborts_acquisition(make_controller, fake_engine):
    fake_engine.acquire_gate.clear()
    controller = make_controller(fake_engine)
    controller.start()
    pump_until(lambda: fake_engine.acquire_calls == 1)

    controller.shutdown()
    assert fake_engine.aborted.is_set()

    pump_until(lambda: controller.state.phase == Phase.FAILED)
    assert controller.state.failed_stage == Stage.ACQUISITION
    assert "download aborted" in controller.state.status_message


def test_retry_ignored_unless_acquisition_failed(ready_controller):
    assert not ready_controller.retry_acquisition()


# ── Runs ──────────────────────────────────────────────────────────────────────

def test_successful_run(ready_controller, fake_engine):
    stats = ("in:0 out:0 type:I " + "x" * 81 + "\n") * 5
    assert len(stats.encode()) == 500
    fake_engine.behaviour = lambda engine, args: engine.fs.write_input(STATS_NAME, stats.encode())
    asset = SourceAsset.from_bytes("holiday.mp4", b"video")

    assert ready_controller.select_asset(asset)
    wait_idle(ready_controller)

    state = ready_controller.state
    assert state.phase == Phase.SUCCEEDED
    assert state.result_log == stats
    assert state.progress_percent == 100
    assert state.status_message == "Video processing completed successfully!"
    assert ready_controller.log_filename() == "holiday.mp4.log"


def test_run_phases(ready_controller, mp4_asset):
    phases = record_phases(ready_controller)
    ready_controller.select_asset(mp4_asset)
    wait_idle(ready_controller)
    assert phases == [Phase.INTAKE, Phase.ANALYZING, Phase.SUCCEEDED]


def test_execute_follows_intake_write(ready_controller, fake_engine, mp4_asset):
    ready_controller.select_asset(mp4_asset)
    wait_idle(ready_controller)
    assert fake_engine.input_present == [True]
    assert fake_engine.fs.read_output(INPUT_NAME) == mp4_asset.data
    assert fake_engine.max_active == 1


def test_missing_stats_is_not_a_failure(ready_controller, fake_engine, mp4_asset):
    fake_engine.behaviour = no_stats
    ready_controller.select_asset(mp4_asset)
    wait_idle(ready_controller)

    state = ready_controller.state
    assert state.phase == Phase.SUCCEEDED
    assert state.result_log == NO_STATS_PLACEHOLDER
    assert state.result_log
    assert state.status_message == "Processing completed but log file could not be read."


def test_stale_stats_are_never_returned(ready_controller, fake_engine, mp4_asset):
    ready_controller.select_asset(mp4_asset)
    wait_idle(ready_controller)
    assert ready_controller.state.result_log == SAMPLE_STATS

    fake_engine.behaviour = fail_execution
    ready_controller.select_asset(SourceAsset.from_bytes("second.mp4", b"2"))
    wait_idle(ready_controller)
    assert ready_controller.state.phase == Phase.FAILED

    fake_engine.behaviour = no_stats
    ready_controller.select_asset(SourceAsset.from_bytes("third.mp4", b"3"))
    wait_idle(ready_controller)
    assert ready_controller.state.phase == Phase.SUCCEEDED
    assert ready_controller.state.result_log == NO_STATS_PLACEHOLDER


def test_execution_failure(ready_controller, fake_engine, mp4_asset):
    fake_engine.behaviour = fail_execution
    ready_controller.select_asset(mp4_asset)
    wait_idle(ready_controller)

    state = ready_controller.state
    assert state.phase == Phase.FAILED
    assert state.failed_stage == Stage.ANALYSIS
    assert state.status_message.startswith("Error processing video: ffmpeg exited with code 1")
    assert state.result_log is None


def test_intake_failure(ready_controller, fake_engine, tmp_path):
    missing = SourceAsset(name="gone.mp4", size_bytes=10, media_type="video/mp4", path=tmp_path / "gone.mp4")
    ready_controller.select_asset(missing)
    wait_idle(ready_controller)

    state = ready_controller.state
    assert state.phase == Phase.FAILED
    assert state.failed_stage == Stage.INTAKE
    assert state.status_message.startswith("Error reading video")
    assert fake_engine.executions == []


def test_failed_asset_is_not_rerun_automatically(ready_controller, fake_engine, mp4_asset):
    fake_engine.behaviour = fail_execution
    ready_controller.select_asset(mp4_asset)
    wait_idle(ready_controller)
    pump_until(lambda: True)
    assert len(fake_engine.executions) == 1

    fake_engine.behaviour = report_progress
    assert ready_controller.rerun()
    wait_idle(ready_controller)
    assert ready_controller.state.phase == Phase.SUCCEEDED
    assert len(fake_engine.executions) == 2


def test_new_asset_after_success_goes_straight_to_intake(ready_controller, mp4_asset):
    ready_controller.select_asset(mp4_asset)
    wait_idle(ready_controller)
    phases = record_phases(ready_controller)

    ready_controller.select_asset(SourceAsset.from_bytes("next.mp4", b"next"))
    assert phases[0] == Phase.INTAKE
    assert ready_controller.state.result_log is None
    wait_idle(ready_controller)
    assert Phase.READY not in phases


# ── Live events ───────────────────────────────────────────────────────────────

def test_progress_and_log_are_republished(ready_controller, fake_engine, mp4_asset):
    fake_engine.behaviour = report_progress
    states = []
    ready_controller.state_changed.connect(states.append)

    ready_controller.select_asset(mp4_asset)
    wait_idle(ready_controller)

    analyzing = [s for s in states if s.phase == Phase.ANALYZING]
    percents = [s.progress_percent for s in analyzing]
    assert 26 in percents
    assert percents[-1] == 100
    assert percents == sorted(percents)
    assert any(s.status_message.startswith("frame=   24") for s in analyzing)
    assert ready_controller.state.status_message == "Video processing completed successfully!"


def test_events_outside_analysis_are_ignored(ready_controller, fake_engine):
    state = ready_controller.state
    fake_engine.progress.emit(0.5)
    fake_engine.log.emit("stray line")
    pump_until(lambda: True)
    assert ready_controller.state is state


@pytest.mark.parametrize(
    "fraction, percent",
    [(0.0, 0), (0.004, 0), (0.005, 1), (0.025, 3), (0.125, 13), (0.999, 100), (1.2, 100), (-0.1, 0)],
)
def test_percent_rounds_halves_up(fraction, percent):
    assert percent_from_fraction(fraction) == percent


def test_progress_half_percent_is_rounded_up(ready_controller, fake_engine, mp4_asset):
    def half_percent(engine, args):
        engine.progress.emit(0.125)
        write_stats(engine, args)

    fake_engine.behaviour = half_percent
    percents = []
    ready_controller.state_changed.connect(lambda s: percents.append(s.progress_percent))

    ready_controller.select_asset(mp4_asset)
    wait_idle(ready_controller)
    assert 13 in percents
    assert 12 not in percents


# ── Selection rules ───────────────────────────────────────────────────────────

def test_rejected_media_type_never_transitions(ready_controller, fake_engine):
    state = ready_controller.state
    assert not ready_controller.select_asset(SourceAsset.from_bytes("clip.mov", b"mov"))
    assert not ready_controller.select_asset(SourceAsset.from_bytes("clip.mp4", b"x", media_type="video/webm"))
    assert not ready_controller.select_asset(None)
    assert ready_controller.state is state
    assert ready_controller.asset is None
    assert fake_engine.executions == []


def test_selection_during_analysis_is_rejected(ready_controller, fake_engine, mp4_asset):
    fake_engine.gate.clear()
    ready_controller.select_asset(mp4_asset)
    pump_until(lambda: ready_controller.state.phase == Phase.ANALYZING)

    second = SourceAsset.from_bytes("second.mp4", b"second")
    assert not ready_controller.select_asset(second)
    assert not ready_controller.set_parameters(threads=8)
    assert not ready_controller.can_edit_parameters
    assert ready_controller.parameters.threads == 4

    fake_engine.gate.set()
    wait_idle(ready_controller)
    assert ready_controller.state.phase == Phase.SUCCEEDED
    assert ready_controller.asset is mp4_asset
    assert len(fake_engine.executions) == 1
    assert fake_engine.max_active == 1


# ── Parameters ────────────────────────────────────────────────────────────────

def test_parameters_apply_to_next_run(ready_controller, fake_engine, mp4_asset):
    changed = []
    ready_controller.parameters_changed.connect(changed.append)

    assert ready_controller.set_parameters(threads=12, scenecut=0)
    assert changed == [AnalysisParameters(threads=12, scenecut=0)]

    ready_controller.select_asset(mp4_asset)
    wait_idle(ready_controller)
    args = fake_engine.executions[0]
    assert args[args.index("-threads") + 1] == "12"
    assert "scenecut=0" in args[args.index("-x264-params") + 1]


def test_invalid_parameters_raise(ready_controller):
    with pytest.raises(ValueError):
        ready_controller.set_parameters(threads=17)
    assert ready_controller.parameters.threads == 4


# ── Cancel & export ───────────────────────────────────────────────────────────

def test_cancel_running_analysis(ready_controller, fake_engine, mp4_asset):
    fake_engine.gate.clear()
    ready_controller.select_asset(mp4_asset)
    pump_until(lambda: ready_controller.state.phase == Phase.ANALYZING)

    assert ready_controller.cancel()
    wait_idle(ready_controller)
    state = ready_controller.state
    assert state.phase == Phase.FAILED
    assert state.failed_stage == Stage.ANALYSIS
    assert "cancelled" in state.status_message
    assert not ready_controller.cancel()


def test_export_log(ready_controller, mp4_asset, tmp_path):
    with pytest.raises(ValueError):
        ready_controller.export_log(tmp_path / "nothing.log")

    ready_controller.select_asset(mp4_asset)
    wait_idle(ready_controller)
    target = tmp_path / ready_controller.log_filename()
    ready_controller.export_log(target)
    assert target.name == "clip.mp4.log"
    assert target.read_text(encoding="utf-8") == SAMPLE_STATS


def test_default_log_filename(make_controller, fake_engine):
    assert make_controller(fake_engine).log_filename() == "video.log"


def test_cancel_before_engine_process_starts(ready_controller, fake_engine, mp4_asset, monkeypatch):
    # The engine has nothing to terminate yet; the request must still reach the run.
    monkeypatch.setattr(fake_engine, "cancel", lambda: False)
    fake_engine.gate.clear()
    ready_controller.select_asset(mp4_asset)
    pump_until(lambda: ready_controller.state.phase == Phase.ANALYZING)

    assert ready_controller.cancel()
    fake_engine.gate.set()
    wait_idle(ready_controller)

    state = ready_controller.state
    assert state.phase == Phase.FAILED
    assert state.failed_stage == Stage.ANALYSIS
    assert "cancelled" in state.status_message


class _BlockingFilesystem(VirtualFilesystem):
    def __init__(self, root):
        super().__init__(root)
        self.release = threading.Event()

    def write_input(self, name, data):
        self.release.wait(5)
        super().write_input(name, data)


def test_cancel_during_intake(ready_controller, fake_engine, mp4_asset, tmp_path):
    fs = _BlockingFilesystem(tmp_path / "blocking")
    fake_engine.fs = fs
    ready_controller.select_asset(mp4_asset)
    assert ready_controller.state.phase == Phase.INTAKE

    assert ready_controller.cancel()
    fs.release.set()
    wait_idle(ready_controller)

    state = ready_controller.state
    assert state.phase == Phase.FAILED
    assert state.failed_stage == Stage.ANALYSIS
    assert "cancelled" in state.status_message
    assert fake_engine.executions == []


def test_run_timeout(make_controller, fake_engine, mp4_asset):
    controller = make_controller(fake_engine, Settings(run_timeout_seconds=0.2))
    controller.start()
    wait_idle(controller)

    fake_engine.gate.clear()
    controller.select_asset(mp4_asset)
    wait_idle(controller)

    state = controller.state
    assert state.phase == Phase.FAILED
    assert state.failed_stage == Stage.ANALYSIS
    assert state.status_message.startswith("Error processing video: analysis timed out")
