"""
keyframes.models
~~~~~~~~~~~~~~~~
Pure dataclasses — no Qt, no I/O (apart from SourceAsset.from_path).
These travel freely between keyframes and keyframes_ui.
"""

from __future__ import annotations

import mimetypes
from dataclasses import dataclass, field, replace
from enum import Enum, auto
from pathlib import Path

ACCEPTED_MEDIA_TYPE = "video/mp4"

THREADS_RANGE  = (1, 16)
SCENECUT_RANGE = (0, 150)

DEFAULT_THREADS  = 4
DEFAULT_SCENECUT = 40


# ── Enums ─────────────────────────────────────────────────────────────────────

class Phase(Enum):
    IDLE       = auto()  # controller constructed, nothing started
    ACQUIRING  = auto()  # fetching / verifying the engine
    READY      = auto()  # engine usable, waiting for an asset
    INTAKE     = auto()  # copying the asset into the engine's filesystem
    ANALYZING  = auto()  # engine is running the analysis command
    SUCCEEDED  = auto()  # result_log is available
    FAILED     = auto()  # see RunState.failed_stage


class Stage(Enum):
    ACQUISITION = "acquisition"
    INTAKE      = "intake"
    ANALYSIS    = "analysis"


# ── Source asset ──────────────────────────────────────────────────────────────

def is_accepted_media_type(media_type: str | None) -> bool:
    return bool(media_type) and media_type.startswith(ACCEPTED_MEDIA_TYPE)


@dataclass(frozen=True)
class SourceAsset:
    """
    The user-supplied video.

    Either `data` (an in-memory buffer) or `path` (the file on disk) holds
    the bytes; the filesystem bridge accepts both.
    """
    name: str
    size_bytes: int
    media_type: str
    data: bytes | None = field(default=None, repr=False)
    path: Path | None = None

    @classmethod
    def from_path(cls, path: Path) -> SourceAsset:
        path = Path(path)
        media_type, _ = mimetypes.guess_type(path.name)
        return cls(
            name=path.name,
            size_bytes=path.stat().st_size,
            media_type=media_type or "",
            path=path,
        )

    @classmethod
    def from_bytes(cls, name: str, data: bytes, media_type: str | None = None) -> SourceAsset:
        if media_type is None:
            media_type, _ = mimetypes.guess_type(name)
        return cls(name=name, size_bytes=len(data), media_type=media_type or "", data=data)

    @property
    def accepted(self) -> bool:
        return is_accepted_media_type(self.media_type)

    @property
    def source(self) -> bytes | Path:
        if self.data is not None:
            return self.data
        if self.path is None:
            raise ValueError(f"Asset '{self.name}' has neither data nor path")
        return self.path

    @property
    def size_mb(self) -> float:
        return self.size_bytes / (1024 * 1024)


# ── Analysis parameters ───────────────────────────────────────────────────────

@dataclass(frozen=True)
class AnalysisParameters:
    """
    Knobs passed to the command builder.

        threads   1–16, ffmpeg -threads
        scenecut  0–150, x264 scene-cut sensitivity (0 disables detection)
    """
    threads: int = DEFAULT_THREADS
    scenecut: int = DEFAULT_SCENECUT

    def __post_init__(self):
        _check_range("threads", self.threads, THREADS_RANGE)
        _check_range("scenecut", self.scenecut, SCENECUT_RANGE)

    def with_changes(self, threads: int | None = None, scenecut: int | None = None) -> AnalysisParameters:
        return AnalysisParameters(
            threads=self.threads if threads is None else threads,
            scenecut=self.scenecut if scenecut is None else scenecut,
        )


def _check_range(label: str, value: int, bounds: tuple[int, int]) -> None:
    low, high = bounds
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"{label} must be an integer, got {value!r}")
    if not low <= value <= high:
        raise ValueError(f"{label} must be between {low} and {high}, got {value}")


# ── Run state ─────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class RunState:
    """
    Snapshot of the controller's state machine.
    The controller replaces it wholesale on every change; the UI only reads it.
    """
    phase: Phase = Phase.IDLE
    failed_stage: Stage | None = None
    progress_percent: int = 0
    status_message: str = ""
    result_log: str | None = None

    @property
    def in_flight(self) -> bool:
        return self.phase in (Phase.INTAKE, Phase.ANALYZING)

    @property
    def terminal(self) -> bool:
        return self.phase in (Phase.SUCCEEDED, Phase.FAILED)

    @property
    def is_error(self) -> bool:
        return self.phase == Phase.FAILED

    def merge(self, **changes) -> RunState:
        return replace(self, **changes)


def first_accepted(assets) -> SourceAsset | None:
    """Return the first asset the ingestion filter accepts, e.g. from a multi-file drop."""
    return next((a for a in assets if a is not None and a.accepted), None)
