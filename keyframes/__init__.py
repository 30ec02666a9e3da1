from .models import AnalysisParameters, Phase, RunState, SourceAsset, Stage, first_accepted, is_accepted_media_type
from .errors import (
    AcquisitionError, ArtifactNotFound, EngineError, EngineIOError,
    ExecutionCancelled, ExecutionError, ExecutionTimeout,
)
from .command_builder import build_analysis_command, INPUT_NAME, STATS_NAME
from .vfs import VirtualFilesystem
from .engine import EngineHandle, get_engine
from .controller import ProcessingController

__all__ = [
    "AnalysisParameters", "Phase", "RunState", "SourceAsset", "Stage",
    "first_accepted", "is_accepted_media_type",
    "AcquisitionError", "ArtifactNotFound", "EngineError", "EngineIOError",
    "ExecutionCancelled", "ExecutionError", "ExecutionTimeout",
    "build_analysis_command", "INPUT_NAME", "STATS_NAME",
    "VirtualFilesystem",
    "EngineHandle", "get_engine",
    "ProcessingController",
]
