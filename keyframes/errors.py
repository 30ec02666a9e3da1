"""
keyframes.errors
~~~~~~~~~~~~~~~~
Exceptions raised by the engine and its filesystem bridge.
The controller is the only place that catches them.
"""


class EngineError(Exception):
    """Base class for everything the engine layer raises."""


class AcquisitionError(EngineError):
    """The engine runtime could not be fetched or instantiated."""


class EngineIOError(EngineError):
    """Reading or writing the engine's virtual filesystem failed."""


class ArtifactNotFound(EngineIOError):
    """A named output artifact was never produced."""

    def __init__(self, name: str):
        super().__init__(f"Artifact not found: {name}")
        self.name = name


class ExecutionError(EngineError):
    """An engine invocation terminated abnormally."""

    def __init__(self, message: str, returncode: int | None = None):
        super().__init__(message)
        self.returncode = returncode


class ExecutionTimeout(ExecutionError):
    pass


class ExecutionCancelled(ExecutionError):
    pass
