"""
keyframes.vfs
~~~~~~~~~~~~~
The engine's addressable storage: a private scratch directory that ffmpeg
runs inside. Artifacts are addressed by plain file name, never by path.
"""

from __future__ import annotations

import logging
import shutil
import tempfile
from pathlib import Path

from keyframes.errors import ArtifactNotFound, EngineIOError

logger = logging.getLogger(__name__)


class VirtualFilesystem:

    def __init__(self, root: Path | None = None):
        if root is None:
            root = Path(tempfile.mkdtemp(prefix="keyframes-"))
        else:
            root = Path(root)
            root.mkdir(parents=True, exist_ok=True)
        self._root = root
        logger.debug("Virtual filesystem at %s", root)

    @property
    def root(self) -> Path:
        return self._root

    # ── Public API ────────────────────────────────────────────────────────────

    def write_input(self, name: str, data: bytes | Path) -> None:
        """
        Copy *data* into the filesystem under *name*, overwriting any
        previous artifact. *data* is either a byte buffer or a source file,
        which is streamed rather than read into memory.

        Raises:
            EngineIOError – if the name is invalid or the copy fails
        """
        dest = self._resolve(name)
        try:
            if isinstance(data, Path):
                shutil.copyfile(data, dest)
            else:
                dest.write_bytes(bytes(data))
        except OSError as exc:
            raise EngineIOError(f"Could not write {name}: {exc}") from exc
        logger.info("Wrote input '%s' (%d bytes)", name, dest.stat().st_size)

    def read_output(self, name: str) -> bytes:
        """
        Return the bytes of artifact *name*.

        Raises:
            ArtifactNotFound – if the artifact was never produced
            EngineIOError    – for any other read failure
        """
        path = self._resolve(name)
        if not path.is_file():
            raise ArtifactNotFound(name)
        try:
            return path.read_bytes()
        except FileNotFoundError as exc:
            raise ArtifactNotFound(name) from exc
        except OSError as exc:
            raise EngineIOError(f"Could not read {name}: {exc}") from exc

    def exists(self, name: str) -> bool:
        return self._resolve(name).is_file()

    def discard(self, *names: str) -> None:
        """Remove the named artifacts if present."""
        for name in names:
            path = self._resolve(name)
            try:
                path.unlink(missing_ok=True)
            except OSError as exc:
                raise EngineIOError(f"Could not remove {name}: {exc}") from exc

    # ── Internal helpers ──────────────────────────────────────────────────────

    def _resolve(self, name: str) -> Path:
        if not name or name in (".", "..") or "/" in name or "\\" in name:
            raise EngineIOError(f"Invalid artifact name: {name!r}")
        return self._root / name
