"""
keyframes.downloader
~~~~~~~~~~~~~~~~~~~~
Fetches the engine's runtime artifacts (a static ffmpeg build) from a
fixed, versioned release location into the local bin directory.

No Qt here: the engine calls these from whatever thread acquires it and
relays progress through a plain callback.
"""

from __future__ import annotations

import logging
import platform
import stat
import sys
import threading
import urllib.request
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

from keyframes.paths import ffmpeg_path

logger = logging.getLogger(__name__)

CHUNK_SIZE = 1024 * 64  # 64 KB


@dataclass(frozen=True)
class EngineArtifact:
    url: str
    dest: Path
    executable: bool = True

    @property
    def name(self) -> str:
        return self.dest.name


def platform_suffix() -> str:
    machine = platform.machine().lower()
    arch = "arm64" if machine in ("arm64", "aarch64") else "x64"
    if sys.platform == "win32":
        return "win32-x64"
    if sys.platform == "darwin":
        return f"darwin-{arch}"
    return f"linux-{arch}"


def engine_artifacts(base_url: str, bin_dir: Path) -> list[EngineArtifact]:
    """Return every artifact the engine needs, whether present or not."""
    base_url = base_url.rstrip("/")
    return [
        EngineArtifact(f"{base_url}/ffmpeg-{platform_suffix()}", ffmpeg_path(bin_dir)),
    ]


def fetch_artifact(
    artifact: EngineArtifact,
    on_progress: Callable[[float], None] | None = None,
    timeout: float = 60,
    abort: threading.Event | None = None,
) -> None:
    """
    Download *artifact* to its destination and make it executable.

    *on_progress* receives 0.0 – 1.0 when the server sends a Content-Length.
    Setting *abort* stops the download after the chunk in flight.
    A partial download is removed before the error propagates.

    Raises:
        OSError    – network or disk failure (urllib.error.URLError included),
                     ConnectionAbortedError once *abort* is set
        http.client.HTTPException – the server closed a response early
        ValueError – malformed URL
    """
    artifact.dest.parent.mkdir(parents=True, exist_ok=True)
    downloaded = 0
    logger.info("Downloading %s -> %s", artifact.url, artifact.dest)

    try:
        with urllib.request.urlopen(artifact.url, timeout=timeout) as response:
            content_length = response.headers.get("Content-Length")
            file_size = int(content_length) if content_length else 0

            with open(artifact.dest, "wb") as f:
                while True:
                    if abort is not None and abort.is_set():
                        raise ConnectionAbortedError("download aborted")
                    chunk = response.read(CHUNK_SIZE)
                    if not chunk:
                        break
                    f.write(chunk)
                    downloaded += len(chunk)

                    if file_size and on_progress is not None:
                        on_progress(min(downloaded / file_size, 1.0))

        if artifact.executable:
            mode = artifact.dest.stat().st_mode
            artifact.dest.chmod(mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    except BaseException:
        # Clean up partial download
        artifact.dest.unlink(missing_ok=True)
        raise

    logger.info("%s ready (%d bytes)", artifact.name, downloaded)
