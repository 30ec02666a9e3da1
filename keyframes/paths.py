"""
keyframes.paths
~~~~~~~~~~~~~~~
Single source of truth for filesystem paths used across the app.
Import these instead of hard-coding strings anywhere else.
"""

from __future__ import annotations

import sys
from pathlib import Path

# Project root = the directory that contains main.py
PROJECT_ROOT = Path(__file__).resolve().parent.parent

BIN_DIR = PROJECT_ROOT / "bin"


def ffmpeg_binary_name() -> str:
    return "ffmpeg.exe" if sys.platform == "win32" else "ffmpeg"


def ffmpeg_path(bin_dir: Path = BIN_DIR) -> Path:
    return bin_dir / ffmpeg_binary_name()


def validate_binary(binary: Path) -> list[str]:
    """
    Return a list of error strings if *binary* is missing or not executable.
    Empty list means all good.
    """
    errors: list[str] = []
    if not binary.exists():
        errors.append(f"Binary not found: {binary}")
    elif not binary.is_file():
        errors.append(f"Not a file: {binary}")
    elif sys.platform != "win32" and not binary.stat().st_mode & 0o111:
        errors.append(f"Not executable: {binary}")
    return errors
