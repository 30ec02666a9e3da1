"""
keyframes.config
~~~~~~~~~~~~~~~~
Persists application settings to a JSON file in the platform's
standard config directory.

Config location
---------------
  Windows  : %APPDATA%\\KeyframeAnalyzer\\settings.json
  macOS    : ~/Library/Application Support/KeyframeAnalyzer/settings.json
  Linux    : ~/.config/KeyframeAnalyzer/settings.json

Only static preferences are stored — the selected video, run state and
analysis results never outlive the session.
"""

from __future__ import annotations

import json
import sys
from dataclasses import asdict, dataclass, fields
from pathlib import Path

from keyframes.models import DEFAULT_SCENECUT, DEFAULT_THREADS, AnalysisParameters
from keyframes.paths import BIN_DIR

ENGINE_BASE_URL = "https://github.com/eugeneware/ffmpeg-static/releases/download/b6.1.1"


# ── Config directory ──────────────────────────────────────────────────────────

def _config_dir() -> Path:
    if sys.platform == "win32":
        base = Path.home() / "AppData" / "Roaming"
    elif sys.platform == "darwin":
        base = Path.home() / "Library" / "Application Support"
    else:
        base = Path.home() / ".config"

    return base / "KeyframeAnalyzer"


CONFIG_DIR    = _config_dir()
SETTINGS_FILE = CONFIG_DIR / "settings.json"


# ── Settings ──────────────────────────────────────────────────────────────────

@dataclass
class Settings:
    engine_base_url: str = ENGINE_BASE_URL
    bin_dir: Path = BIN_DIR
    run_timeout_seconds: float | None = None   # None = wait forever
    default_threads: int = DEFAULT_THREADS
    default_scenecut: int = DEFAULT_SCENECUT
    log_level: str = "info"

    def default_parameters(self) -> AnalysisParameters:
        """Falls back to the built-in defaults if the stored values are out of range."""
        try:
            return AnalysisParameters(self.default_threads, self.default_scenecut)
        except ValueError:
            return AnalysisParameters()


# ── Public API ────────────────────────────────────────────────────────────────

def save_settings(settings: Settings, path: Path = SETTINGS_FILE) -> None:
    """
    Serialise *settings* to *path*, overwriting any previous data.
    Silently ignores I/O errors so a config issue never crashes the app.
    """
    payload = asdict(settings)
    payload["bin_dir"] = str(settings.bin_dir)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(payload, indent=2), encoding="utf-8")
    except OSError:
        pass


def load_settings(path: Path = SETTINGS_FILE) -> Settings:
    """
    Read *path* and return a Settings instance.
    Returns defaults if the file is missing, empty, or malformed; unknown
    keys are ignored.
    """
    if not path.exists():
        return Settings()
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError):
        return Settings()
    if not isinstance(payload, dict):
        return Settings()

    known = {f.name for f in fields(Settings)}
    values = {k: v for k, v in payload.items() if k in known}
    if "bin_dir" in values:
        values["bin_dir"] = Path(values["bin_dir"])
    try:
        return Settings(**values)
    except TypeError:
        return Settings()
