from PySide6.QtWidgets import (
    QMainWindow, QWidget, QHBoxLayout, QVBoxLayout, QGridLayout,
    QLabel, QStackedWidget, QSizePolicy, QStatusBar
)
from PySide6.QtCore import Qt

from keyframes.config import Settings
from keyframes.controller import ProcessingController
from keyframes.models import AnalysisParameters, RunState, SourceAsset
from keyframes_ui.pages import AnalyzerPage

_KEY_STYLE   = "color: #666; font-size: 8pt; font-weight: 700; letter-spacing: 1px; background: transparent;"
_VALUE_STYLE = "color: #cccccc; font-size: 10pt; background: transparent;"


def _hline(margin: int = 0) -> QWidget:
    line = QWidget()
    line.setFixedHeight(1)
    line.setStyleSheet(f"background-color: #2e2e2e; margin-top: {margin}px; margin-bottom: {margin}px;")
    return line


class _Section(QWidget):
    """Titled block of key/value pairs."""

    def __init__(self, title: str, keys: list[str], parent=None):
        super().__init__(parent)
        self.setStyleSheet("background: transparent;")

        grid = QGridLayout(self)
        grid.setContentsMargins(0, 0, 0, 0)
        grid.setHorizontalSpacing(10)
        grid.setVerticalSpacing(6)

        heading = QLabel(title.upper())
        heading.setStyleSheet("color: #558B6E; font-size: 8pt; font-weight: 700; letter-spacing: 2px;")
        grid.addWidget(heading, 0, 0, 1, 2)

        self._values: dict[str, QLabel] = {}
        for row, key in enumerate(keys, start=1):
            key_lbl = QLabel(key.upper())
            key_lbl.setStyleSheet(_KEY_STYLE)
            grid.addWidget(key_lbl, row, 0, Qt.AlignmentFlag.AlignTop)

            value = QLabel("—")
            value.setStyleSheet(_VALUE_STYLE)
            value.setWordWrap(True)
            grid.addWidget(value, row, 1)
            self._values[key] = value

        grid.setColumnStretch(1, 1)

    def put(self, key: str, text: str) -> None:
        self._values[key].setText(text or "—")


class _SidePanel(QWidget):
    """Right-hand details panel: the selected video, its run and the parameters."""

    def __init__(self, parent=None):
        super().__init__(parent)
        self.setStyleSheet("background-color: #1a1a1a;")
        self.setSizePolicy(QSizePolicy.Policy.Fixed, QSizePolicy.Policy.Expanding)

        root = QVBoxLayout(self)
        root.setContentsMargins(16, 16, 16, 16)
        root.setSpacing(12)

        title = QLabel("DETAILS")
        title.setAlignment(Qt.AlignmentFlag.AlignCenter)
        title.setStyleSheet("color: #666; font-size: 8pt; font-weight: 700; letter-spacing: 2px;")
        root.addWidget(title)
        root.addWidget(_hline(4))

        self._video = QStackedWidget()
        empty = QLabel("No video selected.")
        empty.setAlignment(Qt.AlignmentFlag.AlignCenter)
        empty.setStyleSheet("color: #444; font-size: 9pt;")
        self._video.addWidget(empty)
        self._video_section = _Section("Video", ["File", "Size", "Type"])
        self._video.addWidget(self._video_section)
        root.addWidget(self._video)

        root.addWidget(_hline())
        self._run_section = _Section("Run", ["Status", "Progress"])
        root.addWidget(self._run_section)

        root.addWidget(_hline())
        self._params_section = _Section("Parameters", ["Threads", "Scene Cut"])
        root.addWidget(self._params_section)

        root.addStretch()

    def show_asset(self, asset: SourceAsset) -> None:
        self._video_section.put("File", asset.name)
        self._video_section.put("Size", f"{asset.size_mb:.2f} MB")
        self._video_section.put("Type", asset.media_type)
        self._video.setCurrentIndex(1)

    def show_state(self, state: RunState) -> None:
        status = state.phase.name.capitalize()
        if state.failed_stage is not None:
            status += f" ({state.failed_stage.value})"
        self._run_section.put("Status", status)
        self._run_section.put("Progress", f"{state.progress_percent}%")

    def show_parameters(self, params: AnalysisParameters) -> None:
        self._params_section.put("Threads", str(params.threads))
        self._params_section.put("Scene Cut", str(params.scenecut) if params.scenecut else "disabled")


class MainWindow(QMainWindow):
    """Top-level application window."""

    def __init__(self, settings: Settings | None = None):
        super().__init__()

        self.controller = ProcessingController(settings=settings, parent=self)

        self.setWindowTitle("Keyframe Analyzer")
        self.resize(1000, 720)
        self.setMinimumSize(700, 480)
        self.setStyleSheet("background-color: #121212;")

        central = QWidget()
        self.setCentralWidget(central)
        outer = QHBoxLayout(central)
        outer.setContentsMargins(0, 0, 0, 0)
        outer.setSpacing(0)

        self._page = AnalyzerPage(self.controller)
        self._details = _SidePanel()
        self._details.setFixedWidth(280)

        divider = QWidget()
        divider.setFixedWidth(1)
        divider.setStyleSheet("background-color: #2e2e2e;")

        outer.addWidget(self._page, 1)
        outer.addWidget(divider)
        outer.addWidget(self._details)

        self._status_bar = QStatusBar()
        self._status_bar.setStyleSheet("color: #888; font-size: 8pt; background-color: #1a1a1a;")
        self.setStatusBar(self._status_bar)

        self.controller.asset_changed.connect(self._details.show_asset)
        self.controller.state_changed.connect(self._on_state_changed)
        self.controller.parameters_changed.connect(self._details.show_parameters)

        self._details.show_parameters(self.controller.parameters)
        self._on_state_changed(self.controller.state)

        self.controller.start()

    def _on_state_changed(self, state: RunState) -> None:
        self._details.show_state(state)
        self._status_bar.showMessage(state.status_message)

    def closeEvent(self, event):
        self.controller.shutdown()
        super().closeEvent(event)
