from pathlib import Path

from PySide6.QtWidgets import (
    QFrame, QVBoxLayout, QLabel, QHBoxLayout, QPushButton, QSizePolicy, QFileDialog
)
from PySide6.QtCore import Qt, Signal

from keyframes.models import Phase, RunState, Stage


class StatusBadge(QLabel):
    """A colored status indicator badge."""

    def __init__(self, state: RunState, parent=None):
        super().__init__(parent)
        self.set_state(state)

    def set_state(self, state: RunState):
        status_map = {
            Phase.IDLE:      ("Idle",        "#666666"),
            Phase.ACQUIRING: ("Loading…",    "#3d7ec9"),
            Phase.READY:     ("Ready",       "#558B6E"),
            Phase.INTAKE:    ("Starting…",   "#f39c12"),
            Phase.ANALYZING: ("Analyzing",   "#27ae60"),
            Phase.SUCCEEDED: ("Complete",    "#558B6E"),
            Phase.FAILED:    ("Error",       "#e74c3c"),
        }
        text, color = status_map.get(state.phase, ("Unknown", "#888888"))
        if state.phase == Phase.ANALYZING:
            text = f"Analyzing {state.progress_percent}%"
        elif state.phase == Phase.FAILED and state.failed_stage is not None:
            text = f"Error ({state.failed_stage.value})"
        self.setText(text)
        self.setStyleSheet(f"""
            QLabel {{
                background-color: {color};
                color: white;
                padding: 4px 12px;
                border-radius: 4px;
                font-size: 8pt;
                font-weight: 600;
            }}
        """)


def action_button(label: str, color: str, hover: str) -> QPushButton:
    """Factory for the small action-bar buttons."""
    btn = QPushButton(label)
    btn.setFixedHeight(30)
    btn.setCursor(Qt.CursorShape.PointingHandCursor)
    btn.setStyleSheet(f"""
        QPushButton {{
            background-color: {color};
            color: white;
            border: none;
            border-radius: 5px;
            padding: 0 16px;
            font-size: 9pt;
            font-weight: 600;
        }}
        QPushButton:hover    {{ background-color: {hover}; }}
        QPushButton:disabled {{ background-color: #3a3a3a; color: #777; }}
    """)
    return btn


class Card(QFrame):
    """Rounded panel with a title/description header; content goes in `body`."""

    _STYLE = """
        QFrame#Card {{
            background-color: {background};
            border: 1px solid {border};
            border-radius: 8px;
        }}
    """

    def __init__(self, title: str, description: str = "", parent=None):
        super().__init__(parent)
        self.setObjectName("Card")
        self.setSizePolicy(QSizePolicy.Policy.Expanding, QSizePolicy.Policy.Fixed)
        self.set_tone(error=False)

        root = QVBoxLayout(self)
        root.setContentsMargins(16, 14, 16, 14)
        root.setSpacing(10)

        self.header = QHBoxLayout()
        self.header.setSpacing(12)

        titles = QVBoxLayout()
        titles.setSpacing(2)
        self.title_label = QLabel(title)
        self.title_label.setStyleSheet(
            "color: #e0e0e0; font-size: 12pt; font-weight: 600; background: transparent;"
        )
        titles.addWidget(self.title_label)
        if description:
            desc = QLabel(description)
            desc.setStyleSheet("color: #888; font-size: 9pt; background: transparent;")
            desc.setWordWrap(True)
            titles.addWidget(desc)

        self.header.addLayout(titles)
        self.header.addStretch()
        root.addLayout(self.header)

        self.body = QVBoxLayout()
        self.body.setSpacing(8)
        root.addLayout(self.body)

    def set_tone(self, error: bool):
        if error:
            self.setStyleSheet(self._STYLE.format(background="#2e1c1c", border="#e74c3c"))
        else:
            self.setStyleSheet(self._STYLE.format(background="#2a2a2a", border="#3a3a3a"))


class DropZone(QFrame):
    """
    Dashed drop target. Dropping files or clicking to browse emits the
    chosen local paths; filtering by media type is left to the caller.
    """

    files_chosen = Signal(list)   # list[Path]

    _STYLE = """
        QFrame#DropZone {{
            background-color: {background};
            border: 2px dashed {border};
            border-radius: 10px;
        }}
    """

    def __init__(self, parent=None):
        super().__init__(parent)
        self.setObjectName("DropZone")
        self.setAcceptDrops(True)
        self.setCursor(Qt.CursorShape.PointingHandCursor)
        self.setMinimumHeight(150)
        self._apply_style(has_file=False, hovering=False)
        self._has_file = False

        layout = QVBoxLayout(self)
        layout.setAlignment(Qt.AlignmentFlag.AlignCenter)
        layout.setSpacing(6)

        self.title = QLabel("Drop your MP4 file here, or click to browse")
        self.title.setAlignment(Qt.AlignmentFlag.AlignCenter)
        self.title.setStyleSheet("color: #e0e0e0; font-size: 12pt; font-weight: 600; background: transparent;")
        layout.addWidget(self.title)

        self.subtitle = QLabel("Only MP4 files are supported")
        self.subtitle.setAlignment(Qt.AlignmentFlag.AlignCenter)
        self.subtitle.setStyleSheet("color: #888; font-size: 9pt; background: transparent;")
        layout.addWidget(self.subtitle)

        self.badge_row = QHBoxLayout()
        self.badge_row.setAlignment(Qt.AlignmentFlag.AlignCenter)
        layout.addLayout(self.badge_row)

    def show_file(self, name: str, size_mb: float):
        self._has_file = True
        self.title.setText(name)
        self.subtitle.setText(f"{size_mb:.2f} MB")
        self._apply_style(has_file=True, hovering=False)

    def _apply_style(self, has_file: bool, hovering: bool):
        if hovering:
            background, border = "#23302a", "#67a382"
        elif has_file:
            background, border = "#1f2a24", "#558B6E"
        else:
            background, border = "#1e1e1e", "#555555"
        self.setStyleSheet(self._STYLE.format(background=background, border=border))

    # ── Click to browse ───────────────────────────────────────────────────────

    def mouseReleaseEvent(self, event):
        if event.button() == Qt.MouseButton.LeftButton and self.isEnabled():
            path, _ = QFileDialog.getOpenFileName(
                self, "Select video", "", "MP4 video (*.mp4);;All files (*)"
            )
            if path:
                self.files_chosen.emit([Path(path)])
        super().mouseReleaseEvent(event)

    # ── Drag and drop ─────────────────────────────────────────────────────────

    def dragEnterEvent(self, event):
        if event.mimeData().hasUrls():
            event.acceptProposedAction()
            self._apply_style(has_file=self._has_file, hovering=True)
        else:
            event.ignore()

    def dragLeaveEvent(self, event):
        self._apply_style(has_file=self._has_file, hovering=False)
        super().dragLeaveEvent(event)

    def dropEvent(self, event):
        self._apply_style(has_file=self._has_file, hovering=False)
        paths = [Path(url.toLocalFile()) for url in event.mimeData().urls() if url.isLocalFile()]
        if paths:
            event.acceptProposedAction()
            self.files_chosen.emit(paths)
        else:
            event.ignore()


def failure_title(state: RunState) -> str:
    titles = {
        Stage.ACQUISITION: "FFmpeg could not be loaded",
        Stage.INTAKE:      "Video could not be read",
        Stage.ANALYSIS:    "Processing Error",
    }
    return titles.get(state.failed_stage, "Processing Error")
