from pathlib import Path

from PySide6.QtWidgets import (
    QWidget, QVBoxLayout, QHBoxLayout, QLabel, QSlider, QProgressBar,
    QPlainTextEdit, QScrollArea, QFrame, QFileDialog, QMessageBox
)
from PySide6.QtCore import Qt
from PySide6.QtGui import QFontDatabase

from keyframes.controller import ProcessingController
from keyframes.models import (
    SCENECUT_RANGE, THREADS_RANGE, Phase, RunState, SourceAsset, first_accepted
)
from keyframes_ui.pages._widgets import Card, DropZone, StatusBadge, action_button, failure_title


class AnalyzerPage(QWidget):
    """
    The single working page: engine status, parameters, file intake,
    live progress and the resulting keyframes log.
    Everything here is rendered from controller.state.
    """

    def __init__(self, controller: ProcessingController, parent=None):
        super().__init__(parent)
        self.controller = controller

        self.controller.state_changed.connect(self._render)
        self.controller.asset_changed.connect(self._on_asset_changed)
        self.controller.parameters_changed.connect(self._on_parameters_changed)

        root = QVBoxLayout(self)
        root.setContentsMargins(0, 0, 0, 0)
        root.setSpacing(0)

        # ── Header bar ────────────────────────────────────────────────────────
        header_bar = QWidget()
        header_bar.setFixedHeight(56)
        header_bar.setStyleSheet("background-color: #1e1e1e; border-bottom: 1px solid #333;")
        header_layout = QHBoxLayout(header_bar)
        header_layout.setContentsMargins(16, 0, 16, 0)

        page_title = QLabel("Keyframe Processor")
        page_title.setStyleSheet("color: #e0e0e0; font-size: 14pt; font-weight: 700;")
        header_layout.addWidget(page_title)
        header_layout.addStretch()

        root.addWidget(header_bar)

        # ── Scroll area ───────────────────────────────────────────────────────
        scroll = QScrollArea()
        scroll.setWidgetResizable(True)
        scroll.setFrameShape(QFrame.Shape.NoFrame)
        scroll.setStyleSheet("background-color: #121212;")
        root.addWidget(scroll)

        canvas = QWidget()
        canvas.setStyleSheet("background-color: #121212;")
        canvas_layout = QHBoxLayout(canvas)
        canvas_layout.setContentsMargins(0, 16, 0, 16)
        scroll.setWidget(canvas)

        column = QWidget()
        column.setStyleSheet("background: transparent;")
        self._column = QVBoxLayout(column)
        self._column.setSpacing(12)
        self._column.setContentsMargins(0, 0, 0, 0)
        self._column.setAlignment(Qt.AlignmentFlag.AlignTop)

        canvas_layout.addStretch(1)
        canvas_layout.addWidget(column, 8)
        canvas_layout.addStretch(1)

        self._build_engine_card()
        self._build_config_card()
        self._build_input_card()
        self._build_error_card()
        self._build_result_card()
        self._column.addStretch()

        self._render(self.controller.state)

    # ── UI construction ───────────────────────────────────────────────────────

    def _build_engine_card(self):
        card = Card("FFmpeg Status", "FFmpeg is loaded automatically for video processing")
        self._engine_badge = StatusBadge(self.controller.state)
        card.header.addWidget(self._engine_badge)

        self._status_label = QLabel()
        self._status_label.setWordWrap(True)
        self._status_label.setStyleSheet(
            "color: #bbbbbb; font-size: 9pt; background: #1e1e1e; "
            "border: 1px solid #333; border-radius: 4px; padding: 8px;"
        )
        card.body.addWidget(self._status_label)

        self._retry_btn = action_button("Retry Loading FFmpeg", "#3d7ec9", "#4f8fd8")
        self._retry_btn.clicked.connect(self.controller.retry_acquisition)
        card.body.addWidget(self._retry_btn)

        self._column.addWidget(card)

    def _build_config_card(self):
        card = Card("Processing Configuration", "Adjust FFmpeg processing parameters")
        params = self.controller.parameters

        self._threads_label = QLabel()
        self._threads_slider = self._slider(THREADS_RANGE, params.threads)
        self._threads_slider.valueChanged.connect(self._on_threads_changed)

        self._scenecut_label = QLabel()
        self._scenecut_slider = self._slider(SCENECUT_RANGE, params.scenecut)
        self._scenecut_slider.valueChanged.connect(self._on_scenecut_changed)

        for label, slider in (
            (self._threads_label, self._threads_slider),
            (self._scenecut_label, self._scenecut_slider),
        ):
            label.setStyleSheet("color: #cccccc; font-size: 10pt; background: transparent;")
            card.body.addWidget(label)
            card.body.addWidget(slider)

        hint = QLabel("Controls scene change detection sensitivity (0 = disabled)")
        hint.setStyleSheet("color: #777; font-size: 8pt; background: transparent;")
        card.body.addWidget(hint)

        self._update_parameter_labels()
        self._column.addWidget(card)

    def _build_input_card(self):
        card = Card("Select Video", "Drag and drop an MP4 file or click to select")

        self._drop_zone = DropZone()
        self._drop_zone.files_chosen.connect(self._on_files_chosen)
        card.body.addWidget(self._drop_zone)

        self._run_badge = StatusBadge(self.controller.state)
        self._drop_zone.badge_row.addWidget(self._run_badge)

        self._progress_bar = QProgressBar()
        self._progress_bar.setStyleSheet("""
            QProgressBar {
                border: 1px solid #444;
                border-radius: 4px;
                background-color: #1a1a1a;
                text-align: center;
                height: 18px;
            }
            QProgressBar::chunk { background-color: #558B6E; }
        """)
        self._progress_bar.setRange(0, 100)
        card.body.addWidget(self._progress_bar)

        btn_row = QHBoxLayout()
        btn_row.addStretch()
        self._rerun_btn = action_button("Analyze Again", "#558B6E", "#67a382")
        self._rerun_btn.clicked.connect(self.controller.rerun)
        btn_row.addWidget(self._rerun_btn)
        self._cancel_btn = action_button("Cancel", "#c0392b", "#e74c3c")
        self._cancel_btn.clicked.connect(self.controller.cancel)
        btn_row.addWidget(self._cancel_btn)
        card.body.addLayout(btn_row)

        self._column.addWidget(card)

    def _build_error_card(self):
        self._error_card = Card("Processing Error", "Something went wrong during video processing")
        self._error_card.set_tone(error=True)
        self._error_label = QLabel()
        self._error_label.setWordWrap(True)
        self._error_label.setTextInteractionFlags(Qt.TextInteractionFlag.TextSelectableByMouse)
        self._error_label.setStyleSheet("color: #e74c3c; font-size: 9pt; background: transparent;")
        self._error_card.body.addWidget(self._error_label)
        self._column.addWidget(self._error_card)

    def _build_result_card(self):
        self._result_card = Card("Keyframes", "FFmpeg keyframes statistics")

        self._log_view = QPlainTextEdit()
        self._log_view.setReadOnly(True)
        self._log_view.setMinimumHeight(260)
        self._log_view.setFont(QFontDatabase.systemFont(QFontDatabase.SystemFont.FixedFont))
        self._log_view.setStyleSheet(
            "background-color: #111; color: #6fdc8c; border: 1px solid #333; border-radius: 6px;"
        )
        self._result_card.body.addWidget(self._log_view)

        save_btn = action_button("Save Keyframes File…", "#558B6E", "#67a382")
        save_btn.clicked.connect(self._save_log)
        self._result_card.body.addWidget(save_btn)

        self._column.addWidget(self._result_card)

    @staticmethod
    def _slider(bounds: tuple[int, int], value: int) -> QSlider:
        slider = QSlider(Qt.Orientation.Horizontal)
        slider.setRange(*bounds)
        slider.setValue(value)
        return slider

    # ── Rendering ─────────────────────────────────────────────────────────────

    def _render(self, state: RunState):
        engine_state = RunState(phase=Phase.READY) if self.controller.engine_ready else state
        self._engine_badge.set_state(engine_state)
        self._run_badge.set_state(state)
        self._status_label.setText(state.status_message or "—")

        self._retry_btn.setVisible(self.controller.can_retry_acquisition)

        editable = self.controller.can_edit_parameters
        self._threads_slider.setEnabled(editable)
        self._scenecut_slider.setEnabled(editable)

        self._drop_zone.setEnabled(self.controller.can_select_asset)
        self._run_badge.setVisible(self.controller.asset is not None)

        self._progress_bar.setVisible(state.in_flight)
        self._progress_bar.setValue(state.progress_percent)
        self._cancel_btn.setVisible(state.phase == Phase.ANALYZING)
        self._rerun_btn.setVisible(
            state.terminal and self.controller.asset is not None and self.controller.can_select_asset
        )

        self._error_card.setVisible(state.is_error)
        if state.is_error:
            self._error_card.title_label.setText(failure_title(state))
            self._error_label.setText(state.status_message)

        self._result_card.setVisible(state.result_log is not None)
        if state.result_log is not None and self._log_view.toPlainText() != state.result_log:
            self._log_view.setPlainText(state.result_log)

    def _update_parameter_labels(self):
        params = self.controller.parameters
        self._threads_label.setText(f"Threads: {params.threads}")
        self._scenecut_label.setText(f"Scene Cut Threshold: {params.scenecut}")

    # ── Controller → UI ───────────────────────────────────────────────────────

    def _on_asset_changed(self, asset: SourceAsset):
        self._drop_zone.show_file(asset.name, asset.size_mb)

    def _on_parameters_changed(self, _params):
        self._update_parameter_labels()

    # ── UI → controller ───────────────────────────────────────────────────────

    def _on_files_chosen(self, paths: list[Path]):
        assets = []
        for path in paths:
            try:
                assets.append(SourceAsset.from_path(path))
            except OSError:
                continue
        asset = first_accepted(assets)
        if asset is not None:
            self.controller.select_asset(asset)

    def _on_threads_changed(self, value: int):
        if not self.controller.set_parameters(threads=value):
            self._threads_slider.setValue(self.controller.parameters.threads)

    def _on_scenecut_changed(self, value: int):
        if not self.controller.set_parameters(scenecut=value):
            self._scenecut_slider.setValue(self.controller.parameters.scenecut)

    def _save_log(self):
        path, _ = QFileDialog.getSaveFileName(
            self, "Save keyframes file", self.controller.log_filename(),
            "Log files (*.log);;All files (*)",
        )
        if not path:
            return
        try:
            self.controller.export_log(Path(path))
        except (OSError, ValueError) as exc:
            QMessageBox.warning(self, "Save failed", f"Could not save the keyframes file:\n{exc}")
