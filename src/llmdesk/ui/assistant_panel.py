"""Qt assistant panel: prompt entry, context toggles, and the reply view."""

from __future__ import annotations

import logging
from typing import Callable

from PySide6.QtGui import QCloseEvent, QGuiApplication
from PySide6.QtWidgets import (
    QCheckBox,
    QComboBox,
    QHBoxLayout,
    QLabel,
    QMessageBox,
    QPlainTextEdit,
    QPushButton,
    QSplitter,
    QVBoxLayout,
    QWidget,
)
from PySide6.QtCore import Qt

from ..ai.prompts import PromptOptions
from ..ai.providers import ProviderKind
from ..services.settings import PanelPreferences
from .job_bridge import AssistantSession

__all__ = ["AssistantPanel"]

_LOGGER = logging.getLogger(__name__)

_PROVIDERS: tuple[ProviderKind, ...] = (ProviderKind.CODEX, ProviderKind.GEMINI)

InsertHandler = Callable[[str], None]


class AssistantPanel(QWidget):
    """Widget implementing the :class:`~llmdesk.ui.job_bridge.AssistantView` protocol."""

    def __init__(
        self,
        preferences: PanelPreferences | None = None,
        *,
        insert_handler: InsertHandler | None = None,
        on_close: Callable[[PanelPreferences], None] | None = None,
        parent: QWidget | None = None,
    ) -> None:
        super().__init__(parent)
        self._session: AssistantSession | None = None
        self._insert_handler = insert_handler
        self._on_close = on_close
        self.setWindowTitle("AI assistant")
        self.resize(780, 520)
        self._build_ui(preferences or PanelPreferences())

    # ------------------------------------------------------------------
    # Layout
    # ------------------------------------------------------------------
    def _build_ui(self, prefs: PanelPreferences) -> None:
        layout = QVBoxLayout(self)

        options_row = QHBoxLayout()
        options_row.addWidget(QLabel("Provider:"))
        self.provider_combo = QComboBox()
        for kind in _PROVIDERS:
            self.provider_combo.addItem(kind.value)
        index = self.provider_combo.findText(prefs.provider)
        self.provider_combo.setCurrentIndex(max(0, index))
        options_row.addWidget(self.provider_combo)

        self.include_dataset = QCheckBox("Include dataset summary")
        self.include_dataset.setChecked(prefs.include_dataset)
        self.include_last_error = QCheckBox("Include last error")
        self.include_last_error.setChecked(prefs.include_last_error)
        self.include_script = QCheckBox("Include script selection")
        self.include_script.setChecked(prefs.include_script)
        self.enable_tools = QCheckBox("Enable tools (read-only)")
        self.enable_tools.setChecked(prefs.tools_enabled)
        for toggle in (self.include_dataset, self.include_last_error, self.include_script, self.enable_tools):
            options_row.addWidget(toggle)
        options_row.addStretch(1)
        layout.addLayout(options_row)

        splitter = QSplitter(Qt.Orientation.Vertical)
        self.prompt_edit = QPlainTextEdit()
        self.prompt_edit.setPlaceholderText("Ask the assistant…")
        self.reply_view = QPlainTextEdit()
        self.reply_view.setReadOnly(True)
        splitter.addWidget(self.prompt_edit)
        splitter.addWidget(self.reply_view)
        splitter.setSizes([160, 360])
        layout.addWidget(splitter, 1)

        buttons = QHBoxLayout()
        self.ask_button = QPushButton("Ask")
        self.ask_button.clicked.connect(self._handle_ask)
        self.copy_button = QPushButton("Copy reply")
        self.copy_button.clicked.connect(self._handle_copy)
        self.insert_button = QPushButton("Insert into script")
        self.insert_button.clicked.connect(self._handle_insert)
        for button in (self.ask_button, self.copy_button, self.insert_button):
            buttons.addWidget(button)
        buttons.addStretch(1)
        self.status_label = QLabel("")
        buttons.addWidget(self.status_label)
        layout.addLayout(buttons)

    # ------------------------------------------------------------------
    # Session wiring
    # ------------------------------------------------------------------
    def attach(self, session: AssistantSession) -> None:
        self._session = session

    @property
    def session(self) -> AssistantSession | None:
        return self._session

    def selected_provider(self) -> ProviderKind:
        index = self.provider_combo.currentIndex()
        if 0 <= index < len(_PROVIDERS):
            return _PROVIDERS[index]
        return ProviderKind.CODEX

    def prompt_options(self) -> PromptOptions:
        return PromptOptions(
            include_dataset=self.include_dataset.isChecked(),
            include_last_error=self.include_last_error.isChecked(),
            include_script=self.include_script.isChecked(),
            tools_enabled=self.enable_tools.isChecked(),
        )

    def preferences(self) -> PanelPreferences:
        options = self.prompt_options()
        return PanelPreferences(
            provider=self.selected_provider().value,
            include_dataset=options.include_dataset,
            include_last_error=options.include_last_error,
            include_script=options.include_script,
            tools_enabled=options.tools_enabled,
        )

    # ------------------------------------------------------------------
    # AssistantView
    # ------------------------------------------------------------------
    def set_busy(self, busy: bool) -> None:
        for button in (self.ask_button, self.copy_button, self.insert_button):
            button.setEnabled(not busy)

    def set_status(self, text: str) -> None:
        self.status_label.setText(text)

    def show_reply(self, text: str) -> None:
        self.reply_view.setPlainText(text)

    # ------------------------------------------------------------------
    # Button handlers
    # ------------------------------------------------------------------
    def _handle_ask(self) -> None:
        if self._session is None:
            return
        self._session.ask(
            self.prompt_edit.toPlainText(),
            self.prompt_options(),
            self.selected_provider(),
        )

    def _handle_copy(self) -> None:
        if self._session is None or not self._session.last_reply:
            return
        QGuiApplication.clipboard().setText(self._session.last_reply)

    def _handle_insert(self) -> None:
        if self._session is None:
            return
        text = self._session.text_to_insert()
        if not text:
            return
        if self._insert_handler is None:
            QMessageBox.information(self, "Insert text", "No active script editor window was found.")
            return
        answer = QMessageBox.question(
            self,
            "Insert text",
            "Insert the assistant reply into the active script editor?",
        )
        if answer != QMessageBox.StandardButton.Yes:
            return
        self._insert_handler(text)

    def closeEvent(self, event: QCloseEvent) -> None:  # noqa: N802 - Qt override
        if self._session is not None:
            self._session.close()
        if self._on_close is not None:
            try:
                self._on_close(self.preferences())
            except OSError:
                _LOGGER.warning("Unable to persist assistant preferences", exc_info=True)
        super().closeEvent(event)
