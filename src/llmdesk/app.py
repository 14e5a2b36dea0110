"""Application bootstrap helpers for the llmdesk assistant."""

from __future__ import annotations

import argparse
import asyncio
import contextlib
import logging
import os
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Sequence, TextIO, cast

from .ai.completion import CompletionService
from .ai.errors import DataError
from .ai.orchestration.tool_protocol import JobResult, ToolProtocolEngine
from .ai.prompts import PromptOptions
from .ai.providers import ProviderKind, provider_from_string
from .services.settings import PanelPreferences, PreferencesStore, load_agent_settings
from .session.snapshot import StaticSessionContext
from .ui.job_bridge import AssistantRegistry, AssistantSession
from .utils import logging as logging_utils

__all__ = ["QtRuntime", "configure_logging", "create_qapp", "run_headless", "main"]

_TRUE_VALUES = {"1", "true", "yes", "on", "debug"}
_LOGGER = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_USAGE = 2


@dataclass(slots=True)
class QtRuntime:
    """Container returned by :func:`create_qapp`."""

    app: Any
    loop: asyncio.AbstractEventLoop


class ConsoleView:
    """Minimal :class:`~llmdesk.ui.job_bridge.AssistantView` for headless runs."""

    def __init__(self) -> None:
        self.reply = ""

    def set_busy(self, busy: bool) -> None:
        _LOGGER.debug("Assistant busy=%s", busy)

    def set_status(self, text: str) -> None:
        if text:
            _LOGGER.debug("Assistant status: %s", text)

    def show_reply(self, text: str) -> None:
        self.reply = text


def configure_logging(debug: bool = False, *, force: bool = False, console: bool = True) -> None:
    """Configure structured logging for the application."""

    level = logging.DEBUG if debug else logging.INFO
    log_path = logging_utils.setup_logging(level, console=console, force=force)
    _LOGGER.debug("Logging configured (level=%s, file=%s)", logging.getLevelName(level), log_path or "none")
    _install_qt_message_handler()


def create_qapp() -> QtRuntime:
    """Create a qasync-powered QApplication instance."""

    try:  # Local import to keep the headless path free of PySide6.
        from PySide6.QtWidgets import QApplication
    except ImportError as exc:  # pragma: no cover - depends on desktop stack
        raise RuntimeError("PySide6 must be installed to launch the assistant panel.") from exc

    try:
        from qasync import QEventLoop
    except ImportError as exc:  # pragma: no cover - depends on env setup
        raise RuntimeError("qasync is required to run the async Qt event loop.") from exc

    os.environ.setdefault("QT_ENABLE_HIGHDPI_SCALING", "1")
    app = cast(Any, QApplication.instance() or QApplication(sys.argv))
    app.setApplicationName("llmdesk")
    app.setApplicationDisplayName("llmdesk assistant")

    loop = QEventLoop(app)
    asyncio.set_event_loop(loop)
    try:
        app.aboutToQuit.connect(loop.stop)  # type: ignore[attr-defined]
    except AttributeError:  # pragma: no cover - in case of mock QApplication
        pass
    return QtRuntime(app=app, loop=loop)


def build_engine(service: CompletionService | None = None) -> ToolProtocolEngine:
    return ToolProtocolEngine(service or CompletionService(load_agent_settings()))


def context_from_args(args: argparse.Namespace) -> StaticSessionContext:
    """Build the session context from the ``--*-file`` options."""

    return StaticSessionContext.from_files(
        dataset=args.dataset_file,
        error=args.error_file,
        selection=args.selection_file,
        script=args.script_file,
        log=args.log_file,
        model_simple=args.model_file,
        model_full=args.model_full_file,
    )


def run_headless(
    prompt: str,
    options: PromptOptions,
    provider: ProviderKind,
    context: StaticSessionContext,
    *,
    engine: ToolProtocolEngine | None = None,
    stdout: TextIO | None = None,
    stderr: TextIO | None = None,
) -> int:
    """Run one job through the session bridge on a private asyncio loop."""

    out = stdout or sys.stdout
    err = stderr or sys.stderr
    if not prompt:
        print("Missing prompt", file=err)
        return EXIT_FAILURE

    loop = asyncio.new_event_loop()
    try:
        finished: asyncio.Future[JobResult] = loop.create_future()
        session = AssistantSession(
            engine=engine or build_engine(),
            context_source=context,
            view=ConsoleView(),
            loop=loop,
            on_finished=finished.set_result,
        )
        if not session.ask(prompt, options, provider):
            print("Assistant is not accepting requests", file=err)
            return EXIT_FAILURE
        result = loop.run_until_complete(finished)
    finally:
        _drain_event_loop(loop)
        loop.close()

    if result.error:
        print(result.error, file=err)
        return EXIT_FAILURE
    # reply_text already carries the labelled proposed insert.
    text = result.reply_text
    out.write(text if text.endswith("\n") else text + "\n")
    return EXIT_OK


def run_panel(args: argparse.Namespace, provider: ProviderKind) -> int:
    """Launch the Qt assistant panel and block until it closes."""

    settings_path = args.settings_path or os.environ.get("LLMDESK_SETTINGS_PATH")
    store = PreferencesStore(Path(settings_path).expanduser() if settings_path else None)
    prefs = store.load()
    if provider is not ProviderKind.NONE:
        prefs.provider = provider.value

    runtime = create_qapp()
    from .ui.assistant_panel import AssistantPanel

    def _persist(updated: PanelPreferences) -> None:
        store.save(updated)

    registry = AssistantRegistry()
    panel = AssistantPanel(prefs, on_close=_persist)
    context = context_from_args(args)
    engine = build_engine()
    session = registry.present_or_create(
        lambda: AssistantSession(
            engine=engine,
            context_source=context,
            view=panel,
            loop=runtime.loop,
            registry=registry,
        )
    )
    panel.attach(session)
    panel.show()

    loop = runtime.loop
    try:
        loop.run_forever()
    except KeyboardInterrupt:  # pragma: no cover - manual shutdown path
        _LOGGER.info("Shutdown requested by user.")
    finally:
        session.close()
        _drain_event_loop(loop)
        loop.close()
    return EXIT_OK


def main(argv: Sequence[str] | None = None) -> None:
    """Entry point invoked by the `llmdesk` console script."""

    args = _parse_cli_args(argv)

    debug = _env_flag("LLMDESK_DEBUG", default=False)
    configure_logging(debug, console=args.ask is None or debug)

    try:
        provider = provider_from_string(args.provider)
    except DataError as exc:
        print(exc.message, file=sys.stderr)
        raise SystemExit(EXIT_USAGE) from exc

    if args.ask is not None:
        options = PromptOptions(
            include_dataset=args.include_dataset,
            include_last_error=args.include_last_error,
            include_script=args.include_script,
            tools_enabled=not args.no_tools,
        )
        try:
            context = context_from_args(args)
        except OSError as exc:
            print(f"Unable to read context file: {exc}", file=sys.stderr)
            raise SystemExit(EXIT_FAILURE) from exc
        raise SystemExit(run_headless(args.ask, options, provider, context))

    raise SystemExit(run_panel(args, provider))


def _env_flag(name: str, *, default: bool = False) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in _TRUE_VALUES


def _drain_event_loop(loop: asyncio.AbstractEventLoop) -> None:
    """Cancel outstanding tasks and shutdown async machinery before closing."""

    if loop.is_closed():
        return

    async def _cleanup() -> None:
        current_task = None
        with contextlib.suppress(RuntimeError):
            current_task = asyncio.current_task(loop=loop)

        tasks = [
            task
            for task in asyncio.all_tasks(loop)
            if not task.done() and task is not current_task
        ]
        if tasks:
            _LOGGER.debug("Canceling %s pending asyncio task(s) before shutdown.", len(tasks))
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)

        with contextlib.suppress(RuntimeError, NotImplementedError):
            await loop.shutdown_asyncgens()

    try:
        loop.run_until_complete(_cleanup())
    except RuntimeError as exc:  # pragma: no cover - defensive guard
        _LOGGER.debug("Unable to drain asyncio loop: %s", exc)


def _install_qt_message_handler() -> None:
    """Redirect Qt warnings to the Python logging stack when available."""

    try:
        from PySide6.QtCore import QtMsgType, qInstallMessageHandler
    except ImportError:  # pragma: no cover - PySide6 optional for headless use
        return

    level_map = {
        QtMsgType.QtDebugMsg: logging.DEBUG,
        QtMsgType.QtInfoMsg: logging.INFO,
        QtMsgType.QtWarningMsg: logging.WARNING,
        QtMsgType.QtCriticalMsg: logging.ERROR,
        QtMsgType.QtFatalMsg: logging.CRITICAL,
    }

    def _handler(mode, context, message):  # type: ignore[no-untyped-def]
        del context
        level = level_map.get(mode, logging.INFO)
        logging.getLogger("PySide6").log(level, message)

    qInstallMessageHandler(_handler)


def _parse_cli_args(argv: Sequence[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="llmdesk",
        description="Ask a local LLM agent CLI (codex or gemini) about the current session.",
    )
    parser.add_argument("--ask", metavar="PROMPT", help="Run one question headless and print the reply.")
    parser.add_argument(
        "--provider",
        default="",
        metavar="NAME",
        help="Agent to use: codex, gemini or none (defaults to LLMDESK_LLM_PROVIDER).",
    )
    parser.add_argument("--no-tools", action="store_true", help="Disable the read-only tool round.")
    parser.add_argument("--include-dataset", action="store_true", help="Embed the dataset summary.")
    parser.add_argument("--include-last-error", action="store_true", help="Embed the last error message.")
    parser.add_argument("--include-script", action="store_true", help="Embed the script selection or text.")
    parser.add_argument("--settings-path", metavar="PATH", help="Override ~/.llmdesk/settings.json.")

    context = parser.add_argument_group("session context")
    for option, help_text in (
        ("--dataset-file", "Dataset summary text."),
        ("--error-file", "Last error message text."),
        ("--script-file", "Full script text."),
        ("--selection-file", "Selected script text."),
        ("--log-file", "Command log text."),
        ("--model-file", "Last model summary."),
        ("--model-full-file", "Last model summary, full style."),
    ):
        context.add_argument(option, type=Path, metavar="FILE", help=help_text)
    return parser.parse_args(argv)
