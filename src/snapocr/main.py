#!/usr/bin/env python3
# src/snapocr/main.py

"""
Main entry point for the SnapOCR application.

Given image or PDF paths, SnapOCR recognizes each one in turn, prints the text
and exits. Without paths it keeps running in the background: it processes the
clipboard once on startup (if enabled) and again every time the global hotkey
is pressed.
"""

import argparse
import logging
import signal
import sys
from pathlib import Path

from PyQt6.QtCore import QCoreApplication, QObject, QTimer, pyqtSignal
from pynput import keyboard

from snapocr.app_logic.context import OcrContext
from snapocr.app_logic.state_machine import PipelineOutcome


def setup_logging(level: str = "INFO"):
    """Configures basic logging for the application."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        stream=sys.stdout,
        force=True,
    )
    # Reduce verbosity from libraries that use logging
    for name in ("pynput", "PIL", "easyocr"):
        logging.getLogger(name).setLevel(logging.WARNING)


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="snapocr", description="Offline OCR for clipboard images, files and PDFs.")
    parser.add_argument("paths", nargs="*", type=Path, help="Image or PDF files to recognize, then exit.")
    parser.add_argument("--config-dir", type=Path, default=None, help="Directory for settings, history and images.")
    parser.add_argument("--log-level", default=None, help="Overrides the log_level setting.")
    parser.add_argument("--no-hotkey", action="store_true", help="Do not register the global hotkey.")
    return parser.parse_args(argv)


class HotkeyBridge(QObject):
    """
    Carries hotkey presses from the pynput listener thread into the Qt event loop.
    """
    activated = pyqtSignal()


def print_outcome(outcome: PipelineOutcome):
    confidence = "unknown" if outcome.confidence is None else f"{outcome.confidence:.1f}"
    logging.info(f"Recognized text from {outcome.source.origin.value} image (confidence: {confidence}).")
    print(outcome.text, flush=True)


def run_batch(app: QCoreApplication, context: OcrContext, paths) -> int:
    """Processes each path in turn and quits the event loop afterwards."""
    orchestrator = context.orchestrator
    pending = list(paths)
    failures = []

    def start_next(succeeded: bool = True):
        if not succeeded:
            failures.append(True)
        while pending:
            path = pending.pop(0)
            if orchestrator.process_file(path):
                return
            logging.error(f"Skipping '{path}': not a readable image or document.")
            failures.append(True)
        app.quit()

    orchestrator.run_finished.connect(start_next)
    QTimer.singleShot(0, start_next)
    app.exec()
    return 1 if failures else 0


def run_background(app: QCoreApplication, context: OcrContext, use_hotkey: bool) -> int:
    """Runs the clipboard hotkey loop until the process is interrupted."""
    orchestrator = context.orchestrator
    hotkey = context.settings.get("hotkey")
    bridge = HotkeyBridge()
    bridge.activated.connect(orchestrator.process_clipboard)

    def on_hotkey_activate():
        """
        Executed on the listener thread when the registered hotkey is pressed.
        """
        logging.info(f"Hotkey '{hotkey}' activated. Processing clipboard.")
        bridge.activated.emit()

    hotkey_listener = None
    if use_hotkey:
        # pynput's GlobalHotKeys runs in its own thread, listening for key combinations
        # system-wide without blocking our main application event loop.
        hotkey_listener = keyboard.GlobalHotKeys({hotkey: on_hotkey_activate})

    if context.settings.get("auto_process_clipboard"):
        QTimer.singleShot(0, orchestrator.process_clipboard)

    try:
        if hotkey_listener is not None:
            hotkey_listener.start()
            logging.info(f"Global hotkey listener started. Listening for hotkey: {hotkey}")
        # Blocks until the application quits.
        return app.exec()
    finally:
        # Ensure the hotkey listener thread is stopped when the application exits.
        if hotkey_listener is not None and hotkey_listener.is_alive():
            hotkey_listener.stop()
            logging.info("Global hotkey listener stopped.")


def main(argv=None):
    """Main execution function for SnapOCR."""
    args = parse_args(argv)
    setup_logging(args.log_level or "INFO")

    app = QCoreApplication(sys.argv[:1])
    # Let Ctrl+C terminate the event loop.
    signal.signal(signal.SIGINT, signal.SIG_DFL)

    context = OcrContext(config_dir=args.config_dir)
    try:
        context.init()
    except Exception as e:
        logging.error(f"Failed to initialize SnapOCR: {e}", exc_info=True)
        logging.error("Make sure the configured OCR backend and its language data are installed.")
        sys.exit(1)

    if not args.log_level:
        setup_logging(context.settings.get("log_level"))
    logging.info("SnapOCR application starting...")

    orchestrator = context.orchestrator
    orchestrator.result_ready.connect(print_outcome)
    orchestrator.warning_raised.connect(lambda message: logging.warning(message))
    orchestrator.error_occurred.connect(lambda message: logging.error(message))

    try:
        if args.paths:
            exit_code = run_batch(app, context, args.paths)
        else:
            exit_code = run_background(app, context, use_hotkey=not args.no_hotkey)
    finally:
        context.shutdown()
        logging.info("SnapOCR application has shut down.")

    sys.exit(exit_code)


if __name__ == '__main__':
    main()
