"""
Confirmation prompts for self-updates.

On an interactive terminal a small Textual dialog asks the question; when
stdin/stdout are not a TTY the prompt falls back to a plain ``input()`` line.
A timeout always counts as "no".
"""

from __future__ import annotations

import logging
import math
import sys
import threading

logger = logging.getLogger(__name__)

_YES = ("y", "yes")


def auto_approve(prompt: str) -> bool:
    """Confirm callable that approves every update (``--yes`` / service use)."""
    logger.info("[Confirm] Auto-approved: %s", prompt.splitlines()[0] if prompt else "")
    return True


def ask_yes_no(prompt: str, timeout: float = 0) -> bool:
    """Ask *prompt*; ``True`` only on an explicit yes within *timeout* seconds.

    *timeout* of 0 waits indefinitely.
    """
    if sys.stdin.isatty() and sys.stdout.isatty():
        answer = _textual_confirm(prompt, timeout)
    else:
        answer = _line_confirm(prompt, timeout)
    logger.info("[Confirm] %s -> %s", prompt.splitlines()[0] if prompt else "",
                "yes" if answer else "no")
    return answer


def _line_confirm(prompt: str, timeout: float) -> bool:
    """Plain ``input()`` prompt, read on a helper thread so it can time out."""
    answer: list[str] = []

    def _read():
        try:
            answer.append(input(f"{prompt} [y/N]: "))
        except EOFError:
            answer.append("")

    reader = threading.Thread(target=_read, daemon=True)
    reader.start()
    reader.join(timeout if timeout > 0 else None)
    if reader.is_alive():
        print()
        logger.warning("[Confirm] No answer within %ss, treating as no", timeout)
        return False
    return bool(answer) and answer[0].strip().lower() in _YES


def _confirm_app(prompt: str, timeout: float):
    """Build the Textual yes/no dialog; its answer is ``app._result`` after exit."""
    from textual.app import App, ComposeResult
    from textual.binding import Binding
    from textual.containers import Horizontal, Vertical
    from textual.widgets import Button, Footer, Static
    from textual import on

    class ConfirmApp(App):
        CSS = """
        Screen {
            align: center middle;
        }
        #dialog {
            width: 80%;
            max-width: 100;
            height: auto;
            border: thick #ff8700;
            padding: 1 2;
        }
        #title-bar {
            text-align: center;
            text-style: bold;
            color: #ff8700;
            margin: 0 0 1 0;
        }
        #countdown {
            text-align: center;
            color: #888;
        }
        #buttons {
            height: auto;
            align: center middle;
            margin: 1 0 0 0;
        }
        #buttons Button {
            margin: 0 2;
        }
        """

        BINDINGS = [
            Binding("y", "answer_yes", "Yes"),
            Binding("n", "answer_no", "No"),
            Binding("escape", "answer_no", "Cancel"),
        ]

        def __init__(self, question: str, seconds: float) -> None:
            super().__init__()
            self._question = question
            self._timeout = seconds if seconds > 0 else 0
            self._remaining = math.ceil(self._timeout)
            self._result = False

        def compose(self) -> ComposeResult:
            with Vertical(id="dialog"):
                yield Static(" ━━  selfpatch — Confirm Update  ━━ ", id="title-bar")
                yield Static(self._question, id="question")
                yield Static("", id="countdown")
                with Horizontal(id="buttons"):
                    yield Button("✔ Apply", id="yes-btn", variant="success")
                    yield Button("✕ Reject", id="no-btn", variant="error")
            yield Footer()

        def on_mount(self) -> None:
            if self._timeout:
                self._update_countdown()
                self.set_interval(1.0, self._tick)
                self.set_timer(self._timeout, self._time_out)

        def _update_countdown(self) -> None:
            self.query_one("#countdown", Static).update(
                f"Rejecting automatically in {self._remaining}s"
            )

        def _tick(self) -> None:
            if self._remaining > 1:
                self._remaining -= 1
                self._update_countdown()

        def _time_out(self) -> None:
            logger.warning("[Confirm] No answer before timeout, treating as no")
            self._result = False
            self.exit()

        @on(Button.Pressed, "#yes-btn")
        def on_yes(self, event: Button.Pressed) -> None:
            self.action_answer_yes()

        @on(Button.Pressed, "#no-btn")
        def on_no(self, event: Button.Pressed) -> None:
            self.action_answer_no()

        def action_answer_yes(self) -> None:
            self._result = True
            self.exit()

        def action_answer_no(self) -> None:
            self._result = False
            self.exit()

    return ConfirmApp(prompt, timeout)


def _textual_confirm(prompt: str, timeout: float) -> bool:
    """Yes/No dialog built with Textual."""
    app = _confirm_app(prompt, timeout)
    app.run()
    return app._result
