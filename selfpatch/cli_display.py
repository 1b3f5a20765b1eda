import logging
import os
import re
import shutil
import sys
from datetime import datetime


def setup_logger(log_dir: str = ".selfpatch/logs") -> logging.Logger:
    """Creates a file logger. All verbose output goes here."""
    os.makedirs(log_dir, exist_ok=True)
    # Keep log files out of `git status` so they never make the tree dirty
    ignore_file = os.path.join(log_dir, ".gitignore")
    if not os.path.exists(ignore_file):
        with open(ignore_file, "w", encoding="utf-8") as f:
            f.write("*\n")
    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    log_file = os.path.join(log_dir, f"selfpatch_{timestamp}.log")

    logger = logging.getLogger("selfpatch")
    logger.setLevel(logging.DEBUG)

    # File handler captures everything
    fh = logging.FileHandler(log_file, encoding="utf-8")
    fh.setLevel(logging.DEBUG)
    fh.setFormatter(logging.Formatter(
        "%(asctime)s [%(levelname)s] %(name)s: %(message)s", datefmt="%H:%M:%S"
    ))
    logger.addHandler(fh)

    return logger


class CLIDisplay:
    """Short status lines and outcome summaries for the ``selfpatch`` CLI."""

    ICONS = {
        "ok":      "✔",
        "failed":  "✘",
        "skipped": "–",
        "info":    "•",
    }

    # ── Color palette ──
    C_ORANGE = "\033[38;5;208m"
    C_CYAN   = "\033[38;5;81m"
    C_GREEN  = "\033[38;5;114m"
    C_RED    = "\033[38;5;203m"
    C_YELLOW = "\033[38;5;221m"
    C_DIM    = "\033[38;5;243m"
    C_BOLD   = "\033[1m"
    C_RESET  = "\033[0m"

    _ANSI_RE = re.compile(r'\033\[[0-9;]*m')

    def __init__(self, stream=None, color: bool | None = None):
        self.stream = stream or sys.stdout
        if color is None:
            color = hasattr(self.stream, "isatty") and self.stream.isatty() \
                and os.environ.get("NO_COLOR") is None
        self.color = color
        self.term_width = shutil.get_terminal_size((80, 24)).columns

    def _c(self, code: str, text: str) -> str:
        if not self.color:
            return text
        return f"{code}{text}{self.C_RESET}"

    def _write(self, line: str = ""):
        if not self.color:
            line = self._ANSI_RE.sub("", line)
        self.stream.write(line + "\n")
        self.stream.flush()

    def header(self, title: str):
        bar = "═" * min(self.term_width, 60)
        self._write(self._c(self.C_ORANGE, bar))
        self._write("  " + self._c(self.C_BOLD, title))
        self._write(self._c(self.C_ORANGE, bar))

    def info(self, message: str):
        self._write(f"  {self._c(self.C_DIM, self.ICONS['info'])} {message}")

    def success(self, message: str):
        self._write(f"  {self._c(self.C_GREEN, self.ICONS['ok'])} {message}")

    def error(self, message: str):
        self._write(f"  {self._c(self.C_RED, self.ICONS['failed'])} {message}")

    def warning(self, message: str):
        self._write(f"  {self._c(self.C_YELLOW, '!')} {message}")

    def show_apply_result(self, result):
        """One line per file entry of an :class:`ApplyResult`."""
        for outcome in result.outcomes:
            if outcome.status == "applied":
                icon = self._c(self.C_GREEN, self.ICONS["ok"])
            elif outcome.status == "skipped":
                icon = self._c(self.C_DIM, self.ICONS["skipped"])
            else:
                icon = self._c(self.C_RED, self.ICONS["failed"])
            line = f"    {icon} {outcome.action:<7} {outcome.path}"
            if outcome.error is not None:
                line += self._c(self.C_DIM, f"  ({outcome.error})")
            self._write(line)

    def show_outcome(self, outcome):
        """Summarize an :class:`UpdateOutcome` from the self-update pipeline."""
        path = outcome.update.file_path if outcome.update else "?"
        trail = " → ".join(s.value for s in outcome.history)
        self.info(f"Update for {self._c(self.C_CYAN, path)}: {trail}")
        if outcome.apply_result is not None:
            self.show_apply_result(outcome.apply_result)
        if outcome.validation is not None and outcome.validation.details:
            self.info(f"Validation: {outcome.validation.details.strip()[:500]}")
        if outcome.succeeded:
            commit = outcome.commit
            ref = f" ({commit.commit_hash[:10]})" if commit and commit.commit_hash else ""
            self.success(f"Committed{ref}")
            if outcome.restart_error is not None:
                self.warning(f"Restart failed: {outcome.restart_error}")
        else:
            reason = f": {outcome.error}" if outcome.error else ""
            self.error(f"{outcome.state.value.replace('_', ' ').capitalize()}{reason}")
            if outcome.rolled_back_paths:
                self.info("Restored: " + ", ".join(outcome.rolled_back_paths))

    def show_tool_results(self, results):
        """One line per coordinator result."""
        for i, result in enumerate(results, 1):
            if result.ok:
                kind = type(result).__name__.lower()
                self.success(f"{i}. {result.tool_name} [{kind}]")
            else:
                self.error(f"{i}. {result.tool_name} [{result.reason}]: {result.message}")
