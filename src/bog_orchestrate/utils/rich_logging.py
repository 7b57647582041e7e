"""Console logging with run/agent/phase context."""

import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Optional


class OrchestrateLogFormatter(logging.Formatter):
    """Formatter that renders run, agent and phase context when present."""

    LEVEL_COLORS = {
        "DEBUG": "\033[36m",      # Cyan
        "INFO": "\033[32m",       # Green
        "WARNING": "\033[33m",    # Yellow
        "ERROR": "\033[31m",      # Red
        "CRITICAL": "\033[35m",   # Magenta
    }

    def __init__(self, use_colors: bool = True):
        super().__init__()
        self.use_colors = use_colors

    def format(self, record: logging.LogRecord) -> str:
        timestamp = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")

        context = ""
        if getattr(record, "run_id", None):
            context += f"[{record.run_id}] "
        if getattr(record, "agent", None):
            context += f"[{record.agent}] "
        if getattr(record, "phase", None):
            context += f"[{record.phase}] "

        if self.use_colors:
            level_color = self.LEVEL_COLORS.get(record.levelname, "")
            reset = "\033[0m"
        else:
            level_color = ""
            reset = ""

        message = (
            f"{timestamp} {level_color}{record.levelname:8s}{reset} "
            f"{context}{record.getMessage()}"
        )
        if record.exc_info:
            message += "\n" + self.formatException(record.exc_info)
        return message


class ContextLogger(logging.LoggerAdapter):
    """Logger adapter that stamps run/agent/phase context onto every record."""

    def __init__(self, logger: logging.Logger, run_id: Optional[str] = None):
        super().__init__(logger, {})
        self.run_id = run_id
        self.current_agent: Optional[str] = None
        self.current_phase: Optional[str] = None

    def set_context(self, agent: Optional[str] = None, phase: Optional[str] = None):
        """Set current agent/phase. Passing None clears the field."""
        self.current_agent = agent
        self.current_phase = phase

    def clear_context(self):
        self.current_agent = None
        self.current_phase = None

    def process(self, msg, kwargs):
        extra = kwargs.get("extra", {})

        if self.run_id:
            extra["run_id"] = self.run_id
        if self.current_agent:
            extra["agent"] = self.current_agent
        if self.current_phase:
            extra["phase"] = self.current_phase

        kwargs["extra"] = extra
        return msg, kwargs

    def phase_change(self, phase: str, agent: Optional[str] = None):
        """Log a phase change."""
        self.set_context(agent=agent, phase=phase)
        self.info(f"Phase: {phase}")


def setup_rich_logging(
    log_level: str = "INFO",
    log_file: Optional[Path] = None,
    use_colors: bool = True,
) -> logging.Logger:
    """
    Configure the package logger.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        log_file: Optional path of a plain-text log file
        use_colors: Emit ANSI colors on the console handler

    Returns:
        The configured ``bog_orchestrate`` logger
    """
    logger = logging.getLogger("bog_orchestrate")
    logger.setLevel(getattr(logging, log_level.upper()))

    # Close existing handlers before clearing (prevents file descriptor leak)
    for handler in logger.handlers[:]:
        handler.close()
        logger.removeHandler(handler)

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(OrchestrateLogFormatter(use_colors=use_colors))
    logger.addHandler(console_handler)

    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        # Plain formatter for files (no ANSI codes)
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(OrchestrateLogFormatter(use_colors=False))
        logger.addHandler(file_handler)

    return logger
