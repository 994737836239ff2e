"""
Logging for the EV trip planner

One ``ev_trip`` logger tree shared by every module. Modes come from
``evtrip.config.logging_config``; per-module switches let noisy parts of the
planner be muted without touching the global level.
"""

import logging
import os
import sys
from datetime import datetime
from typing import Any, Dict, Optional, Sequence

from evtrip.config.logging_config import (
    LOG_DIR,
    get_logging_config,
    is_module_logging_enabled,
)

ROOT_LOGGER_NAME = "ev_trip"

FORMATS = {
    "detailed": "%(asctime)s | %(levelname)-7s | %(name)s | %(funcName)s:%(lineno)d | %(message)s",
    "simple": "%(levelname)s [%(name)s] %(message)s",
    "minimal": "%(message)s",
}

INFEASIBLE_LOG_NAME = "infeasible_plans.log"


def _format_value(value: Any) -> str:
    if isinstance(value, bool):
        return str(value)
    if isinstance(value, float):
        return f"{value:,.1f}"
    if isinstance(value, int) and value >= 1000:
        return f"{value:,}"
    return str(value)


class TripPlannerLogger:
    """
    Owns the handlers on the ``ev_trip`` logger.

    Rebuilding (``update_config``) swaps every handler at once so that a mode
    change never leaves a stale file handler behind.
    """

    _STATUS_FIELDS = ("enable_console", "enable_file", "log_dir", "detailed_logging", "log_format", "log_file")

    def __init__(self,
                 log_level: str = "INFO",
                 enable_console: bool = True,
                 enable_file: bool = False,
                 log_dir: str = LOG_DIR,
                 detailed_logging: bool = False,
                 log_format: str = "detailed"):
        """
        Args:
            log_level: Level name, e.g. "DEBUG" or "warning"
            enable_console: Write to stdout
            enable_file: Write a timestamped log file under ``log_dir``
            log_dir: Directory for log files, created on demand
            detailed_logging: List the planned stops in the infeasible-plan log
            log_format: One of "detailed", "simple", "minimal"
        """
        self.log_level = getattr(logging, log_level.upper())
        self.enable_console = enable_console
        self.enable_file = enable_file
        self.log_dir = log_dir
        self.detailed_logging = detailed_logging
        self.log_format = log_format
        self.log_file: Optional[str] = None
        self.logger = logging.getLogger(ROOT_LOGGER_NAME)
        self._configure()

    def _configure(self):
        self.logger.setLevel(self.log_level)
        for handler in list(self.logger.handlers):
            self.logger.removeHandler(handler)
            handler.close()

        formatter = logging.Formatter(FORMATS.get(self.log_format, FORMATS["minimal"]))
        handlers = []
        if self.enable_console:
            handlers.append(logging.StreamHandler(sys.stdout))

        self.log_file = None
        if self.enable_file:
            os.makedirs(self.log_dir, exist_ok=True)
            stamp = datetime.now().strftime("%Y%m%d_%H%M%S")
            self.log_file = os.path.join(self.log_dir, f"ev_trip_{stamp}.log")
            handlers.append(logging.FileHandler(self.log_file, encoding="utf-8"))

        for handler in handlers:
            handler.setLevel(self.log_level)
            handler.setFormatter(formatter)
            self.logger.addHandler(handler)
        if not handlers:
            self.logger.addHandler(logging.NullHandler())

    def get_logger(self, name: str = None) -> logging.Logger:
        return self.logger.getChild(name) if name else self.logger

    def log(self, level: int, message: str, module: str = None):
        if module and not is_module_logging_enabled(module):
            return
        self.get_logger(module).log(level, message)

    def debug(self, message: str, module: str = None):
        self.log(logging.DEBUG, message, module)

    def info(self, message: str, module: str = None):
        self.log(logging.INFO, message, module)

    def warning(self, message: str, module: str = None):
        self.log(logging.WARNING, message, module)

    def error(self, message: str, module: str = None):
        self.log(logging.ERROR, message, module)

    def print_summary(self, title: str, data: Dict[str, Any]):
        """Console-only block of ``key: value`` lines under a title."""
        if not self.enable_console:
            return
        rule = "-" * 60
        lines = [rule, title, rule]
        lines.extend(f"  {key}: {_format_value(value)}" for key, value in data.items())
        lines.append(rule)
        print("\n".join(lines))

    def log_plan_infeasible(self, origin, destination, arrive_soc: float,
                            reason: str, extra: str = None, stops: Sequence[str] = ()):
        """
        Warn about a plan that misses the reserve; append it to its own file
        when file logging is on. With ``detailed_logging`` the line also lists
        the planned stops.
        """
        self.warning(f"Plan infeasible ({reason}): destination arrival SOC {arrive_soc:.1f}%", "segmentation")
        if not self.enable_file:
            return

        fields = [
            datetime.now().isoformat(timespec="seconds"),
            f"reason={reason}",
            f"origin={origin}",
            f"destination={destination}",
            f"arrive_soc={arrive_soc:.2f}%",
        ]
        if extra:
            fields.append(extra)
        if self.detailed_logging and stops:
            fields.append("stops=" + " > ".join(stops))
        with open(os.path.join(self.log_dir, INFEASIBLE_LOG_NAME), "a", encoding="utf-8") as f:
            f.write(" | ".join(fields) + "\n")

    def update_config(self, **kwargs):
        """Change settings (same names as ``__init__``) and rebuild handlers."""
        for key, value in kwargs.items():
            if key == "log_level":
                value = getattr(logging, str(value).upper())
            elif not hasattr(self, key):
                continue
            setattr(self, key, value)
        self._configure()

    def get_status(self) -> Dict[str, Any]:
        status = {"log_level": logging.getLevelName(self.log_level)}
        status.update((name, getattr(self, name)) for name in self._STATUS_FIELDS)
        return status


_global_logger: Optional[TripPlannerLogger] = None


def setup_logger(mode: str = None, **kwargs) -> TripPlannerLogger:
    """Replace the shared logger using a logging mode plus explicit overrides."""
    global _global_logger
    settings = get_logging_config(mode)
    settings.update(kwargs)
    _global_logger = TripPlannerLogger(**settings)
    return _global_logger


def get_global_logger() -> TripPlannerLogger:
    global _global_logger
    if _global_logger is None:
        _global_logger = TripPlannerLogger()
    return _global_logger


def get_logger(name: str = None) -> logging.Logger:
    return get_global_logger().get_logger(name)


def debug(message: str, module: str = None):
    get_global_logger().log(logging.DEBUG, message, module)


def info(message: str, module: str = None):
    get_global_logger().log(logging.INFO, message, module)


def warning(message: str, module: str = None):
    get_global_logger().log(logging.WARNING, message, module)


def error(message: str, module: str = None):
    get_global_logger().log(logging.ERROR, message, module)


def print_summary(title: str, data: Dict[str, Any]):
    get_global_logger().print_summary(title, data)


def log_plan_infeasible(origin, destination, arrive_soc: float,
                        reason: str, extra: str = None, stops: Sequence[str] = ()):
    get_global_logger().log_plan_infeasible(origin, destination, arrive_soc, reason, extra, stops)
