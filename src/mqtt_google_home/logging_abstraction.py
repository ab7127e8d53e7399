"""Logging abstraction layer for the MQTT Google Home bridge.

Provides dual-format logging (JSON + human-readable) with correlation tracking,
structured context, and configurable output destinations.
"""

from __future__ import annotations

import json
import logging
import sys
from collections.abc import Mapping
from datetime import UTC, datetime
from pathlib import Path
from typing import cast, override

from mqtt_google_home.correlation import get_correlation_id

__all__ = [
    "BridgeLogger",
    "HumanReadableFormatter",
    "JSONFormatter",
    "get_logger",
]


def _context_of(record: logging.LogRecord) -> Mapping[str, object] | None:
    extra_data = getattr(record, "extra_data", None)
    if isinstance(extra_data, Mapping) and extra_data:
        return cast("Mapping[str, object]", extra_data)
    return None


class JSONFormatter(logging.Formatter):
    """One JSON object per record, suitable for log shippers."""

    @override
    def format(self, record: logging.LogRecord) -> str:
        log_data: dict[str, object] = {
            "timestamp": datetime.now(UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
            "message": record.getMessage(),
            "correlation_id": get_correlation_id(),
        }
        context = _context_of(record)
        if context:
            log_data["context"] = dict(context)
        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)
        if record.stack_info:
            log_data["stack_info"] = self.formatStack(record.stack_info)
        return json.dumps(log_data, default=str)


class HumanReadableFormatter(logging.Formatter):
    """Single-line console format with a short correlation id."""

    def __init__(self) -> None:
        # timestamp level [module:line] [corr-id] > message | k=v
        super().__init__(
            fmt="%(asctime)s.%(msecs)03d %(levelname)s [%(module)s:%(lineno)d] %(correlation_id)s > %(message)s",
            datefmt="%m/%d/%y %H:%M:%S",
        )

    @override
    def format(self, record: logging.LogRecord) -> str:
        correlation_id = get_correlation_id()
        record.correlation_id = f"[{correlation_id[:8]}]" if correlation_id else "[--------]"
        formatted = super().format(record)
        context = _context_of(record)
        if context:
            formatted = f"{formatted} | " + " | ".join(f"{k}={v}" for k, v in context.items())
        return formatted


class BridgeLogger:
    """Thin wrapper over :class:`logging.Logger` that accepts structured ``extra`` context.

    ``extra`` is a flat mapping that ends up as ``context`` in JSON output and as
    ``k=v`` pairs in human output.
    """

    def __init__(
        self,
        name: str,
        log_format: str = "human",
        json_file: str | Path | None = None,
        human_output: str | None = "stdout",
    ) -> None:
        """Initialize BridgeLogger.

        Args:
            name: Logger name (typically module name)
            log_format: Output format - "json", "human", or "both"
            json_file: Path for JSON output file (None to disable file output)
            human_output: "stdout", "stderr", or file path for human-readable output

        """
        self.name: str = name
        self.logger: logging.Logger = logging.getLogger(name)
        self.log_format: str = log_format

        from mqtt_google_home.const import GH_DEBUG

        self.logger.setLevel(logging.DEBUG if GH_DEBUG else logging.INFO)

        if not self.logger.handlers:
            self._configure_handlers(json_file, human_output)

    def _configure_handlers(self, json_file: str | Path | None, human_output: str | None) -> None:
        handler_level = self.logger.level

        if self.log_format in ("json", "both") and json_file:
            try:
                json_path = Path(json_file)
                json_path.parent.mkdir(parents=True, exist_ok=True)
                json_handler = logging.FileHandler(json_path, mode="a")
            except OSError as e:
                print(f"Warning: Failed to create JSON log file {json_file}: {e}", file=sys.stderr)
            else:
                json_handler.setFormatter(JSONFormatter())
                json_handler.setLevel(handler_level)
                self.logger.addHandler(json_handler)

        if self.log_format in ("human", "both"):
            target = human_output or "stdout"
            human_handler: logging.Handler
            if target == "stdout":
                human_handler = logging.StreamHandler(sys.stdout)
            elif target == "stderr":
                human_handler = logging.StreamHandler(sys.stderr)
            else:
                try:
                    human_path = Path(target)
                    human_path.parent.mkdir(parents=True, exist_ok=True)
                    human_handler = logging.FileHandler(human_path, mode="a")
                except OSError as e:
                    print(f"Warning: Failed to create human log file {target}: {e}", file=sys.stderr)
                    human_handler = logging.StreamHandler(sys.stdout)
            human_handler.setFormatter(HumanReadableFormatter())
            human_handler.setLevel(handler_level)
            self.logger.addHandler(human_handler)

    def _log(self, level: int, msg: str, *args: object, extra: Mapping[str, object] | None = None) -> None:
        extra_payload = {"extra_data": dict(extra)} if extra else None
        self.logger.log(level, msg, *args, extra=extra_payload)

    def debug(self, msg: str, *args: object, extra: Mapping[str, object] | None = None) -> None:
        self._log(logging.DEBUG, msg, *args, extra=extra)

    def info(self, msg: str, *args: object, extra: Mapping[str, object] | None = None) -> None:
        self._log(logging.INFO, msg, *args, extra=extra)

    def warning(self, msg: str, *args: object, extra: Mapping[str, object] | None = None) -> None:
        self._log(logging.WARNING, msg, *args, extra=extra)

    def error(self, msg: str, *args: object, extra: Mapping[str, object] | None = None) -> None:
        self._log(logging.ERROR, msg, *args, extra=extra)

    def critical(self, msg: str, *args: object, extra: Mapping[str, object] | None = None) -> None:
        self._log(logging.CRITICAL, msg, *args, extra=extra)

    def exception(self, msg: str, *args: object, extra: Mapping[str, object] | None = None) -> None:
        """Log at error level with the active exception's traceback."""
        log_extra = {"extra_data": dict(extra)} if extra else None
        self.logger.exception(msg, *args, extra=log_extra)

    def set_level(self, level: int) -> None:
        """Set the level on the logger and all of its handlers."""
        self.logger.setLevel(level)
        for handler in self.logger.handlers:
            handler.setLevel(level)

    @property
    def handlers(self) -> list[logging.Handler]:
        return self.logger.handlers


def get_logger(
    name: str,
    log_format: str | None = None,
    json_file: str | Path | None = None,
    human_output: str | None = None,
) -> BridgeLogger:
    """Get or create a BridgeLogger instance.

    Unset arguments fall back to ``GH_LOG_FORMAT``, ``GH_LOG_JSON_FILE`` and
    ``GH_LOG_HUMAN_OUTPUT``.
    """
    from mqtt_google_home.const import GH_LOG_FORMAT, GH_LOG_HUMAN_OUTPUT, GH_LOG_JSON_FILE

    return BridgeLogger(
        name=name,
        log_format=log_format or GH_LOG_FORMAT,
        json_file=json_file or GH_LOG_JSON_FILE,
        human_output=human_output or GH_LOG_HUMAN_OUTPUT,
    )
