"""Structured logging with tagged loggers and optional file output.

Loggers are created per service (``Log.create({"service": "lsp.client"})``)
and write ``key=value``, JSON or human-readable lines to stderr and/or a log
file under the user data directory.
"""

import json
import sys
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional, TextIO

from ..core.global_paths import GlobalPath

# Number of timestamped log files kept in the log directory.
KEEP_LOG_FILES = 10


class LogLevel(str, Enum):
    """Log severity levels."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARN = "WARN"
    ERROR = "ERROR"

    @classmethod
    def parse(cls, value: str | None) -> "LogLevel":
        if value is None:
            return cls.INFO
        text = value.strip().lower()
        if text in {"warn", "warning"}:
            return cls.WARN
        for level in cls:
            if level.value.lower() == text:
                return level
        raise ValueError(f"invalid log level: {value}")


class LogFormat(str, Enum):
    """Log line format."""
    KV = "kv"
    JSON = "json"
    PRETTY = "pretty"

    @classmethod
    def parse(cls, value: str | None) -> "LogFormat":
        if value is None:
            return cls.KV
        try:
            return cls(value.strip().lower())
        except ValueError:
            raise ValueError(f"invalid log format: {value}") from None


LEVEL_PRIORITY = {
    LogLevel.DEBUG: 0,
    LogLevel.INFO: 1,
    LogLevel.WARN: 2,
    LogLevel.ERROR: 3,
}


@dataclass
class LogSettings:
    """Process-wide logging sinks and filters."""

    level: LogLevel = LogLevel.INFO
    format: LogFormat = LogFormat.KV
    console: bool = False
    file: bool = False
    log_file_path: Optional[str] = None
    _file_handle: Optional[TextIO] = None


_settings = LogSettings()
_last_timestamp = time.time()


@dataclass
class LogTimer:
    """Context manager logging how long an operation took."""
    logger: 'Logger'
    message: str
    extra: Dict[str, Any]
    start_time: float = field(default_factory=time.time)

    def stop(self) -> None:
        duration_ms = int((time.time() - self.start_time) * 1000)
        self.logger.info(self.message, {**self.extra, "status": "completed", "duration": duration_ms})

    def __enter__(self) -> 'LogTimer':
        return self

    def __exit__(self, *args) -> None:
        self.stop()


class Logger:
    """Tagged logger; tags are attached to every line it writes."""

    def __init__(self, tags: Optional[Dict[str, Any]] = None):
        self.tags = tags or {}

    def _should_log(self, level: LogLevel) -> bool:
        return LEVEL_PRIORITY[level] >= LEVEL_PRIORITY[_settings.level]

    def _format_error(self, error: BaseException, depth: int = 0) -> str:
        result = f"{type(error).__name__}: {error}"
        if error.__cause__ and depth < 10:
            result += " Caused by: " + self._format_error(error.__cause__, depth + 1)
        return result

    def _normalize(self, value: Any) -> Any:
        if isinstance(value, BaseException):
            return self._format_error(value)
        if value is None or isinstance(value, (dict, list, tuple, int, float, bool)):
            return value
        return str(value)

    def _value(self, value: Any) -> str:
        if isinstance(value, bool):
            return "true" if value else "false"
        if isinstance(value, (int, float)):
            return str(value)
        if isinstance(value, (dict, list, tuple)):
            return json.dumps(value, ensure_ascii=False, separators=(",", ":"))
        text = str(value)
        if text == "" or any(ch.isspace() for ch in text) or "=" in text:
            return json.dumps(text, ensure_ascii=False)
        return text

    def _build_payload(
        self,
        level: LogLevel,
        message: Any,
        extra: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        global _last_timestamp

        now = time.time()
        delta_ms = int((now - _last_timestamp) * 1000)
        _last_timestamp = now

        tags = {**self.tags, **(extra or {})}
        return {
            "time": datetime.now(timezone.utc).isoformat(timespec="seconds"),
            "delta_ms": delta_ms,
            "level": level.value.lower(),
            "msg": self._normalize(message),
            **{k: self._normalize(v) for k, v in tags.items() if v is not None},
        }

    def _build_line(
        self,
        level: LogLevel,
        message: Any,
        extra: Optional[Dict[str, Any]] = None,
    ) -> str:
        payload = self._build_payload(level, message, extra)
        if _settings.format == LogFormat.JSON:
            return json.dumps(payload, ensure_ascii=False, separators=(",", ":")) + "\n"

        pairs = " ".join(
            f"{k}={self._value(v)}"
            for k, v in payload.items()
            if k not in {"time", "delta_ms", "level", "msg"}
        )
        if _settings.format == LogFormat.PRETTY:
            text = str(payload.get("msg") or "")
            suffix = f" ({pairs})" if pairs else ""
            return f"{payload['time']} {level.value} {text}{suffix} +{payload['delta_ms']}ms\n"

        parts = [
            str(payload["time"]),
            f"+{payload['delta_ms']}ms",
            f"level={payload['level']}",
            f"msg={self._value(payload.get('msg'))}",
            pairs,
        ]
        return " ".join(part for part in parts if part) + "\n"

    def _write(self, line: str) -> None:
        if _settings.console:
            sys.stderr.write(line)
            sys.stderr.flush()
        if _settings.file and _settings._file_handle:
            _settings._file_handle.write(line)
            _settings._file_handle.flush()

    def _log(self, level: LogLevel, message: Any, extra: Optional[Dict[str, Any]]) -> None:
        if self._should_log(level):
            self._write(self._build_line(level, message, extra))

    def debug(self, message: Any = None, extra: Optional[Dict[str, Any]] = None) -> None:
        self._log(LogLevel.DEBUG, message, extra)

    def info(self, message: Any = None, extra: Optional[Dict[str, Any]] = None) -> None:
        self._log(LogLevel.INFO, message, extra)

    def warn(self, message: Any = None, extra: Optional[Dict[str, Any]] = None) -> None:
        self._log(LogLevel.WARN, message, extra)

    def error(self, message: Any = None, extra: Optional[Dict[str, Any]] = None) -> None:
        self._log(LogLevel.ERROR, message, extra)

    def tag(self, key: str, value: Any) -> 'Logger':
        self.tags[key] = value
        return self

    def clone(self) -> 'Logger':
        return Logger(tags=self.tags.copy())

    def time(self, message: str, extra: Optional[Dict[str, Any]] = None) -> LogTimer:
        """Log a start line now and a completion line with duration on stop."""
        extra = extra or {}
        self.info(message, {**extra, "status": "started"})
        return LogTimer(logger=self, message=message, extra=extra)


class Log:
    """Logger factory and global sink configuration."""

    _loggers: Dict[str, Logger] = {}

    @classmethod
    def create(cls, tags: Optional[Dict[str, Any]] = None) -> Logger:
        """Create a logger, cached by its ``service`` tag when present."""
        tags = tags or {}
        service = tags.get("service")
        if isinstance(service, str) and service:
            if service not in cls._loggers:
                cls._loggers[service] = Logger(tags=tags)
            return cls._loggers[service]
        return Logger(tags=tags)

    @classmethod
    def configure(
        cls,
        *,
        level: LogLevel | None = None,
        format: LogFormat | None = None,
        console: bool | None = None,
        file: bool | None = None,
        dev: bool = False,
    ) -> None:
        """Configure sinks and format. File output opens a fresh log file."""
        if level is not None:
            _settings.level = level
        if format is not None:
            _settings.format = format
        if console is not None:
            _settings.console = console
        if file is not None:
            _settings.file = file

        cls.close()
        if not _settings.file:
            _settings.log_file_path = None
            return

        log_dir = Path(GlobalPath.log())
        log_dir.mkdir(parents=True, exist_ok=True)
        cls._cleanup_logs(log_dir)
        if dev:
            log_path = log_dir / "dev.log"
        else:
            stamp = datetime.now().isoformat().split(".")[0].replace(":", "")
            log_path = log_dir / f"{stamp}.log"

        _settings.log_file_path = str(log_path)
        _settings._file_handle = log_path.open("w", encoding="utf-8")

    @classmethod
    def configure_from(cls, config: Any) -> None:
        """Apply a ``LoggingConfig`` section; unset fields keep current values."""
        cls.configure(
            level=LogLevel.parse(config.level) if config.level else None,
            format=LogFormat.parse(config.format) if config.format else None,
            console=config.console,
            file=config.file,
        )

    @classmethod
    def file(cls) -> str:
        """Current log file path, or ``""`` when file output is off."""
        return _settings.log_file_path or ""

    @classmethod
    def _cleanup_logs(cls, log_dir: Path) -> None:
        log_files = sorted(
            log_dir.glob("????-??-??T??????.log"),
            key=lambda p: p.stat().st_mtime,
        )
        for old_file in log_files[:-KEEP_LOG_FILES]:
            old_file.unlink(missing_ok=True)

    @classmethod
    def close(cls) -> None:
        if _settings._file_handle:
            _settings._file_handle.close()
            _settings._file_handle = None
