"""
Shapewire - Structured Logging System

This module provides structured JSON logging with contexts and operation
timing for the marshalling, event-stream and code generation layers.
"""

import logging
import logging.config
import copy
import json
import time
import traceback
from contextlib import contextmanager
from dataclasses import dataclass, field, asdict
from typing import Dict, List, Optional, Any
from enum import Enum
import sys
from datetime import datetime, timezone
import threading


class LogLevel(Enum):
    """Log levels for structured logging."""
    TRACE = "TRACE"
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"
    PERFORMANCE = "PERFORMANCE"


class LogCategory(Enum):
    """Log categories for filtering and routing."""
    SYSTEM = "system"
    MARSHALLING = "marshalling"
    UNMARSHALLING = "unmarshalling"
    EVENT_STREAM = "event_stream"
    ENDPOINTS = "endpoints"
    CODEGEN = "codegen"
    PERFORMANCE = "performance"


@dataclass
class LogContext:
    """Context information for structured logging."""
    request_id: Optional[str] = None
    component: Optional[str] = None
    operation: Optional[str] = None
    protocol: Optional[str] = None
    service: Optional[str] = None
    additional_fields: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        result = asdict(self)
        return {k: v for k, v in result.items() if v is not None and v != {}}


@dataclass
class LogEvent:
    """Structured log event."""
    timestamp: float
    level: LogLevel
    category: LogCategory
    message: str
    component: str
    operation: Optional[str] = None
    context: Optional[LogContext] = None
    exception: Optional[BaseException] = None
    performance_metrics: Optional[Dict[str, float]] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        result = {
            'timestamp': self.timestamp,
            'iso_timestamp': datetime.fromtimestamp(self.timestamp, timezone.utc).isoformat(),
            'level': self.level.value,
            'category': self.category.value,
            'message': self.message,
            'component': self.component,
            'operation': self.operation,
            'metadata': self.metadata
        }

        if self.context:
            result['context'] = self.context.to_dict()

        if self.exception:
            result['exception'] = {
                'type': type(self.exception).__name__,
                'message': str(self.exception),
                'traceback': traceback.format_exception(
                    type(self.exception), self.exception, self.exception.__traceback__
                )
            }

        if self.performance_metrics:
            result['performance_metrics'] = self.performance_metrics

        return result

    def to_json(self) -> str:
        """Convert to JSON string."""
        return json.dumps(self.to_dict(), ensure_ascii=False, default=str)


def _level_for_record(record: logging.LogRecord) -> LogLevel:
    try:
        return LogLevel(record.levelname)
    except ValueError:
        return LogLevel.INFO


class StructuredFormatter(logging.Formatter):
    """Formats log records as single-line JSON events."""

    def __init__(self, include_context: bool = True):
        super().__init__()
        self.include_context = include_context

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as structured JSON."""
        context = getattr(record, 'context', None) if self.include_context else None
        category = getattr(record, 'category', LogCategory.SYSTEM)
        if not isinstance(category, LogCategory):
            category = LogCategory.SYSTEM

        log_event = LogEvent(
            timestamp=record.created,
            level=_level_for_record(record),
            category=category,
            message=record.getMessage(),
            component=getattr(record, 'component', record.name),
            operation=getattr(record, 'operation', None),
            context=context,
            exception=record.exc_info[1] if record.exc_info else None,
            performance_metrics=getattr(record, 'performance_metrics', None),
            metadata=getattr(record, 'metadata', None) or {}
        )

        return log_event.to_json()


class PerformanceLogger:
    """Logger specifically for operation timings."""

    def __init__(self, logger: logging.Logger, max_samples: int = 1000):
        self.logger = logger
        self.max_samples = max_samples
        self.operation_times: Dict[str, List[float]] = {}
        self.lock = threading.Lock()

    @contextmanager
    def time_operation(self, operation_name: str, context: Optional[LogContext] = None):
        """Context manager to time operations."""
        start_time = time.perf_counter()

        try:
            yield
        finally:
            duration = time.perf_counter() - start_time

            with self.lock:
                samples = self.operation_times.setdefault(operation_name, [])
                samples.append(duration)
                if len(samples) > self.max_samples:
                    del samples[:-self.max_samples]

            self.logger.debug(
                f"Operation {operation_name} completed",
                extra={
                    'category': LogCategory.PERFORMANCE,
                    'performance_metrics': {
                        'operation': operation_name,
                        'duration_seconds': duration,
                        'duration_ms': duration * 1000
                    },
                    'context': context
                }
            )

    def get_operation_stats(self, operation_name: str) -> Optional[Dict[str, float]]:
        """Get statistics for an operation."""
        with self.lock:
            times = list(self.operation_times.get(operation_name) or [])
        if not times:
            return None

        return {
            'count': len(times),
            'avg_duration': sum(times) / len(times),
            'min_duration': min(times),
            'max_duration': max(times),
            'total_duration': sum(times)
        }


class StructuredLogger:
    """Logger that attaches category, component and context to records."""

    def __init__(self, name: str, config: Optional[Dict[str, Any]] = None):
        self.name = name
        self.config = config or {}

        self.logger = logging.getLogger(name)
        self._setup_logger()

        self.performance = PerformanceLogger(self.logger)
        self._local = threading.local()

    def _setup_logger(self):
        """Setup logger with structured formatter."""
        if self.logger.handlers:
            return

        if self.config.get('console', True):
            console_handler = logging.StreamHandler(sys.stdout)
            console_handler.setFormatter(StructuredFormatter())
            self.logger.addHandler(console_handler)

        if self.config.get('log_file'):
            file_handler = logging.FileHandler(self.config['log_file'])
            file_handler.setFormatter(StructuredFormatter())
            self.logger.addHandler(file_handler)

        log_level = self.config.get('log_level', 'INFO')
        self.logger.setLevel(getattr(logging, str(log_level).upper()))

    def push_context(self, context: LogContext):
        """Push context onto stack."""
        if not hasattr(self._local, 'contexts'):
            self._local.contexts = []
        self._local.contexts.append(context)

    def pop_context(self) -> Optional[LogContext]:
        """Pop context from stack."""
        if getattr(self._local, 'contexts', None):
            return self._local.contexts.pop()
        return None

    def get_current_context(self) -> Optional[LogContext]:
        """Get current context."""
        if getattr(self._local, 'contexts', None):
            return self._local.contexts[-1]
        return None

    @contextmanager
    def context(self, **kwargs):
        """Context manager for logging context."""
        ctx = LogContext(**kwargs)
        self.push_context(ctx)
        try:
            yield ctx
        finally:
            self.pop_context()

    def _log(
        self,
        level: int,
        message: str,
        category: LogCategory = LogCategory.SYSTEM,
        operation: Optional[str] = None,
        context: Optional[LogContext] = None,
        metadata: Optional[Dict[str, Any]] = None,
        exception: Optional[BaseException] = None
    ):
        if context is None:
            context = self.get_current_context()

        extra = {
            'category': category,
            'component': self.name,
            'operation': operation,
            'context': context,
            'metadata': metadata or {}
        }

        if exception:
            self.logger.log(level, message, extra=extra, exc_info=exception)
        else:
            self.logger.log(level, message, extra=extra)

    def debug(self, message: str, **kwargs):
        """Log debug message."""
        self._log(logging.DEBUG, message, **kwargs)

    def info(self, message: str, **kwargs):
        """Log info message."""
        self._log(logging.INFO, message, **kwargs)

    def warning(self, message: str, **kwargs):
        """Log warning message."""
        self._log(logging.WARNING, message, **kwargs)

    def error(self, message: str, **kwargs):
        """Log error message."""
        self._log(logging.ERROR, message, **kwargs)


class LoggerFactory:
    """Factory for creating structured loggers."""

    _loggers: Dict[str, StructuredLogger] = {}
    _default_config: Dict[str, Any] = {
        'log_level': 'INFO',
        'log_file': None
    }

    @classmethod
    def get_logger(cls, name: str, config: Optional[Dict[str, Any]] = None) -> StructuredLogger:
        """Get or create a structured logger."""
        if name not in cls._loggers:
            logger_config = {**cls._default_config}
            if config:
                logger_config.update(config)
            cls._loggers[name] = StructuredLogger(name, logger_config)

        return cls._loggers[name]

    @classmethod
    def configure_logging(cls, config: Dict[str, Any]):
        """Configure logging system."""
        cls._default_config.update(config)

        for logger in cls._loggers.values():
            logger.config.update(config)
            logger._setup_logger()


def get_logger(name: str, config: Optional[Dict[str, Any]] = None) -> StructuredLogger:
    """Get a structured logger."""
    return LoggerFactory.get_logger(name, config)


DEFAULT_LOGGING_CONFIG = {
    'version': 1,
    'disable_existing_loggers': False,
    'formatters': {
        'structured': {
            '()': StructuredFormatter,
            'include_context': True
        },
        'simple': {
            'format': '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
        }
    },
    'handlers': {
        'console': {
            'class': 'logging.StreamHandler',
            'level': 'DEBUG',
            'formatter': 'structured',
            'stream': 'ext://sys.stderr'
        }
    },
    'loggers': {
        'shapewire': {
            'level': 'INFO',
            'handlers': ['console'],
            'propagate': False
        },
        'shapewire_codegen': {
            'level': 'INFO',
            'handlers': ['console'],
            'propagate': False
        }
    },
    'root': {
        'level': 'WARNING',
        'handlers': ['console']
    }
}


def configure_logging(config: Optional[Dict[str, Any]] = None, level: Optional[str] = None):
    """Configure the logging system.

    ``level`` overrides the level of the ``shapewire`` loggers, which is how
    the CLI's ``--log-level`` flag is applied.
    """
    logging_config = copy.deepcopy(config or DEFAULT_LOGGING_CONFIG)

    if level:
        for name in ('shapewire', 'shapewire_codegen'):
            logging_config.setdefault('loggers', {}).setdefault(name, {})['level'] = level.upper()

    logging.config.dictConfig(logging_config)

    LoggerFactory.configure_logging({
        'log_level': level or logging_config.get('root', {}).get('level', 'INFO'),
        'log_file': None
    })
