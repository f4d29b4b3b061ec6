"""
Structured logging utilities for the line detection system

structlog is configured once per process; detection components obtain
module loggers through get_logger and report counters as key-value pairs.
"""

import logging
import os
import sys
import time
import functools
from typing import Optional, Dict, Any, List, Union
from pathlib import Path
from enum import Enum

import structlog
from structlog.types import Processor

SERVICE_NAME = "line-detection"
SERVICE_VERSION = "1.0.0"

# Сторонние логгеры, которые шумят на уровне DEBUG
_QUIET_LOGGERS = ('asyncio', 'concurrent.futures')


class LogLevel(str, Enum):
    """Уровни логирования"""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"


class LogFormat(str, Enum):
    """Форматы вывода"""
    JSON = "json"
    TEXT = "text"
    COLORED = "colored"


_logging_configured = False


def _renderer(format_type: LogFormat) -> Processor:
    if format_type == LogFormat.JSON:
        return structlog.processors.JSONRenderer()
    if format_type == LogFormat.COLORED:
        return structlog.dev.ConsoleRenderer(colors=True)
    return structlog.processors.KeyValueRenderer(
        key_order=['timestamp', 'level', 'logger', 'event']
    )


def _service_context(environment: str) -> Processor:
    """Процессор, добавляющий имя сервиса, версию, среду и PID"""
    context = {
        'service': SERVICE_NAME,
        'version': SERVICE_VERSION,
        'environment': environment,
        'pid': os.getpid(),
    }

    def processor(logger, method_name, event_dict):
        for key, value in context.items():
            event_dict.setdefault(key, value)
        return event_dict

    return processor


def _build_processors(format_type: LogFormat, environment: str, include_callsite: bool) -> List[Processor]:
    processors: List[Processor] = [
        structlog.processors.TimeStamper(fmt="ISO"),
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
    ]
    if include_callsite:
        processors.append(structlog.processors.CallsiteParameterAdder(
            parameters=[
                structlog.processors.CallsiteParameter.FUNC_NAME,
                structlog.processors.CallsiteParameter.LINENO,
            ]
        ))
    processors.extend([
        structlog.processors.format_exc_info,
        _service_context(environment),
        _renderer(format_type),
    ])
    return processors


def configure_logging(
    level: LogLevel = LogLevel.INFO,
    format_type: LogFormat = LogFormat.JSON,
    log_file: Optional[Union[str, Path]] = None,
    environment: str = "development",
    include_callsite: bool = False
) -> None:
    """
    Настроить structlog и стандартный logging

    Повторные вызовы игнорируются: первая конфигурация действует
    до конца процесса.

    Args:
        level: Минимальный уровень
        format_type: JSON для сборщиков логов, TEXT/COLORED для консоли
        log_file: Дополнительный файл логов
        environment: Метка среды в каждой записи
        include_callsite: Добавлять функцию и строку вызова
    """
    global _logging_configured
    if _logging_configured:
        return

    structlog.configure(
        processors=_build_processors(format_type, environment, include_callsite),
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        context_class=dict,
        cache_logger_on_first_use=True,
    )

    log_level = getattr(logging, level.value)
    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=log_level)

    if log_file:
        log_file = Path(log_file)
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, encoding='utf-8')
        file_handler.setLevel(log_level)
        logging.getLogger().addHandler(file_handler)

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    _logging_configured = True


def get_logger(name: str = "line_detection") -> structlog.BoundLogger:
    """Логгер модуля; при первом вызове применяет конфигурацию по умолчанию"""
    if not _logging_configured:
        configure_logging()
    return structlog.get_logger(name)


def log_performance_metrics(
    logger: structlog.BoundLogger,
    operation: str,
    duration_seconds: float,
    success: bool = True,
    additional_metrics: Optional[Dict[str, Any]] = None
):
    """
    Записать длительность операции

    Args:
        logger: Логгер
        operation: Название операции
        duration_seconds: Длительность в секундах
        success: Завершилась ли операция без ошибки
        additional_metrics: Дополнительные счетчики
    """
    fields = {
        'operation': operation,
        'duration_ms': round(duration_seconds * 1000, 2),
        'success': success,
        **(additional_metrics or {}),
    }
    if success:
        logger.info(f"{operation} finished", **fields)
    else:
        logger.error(f"{operation} failed", **fields)


def log_detection_stats(
    logger: structlog.BoundLogger,
    symbol: str,
    timeframes: int,
    stats: Dict[str, Any]
):
    """Итоговые счетчики фильтров одного вызова детекции"""
    logger.info(
        "Line detection finished",
        symbol=symbol,
        timeframes=timeframes,
        **stats
    )


class LoggerMixin:
    """
    Mixin с логгером, привязанным к имени класса

    Логгер создается лениво, при первом обращении.
    """

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self._logger = None

    @property
    def logger(self) -> structlog.BoundLogger:
        if self._logger is None:
            cls = type(self)
            self._logger = get_logger(f"{cls.__module__}.{cls.__name__}").bind(component=cls.__name__)
        return self._logger

    def log_operation_start(self, operation: str, **kwargs):
        self.logger.info(f"Starting {operation}", operation=operation, **kwargs)

    def log_operation_end(self, operation: str, success: bool = True, **kwargs):
        if success:
            self.logger.info(f"Completed {operation}", operation=operation, success=True, **kwargs)
        else:
            self.logger.warning(f"Failed {operation}", operation=operation, success=False, **kwargs)


def timed_operation(operation_name: Optional[str] = None):
    """
    Декоратор: записывает длительность вызова через log_performance_metrics

    Args:
        operation_name: Имя операции (по умолчанию имя функции)
    """
    def decorator(func):
        name = operation_name or func.__name__
        logger = get_logger(func.__module__)

        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            started = time.perf_counter()
            try:
                result = func(*args, **kwargs)
            except Exception as e:
                log_performance_metrics(
                    logger, name, time.perf_counter() - started,
                    success=False, additional_metrics={'error': str(e)}
                )
                raise
            log_performance_metrics(logger, name, time.perf_counter() - started)
            return result

        return wrapper
    return decorator
