"""
Custom exceptions for the line detection system

Every error raised by the package derives from LineDetectionException and
carries a stable error code plus structured details for logging.
"""

import functools
from typing import Optional, Dict, Any
from datetime import datetime


def _compact(**values) -> Dict[str, Any]:
    """Детали без пустых значений"""
    return {key: value for key, value in values.items() if value is not None and value != {}}


class LineDetectionException(Exception):
    """
    Базовое исключение системы детекции линий

    Код ошибки задается атрибутом класса ``error_code`` и не зависит
    от текста сообщения, поэтому пригоден для программной обработки.
    """

    error_code = "LINE_DETECTION_ERROR"

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        original_exception: Optional[Exception] = None
    ):
        super().__init__(message)
        self.message = message
        self.details = dict(details or {})
        self.original_exception = original_exception
        self.timestamp = datetime.now()

        if original_exception is not None:
            self.details.setdefault('original_error', str(original_exception))
            self.details.setdefault('original_type', type(original_exception).__name__)

    def to_dict(self) -> Dict[str, Any]:
        """Представление ошибки для JSON ответа или лога"""
        return {
            'error_type': type(self).__name__,
            'error_code': self.error_code,
            'message': self.message,
            'details': self.details,
            'timestamp': self.timestamp.isoformat(),
        }

    def __str__(self) -> str:
        if not self.details:
            return f"[{self.error_code}] {self.message}"
        return f"[{self.error_code}] {self.message} | Details: {self.details}"


class InvalidDataException(LineDetectionException):
    """
    Некорректные входные OHLCV данные

    Отсутствующие колонки, нечисловые значения, high ниже тела свечи,
    отрицательные цены или объемы.
    """

    error_code = "INVALID_DATA"

    def __init__(
        self,
        message: str,
        validation_errors: Optional[Dict[str, Any]] = None,
        data_info: Optional[Dict[str, Any]] = None,
        original_exception: Optional[Exception] = None
    ):
        super().__init__(
            message,
            details=_compact(validation_errors=validation_errors, data_info=data_info),
            original_exception=original_exception
        )


class ConfigurationException(LineDetectionException):
    """
    Некорректные параметры детекции

    ``invalid_params`` содержит поле -> сообщение валидатора.
    """

    error_code = "CONFIGURATION_ERROR"

    def __init__(
        self,
        message: str,
        config_section: Optional[str] = None,
        invalid_params: Optional[Dict[str, Any]] = None,
        original_exception: Optional[Exception] = None
    ):
        super().__init__(
            message,
            details=_compact(config_section=config_section, invalid_params=invalid_params),
            original_exception=original_exception
        )


class DetectionTimeoutException(LineDetectionException):
    """Асинхронная детекция не уложилась в таймаут вызывающей стороны"""

    error_code = "DETECTION_TIMEOUT"

    def __init__(
        self,
        message: str,
        symbol: Optional[str] = None,
        timeout_seconds: Optional[float] = None
    ):
        super().__init__(
            message,
            details=_compact(symbol=symbol, timeout_seconds=timeout_seconds)
        )


def handle_data_exception(func):
    """
    Декоратор разбора входных данных

    KeyError, ValueError и TypeError становятся InvalidDataException;
    исключения пакета пробрасываются как есть.
    """
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except LineDetectionException:
            raise
        except KeyError as e:
            raise InvalidDataException(
                f"Missing field {e} in {func.__name__}",
                original_exception=e
            ) from e
        except (ValueError, TypeError) as e:
            raise InvalidDataException(
                f"Cannot parse input in {func.__name__}: {e}",
                original_exception=e
            ) from e

    return wrapper


def log_exception(logger, exception: Exception, context: Optional[Dict[str, Any]] = None):
    """
    Записать исключение в структурированный лог

    Args:
        logger: structlog логгер
        exception: Исключение
        context: Дополнительные поля записи
    """
    context = context or {}

    if isinstance(exception, LineDetectionException):
        logger.error(exception.message, **exception.to_dict(), **context)
    else:
        logger.error(
            f"Unexpected error: {exception}",
            error_type=type(exception).__name__,
            exc_info=True,
            **context
        )
