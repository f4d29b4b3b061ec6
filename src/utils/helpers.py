"""
Helper utilities for the line detection system.

Timeframe parsing, safe arithmetic and OHLCV frame validation/normalization
shared by the detection components.
"""

from typing import Union, Optional, List

import numpy as np
import pandas as pd

from .logger import get_logger
from .exceptions import InvalidDataException

logger = get_logger(__name__)

# Поддерживаемые таймфреймы
SUPPORTED_TIMEFRAMES = {
    "1m": 1, "3m": 3, "5m": 5, "15m": 15, "30m": 30,
    "1h": 60, "2h": 120, "4h": 240, "6h": 360, "8h": 480, "12h": 720,
    "1d": 1440, "3d": 4320, "1w": 10080, "1M": 43200
}

# Варианты названий колонок OHLCV
_COLUMN_ALIASES = {
    'Open': 'open', 'High': 'high', 'Low': 'low', 'Close': 'close', 'Volume': 'volume',
    'Timestamp': 'timestamp', 'time': 'timestamp', 'Time': 'timestamp',
    'date': 'timestamp', 'Date': 'timestamp',
}

OHLCV_COLUMNS = ['open', 'high', 'low', 'close', 'volume']


def validate_timeframe(timeframe: str, raise_error: bool = True) -> bool:
    """
    Валидация таймфрейма

    Args:
        timeframe: Таймфрейм для проверки (например, "1h")
        raise_error: Вызывать исключение при ошибке

    Returns:
        True если таймфрейм валиден

    Raises:
        InvalidDataException: Если таймфрейм не поддерживается
    """
    if not isinstance(timeframe, str):
        if raise_error:
            raise InvalidDataException(f"Timeframe must be string, got {type(timeframe)}")
        return False

    if timeframe.strip() not in SUPPORTED_TIMEFRAMES:
        if raise_error:
            raise InvalidDataException(
                f"Unsupported timeframe: {timeframe}. "
                f"Supported: {', '.join(sorted(SUPPORTED_TIMEFRAMES.keys()))}"
            )
        return False

    return True


def parse_timeframe_to_minutes(timeframe: str) -> int:
    """
    Конвертация таймфрейма в минуты

    Args:
        timeframe: Таймфрейм (например, "1h", "4h", "1d")

    Returns:
        Количество минут

    Raises:
        InvalidDataException: При некорректном таймфрейме
    """
    validate_timeframe(timeframe)
    return SUPPORTED_TIMEFRAMES[timeframe.strip()]


def timeframe_minutes_or_none(timeframe: str) -> Optional[int]:
    """Минуты таймфрейма или None для нестандартных меток"""
    if validate_timeframe(timeframe, raise_error=False):
        return SUPPORTED_TIMEFRAMES[timeframe.strip()]
    return None


def safe_divide(
    numerator: Union[int, float],
    denominator: Union[int, float],
    default: Union[int, float, None] = None
) -> Union[float, None]:
    """
    Безопасное деление с обработкой деления на ноль

    Args:
        numerator: Числитель
        denominator: Знаменатель
        default: Значение по умолчанию при делении на ноль

    Returns:
        Результат деления или default значение
    """
    try:
        if denominator == 0:
            return default
        return float(numerator) / float(denominator)
    except (TypeError, ValueError, ZeroDivisionError):
        return default


def clamp(value: float, lower: float, upper: float) -> float:
    """Ограничение значения диапазоном [lower, upper]"""
    return max(lower, min(upper, value))


def calculate_percentage_change(
    old_value: Union[int, float],
    new_value: Union[int, float]
) -> float:
    """
    Вычисление процентного изменения

    Args:
        old_value: Старое значение
        new_value: Новое значение

    Returns:
        Процентное изменение; 0.0 при нулевом старом значении
    """
    if old_value == 0:
        return 0.0

    return ((new_value - old_value) / abs(old_value)) * 100


def validate_ohlcv_data(df: pd.DataFrame, required_cols: Optional[List[str]] = None) -> bool:
    """
    Валидация OHLCV данных

    Args:
        df: DataFrame с данными
        required_cols: Обязательные колонки (по умолчанию OHLCV)

    Returns:
        True если данные валидны

    Raises:
        InvalidDataException: При невалидных данных
    """
    if required_cols is None:
        required_cols = OHLCV_COLUMNS

    missing_cols = [col for col in required_cols if col not in df.columns]
    if missing_cols:
        raise InvalidDataException(
            f"Missing required columns: {missing_cols}",
            validation_errors={'missing_columns': missing_cols},
            data_info={'columns': list(map(str, df.columns))}
        )

    for col in OHLCV_COLUMNS:
        if col in df.columns and not pd.api.types.is_numeric_dtype(df[col]):
            raise InvalidDataException(f"Column {col} must be numeric")

    if df.empty:
        return True

    # High должен быть >= max(open, close), Low <= min(open, close)
    if (df['high'] < df[['open', 'close']].max(axis=1)).any():
        raise InvalidDataException("High price must be >= max(open, close)")
    if (df['low'] > df[['open', 'close']].min(axis=1)).any():
        raise InvalidDataException("Low price must be <= min(open, close)")

    for col in OHLCV_COLUMNS:
        if col in df.columns and (df[col] < 0).any():
            raise InvalidDataException(f"Column {col} contains negative values")

    return True


def normalize_ohlcv_frame(data: pd.DataFrame) -> pd.DataFrame:
    """
    Приведение OHLCV DataFrame к каноническому виду

    Переименовывает распространенные варианты колонок, берет timestamp
    из DatetimeIndex при отсутствии колонки, переводит время в секунды
    Unix, удаляет строки с NaN и сортирует по времени.

    Args:
        data: Исходный DataFrame

    Returns:
        DataFrame с колонками timestamp, open, high, low, close, volume

    Raises:
        InvalidDataException: При отсутствии колонок или невалидных ценах
    """
    frame = data.rename(columns={k: v for k, v in _COLUMN_ALIASES.items() if k in data.columns})

    if 'timestamp' not in frame.columns:
        if isinstance(frame.index, pd.DatetimeIndex):
            frame = frame.assign(timestamp=frame.index)
        else:
            raise InvalidDataException(
                "OHLCV data needs a timestamp column or a DatetimeIndex",
                data_info={'columns': list(map(str, frame.columns))}
            )

    validate_ohlcv_data(frame)

    rows = len(frame)
    frame = frame[['timestamp'] + OHLCV_COLUMNS].dropna()
    if len(frame) < rows:
        logger.warning("Dropped OHLCV rows with missing values", dropped_rows=rows - len(frame))

    timestamps = frame['timestamp']
    if pd.api.types.is_datetime64_any_dtype(timestamps):
        if getattr(timestamps.dt, 'tz', None) is not None:
            timestamps = timestamps.dt.tz_convert('UTC').dt.tz_localize(None)
        seconds = timestamps.astype('datetime64[ns]').astype(np.int64) // 10**9
    else:
        seconds = pd.to_numeric(timestamps).astype(np.int64)

    frame = frame.assign(timestamp=seconds).sort_values('timestamp', kind='mergesort')
    return frame.reset_index(drop=True)

