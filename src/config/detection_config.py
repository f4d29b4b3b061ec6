"""
Configuration management for the line detection system.

Pydantic models for touch analysis and detection thresholds. Models are
immutable; invalid values are reported as ConfigurationException.
"""

from typing import Any, Dict, Optional, Union
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from ..utils.exceptions import ConfigurationException


class TouchConfig(BaseModel):
    """
    Параметры классификации касаний уровня

    Значения по умолчанию соответствуют автономному анализатору касаний;
    движок детекции использует более строгий набор (см. DetectionConfig).
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    # === Веса типов касаний ===
    wick_weight: float = Field(
        default=0.7,
        gt=0,
        le=5.0,
        description="Вес касания тенью"
    )

    body_weight: float = Field(
        default=1.0,
        gt=0,
        le=5.0,
        description="Вес касания телом свечи"
    )

    exact_weight: float = Field(
        default=1.2,
        gt=0,
        le=5.0,
        description="Вес точного касания закрытием"
    )

    # === Объем и отскок ===
    volume_threshold_multiplier: float = Field(
        default=1.2,
        gt=0,
        le=20.0,
        description="Порог объема относительно среднего"
    )

    bounce_threshold_percent: float = Field(
        default=0.3,
        ge=0,
        le=100.0,
        description="Минимальный отскок в процентах"
    )

    lookforward_bars: int = Field(
        default=5,
        ge=1,
        le=500,
        description="Количество свечей для анализа отскока"
    )

    tolerance_percent: float = Field(
        default=0.1,
        gt=0,
        le=10.0,
        description="Толерантность касания в процентах от уровня"
    )


def _engine_touch_defaults() -> TouchConfig:
    return TouchConfig(
        volume_threshold_multiplier=1.3,
        bounce_threshold_percent=0.4,
        lookforward_bars=6,
        tolerance_percent=0.15,
    )


class DetectionConfig(BaseModel):
    """
    Главная конфигурация движка детекции линий
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    touch: TouchConfig = Field(default_factory=_engine_touch_defaults)

    # === Фильтры приемки ===
    min_touch_count: int = Field(
        default=3,
        ge=1,
        description="Минимальное количество касаний"
    )

    min_confidence: float = Field(
        default=0.6,
        ge=0,
        le=1,
        description="Минимальная уверенность"
    )

    min_quality_score: float = Field(
        default=60.0,
        ge=0,
        le=100,
        description="Минимальный показатель качества касаний"
    )

    min_timeframes: int = Field(
        default=2,
        ge=1,
        description="Минимальное количество подтверждающих таймфреймов"
    )

    price_tolerance_percent: float = Field(
        default=0.5,
        gt=0,
        le=20.0,
        description="Толерантность кластеризации уровней в процентах"
    )

    require_volume_confirmation: bool = False
    min_volume_confirmation: float = Field(default=0.5, ge=0, le=1)

    require_bounce_confirmation: bool = False
    min_bounce_confirmation: float = Field(default=0.3, ge=0, le=1)

    # === Трендовые линии ===
    min_trendline_points: int = Field(
        default=3,
        ge=2,
        description="Минимум точек для регрессии трендовой линии"
    )

    max_trendline_slope: float = Field(
        default=0.1,
        gt=0,
        description="Максимальный относительный наклон (доля цены за свечу)"
    )

    trendline_r_squared_threshold: float = Field(
        default=0.7,
        ge=0,
        le=1,
        description="Минимальный R² трендовой линии"
    )

    min_trendline_timespan: int = Field(
        default=10,
        ge=1,
        description="Минимальное расстояние между опорными точками в свечах"
    )

    max_trendline_candidates: int = Field(
        default=5,
        ge=1,
        le=100,
        description="Количество лучших кандидатов на таймфрейм"
    )

    max_trendline_swing_points: int = Field(
        default=100,
        ge=2,
        description="Сколько последних свинг-точек участвует в переборе пар"
    )

    trendline_fit_tolerance: float = Field(
        default=0.0015,
        gt=0,
        le=0.5,
        description="Допуск отбора точек для регрессии (доля ценового диапазона)"
    )

    # === Прочее ===
    swing_lookback: int = Field(default=5, ge=1, le=100)
    trendline_swing_lookback: int = Field(default=3, ge=1, le=100)
    level_type_lookback: int = Field(default=20, ge=1)
    recent_candles: int = Field(default=20, ge=1)
    zone_width_percent: float = Field(default=1.0, gt=0, le=20.0)

    high_confidence_threshold: float = Field(default=0.7, ge=0, le=1)
    medium_confidence_threshold: float = Field(default=0.3, ge=0, le=1)

    max_workers: int = Field(
        default=4,
        ge=1,
        le=64,
        description="Потоки для параллельной обработки таймфреймов"
    )

    @model_validator(mode="after")
    def validate_thresholds(self) -> "DetectionConfig":
        """Проверка согласованности порогов"""
        if self.medium_confidence_threshold > self.high_confidence_threshold:
            raise ValueError(
                "medium_confidence_threshold must not exceed high_confidence_threshold"
            )
        return self


def _validation_details(error: ValidationError) -> Dict[str, Any]:
    return {
        ".".join(str(part) for part in item["loc"]) or "__root__": item["msg"]
        for item in error.errors()
    }


def build_touch_config(base: Optional[TouchConfig] = None, **overrides) -> TouchConfig:
    """
    Создать TouchConfig с переопределениями

    Raises:
        ConfigurationException: При невалидных параметрах
    """
    values = base.model_dump() if base is not None else {}
    values.update(overrides)
    try:
        return TouchConfig(**values)
    except ValidationError as e:
        raise ConfigurationException(
            "Invalid touch configuration",
            config_section="touch",
            invalid_params=_validation_details(e),
            original_exception=e
        ) from e


def build_detection_config(base: Optional[DetectionConfig] = None, **overrides) -> DetectionConfig:
    """
    Создать DetectionConfig с переопределениями

    Вложенные параметры касаний можно передать словарем в ``touch``;
    они накладываются на параметры базовой конфигурации.

    Args:
        base: Базовая конфигурация (по умолчанию значения по умолчанию)
        **overrides: Переопределяемые поля

    Returns:
        Провалидированная конфигурация

    Raises:
        ConfigurationException: При невалидных параметрах
    """
    values = (base if base is not None else DetectionConfig()).model_dump()
    touch_overrides = overrides.pop("touch", None)
    if isinstance(touch_overrides, TouchConfig):
        values["touch"] = touch_overrides.model_dump()
    elif touch_overrides is not None:
        values["touch"] = {**values["touch"], **touch_overrides}
    values.update(overrides)
    try:
        return DetectionConfig(**values)
    except ValidationError as e:
        raise ConfigurationException(
            "Invalid detection configuration",
            config_section="detection",
            invalid_params=_validation_details(e),
            original_exception=e
        ) from e


def load_config_from_file(config_path: Union[str, Path]) -> DetectionConfig:
    """
    Загрузить конфигурацию из YAML файла

    Args:
        config_path: Путь к файлу конфигурации

    Returns:
        Экземпляр DetectionConfig
    """
    import yaml

    config_path = Path(config_path)
    if not config_path.exists():
        raise ConfigurationException(
            f"Config file not found: {config_path}",
            config_section="file"
        )

    with open(config_path, 'r', encoding='utf-8') as f:
        config_data = yaml.safe_load(f) or {}

    return build_detection_config(**config_data)


def save_config_to_file(config: DetectionConfig, config_path: Union[str, Path]) -> None:
    """
    Сохранить конфигурацию в YAML файл

    Args:
        config: Экземпляр конфигурации
        config_path: Путь для сохранения
    """
    import yaml

    config_path = Path(config_path)
    config_path.parent.mkdir(parents=True, exist_ok=True)

    with open(config_path, 'w', encoding='utf-8') as f:
        yaml.dump(config.model_dump(), f, default_flow_style=False, allow_unicode=True)
