"""
Basic usage example for the line detection engine.

This example demonstrates the fundamental workflow:
1. Data preparation on two timeframes
2. Line detection
3. Inspecting lines, confluence zones and statistics
4. Error handling
"""

import asyncio
from datetime import datetime

import numpy as np
import pandas as pd

from src.config.detection_config import build_detection_config
from src.line_detection import LineDetectionEngine, MultiTimeframeData


def generate_sample_data(periods: int, freq: str, seed: int = 42) -> pd.DataFrame:
    """Generate a ranging OHLCV series with noise"""
    print(f"📊 Generating {periods} candles of {freq} data...")

    rng = np.random.default_rng(seed)
    timestamps = pd.date_range(start='2024-01-01', periods=periods, freq=freq)

    # Oscillation between ~48000 and ~52000 plus noise
    phase = np.arange(periods) / 20 * 2 * np.pi
    mid = 50000 + 2000 * np.sin(phase) + rng.normal(0, 150, periods)

    open_price = mid + rng.normal(0, 60, periods)
    close_price = mid + rng.normal(0, 60, periods)
    spread = np.abs(rng.normal(0, 120, periods))

    df = pd.DataFrame({
        'timestamp': timestamps,
        'open': open_price,
        'high': np.maximum(open_price, close_price) + spread,
        'low': np.minimum(open_price, close_price) - spread,
        'close': close_price,
        'volume': rng.uniform(100, 1000, periods),
    })
    print(f"✅ Generated {len(df)} candles from {df['timestamp'].min()} to {df['timestamp'].max()}")
    return df


def basic_detection_example():
    """Detect levels and trendlines on 1h and 4h data"""
    print("\n📈 Basic Detection Example")
    print("=" * 30)

    data = MultiTimeframeData.from_dataframes(
        "BTCUSDT",
        {
            "1h": generate_sample_data(300, "h"),
            "4h": generate_sample_data(200, "4h", seed=7),
        },
        weights={"1h": 0.3, "4h": 0.35},
    )

    engine = LineDetectionEngine(min_quality_score=40, min_confidence=0.4)
    result = engine.detect_lines(data)

    print(f"\nHorizontal levels: {len(result.horizontal_lines)}")
    for line in result.horizontal_lines[:5]:
        print(f"- {line.level_type.value:<10} {line.price:>10.2f}  "
              f"confidence={line.confidence:.2f} strength={line.strength:.2f}")
        print(f"  {line.description}")

    print(f"\nTrendlines: {len(result.trendlines)}")
    for line in result.trendlines[:5]:
        print(f"- {line.level_type.value:<10} now at {line.price:.2f}  priority={line.priority.value}")
        print(f"  {line.description}")

    print(f"\nConfluence zones: {len(result.confluence_zones)}")
    for zone in result.confluence_zones:
        print(f"- {zone.zone_type.value}: {zone.price_range.min:.2f} - {zone.price_range.max:.2f} "
              f"({zone.timeframe_count} timeframes)")

    stats = result.detection_stats
    print(f"\nStats: {stats.total_candidates} candidates, {stats.touch_filtered} passed touches, "
          f"{stats.quality_filtered} passed quality, {stats.final_lines} final "
          f"in {stats.processing_time_ms:.1f}ms")

    print("\nAs DataFrame:")
    print(result.to_dataframe().head())

    return engine, data, result


def async_example(engine, data):
    """Run detection through the async entry point"""
    print("\n⚡ Async Example")
    print("=" * 30)

    result = asyncio.run(engine.detect_lines_async(data, timeout=30))
    print(f"✅ Async detection found {len(result.all_lines)} lines")


def configuration_example():
    """Example of custom configuration usage"""
    print("\n⚙️ Configuration Example")
    print("=" * 30)

    config = build_detection_config(
        min_touch_count=4,
        require_volume_confirmation=True,
        touch={'tolerance_percent': 0.2, 'lookforward_bars': 8},
    )

    print("Custom configuration created:")
    print(f"- Min touches: {config.min_touch_count}")
    print(f"- Volume confirmation: {config.require_volume_confirmation}")
    print(f"- Touch tolerance: {config.touch.tolerance_percent}%")
    print(f"- Bounce look-forward: {config.touch.lookforward_bars} bars")

    engine = LineDetectionEngine(config)
    print(f"\n✅ Engine created, needs at least {engine.min_candles} candles per timeframe")
    return engine


def error_handling_example():
    """Example of error handling"""
    print("\n⚠️ Error Handling Example")
    print("=" * 30)

    from src.utils.exceptions import ConfigurationException, InvalidDataException

    print("1. Testing invalid configuration...")
    try:
        LineDetectionEngine(min_confidence=1.5)
    except ConfigurationException as e:
        print(f"✅ Caught expected error: {e}")

    print("\n2. Testing invalid OHLCV data...")
    try:
        MultiTimeframeData.from_dataframes("BTCUSDT", {"1h": pd.DataFrame({'wrong_column': [1, 2, 3]})})
    except InvalidDataException as e:
        print(f"✅ Caught expected error: {e}")

    print("\n✅ Error handling examples completed")


if __name__ == "__main__":
    print("📐 Line Detection - Basic Usage Examples")
    print("=" * 60)
    print(f"Execution started at: {datetime.now()}")

    engine, data, _ = basic_detection_example()
    async_example(engine, data)
    configuration_example()
    error_handling_example()

    print("\n" + "=" * 60)
    print("🎉 All examples completed successfully!")
    print(f"Execution finished at: {datetime.now()}")
