"""Environmental forcing: photoperiod and daily temperature series.

Day length uses the astronomical approximation from
http://www.gandraxa.com/length_of_day.xml with the intermediate
quantity ``m`` clamped to [0, 2]:

  m = 1 − tan(φ) × tan(ε × cos(j × d)),   j = π / 182.625
  hours = 24 × acos(1 − m) / π

where φ is latitude, ε the axial tilt and d the day counted from the
winter solstice (day-of-year plus a per-year solstice offset).

Temperature inputs are plain daily sequences. A series is usable only
if it is non-empty and entirely finite; anything else causes the grid
runner to skip the cell.
"""

from __future__ import annotations

import math
from typing import Optional, Sequence

import numpy as np


# ═══════════════════════════════════════════════════════════════════════
# PHOTOPERIOD
# ═══════════════════════════════════════════════════════════════════════

AXIAL_TILT_DEG = 23.439
_J = math.pi / 182.625

# December solstice day for 2000-2020; other years fall back to the 21st
_SOLSTICE_FIRST_YEAR = 2000
_SOLSTICE_DAYS = (21, 21, 22, 22, 21, 21, 22, 22, 21, 21, 21,
                  22, 21, 21, 21, 22, 21, 21, 21, 22, 21)
DEFAULT_SOLSTICE_DAY = 21


def solstice_day(year: int) -> int:
    """Day of December on which the winter solstice falls."""
    idx = year - _SOLSTICE_FIRST_YEAR
    if 0 <= idx < len(_SOLSTICE_DAYS):
        return _SOLSTICE_DAYS[idx]
    return DEFAULT_SOLSTICE_DAY


def solstice_offset(year: int) -> int:
    """Days between the solstice and 1 January (31 − solstice day)."""
    return 31 - solstice_day(year)


def day_light_hours(year: int, day_of_year: float, latitude: float) -> float:
    """Daylight hours on ``day_of_year`` of ``year`` at ``latitude``.

    The day is shifted to days since that year's winter solstice.
    Never raises: polar night gives 0 and polar day gives 24.
    """
    date = day_of_year + solstice_offset(year)
    m = 1.0 - math.tan(math.radians(latitude)) * math.tan(
        math.radians(AXIAL_TILT_DEG) * math.cos(_J * date))
    if m > 2.0:
        m = 2.0
    if m < 0.0:
        m = 0.0
    return math.degrees(math.acos(1.0 - m)) / 180.0 * 24.0


def daylight_for_time(time: float, latitude: float, start_year: int = 0) -> float:
    """Daylight hours for simulation ``time`` (days since run start).

    Day-of-year is ``int(time) % 365``; the calendar year for the
    solstice lookup is ``start_year + int(time) // 365``.
    """
    day = int(time)
    year = start_year + day // 365
    return day_light_hours(year, day % 365, latitude)


# ═══════════════════════════════════════════════════════════════════════
# TEMPERATURE SERIES
# ═══════════════════════════════════════════════════════════════════════

def is_valid_series(temperatures) -> bool:
    """True if ``temperatures`` is a non-empty, fully finite numeric sequence."""
    if temperatures is None:
        return False
    try:
        arr = np.asarray(temperatures, dtype=np.float64)
    except (TypeError, ValueError):
        return False
    if arr.ndim != 1 or arr.size == 0:
        return False
    return bool(np.all(np.isfinite(arr)))


def as_series(temperatures: Sequence[float]) -> np.ndarray:
    """Validated float64 copy of a daily temperature series.

    Raises:
        ValueError: If the series is empty, not 1-D, or non-finite.
    """
    if not is_valid_series(temperatures):
        raise ValueError("temperature series must be a non-empty, finite 1-D sequence")
    return np.array(temperatures, dtype=np.float64)


def temperature_index(time: float, n_days: int) -> int:
    """Series index for ``time``, wrapping when the series is shorter."""
    return int(time) % n_days


def sinusoidal_temperatures(n_days: int = 365, mean_temp: float = 15.0,
                            amplitude: float = 10.0,
                            peak_doy: int = 200) -> np.ndarray:
    """Daily temperatures from a sinusoidal annual cycle.

    T(d) = T_mean + A × cos(2π × (d − d_peak) / 365)

    Args:
        n_days: Length of the series (days).
        mean_temp: Annual mean temperature (°C).
        amplitude: Half-range of the annual cycle (°C).
        peak_doy: Day of year of the temperature maximum.

    Returns:
        (n_days,) float64 array of temperatures (°C).
    """
    days = np.arange(n_days, dtype=np.float64)
    phase = 2.0 * np.pi * (days % 365 - peak_doy) / 365.0
    return mean_temp + amplitude * np.cos(phase)


def constant_temperatures(n_days: int, temperature: float) -> np.ndarray:
    return np.full(n_days, float(temperature), dtype=np.float64)


def latitude_grid(n_rows: int, n_cols: int, origin: float = 24.5,
                  step: float = 1.0,
                  latitudes: Optional[Sequence[float]] = None) -> np.ndarray:
    """(n_rows, n_cols) latitude layout: row r sits at ``origin + r × step``.

    Explicit per-row ``latitudes`` override the regular spacing.
    """
    if n_rows < 1 or n_cols < 1:
        raise ValueError(f"grid shape must be positive, got ({n_rows}, {n_cols})")
    if latitudes is not None:
        rows = np.asarray(latitudes, dtype=np.float64)
        if rows.shape != (n_rows,):
            raise ValueError(
                f"expected {n_rows} row latitudes, got {rows.shape[0] if rows.ndim else 0}"
            )
    else:
        rows = origin + step * np.arange(n_rows, dtype=np.float64)
    return np.repeat(rows[:, None], n_cols, axis=1)
