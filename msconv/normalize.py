"""Numeric transforms shared by the format codecs.

All functions are pure.  Values outside the documented input range are
clamped rather than rejected; callers that need strict ranges check first.
"""

from __future__ import annotations

import math

__all__ = [
    "ENV_TIME_CEILING_S",
    "ENV_TIME_UNITS",
    "KEYGROUP_MINUS_12_DB",
    "KEYGROUP_PLUS_6_DB",
    "clamp",
    "denormalize_frequency",
    "denormalize_linear",
    "denormalize_log",
    "gain_to_volume",
    "normalize_frequency",
    "normalize_linear",
    "normalize_log",
    "seconds_to_units",
    "twos_complement_decode",
    "twos_complement_encode",
    "units_to_seconds",
    "volume_to_gain",
]


# Hardware volume values for -12 dB and +6 dB in keygroup programs.
KEYGROUP_MINUS_12_DB = 0.353
KEYGROUP_PLUS_6_DB = 1.0
_KEYGROUP_VOLUME_RANGE = KEYGROUP_PLUS_6_DB - KEYGROUP_MINUS_12_DB

# Binary instrument envelope times: 0..127 spans 0..10 seconds.
ENV_TIME_UNITS = 127
ENV_TIME_CEILING_S = 10.0


def clamp(value: float, minimum: float, maximum: float) -> float:
    return max(minimum, min(maximum, value))


def normalize_linear(value: float, minimum: float, maximum: float) -> float:
    """Map ``value`` from ``[minimum, maximum]`` onto ``[0, 1]``."""
    if maximum == minimum:
        return 0.0
    return (clamp(value, minimum, maximum) - minimum) / (maximum - minimum)


def denormalize_linear(value: float, minimum: float, maximum: float) -> float:
    """Inverse of :func:`normalize_linear`."""
    return minimum + clamp(value, 0.0, 1.0) * (maximum - minimum)


def normalize_log(value: float, minimum: float, maximum: float) -> float:
    """Logarithmic normalization ``ln(v/min) / ln(max/min)`` clamped to [0, 1].

    ``minimum`` must be greater than zero.  Values at or below ``minimum``
    (including zero) map to 0.
    """
    if minimum <= 0:
        raise ValueError(f"minimum must be > 0 for log normalization, got {minimum}")
    v = clamp(value, minimum, maximum)
    return clamp(math.log(v / minimum) / math.log(maximum / minimum), 0.0, 1.0)


def denormalize_log(value: float, minimum: float, maximum: float) -> float:
    """Inverse of :func:`normalize_log`: ``min * e^(t * ln(max/min))``."""
    if minimum <= 0:
        raise ValueError(f"minimum must be > 0 for log normalization, got {minimum}")
    t = clamp(value, 0.0, 1.0)
    return minimum * math.exp(t * math.log(maximum / minimum))


def twos_complement_decode(value: int, bits: int = 8) -> int:
    """Interpret the low ``bits`` of ``value`` as a signed integer."""
    mask = (1 << bits) - 1
    value &= mask
    if value & (1 << (bits - 1)):
        return value - (1 << bits)
    return value


def twos_complement_encode(value: int, bits: int = 8) -> int:
    """Store a signed integer in ``bits`` bits (wrapping like the hardware does)."""
    return int(value) & ((1 << bits) - 1)


def gain_to_volume(gain_db: float) -> float:
    """Canonical gain in dB to the keygroup volume value (0.353 = -12 dB, 1.0 = +6 dB).

    Gains above +6 dB saturate; gains far below -12 dB bottom out at 0.
    """
    db = min(gain_db, 6.0)
    return max(0.0, KEYGROUP_MINUS_12_DB + _KEYGROUP_VOLUME_RANGE * (12.0 + db) / 18.0)


def volume_to_gain(volume: float) -> float:
    """Inverse of :func:`gain_to_volume`."""
    return (volume - KEYGROUP_MINUS_12_DB) * 18.0 / _KEYGROUP_VOLUME_RANGE - 12.0


def normalize_frequency(frequency: float, maximum: float) -> float:
    """``log2(f) / log2(max)`` clamped to [0, 1]; 1 Hz and below map to 0."""
    if frequency <= 1.0:
        return 0.0
    return clamp(math.log2(frequency) / math.log2(maximum), 0.0, 1.0)


def denormalize_frequency(value: float, maximum: float) -> float:
    return 2.0 ** (clamp(value, 0.0, 1.0) * math.log2(maximum))


def units_to_seconds(value: int, ceiling: float = ENV_TIME_CEILING_S) -> float:
    """0..127 parameter units to seconds."""
    return clamp(value, 0, ENV_TIME_UNITS) / ENV_TIME_UNITS * ceiling


def seconds_to_units(seconds: float, ceiling: float = ENV_TIME_CEILING_S) -> int:
    return int(round(clamp(seconds, 0.0, ceiling) / ceiling * ENV_TIME_UNITS))
