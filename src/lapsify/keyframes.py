"""Keyframe interpolation.

A keyframe array of K values is stretched over N output frames. Keyframes land
on evenly spaced frame positions, the first and last frames take the first and
last keyframe values exactly, and values in between are linearly interpolated.
"""

import math
from collections.abc import Iterator, Sequence
from dataclasses import dataclass

from lapsify.errors import ConfigurationError


@dataclass(frozen=True)
class ParameterDomain:
    """Allowed range for one adjustable parameter.

    Attributes:
        minimum: Lowest allowed value
        maximum: Highest allowed value
        min_exclusive: If True, ``minimum`` itself is not allowed
    """

    minimum: float = -math.inf
    maximum: float = math.inf
    min_exclusive: bool = False

    def contains(self, value: float) -> bool:
        if not math.isfinite(value):
            return False
        if self.min_exclusive:
            return self.minimum < value <= self.maximum
        return self.minimum <= value <= self.maximum

    def describe(self) -> str:
        left = "(" if self.min_exclusive else "["
        return f"{left}{self.minimum}, {self.maximum}]"


PARAMETER_DOMAINS: dict[str, ParameterDomain] = {
    "exposure": ParameterDomain(-3.0, 3.0),
    "brightness": ParameterDomain(-100.0, 100.0),
    "contrast": ParameterDomain(0.0, 3.0, min_exclusive=True),
    "saturation": ParameterDomain(0.0, 2.0),
    "offset_x": ParameterDomain(),
    "offset_y": ParameterDomain(),
}


class ParameterSchedule(Sequence[float]):
    """Immutable per-frame values for one parameter."""

    __slots__ = ("_values", "parameter")

    def __init__(self, values: Sequence[float], parameter: str | None = None):
        self._values = tuple(float(v) for v in values)
        self.parameter = parameter

    def __getitem__(self, index):
        return self._values[index]

    def __len__(self) -> int:
        return len(self._values)

    def __iter__(self) -> Iterator[float]:
        return iter(self._values)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, ParameterSchedule):
            return self._values == other._values
        if isinstance(other, (list, tuple)):
            return self._values == tuple(other)
        return NotImplemented

    def __hash__(self) -> int:
        return hash(self._values)

    def __repr__(self) -> str:
        name = self.parameter or "schedule"
        if len(self._values) <= 6:
            return f"ParameterSchedule({name}, {list(self._values)})"
        return f"ParameterSchedule({name}, {self._values[0]} .. {self._values[-1]}, n={len(self._values)})"


def validate_keyframes(values: Sequence[float], parameter: str) -> None:
    """Check every keyframe value against the parameter's domain.

    Args:
        values: Keyframe values
        parameter: Parameter name, a key of PARAMETER_DOMAINS

    Raises:
        ConfigurationError: If the array is empty, the parameter is unknown, or a
            value lies outside the domain
    """
    if parameter not in PARAMETER_DOMAINS:
        raise ConfigurationError(f"Unknown parameter: {parameter}")
    if len(values) == 0:
        raise ConfigurationError(f"{parameter} needs at least one keyframe value")

    domain = PARAMETER_DOMAINS[parameter]
    for i, value in enumerate(values):
        if not domain.contains(value):
            raise ConfigurationError(
                f"{parameter} value at index {i} ({value}) is outside valid range {domain.describe()}"
            )


def lerp(a: float, b: float, frac: float) -> float:
    return a + (b - a) * frac


def build_schedule(values: Sequence[float], frame_count: int, parameter: str | None = None) -> ParameterSchedule:
    """Interpolate keyframe values into one value per output frame.

    Args:
        values: K keyframe values (K >= 1); K may exceed frame_count
        frame_count: Number of output frames N
        parameter: Optional parameter name; when given, values are validated
            against PARAMETER_DOMAINS first

    Returns:
        ParameterSchedule of length frame_count

    Raises:
        ConfigurationError: On empty keyframes, frame_count < 1, or a
            value outside the parameter's domain
    """
    if parameter is not None:
        validate_keyframes(values, parameter)

    keyframe_count = len(values)
    if keyframe_count == 0:
        raise ConfigurationError(f"{parameter or 'parameter'} needs at least one keyframe value")
    if frame_count < 1:
        raise ConfigurationError(f"Frame count must be at least 1, got {frame_count}")
    if any(not math.isfinite(v) for v in values):
        raise ConfigurationError(f"{parameter or 'parameter'} keyframes must be finite numbers: {list(values)}")

    if keyframe_count == 1:
        return ParameterSchedule([values[0]] * frame_count, parameter)
    if frame_count == 1:
        return ParameterSchedule([values[0]], parameter)

    last = keyframe_count - 1
    schedule = []
    for i in range(frame_count):
        t = i * last / (frame_count - 1)
        lo = math.floor(t)
        hi = min(lo + 1, last)
        schedule.append(lerp(values[lo], values[hi], t - lo))

    # Pin the final frame; t can land a hair under K-1
    schedule[-1] = float(values[last])
    return ParameterSchedule(schedule, parameter)
