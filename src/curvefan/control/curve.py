"""Fan curve compilation and evaluation."""

from typing import Iterable, List, NamedTuple, Optional, Sequence, Tuple, Union
import logging
import math

from ..errors import ConfigurationError, SamplingError

logger = logging.getLogger(__name__)

Number = Union[int, float]


class ControlPoint(NamedTuple):
    """A configured (temperature, duty cycle) anchor of the fan curve."""
    temperature: float
    duty_cycle: float


class Segment(NamedTuple):
    """Linear piece of a compiled curve: duty = slope * temp + intercept.

    Valid for temperatures up to and including ``upper_bound``.
    """
    upper_bound: float
    slope: float
    intercept: float

    def at(self, temperature: float) -> float:
        return self.slope * temperature + self.intercept


def _validate_points(points: Iterable[Tuple[Number, Number]]) -> List[ControlPoint]:
    validated = []
    for point in points:
        try:
            temp, duty = point
            temp, duty = float(temp), float(duty)
        except (TypeError, ValueError):
            raise ConfigurationError(f"Invalid control point {point!r}, expected (temperature, duty_cycle)")
        if not (math.isfinite(temp) and math.isfinite(duty)):
            raise ConfigurationError(f"Control point {point!r} must be finite")
        validated.append(ControlPoint(temp, duty))

    if not validated:
        raise ConfigurationError("Must provide at least one control point")

    validated.sort()
    temps = set()
    for point in validated:
        if point.temperature in temps:
            raise ConfigurationError(f"Duplicate temperature {point.temperature}°C")
        temps.add(point.temperature)
    return validated


def compile_curve(points: Iterable[Tuple[Number, Number]]) -> List[Segment]:
    """Compile control points into an ordered list of linear segments.

    Each pair of neighbouring points yields the exact line through both of
    them, bounded above by the hotter point. A single point yields one flat
    segment, making the curve constant.

    Args:
        points: (temperature, duty_cycle) pairs in any order

    Returns:
        Segments sorted by ascending upper bound

    Raises:
        ConfigurationError: If points are empty, malformed or share a temperature
    """
    ordered = _validate_points(points)

    if len(ordered) == 1:
        only = ordered[0]
        logger.debug(f"Single control point {only}, using constant curve")
        return [Segment(upper_bound=only.temperature, slope=0.0, intercept=only.duty_cycle)]

    segments = []
    for (t0, d0), (t1, d1) in zip(ordered, ordered[1:]):
        slope = (d1 - d0) / (t1 - t0)
        intercept = d1 - slope * t1
        segments.append(Segment(upper_bound=t1, slope=slope, intercept=intercept))
    logger.debug(f"Compiled {len(segments)} segments from {len(ordered)} control points")
    return segments


def round_half_away(value: float) -> int:
    """Round to the nearest integer, ties away from zero.

    The value is first trimmed to 9 decimals so that float noise such as
    37.49999999999999 still rounds as 37.5.
    """
    trimmed = round(value, 9)
    rounded = math.floor(abs(trimmed) + 0.5)
    return rounded if trimmed >= 0 else -rounded


def select_segment(temperature: float, segments: Sequence[Segment]) -> Segment:
    """Return the first segment whose upper bound covers the temperature.

    Temperatures above the last bound extrapolate on the last segment.
    """
    if not segments:
        raise ConfigurationError("Curve has no segments")
    for segment in segments:
        if segment.upper_bound >= temperature:
            return segment
    return segments[-1]


def evaluate(temperature: Number, segments: Sequence[Segment],
             min_duty: Optional[Number] = None, max_duty: Optional[Number] = None) -> int:
    """Evaluate the compiled curve at a temperature.

    Args:
        temperature: Temperature in Celsius
        segments: Output of compile_curve()
        min_duty: Optional lower bound applied after rounding
        max_duty: Optional upper bound applied after rounding

    Returns:
        Duty cycle as an integer hardware unit

    Raises:
        SamplingError: If temperature is not a finite number, or is so
            extreme that the unbounded result overflows
    """
    try:
        temperature = float(temperature)
    except (TypeError, ValueError):
        raise SamplingError(f"Temperature {temperature!r} is not numeric")
    if not math.isfinite(temperature):
        raise SamplingError(f"Temperature {temperature} is not finite")

    raw = select_segment(temperature, segments).at(temperature)
    if math.isinf(raw):
        # Overflowed on an extreme reading; only a bound can make it usable
        bound = max_duty if raw > 0 else min_duty
        if bound is None:
            raise SamplingError(f"Temperature {temperature} is outside the usable range of the curve")
        return int(bound)
    if math.isnan(raw):
        raise SamplingError(f"Curve is undefined at {temperature}")

    duty = round_half_away(raw)
    if min_duty is not None:
        duty = max(int(min_duty), duty)
    if max_duty is not None:
        duty = min(int(max_duty), duty)
    return duty


class FanCurve:
    """Piecewise-linear curve compiled once from control points."""

    def __init__(self, points: Iterable[Tuple[Number, Number]],
                 min_duty: Optional[Number] = None, max_duty: Optional[Number] = None):
        """Initialize with control points and output bounds.

        Args:
            points: (temperature, duty_cycle) pairs
            min_duty: Lowest duty cycle ever returned (None for unbounded)
            max_duty: Highest duty cycle ever returned (None for unbounded)
        """
        if min_duty is not None and max_duty is not None and min_duty > max_duty:
            raise ConfigurationError(f"min_duty ({min_duty}) cannot be greater than max_duty ({max_duty})")

        self.min_duty = min_duty
        self.max_duty = max_duty
        self.points = _validate_points(points)
        self.segments = compile_curve(self.points)

    def get_speed(self, temperature: Number) -> int:
        """Get the clamped duty cycle for a temperature."""
        return evaluate(temperature, self.segments, self.min_duty, self.max_duty)

    def describe(self) -> List[str]:
        """Human readable form of each segment, coolest first."""
        lines = []
        lower = None
        for segment in self.segments:
            start = "-inf" if lower is None else f"{lower:g}"
            lines.append(
                f"({start}, {segment.upper_bound:g}]°C: duty = {segment.slope:.4f} * T + {segment.intercept:.4f}"
            )
            lower = segment.upper_bound
        if len(self.segments) > 1:
            lines[-1] += "  (extrapolated above)"
        return lines
