"""
Measurement Geometry Engine.

Turns ordered pixel-space points into real-world values. Pure math — no DB.

Input: points [{x, y, z?}], measurement type, display unit, scale factor (m/px)
Output: MeasurementResult(value, unit, display_value) where value is canonical
        (m, m², m³ or degrees) and display_value is in the requested unit.
"""

import math
from dataclasses import dataclass

from . import units
from .errors import ValidationError

MIN_POINTS = {
    "distance": 2,
    "perimeter": 3,
    "area": 3,
    "volume": 3,
    "angle": 3,
}


@dataclass(frozen=True)
class MeasurementResult:
    value: float
    unit: str
    display_value: str


def _coords(points) -> list:
    """Accept dicts or objects with x/y attributes; reject non-finite coordinates."""
    coords = []
    for i, p in enumerate(points):
        if isinstance(p, dict):
            x, y = p.get("x"), p.get("y")
        else:
            x, y = getattr(p, "x", None), getattr(p, "y", None)
        try:
            x, y = float(x), float(y)
        except (TypeError, ValueError):
            raise ValidationError(f"Point {i} must have numeric x and y")
        if not (math.isfinite(x) and math.isfinite(y)):
            raise ValidationError(f"Point {i} has non-finite coordinates")
        coords.append((x, y))
    return coords


def _segment_lengths(coords: list, closed: bool) -> list:
    pairs = list(zip(coords, coords[1:]))
    if closed:
        pairs.append((coords[-1], coords[0]))
    lengths = []
    for i, (a, b) in enumerate(pairs):
        length = math.hypot(b[0] - a[0], b[1] - a[1])
        if length == 0:
            raise ValidationError(f"Segment {i} has zero length (duplicate consecutive points)")
        lengths.append(length)
    return lengths


def path_length(coords: list) -> float:
    """Sum of consecutive segment lengths in pixels."""
    return sum(_segment_lengths(coords, closed=False))


def perimeter_length(coords: list) -> float:
    """Path length plus the closing segment, in pixels."""
    return sum(_segment_lengths(coords, closed=True))


def shoelace_area(coords: list) -> float:
    """Polygon area in px². Self-intersecting polygons are not rejected."""
    n = len(coords)
    twice_area = 0.0
    for i in range(n):
        x1, y1 = coords[i]
        x2, y2 = coords[(i + 1) % n]
        twice_area += x1 * y2 - x2 * y1
    return abs(twice_area) / 2


def vertex_angle(a, vertex, b) -> float:
    """Angle at `vertex` between the arms to a and b, in degrees."""
    v1 = (a[0] - vertex[0], a[1] - vertex[1])
    v2 = (b[0] - vertex[0], b[1] - vertex[1])
    len1 = math.hypot(*v1)
    len2 = math.hypot(*v2)
    if len1 == 0 or len2 == 0:
        raise ValidationError("Angle arms must have non-zero length")
    # Normalize first so the dot product cannot overflow for far-apart points
    u1 = (v1[0] / len1, v1[1] / len1)
    u2 = (v2[0] / len2, v2[1] / len2)
    cos_theta = u1[0] * u2[0] + u1[1] * u2[1]
    # Rounding can push |cos| a hair past 1 for collinear points
    cos_theta = max(-1.0, min(1.0, cos_theta))
    return math.degrees(math.acos(cos_theta))


def canonical_value(measurement_type: str, points, scale_factor: float, height: float = None) -> float:
    """Compute the canonical real-world value for a measurement."""
    if measurement_type not in MIN_POINTS:
        raise ValidationError(f"Unknown measurement type: {measurement_type}")

    coords = _coords(points)
    required = MIN_POINTS[measurement_type]
    if measurement_type == "angle":
        if len(coords) != 3:
            raise ValidationError("Angle measurement requires exactly 3 points")
        return vertex_angle(coords[0], coords[1], coords[2])
    if len(coords) < required:
        raise ValidationError(
            f"{measurement_type.capitalize()} measurement requires at least {required} points",
            points=len(coords),
        )

    if scale_factor is None or not math.isfinite(scale_factor) or scale_factor <= 0:
        raise ValidationError("Map must be calibrated before creating measurements")

    value = _scaled_value(measurement_type, coords, scale_factor, height)
    # Finite coordinates far apart can still overflow
    if not math.isfinite(value):
        raise ValidationError(
            f"{measurement_type.capitalize()} is too large to compute",
            points=len(coords),
        )
    return value


def _scaled_value(measurement_type: str, coords: list, scale_factor: float, height) -> float:
    if measurement_type == "distance":
        return path_length(coords) * scale_factor
    if measurement_type == "perimeter":
        return perimeter_length(coords) * scale_factor

    area = shoelace_area(coords) * scale_factor * scale_factor
    if measurement_type == "area":
        return area

    # volume — height is explicit, point z values are ignored
    if height is None or isinstance(height, bool):
        raise ValidationError("Volume measurement requires a height")
    try:
        height = float(height)
    except (TypeError, ValueError):
        raise ValidationError("height must be a number")
    if not math.isfinite(height) or height <= 0:
        raise ValidationError("height must be a positive finite number")
    return area * height


def measure(measurement_type: str, points, scale_factor: float,
            unit: str = None, height: float = None) -> MeasurementResult:
    """
    Full pipeline for one measurement: validate, compute canonical value,
    convert to the display unit, format.

    Angles never use scale_factor, so an uncalibrated scale is only an error
    for the scaled types.
    """
    if measurement_type not in MIN_POINTS:
        raise ValidationError(f"Unknown measurement type: {measurement_type}")
    display_unit = units.normalize_unit(measurement_type, unit)
    value = canonical_value(measurement_type, points, scale_factor, height=height)
    shown = units.from_canonical(value, measurement_type, display_unit)
    if not math.isfinite(shown):
        raise ValidationError(
            f"{measurement_type.capitalize()} is too large to represent in {display_unit}",
        )
    return MeasurementResult(
        value=value,
        unit=display_unit,
        display_value=units.format_display_value(shown, display_unit),
    )
