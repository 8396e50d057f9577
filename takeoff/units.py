# Unit tables for calibration and measurement display.
# Canonical units: meters (length), square meters (area), cubic meters (volume), degrees (angle).

from .errors import ValidationError

# Meters per unit — the single source every other table derives from
LINEAR_TO_METERS = {
    "m": 1.0,
    "cm": 0.01,
    "mm": 0.001,
    "ft": 0.3048,
    "in": 0.0254,
}

CALIBRATION_UNITS = tuple(LINEAR_TO_METERS)

AREA_TO_SQM = {
    "sqm": LINEAR_TO_METERS["m"] ** 2,
    "sqcm": LINEAR_TO_METERS["cm"] ** 2,
    "sqft": LINEAR_TO_METERS["ft"] ** 2,
    "sqin": LINEAR_TO_METERS["in"] ** 2,
}

VOLUME_TO_CBM = {
    "cbm": LINEAR_TO_METERS["m"] ** 3,
    "cbft": LINEAR_TO_METERS["ft"] ** 3,
    "cbin": LINEAR_TO_METERS["in"] ** 3,
}

ANGLE_UNITS = {"deg": 1.0}

# Display units accepted per measurement type
UNITS_BY_TYPE = {
    "distance": LINEAR_TO_METERS,
    "perimeter": LINEAR_TO_METERS,
    "area": AREA_TO_SQM,
    "volume": VOLUME_TO_CBM,
    "angle": ANGLE_UNITS,
}

DEFAULT_UNIT_BY_TYPE = {
    "distance": "m",
    "perimeter": "m",
    "area": "sqm",
    "volume": "cbm",
    "angle": "deg",
}

UNIT_LABELS = {
    "m": "m",
    "cm": "cm",
    "mm": "mm",
    "ft": "ft",
    "in": "in",
    "sqm": "m²",
    "sqcm": "cm²",
    "sqft": "ft²",
    "sqin": "in²",
    "cbm": "m³",
    "cbft": "ft³",
    "cbin": "in³",
    "deg": "°",
}

# Spellings the drawing UI sends interchangeably
UNIT_ALIASES = {
    "m2": "sqm", "m²": "sqm", "sq_m": "sqm",
    "cm2": "sqcm", "cm²": "sqcm",
    "ft2": "sqft", "ft²": "sqft", "sq_ft": "sqft",
    "in2": "sqin", "in²": "sqin",
    "m3": "cbm", "m³": "cbm",
    "ft3": "cbft", "ft³": "cbft",
    "in3": "cbin", "in³": "cbin",
    "°": "deg", "degrees": "deg",
}


def to_meters(value: float, unit: str) -> float:
    """Convert a linear calibration distance to canonical meters."""
    if unit not in LINEAR_TO_METERS:
        raise ValidationError(
            f"unit must be one of: {', '.join(CALIBRATION_UNITS)}",
            unit=unit,
        )
    return value * LINEAR_TO_METERS[unit]


def normalize_unit(measurement_type: str, unit: str = None) -> str:
    """Resolve aliases and defaults, rejecting units that don't fit the type."""
    if not unit:
        return DEFAULT_UNIT_BY_TYPE[measurement_type]
    unit = UNIT_ALIASES.get(unit, unit)
    allowed = UNITS_BY_TYPE[measurement_type]
    if unit not in allowed:
        raise ValidationError(
            f"Unit '{unit}' is not valid for {measurement_type} measurements. "
            f"Allowed: {', '.join(allowed)}",
        )
    return unit


def from_canonical(value: float, measurement_type: str, unit: str) -> float:
    """Convert a canonical value into the given display unit."""
    return value / UNITS_BY_TYPE[measurement_type][unit]


def format_display_value(value: float, unit: str) -> str:
    """'12.50 m', '45.00 m²', '90.00°' — degrees carry no space."""
    label = UNIT_LABELS[unit]
    if unit == "deg":
        return f"{value:.2f}{label}"
    return f"{value:.2f} {label}"
