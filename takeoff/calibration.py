"""
Calibration Engine — establishes a map's real-world scale.

scale_factor = real distance in meters / pixel distance  (meters per pixel)

Every successful calibration bumps Map.calibration_version by exactly one.
Measurements are tagged with the version active when they were written, so a
measurement from a superseded scale is always detectable. When a map already
has measurements, recalibration is refused unless force=True, in which case
the measurements are deleted and the new scale persisted in one transaction.
"""

import logging
import math
from dataclasses import dataclass

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from . import models, units
from .errors import CalibrationTransactionError, ConflictError, NotFoundError, ValidationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CalibrationResult:
    scale_factor: float
    calibration_version: int
    deleted_measurements: int = 0


def _positive_finite(name: str, value) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValidationError(f"{name} must be a positive number")
    if not math.isfinite(value) or value <= 0:
        raise ValidationError(f"{name} must be a positive number")
    return float(value)


def compute_scale_factor(pixel_distance: float, real_distance: float, unit: str) -> float:
    """Meters per pixel for a reference line. Raises ValidationError on bad input."""
    pixel_distance = _positive_finite("pixelDistance", pixel_distance)
    real_distance = _positive_finite("realDistance", real_distance)
    scale_factor = units.to_meters(real_distance, unit) / pixel_distance
    # Finite inputs can still overflow or underflow the ratio
    if not math.isfinite(scale_factor) or scale_factor <= 0:
        raise ValidationError(
            "pixelDistance and realDistance give an out-of-range scale factor",
        )
    return scale_factor


def calibrate(db: Session, map_id: int, pixel_distance: float, real_distance: float,
              unit: str, force: bool = False) -> CalibrationResult:
    """
    Calibrate (or recalibrate) a map.

    Raises:
        ValidationError: bad distances or unit — nothing is read or written
        NotFoundError: unknown map
        ConflictError: map not ready, measurements exist without force,
                       or a concurrent calibration bumped the version first
        CalibrationTransactionError: the delete+rescale commit failed; rolled back
    """
    scale_factor = compute_scale_factor(pixel_distance, real_distance, unit)

    db_map = db.query(models.Map).filter(models.Map.id == map_id).first()
    if not db_map:
        raise NotFoundError("Map not found")
    if db_map.status != models.MapStatus.READY:
        raise ConflictError(
            f"Map is {db_map.status.value} — calibration requires a ready map",
            status=db_map.status.value,
        )

    expected_version = db_map.calibration_version
    measurement_query = db.query(models.Measurement).filter(models.Measurement.map_id == map_id)
    existing = measurement_query.count()

    if existing and not force:
        raise ConflictError(
            f"Map has {existing} existing measurement(s). "
            f"Recalibrate with force=true to delete them.",
            existing_measurements=existing,
            calibration_version=expected_version,
        )

    try:
        deleted = measurement_query.delete(synchronize_session=False) if existing else 0

        # Compare-and-swap on the version read above
        updated = db.query(models.Map).filter(
            models.Map.id == map_id,
            models.Map.calibration_version == expected_version,
        ).update(
            {
                models.Map.pixel_distance: float(pixel_distance),
                models.Map.real_distance: float(real_distance),
                models.Map.scale_unit: unit,
                models.Map.scale_factor: scale_factor,
                models.Map.calibration_version: models.Map.calibration_version + 1,
            },
            synchronize_session=False,
        )
        if updated != 1:
            db.rollback()
            raise ConflictError(
                "Map was recalibrated concurrently — re-fetch and retry",
                calibration_version=expected_version,
            )
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.exception("Calibration of map %s rolled back", map_id)
        raise CalibrationTransactionError(
            f"Calibration failed and was rolled back: {e.__class__.__name__}"
        ) from e

    db.refresh(db_map)
    logger.info(
        "Calibrated map %s: %.6f m/px, version %d, %d measurement(s) deleted",
        map_id, scale_factor, db_map.calibration_version, deleted,
    )
    return CalibrationResult(
        scale_factor=db_map.scale_factor,
        calibration_version=db_map.calibration_version,
        deleted_measurements=deleted,
    )
