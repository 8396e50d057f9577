"""
Measurement persistence on top of the geometry engine.

A measurement is computed once, against the map's scale at write time, and
stored with calibration_version_at_creation. The insert is guarded so it
cannot land after a concurrent recalibration has bumped the version.
"""

import logging

from sqlalchemy.orm import Session

from . import geometry, models
from .errors import ConflictError, NotFoundError, ValidationError

logger = logging.getLogger(__name__)


def create_measurement(db: Session, db_map: models.Map, user_id: int, name: str,
                       measurement_type: str, points: list, unit: str = None,
                       height: float = None, color: str = None, notes: str = None,
                       calibration_version: int = None) -> models.Measurement:
    """
    Compute and persist a measurement on a ready, calibrated map.

    calibration_version: the version the caller drew against. If given and no
    longer current, the write is refused so the client can re-fetch the scale.
    """
    if db_map.status != models.MapStatus.READY:
        raise ConflictError(
            f"Map is {db_map.status.value} — measurements require a ready map",
            status=db_map.status.value,
        )

    current_version = db_map.calibration_version
    if calibration_version is not None and calibration_version != current_version:
        raise ConflictError(
            "Map was recalibrated since these points were drawn",
            current_version=current_version,
            provided_version=calibration_version,
        )

    if measurement_type != models.MeasurementType.ANGLE.value and not db_map.is_calibrated:
        raise ValidationError("Map must be calibrated before creating measurements")

    result = geometry.measure(
        measurement_type, points, db_map.scale_factor, unit=unit, height=height,
    )

    # Version guard: no-op write that only matches while the version is unchanged.
    # It also takes the map row's write lock until commit, serializing with calibrate().
    guarded = db.query(models.Map).filter(
        models.Map.id == db_map.id,
        models.Map.calibration_version == current_version,
    ).update(
        {
            models.Map.calibration_version: models.Map.calibration_version,
            models.Map.updated_at: models.Map.updated_at,  # keep onupdate from firing
        },
        synchronize_session=False,
    )
    if guarded != 1:
        db.rollback()
        db.refresh(db_map)
        raise ConflictError(
            "Map was recalibrated while the measurement was being saved",
            current_version=db_map.calibration_version,
            provided_version=current_version,
        )

    measurement = models.Measurement(
        map_id=db_map.id,
        project_id=db_map.project_id,
        name=name,
        type=models.MeasurementType(measurement_type),
        points=[_point_dict(p) for p in points],
        height=height if measurement_type == models.MeasurementType.VOLUME.value else None,
        value=result.value,
        unit=result.unit,
        display_value=result.display_value,
        color=color or "#FF5722",
        notes=notes,
        calibration_version_at_creation=current_version,
        created_by=user_id,
    )
    db.add(measurement)
    db.commit()
    db.refresh(measurement)
    logger.info(
        "Measurement %s on map %s: %s %s", measurement.id, db_map.id,
        measurement_type, result.display_value,
    )
    return measurement


def _point_dict(p) -> dict:
    point = p if isinstance(p, dict) else p.model_dump(exclude_none=True)
    return {k: v for k, v in point.items() if k in ("x", "y", "z") and v is not None}


def get_measurement(db: Session, measurement_id: int) -> models.Measurement:
    measurement = db.query(models.Measurement).filter(
        models.Measurement.id == measurement_id,
    ).first()
    if not measurement:
        raise NotFoundError("Measurement not found")
    return measurement


def is_stale(measurement: models.Measurement, db_map: models.Map) -> bool:
    return measurement.calibration_version_at_creation != db_map.calibration_version


def get_measurement_totals(db: Session, project_id: int) -> dict:
    """Canonical value sums and counts per measurement type."""
    result = {
        "totals": {t.value: 0.0 for t in models.MeasurementType},
        "count": {t.value: 0 for t in models.MeasurementType},
    }
    for m in db.query(models.Measurement).filter(models.Measurement.project_id == project_id).all():
        result["totals"][m.type.value] += m.value
        result["count"][m.type.value] += 1
    return result


def measurement_to_dict(m: models.Measurement, db_map: models.Map = None) -> dict:
    data = {
        "id": m.id,
        "mapId": m.map_id,
        "projectId": m.project_id,
        "name": m.name,
        "type": m.type.value,
        "points": m.points,
        "height": m.height,
        "value": m.value,
        "unit": m.unit,
        "displayValue": m.display_value,
        "color": m.color,
        "notes": m.notes,
        "calibrationVersionAtCreation": m.calibration_version_at_creation,
        "createdBy": m.created_by,
        "createdAt": m.created_at.isoformat() if m.created_at else None,
        "updatedAt": m.updated_at.isoformat() if m.updated_at else None,
    }
    if db_map is not None:
        data["stale"] = is_stale(m, db_map)
    return data
