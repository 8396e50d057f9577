from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from .. import map_registry, measurement_service, models, schemas
from ..auth import ensure_owner, get_current_user
from ..database import get_db
from .projects import get_project_or_404

router = APIRouter(tags=["measurements"])


@router.post("/maps/{map_id}/measurements", status_code=201)
def create_measurement(
    map_id: int,
    measurement: schemas.MeasurementCreate,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
):
    """
    Create a measurement from pixel-space points.

    400 — too few points, degenerate geometry, bad unit
    409 — map not ready, or calibrationVersionAtCreation is no longer current
    """
    db_map = map_registry.get_map(db, map_id)
    ensure_owner(db_map.project, current_user)

    db_measurement = measurement_service.create_measurement(
        db,
        db_map,
        user_id=current_user.id,
        name=measurement.name or f"{measurement.type} measurement",
        measurement_type=measurement.type,
        points=measurement.points,
        unit=measurement.unit,
        height=measurement.height,
        color=measurement.color,
        notes=measurement.notes,
        calibration_version=measurement.calibration_version_at_creation,
    )
    return measurement_service.measurement_to_dict(db_measurement)


@router.get("/maps/{map_id}/measurements")
def list_map_measurements(map_id: int, db: Session = Depends(get_db)):
    db_map = map_registry.get_map(db, map_id)
    measurements = db.query(models.Measurement).filter(
        models.Measurement.map_id == map_id,
    ).order_by(models.Measurement.created_at.desc(), models.Measurement.id.desc()).all()
    return [measurement_service.measurement_to_dict(m, db_map) for m in measurements]


@router.get("/projects/{project_id}/measurements")
def list_project_measurements(project_id: int, db: Session = Depends(get_db)):
    get_project_or_404(project_id, db)
    measurements = db.query(models.Measurement).filter(
        models.Measurement.project_id == project_id,
    ).order_by(models.Measurement.created_at.desc(), models.Measurement.id.desc()).all()
    return [measurement_service.measurement_to_dict(m, m.map) for m in measurements]


@router.get("/projects/{project_id}/measurements/totals")
def get_measurement_totals(project_id: int, db: Session = Depends(get_db)):
    get_project_or_404(project_id, db)
    return measurement_service.get_measurement_totals(db, project_id)


@router.get("/measurements/{measurement_id}")
def get_measurement(measurement_id: int, db: Session = Depends(get_db)):
    m = measurement_service.get_measurement(db, measurement_id)
    return measurement_service.measurement_to_dict(m, m.map)


@router.patch("/measurements/{measurement_id}")
def update_measurement(
    measurement_id: int,
    update: schemas.MeasurementUpdate,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
):
    """Rename/recolor/annotate. Points and value cannot change."""
    m = measurement_service.get_measurement(db, measurement_id)
    ensure_owner(m.map.project, current_user, allow_admin=True)
    for field, value in update.model_dump(exclude_unset=True).items():
        if value is not None:
            setattr(m, field, value)
    db.commit()
    db.refresh(m)
    return measurement_service.measurement_to_dict(m, m.map)


@router.delete("/measurements/{measurement_id}")
def delete_measurement(
    measurement_id: int,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
):
    m = measurement_service.get_measurement(db, measurement_id)
    ensure_owner(m.map.project, current_user, allow_admin=True)
    db.delete(m)
    db.commit()
    return {"ok": True}
