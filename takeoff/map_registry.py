"""
Map Registry — identity, file metadata and lifecycle of uploaded drawings.

Lifecycle: uploading → processing → ready | error
Calibration and measurement creation are only permitted in ready.
Re-uploading under the same name within a project creates the next version.
"""

import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from . import models, storage
from .errors import ConflictError, NotFoundError, TakeoffError

logger = logging.getLogger(__name__)

MapStatus = models.MapStatus

ALLOWED_TRANSITIONS = {
    MapStatus.UPLOADING: {MapStatus.PROCESSING},
    MapStatus.PROCESSING: {MapStatus.READY, MapStatus.ERROR},
    MapStatus.READY: set(),
    MapStatus.ERROR: set(),
}


def transition(db_map: models.Map, new_status: MapStatus) -> None:
    """Move a map to new_status. Illegal transitions raise ConflictError."""
    current = db_map.status or MapStatus.UPLOADING
    if new_status not in ALLOWED_TRANSITIONS[current]:
        raise ConflictError(
            f"Cannot move map from {current.value} to {new_status.value}",
            status=current.value,
        )
    db_map.status = new_status


def download_url(map_id: int) -> str:
    return f"/api/maps/{map_id}/download"


def get_map(db: Session, map_id: int) -> models.Map:
    db_map = db.query(models.Map).filter(models.Map.id == map_id).first()
    if not db_map:
        raise NotFoundError("Map not found")
    return db_map


def find_latest_version(db: Session, project_id: int, name: str):
    """Highest version of a map name within a project, or None."""
    return db.query(models.Map).filter(
        models.Map.project_id == project_id,
        models.Map.name == name,
    ).order_by(models.Map.version.desc()).first()


def list_project_maps(db: Session, project_id: int) -> list:
    return db.query(models.Map).filter(
        models.Map.project_id == project_id,
    ).order_by(models.Map.created_at.desc(), models.Map.id.desc()).all()


def register_upload(db: Session, project_id: int, user_id: int, name: str,
                    file_bytes: bytes, filename: str, description: str = None) -> models.Map:
    """
    Store the blob and create the map record, leaving it in processing.

    The caller schedules map_processor.process_map(map.id) once this returns.
    """
    file_type = storage.classify_file_type(filename)
    blob = storage.store(file_bytes, filename)

    latest = find_latest_version(db, project_id, name)
    version = latest.version + 1 if latest else 1

    db_map = models.Map(
        project_id=project_id,
        name=name,
        description=description,
        file_type=models.MapFileType(file_type),
        original_file_name=filename,
        storage_path=blob["storage_path"],
        file_size=blob["size"],
        mime_type=blob["mime_type"],
        status=MapStatus.UPLOADING,
        metadata_json={},
        version=version,
        uploaded_by=user_id,
    )
    try:
        db.add(db_map)
        db.flush()
        transition(db_map, MapStatus.PROCESSING)
        db.commit()
    except (SQLAlchemyError, TakeoffError):
        db.rollback()
        storage.delete(blob["storage_path"])
        raise
    db.refresh(db_map)
    logger.info("Registered map %s '%s' v%d (%s)", db_map.id, name, version, file_type)
    return db_map


def update_map(db: Session, db_map: models.Map, name: str = None, description: str = None) -> models.Map:
    """
    Rename and/or redescribe a map.

    A rename joins the target name's version series as its newest version,
    so (project, name, version) stays unique and latest-by-name stays exact.
    """
    name = name.strip() if name else None
    if name and name != db_map.name:
        latest = find_latest_version(db, db_map.project_id, name)
        db_map.version = latest.version + 1 if latest else 1
        logger.info("Renamed map %s to '%s' v%d", db_map.id, name, db_map.version)
        db_map.name = name
    if description is not None:
        db_map.description = description
    db.commit()
    db.refresh(db_map)
    return db_map


def delete_map(db: Session, db_map: models.Map) -> dict:
    """
    Delete a map with its measurements and detach it from cost estimates.

    All three mutations commit together. The blob is removed afterwards;
    a blob failure is logged and leaves an orphan file, not a dangling map.
    """
    map_id = db_map.id
    storage_path = db_map.storage_path
    try:
        deleted_measurements = db.query(models.Measurement).filter(
            models.Measurement.map_id == map_id,
        ).delete(synchronize_session=False)
        detached_estimates = db.query(models.CostEstimate).filter(
            models.CostEstimate.map_id == map_id,
        ).update({models.CostEstimate.map_id: None}, synchronize_session=False)
        db.delete(db_map)
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Delete of map %s rolled back", map_id)
        raise

    try:
        storage.delete(storage_path)
    except Exception as e:
        logger.warning("Failed to delete blob for map %s: %s", map_id, e)

    logger.info(
        "Deleted map %s: %d measurement(s) removed, %d estimate(s) detached",
        map_id, deleted_measurements, detached_estimates,
    )
    return {
        "deleted_measurements": deleted_measurements,
        "detached_estimates": detached_estimates,
    }


def get_map_stats(db: Session, project_id: int) -> dict:
    stats = {
        "total_maps": 0,
        "total_size": 0,
        "by_type": {t.value: 0 for t in models.MapFileType},
    }
    for db_map in db.query(models.Map).filter(models.Map.project_id == project_id).all():
        stats["total_maps"] += 1
        stats["total_size"] += db_map.file_size
        stats["by_type"][db_map.file_type.value] += 1
    return stats


def map_to_dict(m: models.Map) -> dict:
    """Public projection — storage_path is never exposed."""
    scale = None
    if m.is_calibrated:
        scale = {
            "pixelDistance": m.pixel_distance,
            "realDistance": m.real_distance,
            "unit": m.scale_unit,
            "scaleFactor": m.scale_factor,
        }
    return {
        "id": m.id,
        "projectId": m.project_id,
        "name": m.name,
        "description": m.description,
        "fileType": m.file_type.value,
        "originalFileName": m.original_file_name,
        "fileSize": m.file_size,
        "mimeType": m.mime_type,
        "status": m.status.value,
        "processingError": m.processing_error,
        "metadata": m.metadata_json or {},
        "scale": scale,
        "calibrationVersion": m.calibration_version,
        "version": m.version,
        "uploadedBy": m.uploaded_by,
        "downloadUrl": download_url(m.id),
        "createdAt": m.created_at.isoformat() if m.created_at else None,
        "updatedAt": m.updated_at.isoformat() if m.updated_at else None,
    }
