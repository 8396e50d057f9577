"""
Map endpoints — upload, lookup, download, calibrate, delete.

POST  /api/projects/{project_id}/maps     — multipart upload, returns 201 in processing
PATCH /api/maps/{map_id}/calibrate        — set scale; 409 if measurements exist without force
"""

from typing import Optional
from urllib.parse import quote

from fastapi import APIRouter, BackgroundTasks, Depends, File, Form, HTTPException, UploadFile
from fastapi.responses import Response
from sqlalchemy.orm import Session

from .. import calibration, map_registry, models, schemas, storage
from ..auth import ensure_owner, get_current_user
from ..database import get_db
from ..map_processor import process_map
from .projects import get_project_or_404


router = APIRouter(tags=["maps"])


# --- Project-scoped ---

@router.post("/projects/{project_id}/maps", status_code=201)
async def upload_map(
    project_id: int,
    background_tasks: BackgroundTasks,
    file: UploadFile = File(...),
    name: str = Form(...),
    description: Optional[str] = Form(None),
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
):
    """
    Upload a drawing to a project.

    - Validates extension (dwg, dxf, pdf, png, jpg, jpeg, tif, tiff, webp) and size
    - Same name as an existing map → next version
    - Returns immediately in processing; metadata extraction flips it to ready/error
    """
    project = get_project_or_404(project_id, db)
    ensure_owner(project, current_user)

    if not name.strip():
        raise HTTPException(status_code=400, detail="Map name is required")

    file_bytes = await file.read()
    db_map = map_registry.register_upload(
        db,
        project_id=project.id,
        user_id=current_user.id,
        name=name.strip(),
        description=description,
        file_bytes=file_bytes,
        filename=file.filename or "",
    )
    background_tasks.add_task(process_map, db_map.id)
    return map_registry.map_to_dict(db_map)


@router.get("/projects/{project_id}/maps")
def list_project_maps(project_id: int, db: Session = Depends(get_db)):
    get_project_or_404(project_id, db)
    return [map_registry.map_to_dict(m) for m in map_registry.list_project_maps(db, project_id)]


@router.get("/projects/{project_id}/maps/stats")
def get_map_stats(project_id: int, db: Session = Depends(get_db)):
    get_project_or_404(project_id, db)
    stats = map_registry.get_map_stats(db, project_id)
    return {
        "totalMaps": stats["total_maps"],
        "totalSize": stats["total_size"],
        "byType": stats["by_type"],
    }


@router.get("/projects/{project_id}/maps/latest")
def get_latest_map(project_id: int, name: str, db: Session = Depends(get_db)):
    """Latest uploaded version of a map name within the project."""
    get_project_or_404(project_id, db)
    db_map = map_registry.find_latest_version(db, project_id, name)
    if not db_map:
        raise HTTPException(status_code=404, detail="Map not found")
    return map_registry.map_to_dict(db_map)


# --- Individual maps ---

@router.get("/maps/{map_id}")
def get_map(map_id: int, db: Session = Depends(get_db)):
    return map_registry.map_to_dict(map_registry.get_map(db, map_id))


@router.get("/maps/{map_id}/download")
def download_map(map_id: int, db: Session = Depends(get_db)):
    db_map = map_registry.get_map(db, map_id)
    content = storage.read(db_map.storage_path)
    return Response(
        content=content,
        media_type=db_map.mime_type,
        headers={
            "Content-Disposition": f'attachment; filename="{quote(db_map.original_file_name)}"',
        },
    )


@router.patch("/maps/{map_id}")
def update_map(
    map_id: int,
    update: schemas.MapUpdate,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
):
    db_map = map_registry.get_map(db, map_id)
    ensure_owner(db_map.project, current_user, allow_admin=True)
    db_map = map_registry.update_map(db, db_map, name=update.name, description=update.description)
    return map_registry.map_to_dict(db_map)


@router.patch("/maps/{map_id}/calibrate")
def calibrate_map(
    map_id: int,
    request: schemas.CalibrateRequest,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
):
    """
    Calibrate map scale from a reference line.

    force=true deletes existing measurements and recalibrates atomically.
    """
    db_map = map_registry.get_map(db, map_id)
    ensure_owner(db_map.project, current_user, allow_admin=True)

    result = calibration.calibrate(
        db,
        map_id,
        pixel_distance=request.pixel_distance,
        real_distance=request.real_distance,
        unit=request.unit,
        force=request.force,
    )

    response = {
        "scaleFactor": result.scale_factor,
        "calibrationVersion": result.calibration_version,
        "message": "Map calibrated successfully",
    }
    if request.force:
        response["deletedMeasurements"] = result.deleted_measurements
        if result.deleted_measurements:
            response["message"] = (
                f"Map recalibrated successfully. "
                f"{result.deleted_measurements} measurement(s) deleted."
            )
    return response


@router.delete("/maps/{map_id}")
def delete_map(
    map_id: int,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
):
    db_map = map_registry.get_map(db, map_id)
    ensure_owner(db_map.project, current_user, allow_admin=True)
    result = map_registry.delete_map(db, db_map)
    return {
        "ok": True,
        "deletedMeasurements": result["deleted_measurements"],
        "detachedEstimates": result["detached_estimates"],
    }
