from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from .. import models, schemas
from ..auth import get_current_user
from ..database import get_db

router = APIRouter(prefix="/projects", tags=["projects"])


def get_project_or_404(project_id: int, db: Session) -> models.Project:
    project = db.query(models.Project).filter(models.Project.id == project_id).first()
    if not project:
        raise HTTPException(status_code=404, detail="Project not found")
    return project


def _project_to_dict(p: models.Project) -> dict:
    return {
        "id": p.id,
        "name": p.name,
        "ownerId": p.owner_id,
        "createdAt": p.created_at.isoformat() if p.created_at else None,
    }


@router.post("/", status_code=201)
def create_project(
    project: schemas.ProjectCreate,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
):
    db_project = models.Project(name=project.name, owner_id=current_user.id)
    db.add(db_project)
    db.commit()
    db.refresh(db_project)
    return _project_to_dict(db_project)


@router.get("/{project_id}")
def get_project(project_id: int, db: Session = Depends(get_db)):
    return _project_to_dict(get_project_or_404(project_id, db))
