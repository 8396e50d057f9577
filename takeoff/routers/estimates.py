from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from .. import estimate_engine, models, schemas
from ..auth import ensure_owner, get_current_user
from ..config import settings
from ..database import get_db
from ..errors import ValidationError
from .projects import get_project_or_404

router = APIRouter(tags=["estimates"])


def _get_estimate_or_404(estimate_id: int, db: Session) -> models.CostEstimate:
    estimate = db.query(models.CostEstimate).filter(models.CostEstimate.id == estimate_id).first()
    if not estimate:
        raise HTTPException(status_code=404, detail="Cost estimate not found")
    return estimate


def _check_map(map_id, project_id: int, db: Session) -> None:
    if map_id is None:
        return
    db_map = db.query(models.Map).filter(models.Map.id == map_id).first()
    if not db_map or db_map.project_id != project_id:
        raise ValidationError("Invalid map for this project", field="mapId")


def _build_items(items: list) -> list:
    return [
        models.CostItem(position=i, **estimate_engine.validate_item(item.model_dump()))
        for i, item in enumerate(items)
    ]


def _currency(value) -> str:
    return (value or settings.DEFAULT_CURRENCY).strip().upper()


@router.post("/projects/{project_id}/estimates", status_code=201)
def create_estimate(
    project_id: int,
    estimate: schemas.EstimateCreate,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
):
    project = get_project_or_404(project_id, db)
    ensure_owner(project, current_user)
    _check_map(estimate.map_id, project_id, db)

    db_estimate = models.CostEstimate(
        project_id=project_id,
        map_id=estimate.map_id,
        name=estimate.name,
        description=estimate.description,
        measurement_ids=list(estimate.measurement_ids),
        tax_rate=estimate_engine.validate_tax_rate(estimate.tax_rate),
        currency=_currency(estimate.currency),
        notes=estimate.notes,
        created_by=current_user.id,
        items=_build_items(estimate.items),
    )
    estimate_engine.apply_totals(db_estimate)
    db.add(db_estimate)
    db.commit()
    db.refresh(db_estimate)
    return estimate_engine.estimate_to_dict(db_estimate)


@router.get("/projects/{project_id}/estimates")
def list_estimates(project_id: int, db: Session = Depends(get_db)):
    get_project_or_404(project_id, db)
    estimates = db.query(models.CostEstimate).filter(
        models.CostEstimate.project_id == project_id,
    ).order_by(models.CostEstimate.created_at.desc(), models.CostEstimate.id.desc()).all()
    return [estimate_engine.estimate_to_dict(e) for e in estimates]


@router.get("/projects/{project_id}/estimates/summary")
def get_estimate_summary(project_id: int, db: Session = Depends(get_db)):
    """Grand total and per-category rollup across every estimate in the project."""
    get_project_or_404(project_id, db)
    return {
        **estimate_engine.project_totals(db, project_id),
        "currency": settings.DEFAULT_CURRENCY,
    }


@router.post("/projects/{project_id}/calculate")
def calculate_from_measurements(
    project_id: int,
    request: schemas.CalculateRequest,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
):
    """
    Suggest cost items for measurements using a rule table.

    Rules come from the request body, or from COST_RULES_PATH when omitted.
    """
    get_project_or_404(project_id, db)
    rules = [r.model_dump() for r in request.rules] if request.rules is not None else None
    return estimate_engine.calculate_from_measurements(
        db, project_id, request.measurement_ids, rules=rules,
    )


@router.get("/estimates/{estimate_id}")
def get_estimate(estimate_id: int, db: Session = Depends(get_db)):
    return estimate_engine.estimate_to_dict(_get_estimate_or_404(estimate_id, db))


@router.patch("/estimates/{estimate_id}")
def update_estimate(
    estimate_id: int,
    update: schemas.EstimateUpdate,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
):
    """
    Partial update. Items, when sent, replace the whole list. Totals are always recomputed.
    An explicit null for items or taxRate leaves the stored value unchanged.
    """
    db_estimate = _get_estimate_or_404(estimate_id, db)
    project = get_project_or_404(db_estimate.project_id, db)
    ensure_owner(project, current_user, allow_admin=True)

    data = update.model_dump(exclude_unset=True)
    if "map_id" in data:
        _check_map(data["map_id"], db_estimate.project_id, db)
        db_estimate.map_id = data["map_id"]
    if data.get("items") is not None:
        db_estimate.items = _build_items(update.items)
    if data.get("tax_rate") is not None:
        db_estimate.tax_rate = estimate_engine.validate_tax_rate(data["tax_rate"])
    if data.get("currency"):
        db_estimate.currency = _currency(data["currency"])
    if data.get("measurement_ids") is not None:
        db_estimate.measurement_ids = list(data["measurement_ids"])
    if data.get("name"):
        db_estimate.name = data["name"]
    for field in ("description", "notes"):
        if field in data:
            setattr(db_estimate, field, data[field])

    estimate_engine.apply_totals(db_estimate)
    db.commit()
    db.refresh(db_estimate)
    return estimate_engine.estimate_to_dict(db_estimate)


@router.delete("/estimates/{estimate_id}")
def delete_estimate(
    estimate_id: int,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
):
    db_estimate = _get_estimate_or_404(estimate_id, db)
    project = get_project_or_404(db_estimate.project_id, db)
    ensure_owner(project, current_user, allow_admin=True)
    db.delete(db_estimate)
    db.commit()
    return {"ok": True}
