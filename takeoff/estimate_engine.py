"""
Cost Estimation Aggregator.

Pure math — no AI. unit_cost × quantity, Σ totals, subtotal × tax.

recalc() is the only place estimate totals are computed. The service layer
calls apply_totals() before every commit of a CostEstimate; nothing relies on
a persistence hook to keep totals in sync.
"""

import json
import logging
import math
from pathlib import Path

from sqlalchemy.orm import Session

from . import models
from .config import settings
from .errors import CostRulesError, ValidationError

logger = logging.getLogger(__name__)

CATEGORIES = [c.value for c in models.CostCategory]


def recalc(estimate: dict) -> dict:
    """
    Recompute derived totals from items. Returns a new dict; input is untouched.

    Prior total_cost/subtotal/tax_amount/total values are ignored, so
    recalc(recalc(e)) == recalc(e). Raises ValidationError when the totals
    overflow, so nothing non-finite is ever persisted.

    Args:
        estimate: {"items": [{unit_cost, quantity, ...}], "tax_rate": float, ...}
    """
    items = []
    subtotal = 0.0
    for item in estimate.get("items", []):
        total_cost = item["unit_cost"] * item["quantity"]
        items.append({**item, "total_cost": total_cost})
        subtotal += total_cost

    tax_rate = estimate.get("tax_rate") or 0.0
    tax_amount = subtotal * (tax_rate / 100.0)

    # Items are non-negative, so any overflowing item overflows the total
    if not math.isfinite(subtotal + tax_amount):
        raise ValidationError("Estimate totals are too large to compute", field="items")

    return {
        **estimate,
        "items": items,
        "subtotal": subtotal,
        "tax_rate": tax_rate,
        "tax_amount": tax_amount,
        "total": subtotal + tax_amount,
    }


def validate_item(item: dict) -> dict:
    """Check a single cost item. Raises ValidationError with the offending field."""
    name = (item.get("name") or "").strip()
    if not name:
        raise ValidationError("Cost item name is required")
    category = item.get("category")
    if hasattr(category, "value"):
        category = category.value
    if category not in CATEGORIES:
        raise ValidationError(
            f"category must be one of: {', '.join(CATEGORIES)}", field="category",
        )
    unit = (item.get("unit") or "").strip()
    if not unit:
        raise ValidationError("Cost item unit is required", field="unit")
    for field in ("unit_cost", "quantity"):
        value = item.get(field)
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ValidationError(f"{field} must be a number", field=field)
        if not math.isfinite(value) or value < 0:
            raise ValidationError(f"{field} must be a non-negative number", field=field)
    return {
        "name": name,
        "category": category,
        "unit_cost": float(item["unit_cost"]),
        "unit": unit,
        "quantity": float(item["quantity"]),
    }


def validate_tax_rate(tax_rate) -> float:
    if tax_rate is None:
        return 0.0
    if isinstance(tax_rate, bool) or not isinstance(tax_rate, (int, float)):
        raise ValidationError("taxRate must be a number", field="taxRate")
    if not math.isfinite(tax_rate) or not 0 <= tax_rate <= 100:
        raise ValidationError("taxRate must be between 0 and 100", field="taxRate")
    return float(tax_rate)


def apply_totals(estimate: models.CostEstimate) -> models.CostEstimate:
    """Write recalc() output onto an ORM estimate and its items. Call before commit."""
    computed = recalc({
        "items": [{"unit_cost": i.unit_cost, "quantity": i.quantity} for i in estimate.items],
        "tax_rate": estimate.tax_rate,
    })
    for db_item, item in zip(estimate.items, computed["items"]):
        db_item.total_cost = item["total_cost"]
    estimate.subtotal = computed["subtotal"]
    estimate.tax_rate = computed["tax_rate"]
    estimate.tax_amount = computed["tax_amount"]
    estimate.total = computed["total"]
    return estimate


def project_totals(db: Session, project_id: int) -> dict:
    """Grand total and per-category spend across every estimate in a project."""
    estimates = db.query(models.CostEstimate).filter(
        models.CostEstimate.project_id == project_id,
    ).all()

    result = {
        "totalEstimates": len(estimates),
        "grandTotal": 0.0,
        "byCategory": {c: 0.0 for c in CATEGORIES},
    }
    for estimate in estimates:
        result["grandTotal"] += estimate.total or 0.0
        for item in estimate.items:
            result["byCategory"][item.category.value] += item.total_cost or 0.0
    return result


# --- Measurement → cost item rules ---

RULE_REQUIRED_KEYS = {"measurement_type", "name", "unit_cost", "unit"}

def load_cost_rules(path: str = None) -> list:
    """
    Load the configured rule table (JSON list). Empty when COST_RULES_PATH is unset.

    Rule: {measurement_type, min_value?, max_value?, name, category, unit_cost, unit}

    Raises CostRulesError when a configured file is missing or malformed.
    """
    path = path if path is not None else settings.COST_RULES_PATH
    if not path:
        return []
    rules_file = Path(path)
    if not rules_file.exists():
        raise CostRulesError(f"COST_RULES_PATH {path} does not exist", path=path)
    try:
        rules = json.loads(rules_file.read_text())
    except json.JSONDecodeError as e:
        raise CostRulesError(f"COST_RULES_PATH {path} is not valid JSON: {e.msg}", path=path) from e
    if not isinstance(rules, list):
        raise CostRulesError(f"COST_RULES_PATH {path} must contain a JSON list", path=path)
    for i, rule in enumerate(rules):
        missing = RULE_REQUIRED_KEYS - set(rule)
        if missing:
            raise CostRulesError(
                f"Cost rule {i} in {path} is missing {', '.join(sorted(missing))}", path=path,
            )
    logger.info("Loaded %d cost rules from %s", len(rules), path)
    return rules


def _rule_matches(rule: dict, measurement: models.Measurement) -> bool:
    if rule["measurement_type"] != measurement.type.value:
        return False
    min_value = rule.get("min_value")
    max_value = rule.get("max_value")
    if min_value is not None and measurement.value < min_value:
        return False
    if max_value is not None and measurement.value >= max_value:
        return False
    return True


def suggest_items(measurements: list, rules: list) -> list:
    """
    One suggested CostItem per (measurement, matching rule).

    Quantity is the measurement's canonical value (m, m², m³), so rule
    unit_cost is per canonical unit.
    """
    items = []
    for measurement in measurements:
        for rule in rules:
            if not _rule_matches(rule, measurement):
                continue
            item = validate_item({
                "name": f"{rule['name']} — {measurement.name}",
                "category": rule.get("category", "material"),
                "unit_cost": rule["unit_cost"],
                "unit": rule["unit"],
                "quantity": measurement.value,
            })
            item["measurement_id"] = measurement.id
            items.append(item)
    return recalc({"items": items})["items"]


def calculate_from_measurements(db: Session, project_id: int, measurement_ids: list,
                                rules: list = None) -> dict:
    """Suggested items for the given measurements; ids outside the project are ignored."""
    if rules is None:
        rules = load_cost_rules()
    measurements = db.query(models.Measurement).filter(
        models.Measurement.project_id == project_id,
        models.Measurement.id.in_(measurement_ids or []),
    ).order_by(models.Measurement.id).all()

    items = suggest_items(measurements, rules)
    return {
        "items": [
            {
                "name": i["name"],
                "category": i["category"],
                "unitCost": i["unit_cost"],
                "unit": i["unit"],
                "quantity": i["quantity"],
                "totalCost": i["total_cost"],
                "measurementId": i["measurement_id"],
            }
            for i in items
        ],
        "total": sum(i["total_cost"] for i in items),
    }


def estimate_to_dict(e: models.CostEstimate) -> dict:
    return {
        "id": e.id,
        "projectId": e.project_id,
        "mapId": e.map_id,
        "name": e.name,
        "description": e.description,
        "measurementIds": e.measurement_ids or [],
        "items": [_item_to_dict(i) for i in e.items],
        "subtotal": e.subtotal,
        "taxRate": e.tax_rate,
        "taxAmount": e.tax_amount,
        "total": e.total,
        "currency": e.currency,
        "notes": e.notes,
        "createdBy": e.created_by,
        "createdAt": e.created_at.isoformat() if e.created_at else None,
        "updatedAt": e.updated_at.isoformat() if e.updated_at else None,
    }


def _item_to_dict(i: models.CostItem) -> dict:
    return {
        "name": i.name,
        "category": i.category.value,
        "unitCost": i.unit_cost,
        "unit": i.unit,
        "quantity": i.quantity,
        "totalCost": i.total_cost,
    }
