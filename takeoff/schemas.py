from pydantic import BaseModel
from pydantic.alias_generators import to_camel
from typing import Optional, List


class CamelModel(BaseModel):
    """Request bodies arrive camelCased from the drawing UI; snake_case is accepted too."""
    class Config:
        alias_generator = to_camel
        populate_by_name = True


# --- Projects ---

class ProjectCreate(CamelModel):
    name: str


# --- Maps ---

class MapUpdate(CamelModel):
    name: Optional[str] = None
    description: Optional[str] = None


class CalibrateRequest(CamelModel):
    pixel_distance: float
    real_distance: float
    unit: str
    force: bool = False


# --- Measurements ---

class Point(BaseModel):
    x: float
    y: float
    z: Optional[float] = None


class MeasurementCreate(CamelModel):
    type: str
    points: List[Point]
    unit: Optional[str] = None
    height: Optional[float] = None  # volume only, meters
    name: Optional[str] = None
    color: Optional[str] = None
    notes: Optional[str] = None
    calibration_version_at_creation: Optional[int] = None


class MeasurementUpdate(CamelModel):
    # Points and value are immutable once saved
    name: Optional[str] = None
    color: Optional[str] = None
    notes: Optional[str] = None


# --- Cost estimates ---

class CostItemIn(CamelModel):
    name: str
    category: str
    unit_cost: float
    unit: str
    quantity: float


class EstimateCreate(CamelModel):
    name: str = "Estimate"
    description: Optional[str] = None
    map_id: Optional[int] = None
    measurement_ids: List[int] = []
    items: List[CostItemIn] = []
    tax_rate: Optional[float] = 0.0
    currency: Optional[str] = None
    notes: Optional[str] = None


class EstimateUpdate(CamelModel):
    name: Optional[str] = None
    description: Optional[str] = None
    map_id: Optional[int] = None
    measurement_ids: Optional[List[int]] = None
    items: Optional[List[CostItemIn]] = None
    tax_rate: Optional[float] = None
    currency: Optional[str] = None
    notes: Optional[str] = None


class CostRule(CamelModel):
    measurement_type: str
    min_value: Optional[float] = None
    max_value: Optional[float] = None
    name: str
    category: str = "material"
    unit_cost: float
    unit: str


class CalculateRequest(CamelModel):
    measurement_ids: List[int]
    rules: Optional[List[CostRule]] = None
