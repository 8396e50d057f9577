from sqlalchemy import Column, Integer, String, Float, DateTime, Text, ForeignKey, Enum, Boolean, JSON
from sqlalchemy.orm import relationship
from datetime import datetime
from .database import Base
import enum


# --- Enums ---

class MapFileType(str, enum.Enum):
    CAD = "cad"
    PDF = "pdf"
    IMAGE = "image"


class MapStatus(str, enum.Enum):
    UPLOADING = "uploading"
    PROCESSING = "processing"
    READY = "ready"
    ERROR = "error"


class MeasurementType(str, enum.Enum):
    DISTANCE = "distance"
    PERIMETER = "perimeter"
    AREA = "area"
    VOLUME = "volume"
    ANGLE = "angle"


class CostCategory(str, enum.Enum):
    MATERIAL = "material"
    LABOR = "labor"
    EQUIPMENT = "equipment"
    OVERHEAD = "overhead"
    OTHER = "other"


# --- Ownership (supplied by the auth layer, not managed here) ---

class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String, unique=True, nullable=False)
    password_hash = Column(String, nullable=False)
    full_name = Column(String, nullable=True)
    is_admin = Column(Boolean, default=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    projects = relationship("Project", back_populates="owner")


class Project(Base):
    """Owning reference for maps, measurements and estimates."""
    __tablename__ = "projects"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    owner_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    owner = relationship("User", back_populates="projects")
    maps = relationship("Map", back_populates="project")


# --- Takeoff tables ---

class Map(Base):
    """Uploaded site plan / CAD drawing, its lifecycle status and current scale."""
    __tablename__ = "maps"

    id = Column(Integer, primary_key=True, index=True)
    project_id = Column(Integer, ForeignKey("projects.id"), nullable=False, index=True)
    name = Column(String, nullable=False, index=True)
    description = Column(Text, nullable=True)

    # File descriptor
    file_type = Column(Enum(MapFileType), nullable=False)
    original_file_name = Column(String, nullable=False)
    storage_path = Column(String, nullable=False)  # never exposed in responses
    file_size = Column(Integer, nullable=False)
    mime_type = Column(String, nullable=False)

    status = Column(Enum(MapStatus), default=MapStatus.UPLOADING, nullable=False)
    processing_error = Column(Text, nullable=True)
    metadata_json = Column(JSON, default=dict)  # {width, height, pages}

    # Scale — all null until the first calibration
    pixel_distance = Column(Float, nullable=True)
    real_distance = Column(Float, nullable=True)
    scale_unit = Column(String, nullable=True)
    scale_factor = Column(Float, nullable=True)  # meters per pixel
    calibration_version = Column(Integer, default=0, nullable=False)

    version = Column(Integer, default=1, nullable=False)  # upload revision under the same name
    uploaded_by = Column(Integer, ForeignKey("users.id"), nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    project = relationship("Project", back_populates="maps")
    measurements = relationship("Measurement", back_populates="map")

    @property
    def is_calibrated(self) -> bool:
        return self.scale_factor is not None


class Measurement(Base):
    """Points are stored verbatim; value/display_value are materialized at write time."""
    __tablename__ = "measurements"

    id = Column(Integer, primary_key=True, index=True)
    map_id = Column(Integer, ForeignKey("maps.id"), nullable=False, index=True)
    project_id = Column(Integer, ForeignKey("projects.id"), nullable=False, index=True)
    name = Column(String, nullable=False)
    type = Column(Enum(MeasurementType), nullable=False)
    points = Column(JSON, nullable=False)  # [{x, y, z?}, ...] in pixel space
    height = Column(Float, nullable=True)  # volume only, canonical meters
    value = Column(Float, nullable=False)  # canonical unit (m, m², m³, degrees)
    unit = Column(String, nullable=False)  # display unit requested at creation
    display_value = Column(String, nullable=False)
    color = Column(String, default="#FF5722")
    notes = Column(Text, nullable=True)
    calibration_version_at_creation = Column(Integer, nullable=False)
    created_by = Column(Integer, ForeignKey("users.id"), nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    map = relationship("Map", back_populates="measurements")


class CostEstimate(Base):
    """Totals are derived from items — call estimate_engine.apply_totals before every commit."""
    __tablename__ = "cost_estimates"

    id = Column(Integer, primary_key=True, index=True)
    project_id = Column(Integer, ForeignKey("projects.id"), nullable=False, index=True)
    map_id = Column(Integer, ForeignKey("maps.id"), nullable=True, index=True)
    name = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    # Opaque ids; recalibration does not strip them
    measurement_ids = Column(JSON, default=list)
    subtotal = Column(Float, default=0.0)
    tax_rate = Column(Float, default=0.0)
    tax_amount = Column(Float, default=0.0)
    total = Column(Float, default=0.0)
    currency = Column(String, default="USD")
    notes = Column(Text, nullable=True)
    created_by = Column(Integer, ForeignKey("users.id"), nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    items = relationship(
        "CostItem",
        back_populates="estimate",
        cascade="all, delete-orphan",
        order_by="CostItem.position",
    )


class CostItem(Base):
    __tablename__ = "cost_items"

    id = Column(Integer, primary_key=True, index=True)
    estimate_id = Column(Integer, ForeignKey("cost_estimates.id"), nullable=False)
    position = Column(Integer, default=0)
    name = Column(String, nullable=False)
    category = Column(Enum(CostCategory), nullable=False)
    unit_cost = Column(Float, default=0.0)
    unit = Column(String, nullable=False)
    quantity = Column(Float, default=0.0)
    total_cost = Column(Float, default=0.0)

    estimate = relationship("CostEstimate", back_populates="items")
