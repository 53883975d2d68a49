import enum

from sqlalchemy import (
    Column,
    DateTime,
    Enum,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from abplane.core.time import utc_now

from .base import Base


class ExperimentStatus(enum.Enum):
    DRAFT = "draft"
    ACTIVE = "active"
    PAUSED = "paused"
    COMPLETED = "completed"


# --- Experiment Model ---
class ExperimentORM(Base):
    __tablename__ = "experiments"
    __repr_attrs__ = ("name", "status")

    experiment_id = Column(String, primary_key=True, index=True)
    name = Column(String(64), nullable=False, unique=True)
    description = Column(Text)
    strategy = Column(String(64), nullable=False, default="uniform")

    status = Column(
        Enum(ExperimentStatus, values_callable=lambda e: [m.value for m in e]),
        default=ExperimentStatus.DRAFT,
        nullable=False,
    )

    start_time = Column(DateTime(timezone=True), nullable=True)
    end_time = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), default=utc_now, nullable=False)
    updated_at = Column(
        DateTime(timezone=True), default=utc_now, onupdate=utc_now, nullable=False
    )

    # One Experiment owns Many Variants, ordered the way the selector walks them
    variants = relationship(
        "VariantORM",
        back_populates="experiment",
        cascade="all, delete-orphan",
        order_by="VariantORM.position",
    )

    assignments = relationship(
        "AssignmentORM",
        back_populates="experiment",
        cascade="all, delete-orphan",
    )


# --- Variant Model ---
class VariantORM(Base):
    __tablename__ = "variants"
    __repr_attrs__ = ("experiment_id", "key", "weight")

    variant_id = Column(String, primary_key=True)
    experiment_id = Column(
        String,
        ForeignKey("experiments.experiment_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    key = Column(String(32), nullable=False)
    weight = Column(Integer, nullable=False)
    position = Column(Integer, nullable=False, default=0)

    created_at = Column(DateTime(timezone=True), default=utc_now, nullable=False)
    updated_at = Column(
        DateTime(timezone=True), default=utc_now, onupdate=utc_now, nullable=False
    )

    __table_args__ = (
        UniqueConstraint("experiment_id", "key", name="uq_variant_experiment_key"),
    )

    experiment = relationship("ExperimentORM", back_populates="variants")
