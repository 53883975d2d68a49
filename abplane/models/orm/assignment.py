from sqlalchemy import Column, DateTime, ForeignKey, String, UniqueConstraint
from sqlalchemy.orm import relationship

from abplane.core.time import utc_now

from .base import Base


class AssignmentORM(Base):
    __tablename__ = "assignments"
    __repr_attrs__ = ("experiment_id", "user_id", "variant_id")

    assignment_id = Column(String, primary_key=True)
    experiment_id = Column(
        String,
        ForeignKey("experiments.experiment_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    user_id = Column(String(128), nullable=False, index=True)
    # A variant cannot be deleted while an assignment still points at it.
    variant_id = Column(
        String, ForeignKey("variants.variant_id", ondelete="RESTRICT"), nullable=False
    )

    created_at = Column(DateTime(timezone=True), default=utc_now, nullable=False)

    __table_args__ = (
        UniqueConstraint(
            "experiment_id", "user_id", name="uq_assignment_experiment_user"
        ),
    )

    variant = relationship("VariantORM")

    experiment = relationship("ExperimentORM", back_populates="assignments")
