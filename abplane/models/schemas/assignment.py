from datetime import datetime

from pydantic import BaseModel, Field

from abplane.models.orm.assignment import AssignmentORM


class AssignRequest(BaseModel):
    user_id: str = Field(..., description="Free-form user identifier, 3-128 chars once trimmed.")


class AssignmentModel(BaseModel):
    """Data model for a persistent user assignment record."""

    assignment_id: str
    experiment_id: str
    user_id: str
    variant_id: str
    variant_key: str = Field(..., description="The key of the variant the user was assigned.")
    created_at: datetime
    is_new: bool = Field(
        False, description="True only on the call that created the binding."
    )

    @classmethod
    def from_record(cls, assignment: AssignmentORM, is_new: bool = False) -> "AssignmentModel":
        return cls(
            assignment_id=assignment.assignment_id,
            experiment_id=assignment.experiment_id,
            user_id=assignment.user_id,
            variant_id=assignment.variant_id,
            variant_key=assignment.variant.key,
            created_at=assignment.created_at,
            is_new=is_new,
        )
