from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from abplane.models.orm.experiment import ExperimentStatus
from abplane.models.schemas.variant import VariantResponseModel


class ExperimentCreateModel(BaseModel):
    """Schema for creating a new experiment (API input)."""

    name: str = Field(..., description="lowercase snake_case, e.g. 'checkout_button_color'")
    description: Optional[str] = None
    strategy: str = "uniform"
    status: ExperimentStatus = ExperimentStatus.DRAFT
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None


class ExperimentUpdateModel(BaseModel):
    """Partial update; only the fields that are set are applied."""

    name: Optional[str] = None
    description: Optional[str] = None
    strategy: Optional[str] = None
    status: Optional[ExperimentStatus] = None
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None


class ExperimentResponseModel(BaseModel):
    experiment_id: str = Field(..., description="Unique ID for the experiment.")
    name: str
    description: Optional[str] = None
    strategy: str
    status: ExperimentStatus
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime
    variants: List[VariantResponseModel] = Field(default_factory=list)
    total_weight: int = Field(
        0, description="Sum of all variant weights, 100 once variants are saved."
    )

    model_config = ConfigDict(from_attributes=True)


class ExperimentListResponseModel(BaseModel):
    items: List[ExperimentResponseModel]
    next_cursor: Optional[str] = Field(
        None, description="Pass back as 'cursor' to fetch the next page."
    )
