from datetime import datetime
from typing import List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class VariantInput(BaseModel):
    """One entry of the desired variant set. Present id = update, absent id = create."""

    id: Optional[str] = None
    key: str
    weight: int = Field(
        ...,
        ge=0,
        le=100,
        description="Percentage of first-time assignments routed to this variant.",
    )


class VariantSetRequest(BaseModel):
    variants: List[VariantInput]


class VariantResponseModel(BaseModel):
    variant_id: str
    experiment_id: str
    key: str
    weight: int
    position: int
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class RebalanceRequest(BaseModel):
    """
    Weights as currently shown by an editor. Blank or non-numeric entries
    are accepted and count as zero.
    """

    weights: List[Union[float, str, None]]
    locked_index: Optional[int] = Field(
        None, description="Index the operator just edited; omit for an even rebalance."
    )
    new_value: Optional[Union[float, str]] = None


class RebalanceResponse(BaseModel):
    weights: List[int]
    total: int
