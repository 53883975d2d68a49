# services/experiment_service.py

import logging
import re
from datetime import datetime
from typing import Any, List, Optional

from sqlalchemy.orm import Session

from abplane.core.errors import (
    ConflictError,
    DuplicateNameError,
    NotFoundError,
    ValidationError,
)
from abplane.core.time import to_utc
from abplane.models.orm.experiment import ExperimentORM, ExperimentStatus
from abplane.models.schemas.experiment import (
    ExperimentCreateModel,
    ExperimentListResponseModel,
    ExperimentResponseModel,
    ExperimentUpdateModel,
)
from abplane.models.schemas.variant import VariantResponseModel
from abplane.repositories.experiment_repo import ExperimentRepository

logger = logging.getLogger(__name__)

NAME_PATTERN = re.compile(r"^[a-z0-9]+(?:_[a-z0-9]+)*$")
NAME_MIN_LENGTH = 3
NAME_MAX_LENGTH = 64
STRATEGY_MAX_LENGTH = 64
MAX_PAGE_SIZE = 100


def validate_name(name: str) -> str:
    if not NAME_MIN_LENGTH <= len(name) <= NAME_MAX_LENGTH:
        raise ValidationError(
            f"Name must be between {NAME_MIN_LENGTH} and {NAME_MAX_LENGTH} characters."
        )
    if not NAME_PATTERN.match(name):
        raise ValidationError("Only lowercase snake_case values are allowed.")
    return name


def validate_strategy(strategy: str) -> str:
    strategy = strategy.strip()
    if not 1 <= len(strategy) <= STRATEGY_MAX_LENGTH:
        raise ValidationError(
            f"Strategy must be between 1 and {STRATEGY_MAX_LENGTH} characters."
        )
    return strategy


def validate_schedule(start: Optional[datetime], end: Optional[datetime]) -> None:
    start, end = to_utc(start), to_utc(end)
    if start and end and end < start:
        raise ValidationError("end_time must be after start_time.")


def to_response(experiment: ExperimentORM) -> ExperimentResponseModel:
    variants = [VariantResponseModel.model_validate(v) for v in experiment.variants]
    return ExperimentResponseModel(
        experiment_id=experiment.experiment_id,
        name=experiment.name,
        description=experiment.description,
        strategy=experiment.strategy,
        status=experiment.status,
        start_time=experiment.start_time,
        end_time=experiment.end_time,
        created_at=experiment.created_at,
        updated_at=experiment.updated_at,
        variants=variants,
        total_weight=sum(v.weight for v in variants),
    )


class ExperimentService:
    def __init__(self, db: Session):
        self.experiment_repo = ExperimentRepository(db)

    def _require(self, experiment_id: str) -> ExperimentORM:
        experiment = self.experiment_repo.get_experiment_with_variants(experiment_id)
        if not experiment:
            raise NotFoundError(f"Experiment {experiment_id} not found.")
        return experiment

    def _ensure_name_free(self, name: str, experiment_id: Optional[str] = None) -> None:
        other = self.experiment_repo.find_by_name(name)
        if other is not None and other.experiment_id != experiment_id:
            raise DuplicateNameError("An experiment with this name already exists.")

    def create_experiment(
        self, experiment_data: ExperimentCreateModel
    ) -> ExperimentResponseModel:
        """
        Validates and persists a new experiment. Variants are saved separately
        through the variant endpoints.
        """
        fields = {
            "name": validate_name(experiment_data.name),
            "description": experiment_data.description,
            "strategy": validate_strategy(experiment_data.strategy),
            "status": experiment_data.status,
            "start_time": to_utc(experiment_data.start_time),
            "end_time": to_utc(experiment_data.end_time),
        }
        validate_schedule(fields["start_time"], fields["end_time"])
        self._ensure_name_free(fields["name"])

        try:
            experiment = self.experiment_repo.create_experiment(fields)
        except ConflictError as e:
            # Lost a race with a concurrent create of the same name.
            raise DuplicateNameError("An experiment with this name already exists.") from e

        logger.info("Created experiment %s (%s)", experiment.name, experiment.experiment_id)
        return to_response(experiment)

    def get_experiment(self, experiment_id: str) -> ExperimentResponseModel:
        return to_response(self._require(experiment_id))

    def list_experiments(
        self,
        search: Optional[str] = None,
        statuses: Optional[List[ExperimentStatus]] = None,
        cursor: Optional[str] = None,
        limit: int = 50,
    ) -> ExperimentListResponseModel:
        if not 1 <= limit <= MAX_PAGE_SIZE:
            raise ValidationError(f"limit must be between 1 and {MAX_PAGE_SIZE}.")

        search = search.strip() if search else None
        rows, next_cursor = self.experiment_repo.list_experiments(
            search=search or None, statuses=statuses, cursor=cursor, limit=limit
        )
        return ExperimentListResponseModel(
            items=[to_response(row) for row in rows], next_cursor=next_cursor
        )

    def update_experiment(
        self, experiment_id: str, experiment_data: ExperimentUpdateModel
    ) -> ExperimentResponseModel:
        experiment = self._require(experiment_id)
        changes: dict[str, Any] = experiment_data.model_dump(exclude_unset=True)

        if "name" in changes:
            if changes["name"] is None:
                raise ValidationError("Name cannot be empty.")
            changes["name"] = validate_name(changes["name"])
            self._ensure_name_free(changes["name"], experiment_id)
        if "strategy" in changes:
            changes["strategy"] = validate_strategy(changes["strategy"] or "")
        if "status" in changes and changes["status"] is None:
            raise ValidationError("Status cannot be empty.")
        for field in ("start_time", "end_time"):
            if field in changes:
                changes[field] = to_utc(changes[field])

        validate_schedule(
            changes.get("start_time", experiment.start_time),
            changes.get("end_time", experiment.end_time),
        )

        try:
            experiment = self.experiment_repo.update_experiment(experiment, changes)
        except ConflictError as e:
            raise DuplicateNameError("An experiment with this name already exists.") from e

        logger.info("Updated experiment %s: %s", experiment_id, ", ".join(sorted(changes)))
        return to_response(experiment)

    def delete_experiment(self, experiment_id: str) -> None:
        experiment = self._require(experiment_id)
        self.experiment_repo.delete_experiment(experiment)
        logger.info("Deleted experiment %s", experiment_id)
