import logging
from typing import List, Sequence

from sqlalchemy.orm import Session

from abplane.core.errors import ConflictError, NotFoundError, PreconditionError
from abplane.models.schemas.variant import VariantInput, VariantResponseModel
from abplane.repositories.experiment_repo import ExperimentRepository
from abplane.repositories.variant_repo import DesiredVariant, VariantRepository
from abplane.services.variant_editor import VariantDraft, validate_for_save

logger = logging.getLogger(__name__)


class VariantService:
    def __init__(self, db: Session):
        self.experiment_repo = ExperimentRepository(db)
        self.variant_repo = VariantRepository(db)

    def _require_experiment(self, experiment_id: str) -> None:
        if self.experiment_repo.get_experiment(experiment_id) is None:
            raise NotFoundError(f"Experiment {experiment_id} not found.")

    def list_variants(self, experiment_id: str) -> List[VariantResponseModel]:
        self._require_experiment(experiment_id)
        return [
            VariantResponseModel.model_validate(v)
            for v in self.variant_repo.find_variants(experiment_id)
        ]

    def save_variants(
        self, experiment_id: str, variants: Sequence[VariantInput]
    ) -> List[VariantResponseModel]:
        """
        Replaces the experiment's variant set with ``variants``.

        The set is re-validated here even though editors are expected to have
        run it through the apportioner: at least two variants, unique
        uppercase keys, weights summing to 100.
        """
        drafts = validate_for_save(
            [VariantDraft(id=v.id, key=v.key, weight=v.weight) for v in variants]
        )
        self._require_experiment(experiment_id)

        try:
            saved = self.variant_repo.replace_variant_set(
                experiment_id,
                [DesiredVariant(id=d.id, key=d.key, weight=d.weight) for d in drafts],
            )
        except ConflictError as e:
            raise PreconditionError(
                "Variants that already have assignments cannot be removed."
            ) from e

        logger.info(
            "Saved %d variants for experiment %s: %s",
            len(saved),
            experiment_id,
            ", ".join(f"{v.key}={v.weight}" for v in saved),
        )
        return [VariantResponseModel.model_validate(v) for v in saved]
