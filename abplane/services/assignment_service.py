import logging
import secrets
from typing import List, Optional

from sqlalchemy.orm import Session

from abplane.core.errors import (
    ConflictError,
    NotFoundError,
    PersistenceError,
    PreconditionError,
    ValidationError,
)
from abplane.models.schemas.assignment import AssignmentModel
from abplane.repositories.assignment_repo import AssignmentRepository
from abplane.repositories.experiment_repo import ExperimentRepository
from abplane.repositories.variant_repo import VariantRepository
from abplane.services.selector import Draw, hash_draw, select_variant
from abplane.services.variant_editor import MIN_VARIANTS

logger = logging.getLogger(__name__)

USER_ID_MIN_LENGTH = 3
USER_ID_MAX_LENGTH = 128

# Experiments with this strategy bind users by hashing instead of a random draw.
HASH_STRATEGY = "hash"


def normalize_user_id(user_id: str) -> str:
    if not isinstance(user_id, str):
        raise ValidationError("User ID must be a string.")

    trimmed = user_id.strip()
    if len(trimmed) < USER_ID_MIN_LENGTH:
        raise ValidationError(
            f"User ID must be at least {USER_ID_MIN_LENGTH} characters."
        )
    if len(trimmed) > USER_ID_MAX_LENGTH:
        raise ValidationError(
            f"User ID must be {USER_ID_MAX_LENGTH} characters or fewer."
        )
    return trimmed


class AssignmentService:
    """
    Sticky user -> variant binding.

    A (experiment, user) pair goes from unbound to bound exactly once and
    stays bound. Concurrent first calls for the same pair are settled by the
    storage uniqueness constraint: the loser re-reads and returns the winner's
    binding.
    """

    def __init__(self, db: Session, draw: Draw = secrets.randbelow):
        self.assignment_repo = AssignmentRepository(db)
        self.experiment_repo = ExperimentRepository(db)
        self.variant_repo = VariantRepository(db)
        self.draw = draw

    def get(self, experiment_id: str, user_id: str) -> Optional[AssignmentModel]:
        """Non-committal lookup; never creates a binding."""
        user_id = normalize_user_id(user_id)
        existing = self.assignment_repo.find_assignment(experiment_id, user_id)
        if existing is None:
            return None
        return AssignmentModel.from_record(existing)

    def assign(self, experiment_id: str, user_id: str) -> AssignmentModel:
        """
        Gets a user's variant assignment, creating it on first call.

        1. Return the existing binding if there is one (no randomness used).
        2. Otherwise pick a variant by weight and persist the binding. The
           ``hash`` strategy derives the pick from the experiment and user ids
           rather than the random draw.
        3. If another request persisted one in the meantime, return that.
        """
        user_id = normalize_user_id(user_id)

        existing = self.assignment_repo.find_assignment(experiment_id, user_id)
        if existing:
            logger.debug("Returning existing binding %r", existing)
            return AssignmentModel.from_record(existing)

        experiment = self.experiment_repo.get_experiment(experiment_id)
        if experiment is None:
            raise NotFoundError(f"Experiment {experiment_id} not found.")

        variants = self.variant_repo.find_variants(experiment_id)
        if len(variants) < MIN_VARIANTS:
            raise PreconditionError(
                f"An experiment must have at least {MIN_VARIANTS} variants."
            )

        if experiment.strategy == HASH_STRATEGY:
            draw = hash_draw(experiment_id, user_id)
        else:
            draw = self.draw
        variant_id = select_variant(
            [(v.variant_id, v.weight) for v in variants], draw
        )

        try:
            created = self.assignment_repo.create_assignment(
                experiment_id=experiment_id,
                user_id=user_id,
                variant_id=variant_id,
            )
        except ConflictError:
            return self._adopt_existing(experiment_id, user_id)

        logger.info(
            "Assigned user %s to variant %s in %s", user_id, variant_id, experiment_id
        )
        return AssignmentModel.from_record(created, is_new=True)

    def _adopt_existing(self, experiment_id: str, user_id: str) -> AssignmentModel:
        # One re-read only: the constraint guarantees a row now exists.
        winner = self.assignment_repo.find_assignment(experiment_id, user_id)
        if winner is None:
            logger.error(
                "Assignment insert for %s/%s conflicted but no row was found",
                experiment_id,
                user_id,
            )
            raise PersistenceError("Assignment could not be created or read back.")

        logger.warning(
            "Concurrent assignment for %s/%s; returning variant %s",
            experiment_id,
            user_id,
            winner.variant_id,
        )
        return AssignmentModel.from_record(winner)

    def list(self, experiment_id: str) -> List[AssignmentModel]:
        """Bindings of one experiment, most recent first."""
        if self.experiment_repo.get_experiment(experiment_id) is None:
            raise NotFoundError(f"Experiment {experiment_id} not found.")

        return [
            AssignmentModel.from_record(a)
            for a in self.assignment_repo.list_assignments(experiment_id)
        ]
