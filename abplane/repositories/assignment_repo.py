import logging
import uuid
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, joinedload

from abplane.core.errors import ConflictError, PersistenceError
from abplane.core.time import utc_now
from abplane.models.orm.assignment import AssignmentORM

logger = logging.getLogger(__name__)


class AssignmentRepository:
    def __init__(self, db: Session):
        self.db = db

    def find_assignment(
        self, experiment_id: str, user_id: str
    ) -> Optional[AssignmentORM]:
        """Retrieves the sticky assignment for a user in a specific experiment."""
        stmt = (
            select(AssignmentORM)
            .where(
                AssignmentORM.experiment_id == experiment_id,
                AssignmentORM.user_id == user_id,
            )
            .options(joinedload(AssignmentORM.variant))
        )
        try:
            return self.db.scalars(stmt).one_or_none()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error("Failed to read assignment %s/%s: %s", experiment_id, user_id, e)
            raise PersistenceError("Failed to read assignment") from e

    def list_assignments(self, experiment_id: str) -> list[AssignmentORM]:
        """All assignments of an experiment, most recent first."""
        stmt = (
            select(AssignmentORM)
            .where(AssignmentORM.experiment_id == experiment_id)
            .options(joinedload(AssignmentORM.variant))
            .order_by(AssignmentORM.created_at.desc(), AssignmentORM.assignment_id)
        )
        try:
            return list(self.db.scalars(stmt).all())
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error("Failed to list assignments for %s: %s", experiment_id, e)
            raise PersistenceError("Failed to list assignments") from e

    def create_assignment(
        self, experiment_id: str, user_id: str, variant_id: str
    ) -> AssignmentORM:
        """
        Creates a new assignment record.

        Raises ConflictError when (experiment_id, user_id) already has a row;
        the caller decides how to recover.
        """
        db_assignment = AssignmentORM(
            assignment_id=str(uuid.uuid4()),
            experiment_id=experiment_id,
            user_id=user_id,
            variant_id=variant_id,
            created_at=utc_now(),
        )
        try:
            self.db.add(db_assignment)
            self.db.commit()
            self.db.refresh(db_assignment)

            return db_assignment

        except IntegrityError as e:
            self.db.rollback()
            raise ConflictError(
                "Assignment already exists for this user and experiment."
            ) from e
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error("Exception occurred creating assignment: %s", e)
            raise PersistenceError("Failed to create assignment") from e
