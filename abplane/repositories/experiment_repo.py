import logging
import uuid
from typing import Any, Optional, Sequence

from sqlalchemy import and_, or_, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from abplane.core.errors import ConflictError, PersistenceError, ValidationError
from abplane.models.orm.experiment import ExperimentORM, ExperimentStatus

logger = logging.getLogger(__name__)


class ExperimentRepository:
    def __init__(self, db: Session):
        """Initializes the repository with a database session."""
        self.db = db

    def create_experiment(self, fields: dict[str, Any]) -> ExperimentORM:
        """
        Inserts a new experiment row built from already-validated ``fields``.

        Raises ConflictError when the name is already taken.
        """
        db_experiment = ExperimentORM(experiment_id=str(uuid.uuid4()), **fields)
        try:
            self.db.add(db_experiment)
            self.db.commit()
            self.db.refresh(db_experiment)
            return db_experiment

        except IntegrityError as e:
            self.db.rollback()
            raise ConflictError(f"Database integrity error (e.g., duplicate name): {e.orig}") from e
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error("A database error occurred during experiment creation: %s", e)
            raise PersistenceError("Failed to create experiment") from e

    def get_experiment_with_variants(self, experiment_id: str) -> ExperimentORM | None:
        """
        Fetches a single Experiment by experiment_id and eagerly loads all
        associated VariantORM objects in the same round trip.
        """
        stmt = (
            select(ExperimentORM)
            .where(ExperimentORM.experiment_id == experiment_id)
            .options(selectinload(ExperimentORM.variants))
        )
        try:
            return self.db.scalars(stmt).one_or_none()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error("Failed to load experiment %s: %s", experiment_id, e)
            raise PersistenceError("Failed to load experiment") from e

    def get_experiment(self, experiment_id: str) -> ExperimentORM | None:
        """Primary-key lookup without touching the variants relationship."""
        try:
            return self.db.get(ExperimentORM, experiment_id)
        except SQLAlchemyError as e:
            self.db.rollback()
            raise PersistenceError("Failed to load experiment") from e

    def find_by_name(self, name: str) -> ExperimentORM | None:
        stmt = select(ExperimentORM).where(ExperimentORM.name == name)
        try:
            return self.db.scalars(stmt).one_or_none()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise PersistenceError("Failed to load experiment") from e

    def list_experiments(
        self,
        search: Optional[str] = None,
        statuses: Optional[Sequence[ExperimentStatus]] = None,
        cursor: Optional[str] = None,
        limit: int = 50,
    ) -> tuple[list[ExperimentORM], Optional[str]]:
        """
        Newest experiments first, optionally filtered by a name/strategy
        substring and a set of statuses.

        Paging is keyset-based: ``cursor`` is the id of the last experiment of
        the previous page. Returns the page and the cursor for the next one.
        """
        stmt = select(ExperimentORM).options(selectinload(ExperimentORM.variants))

        if search:
            # Literal substring match; "_" and "%" in names are not wildcards.
            needle = search.lower()
            stmt = stmt.where(
                or_(
                    ExperimentORM.name.contains(needle, autoescape=True),
                    ExperimentORM.strategy.contains(needle, autoescape=True),
                )
            )

        if statuses:
            stmt = stmt.where(ExperimentORM.status.in_(list(statuses)))

        try:
            if cursor:
                anchor = self.db.get(ExperimentORM, cursor)
                if anchor is None:
                    raise ValidationError(f"Unknown cursor: {cursor}")
                stmt = stmt.where(
                    or_(
                        ExperimentORM.created_at < anchor.created_at,
                        and_(
                            ExperimentORM.created_at == anchor.created_at,
                            ExperimentORM.experiment_id < anchor.experiment_id,
                        ),
                    )
                )

            stmt = stmt.order_by(
                ExperimentORM.created_at.desc(), ExperimentORM.experiment_id.desc()
            ).limit(limit + 1)

            rows = list(self.db.scalars(stmt).all())
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error("Failed to list experiments: %s", e)
            raise PersistenceError("Failed to list experiments") from e

        next_cursor = rows[limit - 1].experiment_id if len(rows) > limit else None
        return rows[:limit], next_cursor

    def update_experiment(
        self, experiment: ExperimentORM, changes: dict[str, Any]
    ) -> ExperimentORM:
        for field, value in changes.items():
            setattr(experiment, field, value)
        try:
            self.db.commit()
            self.db.refresh(experiment)
            return experiment

        except IntegrityError as e:
            self.db.rollback()
            raise ConflictError(f"Database integrity error (e.g., duplicate name): {e.orig}") from e
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error("Failed to update experiment %s: %s", experiment.experiment_id, e)
            raise PersistenceError("Failed to update experiment") from e

    def delete_experiment(self, experiment: ExperimentORM) -> None:
        """Deletes the experiment together with its assignments and variants."""
        try:
            self.db.delete(experiment)
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error("Failed to delete experiment %s: %s", experiment.experiment_id, e)
            raise PersistenceError("Failed to delete experiment") from e
