import logging
import uuid
from typing import Optional, Sequence

from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from abplane.core.errors import ConflictError, PersistenceError, ValidationError
from abplane.models.orm.experiment import VariantORM

logger = logging.getLogger(__name__)


class DesiredVariant(BaseModel):
    """A row of the target variant set; ``id`` set means update, unset means create."""

    id: Optional[str] = None
    key: str
    weight: int


class VariantRepository:
    def __init__(self, db: Session):
        """Initializes the repository with a database session."""
        self.db = db

    def find_variants(self, experiment_id: str) -> list[VariantORM]:
        """Variants of one experiment in their stable (position) order."""
        stmt = (
            select(VariantORM)
            .where(VariantORM.experiment_id == experiment_id)
            .order_by(VariantORM.position, VariantORM.created_at)
        )
        try:
            return list(self.db.scalars(stmt).all())
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error("Failed to load variants for %s: %s", experiment_id, e)
            raise PersistenceError("Failed to load variants") from e

    def replace_variant_set(
        self, experiment_id: str, desired: Sequence[DesiredVariant]
    ) -> list[VariantORM]:
        """
        Makes the stored variant set of an experiment equal to ``desired``.

        Existing variants missing from ``desired`` are deleted, entries with an
        id update that variant, entries without one are created. ``position``
        follows list order. It is all one transaction: on any failure nothing
        changes.
        """
        try:
            existing = {v.variant_id: v for v in self.find_variants(experiment_id)}

            incoming_ids = {d.id for d in desired if d.id}
            unknown = incoming_ids - existing.keys()
            if unknown:
                raise ValidationError(
                    f"Variant ids do not belong to experiment {experiment_id}: "
                    f"{', '.join(sorted(unknown))}"
                )

            for variant_id, variant in existing.items():
                if variant_id not in incoming_ids:
                    self.db.delete(variant)

            # Park kept keys on unique placeholders first so swapping two keys
            # never collides on (experiment_id, key) halfway through.
            for n, variant_id in enumerate(sorted(incoming_ids)):
                existing[variant_id].key = f"~{n}"
            self.db.flush()

            saved = []
            for position, item in enumerate(desired):
                if item.id:
                    variant = existing[item.id]
                    variant.key = item.key
                    variant.weight = item.weight
                    variant.position = position
                else:
                    variant = VariantORM(
                        variant_id=str(uuid.uuid4()),
                        experiment_id=experiment_id,
                        key=item.key,
                        weight=item.weight,
                        position=position,
                    )
                    self.db.add(variant)
                saved.append(variant)

            self.db.commit()

        except ValidationError:
            self.db.rollback()
            raise
        except IntegrityError as e:
            self.db.rollback()
            logger.warning("Variant set for %s rejected by constraints: %s", experiment_id, e)
            raise ConflictError(
                "Variant set violates a storage constraint (is a removed variant still assigned?)"
            ) from e
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error("Failed to save variants for %s: %s", experiment_id, e)
            raise PersistenceError("Failed to save variants") from e

        for variant in saved:
            self.db.refresh(variant)
        return saved
