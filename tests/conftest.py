import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

from abplane.core.db import build_engine, get_db
from abplane.main import app
from abplane.models.orm.assignment import AssignmentORM  # noqa: F401
from abplane.models.orm.base import Base
from abplane.repositories.experiment_repo import ExperimentRepository
from abplane.repositories.variant_repo import DesiredVariant, VariantRepository


@pytest.fixture
def engine(tmp_path):
    """A throwaway SQLite file per test, so separate sessions get separate connections."""
    engine = build_engine(f"sqlite:///{tmp_path / 'abplane.db'}")
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autocommit=False, autoflush=False)


@pytest.fixture
def db_session(session_factory):
    session = session_factory()
    yield session
    session.rollback()
    session.close()


@pytest.fixture
def make_experiment(db_session):
    """Create an experiment with ``{key: weight}`` variants straight through the repositories."""

    def _make(name="checkout_button", variants=None, **fields):
        experiment = ExperimentRepository(db_session).create_experiment({"name": name, **fields})
        if variants:
            VariantRepository(db_session).replace_variant_set(
                experiment.experiment_id,
                [DesiredVariant(key=k, weight=w) for k, w in variants.items()],
            )
        return experiment.experiment_id

    return _make


@pytest.fixture
def client(session_factory):
    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()
