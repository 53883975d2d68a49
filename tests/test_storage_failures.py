import pytest
from sqlalchemy import text
from sqlalchemy.exc import OperationalError

from abplane.core.errors import PersistenceError
from abplane.repositories.assignment_repo import AssignmentRepository
from abplane.repositories.variant_repo import DesiredVariant, VariantRepository
from abplane.services.assignment_service import AssignmentService


def storage_down(*args, **kwargs):
    raise OperationalError("SELECT 1", {}, Exception("disk I/O error"))


@pytest.fixture
def experiment_ab(make_experiment):
    return make_experiment(variants={"A": 50, "B": 50})


class TestRepositoryFailures:
    def test_find_assignment(self, db_session, experiment_ab, monkeypatch):
        monkeypatch.setattr(db_session, "scalars", storage_down)

        with pytest.raises(PersistenceError) as exc_info:
            AssignmentRepository(db_session).find_assignment(experiment_ab, "user_001")
        assert exc_info.value.http_status == 503

        monkeypatch.undo()
        assert AssignmentRepository(db_session).find_assignment(experiment_ab, "user_001") is None

    def test_create_assignment_rolls_back(self, db_session, experiment_ab, monkeypatch):
        variant = VariantRepository(db_session).find_variants(experiment_ab)[0]
        monkeypatch.setattr(db_session, "commit", storage_down)

        with pytest.raises(PersistenceError):
            AssignmentRepository(db_session).create_assignment(
                experiment_ab, "user_001", variant.variant_id
            )

        assert not db_session.new
        monkeypatch.undo()
        assert AssignmentRepository(db_session).list_assignments(experiment_ab) == []

    def test_replace_variant_set_rolls_back(self, db_session, experiment_ab, monkeypatch):
        repo = VariantRepository(db_session)
        a, b = repo.find_variants(experiment_ab)
        monkeypatch.setattr(db_session, "flush", storage_down)

        with pytest.raises(PersistenceError):
            repo.replace_variant_set(
                experiment_ab,
                [
                    DesiredVariant(id=a.variant_id, key="A", weight=30),
                    DesiredVariant(key="C", weight=70),
                ],
            )

        assert not db_session.new
        assert not db_session.deleted
        monkeypatch.undo()
        assert [(v.key, v.weight) for v in repo.find_variants(experiment_ab)] == [
            ("A", 50),
            ("B", 50),
        ]

    def test_assign_surfaces_persistence_error(self, db_session, experiment_ab, monkeypatch):
        service = AssignmentService(db_session, draw=lambda n: 0)
        monkeypatch.setattr(db_session, "commit", storage_down)

        with pytest.raises(PersistenceError):
            service.assign(experiment_ab, "user_001")

        monkeypatch.undo()
        assert service.get(experiment_ab, "user_001") is None


def test_http_storage_failure_is_503(client, engine):
    created = client.post("/experiments", json={"name": "checkout_button"}).json()
    with engine.begin() as conn:
        conn.execute(text("DROP TABLE assignments"))

    response = client.post(
        f"/experiments/{created['experiment_id']}/assignments", json={"user_id": "user_001"}
    )

    assert response.status_code == 503
    assert response.json()["error"]["code"] == "PERSISTENCE_ERROR"
