import pytest

from abplane.core.settings import config_settings


def create_experiment(client, name="checkout_button", **fields):
    response = client.post("/experiments", json={"name": name, **fields})
    assert response.status_code == 201, response.text
    return response.json()


def save_variants(client, experiment_id, variants):
    return client.put(f"/experiments/{experiment_id}/variants", json={"variants": variants})


@pytest.fixture
def experiment(client):
    created = create_experiment(client)
    response = save_variants(
        client,
        created["experiment_id"],
        [{"key": "control", "weight": 50}, {"key": "treatment", "weight": 50}],
    )
    assert response.status_code == 200, response.text
    return created["experiment_id"]


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


class TestExperimentEndpoints:
    def test_create_and_get(self, client):
        created = create_experiment(client, description="Button colour test")

        response = client.get(f"/experiments/{created['experiment_id']}")

        assert response.status_code == 200
        body = response.json()
        assert body["name"] == "checkout_button"
        assert body["status"] == "draft"
        assert body["strategy"] == "uniform"
        assert body["variants"] == []

    def test_validation_error_shape(self, client):
        response = client.post("/experiments", json={"name": "Not Snake Case"})

        assert response.status_code == 422
        assert response.json()["error"]["code"] == "VALIDATION_ERROR"

    def test_duplicate_name_is_conflict(self, client):
        create_experiment(client)

        response = client.post("/experiments", json={"name": "checkout_button"})

        assert response.status_code == 409
        assert response.json()["error"]["code"] == "DUPLICATE_NAME"

    def test_unknown_experiment(self, client):
        response = client.get("/experiments/missing")

        assert response.status_code == 404
        assert response.json()["error"]["code"] == "NOT_FOUND"

    def test_update(self, client):
        created = create_experiment(client)

        response = client.put(
            f"/experiments/{created['experiment_id']}", json={"status": "active"}
        )

        assert response.status_code == 200
        assert response.json()["status"] == "active"

    def test_list_with_filters_and_paging(self, client):
        create_experiment(client, "checkout_button", status="active")
        create_experiment(client, "checkout_copy")
        create_experiment(client, "pricing_page", status="active")

        active = client.get("/experiments", params={"status": "active"}).json()
        searched = client.get("/experiments", params={"search": "checkout"}).json()
        first = client.get("/experiments", params={"limit": 2}).json()
        second = client.get(
            "/experiments", params={"limit": 2, "cursor": first["next_cursor"]}
        ).json()

        assert {e["name"] for e in active["items"]} == {"checkout_button", "pricing_page"}
        assert {e["name"] for e in searched["items"]} == {"checkout_button", "checkout_copy"}
        assert len(first["items"]) == 2
        assert len(second["items"]) == 1
        assert second["next_cursor"] is None
        seen = {e["name"] for e in first["items"] + second["items"]}
        assert seen == {"checkout_button", "checkout_copy", "pricing_page"}

    def test_delete(self, client, experiment):
        client.post(f"/experiments/{experiment}/assignments", json={"user_id": "user_001"})

        response = client.delete(f"/experiments/{experiment}")

        assert response.status_code == 204
        assert client.get(f"/experiments/{experiment}").status_code == 404


class TestVariantEndpoints:
    def test_saved_variants_are_listed(self, client, experiment):
        response = client.get(f"/experiments/{experiment}/variants")

        assert response.status_code == 200
        assert [(v["key"], v["weight"]) for v in response.json()] == [
            ("CONTROL", 50),
            ("TREATMENT", 50),
        ]
        assert client.get(f"/experiments/{experiment}").json()["total_weight"] == 100

    def test_update_by_id(self, client, experiment):
        control, treatment = client.get(f"/experiments/{experiment}/variants").json()

        response = save_variants(
            client,
            experiment,
            [
                {"id": control["variant_id"], "key": "CONTROL", "weight": 20},
                {"id": treatment["variant_id"], "key": "TREATMENT", "weight": 30},
                {"key": "C", "weight": 50},
            ],
        )

        assert response.status_code == 200
        body = response.json()
        assert body[0]["variant_id"] == control["variant_id"]
        assert body[1]["variant_id"] == treatment["variant_id"]
        assert [v["weight"] for v in body] == [20, 30, 50]

    def test_bad_total_rejected(self, client, experiment):
        response = save_variants(
            client, experiment, [{"key": "A", "weight": 60}, {"key": "B", "weight": 60}]
        )

        assert response.status_code == 422
        assert "sum to 100" in response.json()["error"]["message"]

    def test_single_variant_rejected(self, client, experiment):
        response = save_variants(client, experiment, [{"key": "A", "weight": 100}])

        assert response.status_code == 422

    def test_removing_assigned_variant_is_conflict(self, client, experiment):
        control, treatment = client.get(f"/experiments/{experiment}/variants").json()
        assigned = client.post(
            f"/experiments/{experiment}/assignments", json={"user_id": "user_001"}
        ).json()
        kept = treatment if assigned["variant_id"] == control["variant_id"] else control

        response = save_variants(
            client,
            experiment,
            [
                {"id": kept["variant_id"], "key": kept["key"], "weight": 50},
                {"key": "NEW", "weight": 50},
            ],
        )

        assert response.status_code == 409
        assert response.json()["error"]["code"] == "PRECONDITION_FAILED"


class TestRebalanceEndpoint:
    def test_even(self, client):
        response = client.post("/variants/rebalance", json={"weights": [1, 1, 1]})

        assert response.status_code == 200
        assert response.json() == {"weights": [34, 33, 33], "total": 100}

    def test_locked(self, client):
        response = client.post(
            "/variants/rebalance",
            json={"weights": [25, 25, 50], "locked_index": 2, "new_value": 20},
        )

        assert response.json()["weights"] == [40, 40, 20]

    def test_blank_entries_count_as_zero(self, client):
        response = client.post("/variants/rebalance", json={"weights": ["", None, "40"]})

        assert response.json()["weights"] == [0, 0, 100]

    def test_locked_index_out_of_range(self, client):
        response = client.post(
            "/variants/rebalance",
            json={"weights": [50, 50], "locked_index": 5, "new_value": 10},
        )

        assert response.status_code == 422


class TestAssignmentEndpoints:
    def test_assign_is_sticky(self, client, experiment):
        url = f"/experiments/{experiment}/assignments"

        first = client.post(url, json={"user_id": "user_001"})
        second = client.post(url, json={"user_id": "  user_001  "})

        assert first.status_code == 201
        assert second.status_code == 200
        assert first.json()["is_new"] is True
        assert second.json()["is_new"] is False
        for field in ("assignment_id", "variant_id", "variant_key", "created_at"):
            assert first.json()[field] == second.json()[field]
        assert first.json()["variant_key"] in ("CONTROL", "TREATMENT")

    def test_lookup_does_not_assign(self, client, experiment):
        response = client.get(f"/experiments/{experiment}/assignments/user_001")
        assert response.status_code == 404

        client.post(f"/experiments/{experiment}/assignments", json={"user_id": "user_001"})

        response = client.get(f"/experiments/{experiment}/assignments/user_001")
        assert response.status_code == 200
        assert response.json()["user_id"] == "user_001"

    def test_list(self, client, experiment):
        for user in ("user_001", "user_002", "user_003"):
            client.post(f"/experiments/{experiment}/assignments", json={"user_id": user})

        response = client.get(f"/experiments/{experiment}/assignments")

        assert response.status_code == 200
        assert {a["user_id"] for a in response.json()} == {"user_001", "user_002", "user_003"}

    def test_short_user_id(self, client, experiment):
        response = client.post(
            f"/experiments/{experiment}/assignments", json={"user_id": " ab "}
        )
        assert response.status_code == 422

    def test_experiment_without_variants(self, client):
        created = create_experiment(client)

        response = client.post(
            f"/experiments/{created['experiment_id']}/assignments", json={"user_id": "user_001"}
        )

        assert response.status_code == 409
        assert response.json()["error"]["code"] == "PRECONDITION_FAILED"

    def test_unknown_experiment(self, client):
        response = client.post("/experiments/missing/assignments", json={"user_id": "user_001"})
        assert response.status_code == 404


class TestAuth:
    @pytest.fixture(autouse=True)
    def tokens(self, monkeypatch):
        monkeypatch.setattr(config_settings, "TOKENS", ["secret-token"])

    def test_missing_token(self, client):
        response = client.get("/experiments")

        assert response.status_code == 401
        assert response.headers["www-authenticate"] == "Bearer"

    def test_wrong_token(self, client):
        response = client.get("/experiments", headers={"Authorization": "Bearer nope"})
        assert response.status_code == 401

    def test_valid_token(self, client):
        response = client.get(
            "/experiments", headers={"Authorization": "Bearer secret-token"}
        )
        assert response.status_code == 200

    def test_health_stays_open(self, client):
        assert client.get("/health").status_code == 200
