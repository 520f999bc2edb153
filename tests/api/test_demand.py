"""
Tests for the read-only endpoints: access, stats, leaderboard
and subject history.
"""

from unlock_service.models.enums import TargetType


PLATFORM = TargetType.PLATFORM_INVESTOR


def unlock(client, gateway, reference, subject, target,
           target_type=PLATFORM, **ranking):
    gateway.add_payment(reference, subject, target, target_type, **ranking)
    response = client.post("/unlocks/confirm", json={
        "subject_id": subject,
        "target_id": target,
        "target_type": target_type.value,
        "payment_reference": reference,
    })
    assert response.status_code == 200
    return response.json()["entry"]


class TestAccess:

    def test_locked_before_payment(self, client):
        response = client.get("/access", params={
            "subject_id": "S1",
            "target_id": "V42",
            "target_type": "investor:platform",
        })
        assert response.status_code == 200
        assert response.json()["unlocked"] is False

    def test_unlocked_after_confirm(self, client, gateway):
        unlock(client, gateway, "pay_abc", "S1", "V42")

        response = client.get("/access", params={
            "subject_id": "S1",
            "target_id": "V42",
            "target_type": "investor:platform",
        })
        assert response.json()["unlocked"] is True

    def test_unknown_target_type_returns_422(self, client):
        response = client.get("/access", params={
            "subject_id": "S1",
            "target_id": "V42",
            "target_type": "investor:unknown",
        })
        assert response.status_code == 422


class TestTargetStats:

    def test_three_founders_unlock_v7(self, client, gateway):
        unlock(client, gateway, "p1", "S1", "V7", tag="fintech", score=80)
        unlock(client, gateway, "p2", "S2", "V7", tag="fintech")
        unlock(client, gateway, "p3", "S3", "V7", tag="climate")

        response = client.get("/targets/stats", params={
            "target_id": "V7",
            "target_type": "investor:platform",
        })

        assert response.status_code == 200
        data = response.json()
        assert data["total_requests"] == 3
        assert data["top_tag"] == "fintech"
        assert data["position"] == 1
        assert data["window_days"] == 30

    def test_target_without_unlocks(self, client):
        response = client.get("/targets/stats", params={
            "target_id": "V1",
            "target_type": "investor:platform",
        })
        data = response.json()
        assert data["total_requests"] == 0
        assert data["avg_score"] is None
        assert data["position"] is None

    def test_window_days_must_be_positive(self, client):
        response = client.get("/targets/stats", params={
            "target_id": "V1",
            "target_type": "investor:platform",
            "window_days": 0,
        })
        assert response.status_code == 422


class TestLeaderboard:

    def test_leaderboard_ranks_by_demand(self, client, gateway):
        unlock(client, gateway, "p1", "S1", "V7")
        unlock(client, gateway, "p2", "S2", "V7")
        unlock(client, gateway, "p3", "S3", "V7")
        unlock(client, gateway, "p4", "S1", "V8")

        response = client.get("/leaderboard")

        assert response.status_code == 200
        rows = response.json()
        assert [row["target_id"] for row in rows] == ["V7", "V8"]
        assert rows[0]["request_count"] == 3
        assert rows[0]["position"] == 1

    def test_leaderboard_defaults_to_top_three(self, client, gateway):
        for i, target in enumerate(["A", "B", "C", "D"]):
            unlock(client, gateway, f"p{i}", "S1", target)

        response = client.get("/leaderboard")
        assert len(response.json()) == 3

    def test_leaderboard_n_parameter(self, client, gateway):
        for i, target in enumerate(["A", "B", "C", "D"]):
            unlock(client, gateway, f"p{i}", "S1", target)

        response = client.get("/leaderboard", params={"n": 4})
        assert len(response.json()) == 4

    def test_empty_leaderboard(self, client):
        response = client.get("/leaderboard")
        assert response.json() == []

    def test_project_visibility_not_ranked(self, client, gateway):
        unlock(client, gateway, "p1", "S1", "V7")
        unlock(client, gateway, "p2", "S2", "P1",
               target_type=TargetType.PROJECT_VISIBILITY)
        unlock(client, gateway, "p3", "S3", "P1",
               target_type=TargetType.PROJECT_VISIBILITY)

        rows = client.get("/leaderboard").json()

        assert [row["target_id"] for row in rows] == ["V7"]

    def test_refund_does_not_change_ranking(self, client, gateway):
        unlock(client, gateway, "p1", "S1", "V7")
        before = client.get("/leaderboard").json()

        client.post("/unlocks/refunds", json={"payment_reference": "p1"})

        assert client.get("/leaderboard").json() == before


class TestSubjectHistory:

    def test_history_newest_first(self, client, gateway):
        unlock(client, gateway, "p1", "S1", "V7")
        client.post("/unlocks/refunds", json={"payment_reference": "p1"})

        response = client.get("/subjects/S1/unlocks")

        assert response.status_code == 200
        kinds = {row["kind"] for row in response.json()}
        assert kinds == {"UNLOCK", "REFUND"}

    def test_unknown_subject_has_empty_history(self, client):
        response = client.get("/subjects/nobody/unlocks")
        assert response.json() == []
