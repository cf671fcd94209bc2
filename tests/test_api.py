"""Tests for the HTTP API."""

from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from studio_ledger.adapters.video_gen.seedance import SeedanceProvider
from studio_ledger.api.deps import get_provider
from studio_ledger.config import settings
from studio_ledger.db.models import VideoSegmentModel

USER_ID = "user-1"

ANONYMOUS = {"X-User-Id": ""}


def batch_request(script_id, segments=None, **overrides) -> dict:
    body = {
        "mode": "batch",
        "script_id": str(script_id),
        "episode_num": 1,
        "model": "seedance_2_0",
        "resolution": "1080p",
        "segments": segments
        or [
            {"prompt": "She opens the letter", "duration_sec": 10},
            {"prompt": "He turns away"},
        ],
    }
    body.update(overrides)
    return body


class TestTokens:
    """Test balance endpoints."""

    def test_new_user_has_empty_balance(self, api_client: TestClient) -> None:
        response = api_client.get("/api/v1/tokens/balance")

        assert response.status_code == 200
        assert response.json() == {
            "user_id": USER_ID,
            "balance": 0,
            "reserved": 0,
            "available": 0,
            "total_purchased": 0,
            "total_consumed": 0,
        }

    def test_missing_identity(self, api_client: TestClient) -> None:
        response = api_client.get("/api/v1/tokens/balance", headers=ANONYMOUS)
        assert response.status_code == 401

    def test_purchase(self, api_client: TestClient) -> None:
        response = api_client.post(
            "/api/v1/tokens/purchase", json={"amount": 50, "payment_reference": "pi_123"}
        )

        assert response.status_code == 200
        data = response.json()
        assert data["balance"] == 50
        assert data["total_purchased"] == 50

        transactions = api_client.get("/api/v1/tokens/transactions").json()
        assert [(tx["type"], tx["amount"]) for tx in transactions] == [("purchase", 50)]
        assert transactions[0]["metadata"] == {"payment_reference": "pi_123"}

    def test_purchase_limits(self, api_client: TestClient) -> None:
        assert api_client.post("/api/v1/tokens/purchase", json={"amount": 0}).status_code == 422

        response = api_client.post(
            "/api/v1/tokens/purchase", json={"amount": settings.max_grant_amount + 1}
        )
        assert response.status_code == 400

    def test_charge_feature(self, api_client: TestClient, fund) -> None:
        fund(10)

        response = api_client.post("/api/v1/tokens/features/generate_script")

        assert response.status_code == 200
        data = response.json()
        assert data["coins_charged"] == 5
        assert data["balance"]["balance"] == 5

    def test_charge_feature_insufficient(self, api_client: TestClient, fund) -> None:
        fund(1)

        response = api_client.post("/api/v1/tokens/features/generate_script")

        assert response.status_code == 402
        assert response.json()["detail"] == {
            "message": "Insufficient balance",
            "required": 5,
            "available": 1,
        }

    def test_charge_unknown_feature(self, api_client: TestClient, fund) -> None:
        fund(10)
        response = api_client.post("/api/v1/tokens/features/teleport")
        assert response.status_code == 404


class TestAdmin:
    """Test admin endpoints."""

    def test_grant(self, api_client: TestClient) -> None:
        response = api_client.post(
            "/api/v1/admin/users/user-2/grant", json={"amount": 25, "reason": "Launch bonus"}
        )

        assert response.status_code == 200
        data = response.json()
        assert data["user_id"] == "user-2"
        assert data["balance"] == 25
        assert data["total_purchased"] == 0

    def test_grant_over_limit(self, api_client: TestClient) -> None:
        response = api_client.post(
            "/api/v1/admin/users/user-2/grant", json={"amount": settings.max_grant_amount + 1}
        )
        assert response.status_code == 400

    def test_set_feature_price(self, api_client: TestClient) -> None:
        response = api_client.put(
            "/api/v1/admin/features/ai_polish", json={"cost_coins": 4}
        )

        assert response.status_code == 200
        assert response.json()["cost_coins"] == 4

        listed = {p["key"]: p for p in api_client.get("/api/v1/pricing/features").json()}
        assert listed["ai_polish"]["cost_coins"] == 4
        assert listed["ai_polish"]["label"] == "Script Polish"


class TestPricing:
    """Test pricing endpoints."""

    def test_price_list(self, api_client: TestClient) -> None:
        data = api_client.get("/api/v1/pricing").json()

        assert data["markup"] == 2
        assert {
            "model": "seedance_2_0",
            "resolution": "720p",
            "cents_per_second": 40,
        } in data["models"]

    def test_estimate(self, api_client: TestClient) -> None:
        response = api_client.post(
            "/api/v1/pricing/estimate",
            json={
                "model": "seedance_2_0",
                "resolution": "1080p",
                "segments": [{"duration_sec": 10}, {}],
            },
        )

        assert response.status_code == 200
        data = response.json()
        # (10 + 15)s * 80 cents * 2 = 4000 cents
        assert data["purchasable"] is True
        assert data["total_seconds"] == 25
        assert data["coins"] == 40
        assert data["per_segment"] == [16, 24]

    def test_estimate_unpriced(self, api_client: TestClient) -> None:
        data = api_client.post(
            "/api/v1/pricing/estimate",
            json={"model": "jimeng_3_0_pro", "resolution": "720p", "segments": [{}]},
        ).json()

        assert data["purchasable"] is False
        assert data["coins"] == 0


class TestVideo:
    """Test segment generation endpoints."""

    def test_batch_submit_and_status(self, api_client: TestClient, fund, script) -> None:
        fund(100)

        response = api_client.post("/api/v1/video/submit", json=batch_request(script.id))

        assert response.status_code == 202
        data = response.json()
        assert data["reserved_coins"] == 40
        assert [s["status"] for s in data["segments"]] == ["submitted", "reserved"]
        assert [s["reserved_cost"] for s in data["segments"]] == [16, 24]
        assert data["balance"]["reserved"] == 40

        params = {"script_id": str(script.id), "episode_num": 1}
        status = api_client.get("/api/v1/video/status", params=params).json()
        assert [s["status"] for s in status["segments"]] == ["done", "submitted"]
        assert status["all_terminal"] is False

        status = api_client.get("/api/v1/video/status", params=params).json()
        assert [s["status"] for s in status["segments"]] == ["done", "done"]
        assert status["all_terminal"] is True

        balance = api_client.get("/api/v1/tokens/balance").json()
        assert balance["balance"] == 60
        assert balance["reserved"] == 0
        assert balance["total_consumed"] == 40

    def test_batch_insufficient_funds(
        self, api_client: TestClient, fund, script, video_gen_provider
    ) -> None:
        fund(5)

        response = api_client.post("/api/v1/video/submit", json=batch_request(script.id))

        assert response.status_code == 402
        assert response.json()["detail"]["required"] == 40
        assert response.json()["detail"]["available"] == 5
        assert video_gen_provider.submitted == []

    def test_batch_unpriced_model(self, api_client: TestClient, fund, script) -> None:
        fund(100)

        response = api_client.post(
            "/api/v1/video/submit",
            json=batch_request(script.id, model="jimeng_3_0_pro", resolution="720p"),
        )

        assert response.status_code == 400

    def test_batch_model_unavailable_on_provider(
        self, api_client: TestClient, fund, script
    ) -> None:
        fund(100)
        api_client.app.dependency_overrides[get_provider] = lambda: SeedanceProvider(
            api_key="test-key"
        )

        response = api_client.post(
            "/api/v1/video/submit",
            json=batch_request(script.id, model="jimeng_3_0", resolution="1080p"),
        )

        assert response.status_code == 400
        assert "jimeng_3_0" in response.json()["detail"]
        balance = api_client.get("/api/v1/tokens/balance").json()
        assert (balance["balance"], balance["reserved"]) == (100, 0)

    def test_batch_requires_fields(self, api_client: TestClient, script) -> None:
        body = batch_request(script.id)
        del body["model"]

        assert api_client.post("/api/v1/video/submit", json=body).status_code == 422
        assert api_client.post(
            "/api/v1/video/submit", json={"mode": "single"}
        ).status_code == 422

    def test_single_retry(self, api_client: TestClient, fund, make_segment) -> None:
        fund(100)
        segment = make_segment(status="failed")

        response = api_client.post(
            "/api/v1/video/submit", json={"mode": "single", "segment_id": str(segment.id)}
        )

        assert response.status_code == 202
        data = response.json()
        assert data["reserved_coins"] == 8
        assert data["segments"][0]["status"] == "submitted"

    def test_single_provider_rejection(
        self, api_client: TestClient, fund, make_segment, video_gen_provider
    ) -> None:
        fund(100)
        segment = make_segment()
        video_gen_provider.fail_submit = True

        response = api_client.post(
            "/api/v1/video/submit", json={"mode": "single", "segment_id": str(segment.id)}
        )

        assert response.status_code == 502
        balance = api_client.get("/api/v1/tokens/balance").json()
        assert balance["reserved"] == 0
        assert balance["balance"] == 100

    def test_single_already_running(
        self, api_client: TestClient, fund, make_segment
    ) -> None:
        fund(100)
        segment = make_segment()
        body = {"mode": "single", "segment_id": str(segment.id)}

        assert api_client.post("/api/v1/video/submit", json=body).status_code == 202
        assert api_client.post("/api/v1/video/submit", json=body).status_code == 409

    def test_status_of_other_users_script(self, api_client: TestClient, script) -> None:
        response = api_client.get(
            "/api/v1/video/status",
            params={"script_id": str(script.id)},
            headers={"X-User-Id": "intruder"},
        )
        assert response.status_code == 404

    def test_reset_segment(
        self, api_client: TestClient, db_session: Session, fund, make_segment
    ) -> None:
        fund(100)
        segment = make_segment()
        segment_id = segment.id
        api_client.post(
            "/api/v1/video/submit", json={"mode": "single", "segment_id": str(segment_id)}
        )

        response = api_client.delete("/api/v1/video/reset", params={"segment_id": str(segment_id)})

        assert response.status_code == 200
        assert response.json() == {"deleted": 1}
        assert api_client.get("/api/v1/tokens/balance").json()["reserved"] == 0
        db_session.expire_all()
        assert db_session.get(VideoSegmentModel, segment_id) is None

    def test_reset_episode(self, api_client: TestClient, make_segment, script) -> None:
        make_segment()
        make_segment(status="done")

        response = api_client.delete(
            "/api/v1/video/reset", params={"script_id": str(script.id), "episode_num": 1}
        )

        assert response.json() == {"deleted": 2}

    def test_reset_requires_target(self, api_client: TestClient) -> None:
        assert api_client.delete("/api/v1/video/reset").status_code == 400


class TestRehearsals:
    """Test rehearsal endpoints."""

    def test_rehearsal_lifecycle(self, api_client: TestClient, fund) -> None:
        fund(20)

        created = api_client.post("/api/v1/rehearsals", json={"prompt": "A duel at dawn"})
        assert created.status_code == 201
        rehearsal_id = created.json()["id"]
        assert created.json()["status"] == "draft"

        submitted = api_client.post(f"/api/v1/rehearsals/{rehearsal_id}/submit")
        assert submitted.status_code == 202
        assert submitted.json()["status"] == "submitted"
        assert submitted.json()["reserved_cost"] == 4

        assert api_client.delete(f"/api/v1/rehearsals/{rehearsal_id}").status_code == 409

        [synced] = api_client.get("/api/v1/rehearsals/status").json()
        assert synced["status"] == "done"
        assert synced["token_cost"] == 4
        assert api_client.get("/api/v1/tokens/balance").json()["balance"] == 16

        edited = api_client.put(
            f"/api/v1/rehearsals/{rehearsal_id}", json={"prompt": "A duel at dusk"}
        )
        assert edited.status_code == 200
        assert edited.json()["status"] == "draft"
        assert edited.json()["video_url"] is None

        assert api_client.delete(f"/api/v1/rehearsals/{rehearsal_id}").status_code == 204
        assert api_client.get(f"/api/v1/rehearsals/{rehearsal_id}").status_code == 404

    def test_submit_without_funds(self, api_client: TestClient) -> None:
        rehearsal_id = api_client.post(
            "/api/v1/rehearsals", json={"prompt": "A duel at dawn"}
        ).json()["id"]

        response = api_client.post(f"/api/v1/rehearsals/{rehearsal_id}/submit")

        assert response.status_code == 402
        assert api_client.get(f"/api/v1/rehearsals/{rehearsal_id}").json()["status"] == "draft"

    def test_rehearsals_are_private(self, api_client: TestClient) -> None:
        rehearsal_id = api_client.post(
            "/api/v1/rehearsals", json={"prompt": "A duel at dawn"}
        ).json()["id"]

        response = api_client.get(
            f"/api/v1/rehearsals/{rehearsal_id}", headers={"X-User-Id": "intruder"}
        )

        assert response.status_code == 404
        assert api_client.get(
            "/api/v1/rehearsals", headers={"X-User-Id": "intruder"}
        ).json() == []


class TestEpisodes:
    """Test episode unlock endpoints."""

    def test_unlock_twice(self, api_client: TestClient, fund, episodes) -> None:
        fund(100)
        episode_id = episodes[1].id

        first = api_client.post(f"/api/v1/episodes/{episode_id}/unlock")
        second = api_client.post(f"/api/v1/episodes/{episode_id}/unlock")

        assert first.status_code == 200
        assert first.json()["outcome"] == "unlocked"
        assert first.json()["coins_charged"] == 10
        assert first.json()["balance"] == 90

        assert second.json()["already_unlocked"] is True
        assert second.json()["coins_charged"] == 0
        assert second.json()["balance"] == 90

    def test_unlock_ignores_client_price(self, api_client: TestClient, fund, episodes) -> None:
        """The episode's unlock_cost is charged whatever the body says."""
        fund(50)

        response = api_client.post(
            f"/api/v1/episodes/{episodes[2].id}/unlock", json={"cost": 0}
        )

        assert response.status_code == 200
        assert response.json()["outcome"] == "unlocked"
        assert response.json()["coins_charged"] == 10
        assert response.json()["balance"] == 40

    def test_free_episode(self, api_client: TestClient, episodes) -> None:
        response = api_client.post(f"/api/v1/episodes/{episodes[0].id}/unlock")

        assert response.status_code == 200
        assert response.json()["free"] is True
        assert response.json()["coins_charged"] == 0

    def test_unlock_insufficient(self, api_client: TestClient, fund, episodes) -> None:
        fund(3)

        response = api_client.post(f"/api/v1/episodes/{episodes[2].id}/unlock")

        assert response.status_code == 402
        assert response.json()["detail"]["required"] == 10

    def test_access(self, api_client: TestClient, fund, episodes) -> None:
        fund(100)
        episode_id = episodes[1].id
        url = f"/api/v1/episodes/{episode_id}/access"

        assert api_client.get(url).json()["has_access"] is False
        api_client.post(f"/api/v1/episodes/{episode_id}/unlock")
        assert api_client.get(url).json()["has_access"] is True
        assert api_client.get(url, headers=ANONYMOUS).json()["has_access"] is False

        free = api_client.get(f"/api/v1/episodes/{episodes[0].id}/access", headers=ANONYMOUS)
        assert free.json()["has_access"] is True
        assert free.json()["free"] is True

    def test_unknown_episode(self, api_client: TestClient) -> None:
        response = api_client.post(
            "/api/v1/episodes/00000000-0000-0000-0000-000000000000/unlock"
        )
        assert response.status_code == 404
