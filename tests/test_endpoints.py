"""
Integration tests for API endpoints using a SQLite test database.
"""
from datetime import datetime, timedelta, timezone

T0 = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)


def _dt(value: str) -> datetime:
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


def _capture(client, title="New headphones", **extra) -> dict:
    r = client.post("/intents", json={"title": title, **extra})
    assert r.status_code == 201, r.text
    return r.json()


class TestHealth:
    def test_health(self, client):
        r = client.get("/health")
        assert r.status_code == 200
        assert r.json()["status"] == "ok"
        assert r.json()["db"] == "ok"


class TestCapture:
    def test_capture_defaults_to_24_hours(self, client):
        body = _capture(client)
        assert body["status"] == "active_wait"
        assert body["delay_protocol_type"] == "twenty_four_hours"
        assert _dt(body["checkpoint_time"]) == T0 + timedelta(hours=24)
        assert body["progress_percent"] == 0.0
        assert body["days_remaining"] == 1

    def test_capture_with_protocol(self, client):
        body = _capture(
            client,
            category="spending",
            kind="spending",
            estimated_cost="129.99",
            fallback_action="Go for a walk",
            protocol={"type": "until_payday"},
        )
        assert body["category"] == "spending"
        assert _dt(body["checkpoint_time"]) == datetime(2026, 3, 15, 9, 0, tzinfo=timezone.utc)
        assert body["delay_duration_hours"] == 336

    def test_custom_date_clamped_to_ten_minutes(self, client):
        body = _capture(
            client,
            protocol={"type": "custom_date", "custom_date": "2026-03-10T12:01:00Z"},
        )
        assert _dt(body["checkpoint_time"]) == T0 + timedelta(minutes=10)

    def test_negative_cost_rejected(self, client):
        r = client.post("/intents", json={"title": "x", "estimated_cost": "-1"})
        assert r.status_code == 422
        assert r.json()["code"] == "INVALID_STATE"


class TestReadAndList:
    def test_get_one(self, client):
        created = _capture(client)
        r = client.get(f"/intents/{created['id']}")
        assert r.status_code == 200
        assert r.json()["title"] == "New headphones"

    def test_views(self, client, clock):
        waiting = _capture(client, title="Waiting", protocol={"type": "seventy_two_hours"})
        due = _capture(client, title="Due", protocol={"type": "ten_minutes"})
        done = _capture(client, title="Done")
        client.post(f"/intents/{done['id']}/decision", json={"outcome": "resisted"})
        clock.advance(hours=1)

        def ids(view):
            r = client.get("/intents", params={"view": view})
            assert r.status_code == 200
            return {i["id"] for i in r.json()["items"]}

        assert ids("all") == {waiting["id"], due["id"], done["id"]}
        assert ids("waiting") == {waiting["id"]}
        assert ids("due") == {due["id"]}
        assert ids("resolved") == {done["id"]}

    def test_unknown_view_rejected(self, client):
        assert client.get("/intents", params={"view": "someday"}).status_code == 422


class TestEditAndDelete:
    def test_patch_title(self, client):
        created = _capture(client)
        r = client.patch(f"/intents/{created['id']}", json={"title": "  Cheaper headphones "})
        assert r.status_code == 200
        assert r.json()["title"] == "Cheaper headphones"
        assert r.json()["checkpoint_time"] == created["checkpoint_time"]

    def test_patch_protocol_recomputes_checkpoint(self, client):
        created = _capture(client)
        r = client.patch(
            f"/intents/{created['id']}", json={"protocol": {"type": "seventy_two_hours"}}
        )
        assert _dt(r.json()["checkpoint_time"]) == T0 + timedelta(hours=72)
        assert r.json()["delay_duration_hours"] == 72

    def test_patch_resolved_conflicts(self, client):
        created = _capture(client)
        client.post(f"/intents/{created['id']}/decision", json={"outcome": "canceled"})
        r = client.patch(f"/intents/{created['id']}", json={"title": "again"})
        assert r.status_code == 409

    def test_delete_keeps_history(self, client):
        created = _capture(client)
        client.post(
            f"/intents/{created['id']}/decision",
            json={"outcome": "resisted", "reflection": "Did not need them"},
        )
        r = client.delete(f"/intents/{created['id']}")
        assert r.status_code == 204
        assert client.get(f"/intents/{created['id']}").status_code == 404

        history = client.get(f"/intents/{created['id']}/completions").json()
        assert history["total"] == 1
        assert history["items"][0]["intent_title"] == "New headphones"

    def test_delete_unknown(self, client):
        assert client.delete("/intents/nope").status_code == 404


class TestDecisions:
    def test_resolve(self, client, clock):
        created = _capture(client)
        clock.advance(hours=25)
        r = client.post(
            f"/intents/{created['id']}/decision",
            json={"outcome": "intentional_yes", "urge_score": 2, "regret_score": 1},
        )
        assert r.status_code == 200
        body = r.json()
        assert body["intent"]["status"] == "resolved"
        assert body["intent"]["outcome"] == "intentional_yes"
        assert body["completion"]["was_after_checkpoint"] is True
        assert body["completion"]["duration_days"] == 1

    def test_cancel(self, client):
        created = _capture(client)
        r = client.post(f"/intents/{created['id']}/decision", json={"outcome": "canceled"})
        assert r.json()["intent"]["status"] == "canceled"

    def test_postponed_outcome_rejected(self, client):
        created = _capture(client)
        r = client.post(f"/intents/{created['id']}/decision", json={"outcome": "postponed"})
        assert r.status_code == 422
        assert r.json()["code"] == "INVALID_OUTCOME"

    def test_score_out_of_range(self, client):
        created = _capture(client)
        r = client.post(
            f"/intents/{created['id']}/decision", json={"outcome": "resisted", "urge_score": 6}
        )
        assert r.status_code == 422
        assert r.json()["code"] == "INVALID_STATE"
        assert client.get(f"/intents/{created['id']}").json()["status"] == "active_wait"

    def test_postpone(self, client, clock):
        created = _capture(client)
        clock.advance(hours=30)
        r = client.post(
            f"/intents/{created['id']}/postpone",
            json={"protocol": {"type": "twenty_four_hours"}, "note": "payday first"},
        )
        assert r.status_code == 200
        body = r.json()
        assert body["intent"]["status"] == "active_wait"
        assert body["intent"]["postpone_count"] == 1
        assert _dt(body["intent"]["checkpoint_time"]) == T0 + timedelta(hours=54)
        assert body["completion"]["outcome"] == "postponed"
        assert body["completion"]["reflection"] == "payday first"

    def test_postpone_resolved_conflicts(self, client):
        created = _capture(client)
        client.post(f"/intents/{created['id']}/decision", json={"outcome": "resisted"})
        r = client.post(
            f"/intents/{created['id']}/postpone", json={"protocol": {"type": "ten_minutes"}}
        )
        assert r.status_code == 409
        assert r.json()["code"] == "CHECKPOINT_UNAVAILABLE"

    def test_recover_latest(self, client):
        created = _capture(client)
        client.post(f"/intents/{created['id']}/decision", json={"outcome": "gave_in"})
        r = client.post("/intents/recover", json={})
        assert r.status_code == 200
        recovered = r.json()["recovered"]
        assert recovered["id"] == created["id"]
        assert recovered["status"] == "active_wait"
        assert recovered["outcome"] is None
        assert _dt(recovered["checkpoint_time"]) == T0 + timedelta(hours=30)

    def test_recover_nothing(self, client):
        r = client.post("/intents/recover", json={})
        assert r.status_code == 200
        assert r.json()["recovered"] is None

    def test_recover_wrong_outcome(self, client):
        created = _capture(client)
        client.post(f"/intents/{created['id']}/decision", json={"outcome": "resisted"})
        r = client.post("/intents/recover", json={"intent_id": created["id"]})
        assert r.status_code == 409


class TestUrges:
    def test_log_list_delete(self, client):
        created = _capture(client)
        r = client.post(
            f"/intents/{created['id']}/urges",
            json={"intensity": 9, "note": "saw an ad", "used_fallback_action": True},
        )
        assert r.status_code == 201
        urge = r.json()
        assert urge["intensity"] == 5

        recent = client.get("/urges/recent").json()
        assert recent["total"] == 1

        assert client.delete(f"/urges/{urge['id']}").status_code == 204
        assert client.get("/urges/recent").json()["total"] == 0
        assert client.delete(f"/urges/{urge['id']}").status_code == 404

    def test_recent_limit_validated(self, client):
        r = client.get("/urges/recent", params={"limit": 0})
        assert r.status_code == 422
        assert r.json()["code"] == "VALIDATION_ERROR"


class TestLifecycle:
    def test_refresh_is_idempotent(self, client, clock):
        created = _capture(client)
        clock.advance(hours=25)
        r = client.post("/lifecycle/refresh", json={})
        assert r.status_code == 200
        assert r.json()["transitioned"] == 1
        assert client.post("/lifecycle/refresh", json={}).json()["transitioned"] == 0
        assert client.get(f"/intents/{created['id']}").json()["status"] == "checkpoint_due"

    def test_refresh_with_reference(self, client):
        _capture(client)
        r = client.post("/lifecycle/refresh", json={"reference": "2026-03-12T00:00:00Z"})
        assert r.json()["transitioned"] == 1


class TestAchievements:
    def test_first_decision_unlocks(self, client):
        created = _capture(client)
        client.post(
            f"/intents/{created['id']}/decision",
            json={"outcome": "resisted", "reflection": "fine without"},
        )
        body = client.get("/achievements").json()
        assert body["progress"]["resolved_count"] == 1
        assert body["progress"]["resisted_count"] == 1
        assert body["reward_points"] == 12
        first = next(a for a in body["achievements"] if a["key"] == "first_intentional_decision")
        assert first["unlocked"] is True

    def test_empty_history(self, client):
        body = client.get("/achievements").json()
        assert body["reward_points"] == 0
        assert not any(a["unlocked"] for a in body["achievements"])


class TestNotifications:
    def test_sync_and_pending(self, client):
        _capture(client, protocol={"type": "seventy_two_hours"})
        r = client.post("/notifications/sync", json={"preferences": {"reminder_time": "20:00:00"}})
        assert r.status_code == 200
        assert r.json()["total"] == 5
        assert client.get("/notifications/pending").json()["total"] == 5

        again = client.post("/notifications/sync", json={})
        assert again.json()["total"] == 5
        assert client.get("/notifications/pending").json()["total"] == 5

    def test_denied_withdraws(self, client):
        _capture(client)
        client.post("/notifications/sync", json={})
        r = client.post("/notifications/sync", json={"authorization": "denied"})
        assert r.json()["total"] == 0
        assert client.get("/notifications/pending").json()["total"] == 0


class TestOutbox:
    def test_operations_and_drain(self, client):
        created = _capture(client)
        ops = client.get("/outbox/operations").json()
        assert ops["total"] == 1
        assert ops["items"][0]["kind"] == "intent_created"
        assert ops["items"][0]["intent_id"] == created["id"]

        drained = client.post("/outbox/drain").json()
        assert drained["total"] == 1
        assert client.get("/outbox/operations").json()["total"] == 0

    def test_analytics_filter(self, client):
        _capture(client)
        r = client.get("/analytics/events", params={"event": "desire_captured"})
        assert r.status_code == 200
        assert r.json()["total"] == 1
        assert r.json()["items"][0]["protocol_type"] == "twenty_four_hours"
