from __future__ import annotations

from datetime import datetime, timedelta, timezone

from fastapi.testclient import TestClient

from app.core.config import get_settings
from app.db.pg.base import Base
from app.db.pg.session import engine
from app.main import app

client = TestClient(app)
OWNER = {"X-Owner-Id": "owner-1"}
PREFIX = get_settings().api_prefix


def reset_db() -> None:
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)


def _create(payload: dict, headers: dict | None = None) -> dict:
    response = client.post(f"{PREFIX}/contacts", json=payload, headers=headers or OWNER)
    assert response.status_code == 201, response.text
    return response.json()


def _days_ago(days: int) -> str:
    return (datetime.now(timezone.utc) - timedelta(days=days)).isoformat()


def test_health_needs_no_owner() -> None:
    response = client.get(f"{PREFIX}/health")

    assert response.status_code == 200
    assert response.json()["status"] == "ok"
    assert response.json()["database"] == "ok"


def test_owner_header_is_required() -> None:
    reset_db()

    assert client.get(f"{PREFIX}/followups").status_code == 401
    assert client.post(f"{PREFIX}/contacts", json={"first_name": "Ada"}).status_code == 401
    assert client.get(f"{PREFIX}/stats", headers={"X-Owner-Id": "  "}).status_code == 401


def test_create_read_and_conflict() -> None:
    reset_db()
    created = _create({"first_name": "Ada", "last_name": "Lovelace", "email": "Ada@Example.com", "tags": ["VIP"]})

    assert created["display_name"] == "Ada Lovelace"
    assert created["email"] == "ada@example.com"
    assert created["tags"] == ["vip"]
    assert created["relationship_strength"] == 5.0
    assert created["duplicate_matches"] == []

    fetched = client.get(f"{PREFIX}/contacts/{created['contact_id']}", headers=OWNER)
    assert fetched.status_code == 200
    assert fetched.json()["contact_id"] == created["contact_id"]

    conflict = client.post(f"{PREFIX}/contacts", json={"first_name": "A", "email": "ada@example.com"}, headers=OWNER)
    assert conflict.status_code == 409
    assert conflict.json()["error"] == "conflict"

    hidden = client.get(f"{PREFIX}/contacts/{created['contact_id']}", headers={"X-Owner-Id": "owner-2"})
    assert hidden.status_code == 404
    assert hidden.json()["error"] == "not_found"


def test_validation_errors_name_the_fields() -> None:
    reset_db()

    response = client.post(
        f"{PREFIX}/contacts",
        json={"first_name": "Bad", "email": "nope", "contact_frequency_days": 0},
        headers=OWNER,
    )

    assert response.status_code == 422
    body = response.json()
    assert body["error"] == "validation_error"
    assert {item["field"] for item in body["fields"]} == {"email", "contact_frequency_days"}

    malformed = client.post(f"{PREFIX}/contacts", json={"last_name": "Nameless"}, headers=OWNER)
    assert malformed.status_code == 422


def test_duplicate_check_and_import() -> None:
    reset_db()
    existing = _create({"first_name": "John", "last_name": "Doe", "email": "john@example.com"})

    check = client.post(f"{PREFIX}/contacts/check-duplicate", json={"email": " JOHN@example.com "}, headers=OWNER)
    assert check.status_code == 200
    body = check.json()
    assert body["is_duplicate"] is True
    assert body["matches"][0]["contact_id"] == existing["contact_id"]
    assert body["matches"][0]["category"] == "exact"

    near = _create({"first_name": "John", "last_name": "Doe", "email": "john.doe@example.com"})
    assert [match["contact_id"] for match in near["duplicate_matches"]] == [existing["contact_id"]]
    assert near["duplicate_matches"][0]["category"] in {"fuzzy", "potential"}

    imported = client.post(
        f"{PREFIX}/contacts/import",
        json={"contacts": [{"first_name": "John", "email": "john@example.com"}, {"first_name": "Mary"}]},
        headers=OWNER,
    )
    assert imported.status_code == 200
    summary = imported.json()
    assert (summary["created"], summary["duplicate"]) == (1, 1)
    assert [row["status"] for row in summary["rows"]] == ["duplicate", "created"]


def test_interaction_followup_and_recommendation_flow() -> None:
    reset_db()
    contact = _create({"first_name": "Grace", "email": "grace@example.com", "last_contact_date": _days_ago(45)})
    contact_id = contact["contact_id"]

    followups = client.get(f"{PREFIX}/followups", headers=OWNER).json()
    assert [item["contact_id"] for item in followups] == [contact_id]
    assert followups[0]["is_past_due"] is True
    assert followups[0]["overdue_indicator"] == "critical"

    recommendations = client.get(f"{PREFIX}/recommendations", params={"period": "weekly"}, headers=OWNER).json()
    assert [item["trigger_type"] for item in recommendations] == ["overdue"]

    recorded = client.post(
        f"{PREFIX}/interactions",
        json={"contact_ids": [contact_id], "type": "meeting", "direction": "outbound", "subject": "Coffee"},
        headers=OWNER,
    )
    assert recorded.status_code == 201
    assert recorded.json()["contact_ids"] == [contact_id]

    assert client.get(f"{PREFIX}/followups", params={"include_overdue": "false"}, headers=OWNER).status_code == 200
    after = client.get(f"{PREFIX}/contacts/{contact_id}", headers=OWNER).json()
    assert after["is_past_due"] is False
    assert client.get(f"{PREFIX}/recommendations", headers=OWNER).json() == []

    snoozed = client.post(f"{PREFIX}/followups/{contact_id}/snooze", json={"days": 3}, headers=OWNER)
    assert snoozed.status_code == 200
    assert snoozed.json()["snoozed_until"] is not None
    single = client.get(f"{PREFIX}/followups/{contact_id}", headers=OWNER)
    assert single.status_code == 200
    assert single.json()["snoozed_until"] == snoozed.json()["snoozed_until"]
    assert client.get(f"{PREFIX}/followups/{contact_id}", headers={"X-Owner-Id": "owner-2"}).status_code == 404

    done = client.post(f"{PREFIX}/followups/{contact_id}/done", headers=OWNER)
    assert done.status_code == 200
    assert done.json()["snoozed_until"] is None

    bad_snooze = client.post(f"{PREFIX}/followups/{contact_id}/snooze", json={"days": 0}, headers=OWNER)
    assert bad_snooze.status_code == 422


def test_recommendation_actions() -> None:
    reset_db()
    _create({"first_name": "Alan", "email": "alan@example.com", "last_contact_date": _days_ago(60)})
    [recommendation] = client.get(f"{PREFIX}/recommendations", headers=OWNER).json()
    rec_id = recommendation["recommendation_id"]

    feedback = client.post(f"{PREFIX}/recommendations/{rec_id}/feedback", json={"is_helpful": True}, headers=OWNER)
    assert feedback.status_code == 200

    snooze = client.post(f"{PREFIX}/recommendations/{rec_id}/snooze", json={"days": 7}, headers=OWNER)
    assert snooze.status_code == 200
    assert client.get(f"{PREFIX}/recommendations", headers=OWNER).json() == []

    dismissed = client.post(f"{PREFIX}/recommendations/{rec_id}/dismiss", headers=OWNER)
    assert dismissed.status_code == 200
    missing = client.post(f"{PREFIX}/recommendations/unknown/dismiss", headers=OWNER)
    assert missing.status_code == 404
    invalid_period = client.get(f"{PREFIX}/recommendations", params={"period": "yearly"}, headers=OWNER)
    assert invalid_period.status_code == 422


def test_timeline_pages_with_cursor() -> None:
    reset_db()
    contact_id = _create({"first_name": "Linus", "email": "linus@example.com"})["contact_id"]
    for days in (1, 2, 3):
        client.post(
            f"{PREFIX}/interactions",
            json={"contact_ids": [contact_id], "type": "email", "occurred_at": _days_ago(days), "subject": f"d{days}"},
            headers=OWNER,
        )
    client.post(f"{PREFIX}/contacts/{contact_id}/notes", json={"content": "Prefers mornings"}, headers=OWNER)

    first = client.get(f"{PREFIX}/timeline", params={"limit": 2}, headers=OWNER).json()
    assert first["has_more"] is True
    assert [item["type"] for item in first["data"]] == ["note", "email"]

    second = client.get(f"{PREFIX}/timeline", params={"limit": 2, "cursor": first["next_cursor"]}, headers=OWNER).json()
    assert [item["title"] for item in second["data"]] == ["d2", "d3"]
    assert second["has_more"] is False
    assert second["next_cursor"] is None

    scoped = client.get(f"{PREFIX}/contacts/{contact_id}/timeline", params={"types": ["note"]}, headers=OWNER).json()
    assert [item["snippet"] for item in scoped["data"]] == ["Prefers mornings"]

    bad = client.get(f"{PREFIX}/timeline", params={"cursor": "%%%"}, headers=OWNER)
    assert bad.status_code == 422


def test_stats_and_signal_webhook() -> None:
    reset_db()
    overdue_id = _create({"first_name": "Old", "email": "old@example.com", "last_contact_date": _days_ago(45)})[
        "contact_id"
    ]
    _create({"first_name": "New", "email": "new@example.com"})

    stats = client.get(f"{PREFIX}/stats", headers=OWNER).json()
    assert stats["total_contacts"] == 2
    assert stats["overdue"] == 1
    assert stats["active_recommendations"] == 2

    signal = {"contact_id": overdue_id, "signal_type": "job_change", "external_ref": "li-9", "severity": 0.8}
    first = client.post(f"{PREFIX}/signals", json=signal, headers=OWNER)
    second = client.post(f"{PREFIX}/signals", json=signal, headers=OWNER)
    assert first.status_code == 200
    assert first.json()["created"] is True
    assert second.json()["created"] is False
    assert second.json()["signal_id"] == first.json()["signal_id"]


def test_signal_webhook_checks_secret(monkeypatch) -> None:
    reset_db()
    contact_id = _create({"first_name": "Sec", "email": "sec@example.com"})["contact_id"]
    monkeypatch.setattr(get_settings(), "enrichment_webhook_secret", "s3cret")
    signal = {"contact_id": contact_id, "signal_type": "company_news", "external_ref": "cb-1"}

    denied = client.post(f"{PREFIX}/signals", json=signal, headers=OWNER)
    allowed = client.post(f"{PREFIX}/signals", json=signal, headers={**OWNER, "X-Webhook-Secret": "s3cret"})

    assert denied.status_code == 401
    assert allowed.status_code == 200


def test_admin_sweep_runs_inline(monkeypatch) -> None:
    reset_db()
    _create({"first_name": "Sweep", "email": "sweep@example.com", "last_contact_date": _days_ago(90)})
    monkeypatch.setattr(get_settings(), "queue_mode", "inline")

    response = client.post(f"{PREFIX}/admin/sweep")

    assert response.status_code == 200
    assert response.json() == {"job_id": "inline-sweep_all_owners", "status": "enqueued"}
