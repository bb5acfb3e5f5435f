from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import func, select

from app.core.context import RequestContext
from app.core.errors import ConflictError, NotFoundError, ValidationError
from app.core.types import DuplicateCategory
from app.db.pg.base import Base
from app.db.pg.models import Contact
from app.db.pg.session import SessionLocal, engine
from app.services.contacts_registry.importer import dedupe_import_rows, import_contacts
from app.services.contacts_registry.registry import (
    ContactDraft,
    bulk_set_frequency_by_tags,
    create_contact,
    get_contact,
    normalize_tags,
    set_contact_frequency,
    soft_delete_contact,
)
from app.services.identity.duplicates import check_duplicate

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def reset_db() -> None:
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)


def _live_count(db, owner_id: str = "owner-1") -> int:
    return db.scalar(
        select(func.count()).select_from(Contact).where(Contact.owner_id == owner_id, Contact.deleted_at.is_(None))
    )


def test_create_contact_normalizes_and_projects_followup() -> None:
    reset_db()
    db = SessionLocal()
    try:
        ctx = RequestContext(owner_id="owner-1", db=db, now=NOW)

        view = create_contact(
            ctx,
            ContactDraft(
                first_name="  Ada ",
                last_name="Lovelace",
                email=" Ada@Example.com ",
                phone="+44 20 7946 0958",
                tags=["Investor", "investor ", "VIP"],
            ),
        )

        contact = view.contact
        assert contact.first_name == "Ada"
        assert contact.normalized_email == "ada@example.com"
        assert contact.normalized_phone == "442079460958"
        assert contact.tags == ["investor", "vip"]
        assert contact.relationship_strength == 5.0
        assert contact.contact_frequency_days == 30
        assert view.followup.due_date == NOW + timedelta(days=30)
        assert get_contact(ctx, contact.contact_id).contact.contact_id == contact.contact_id
    finally:
        db.close()


def test_invalid_contact_fields_are_rejected() -> None:
    reset_db()
    db = SessionLocal()
    try:
        ctx = RequestContext(owner_id="owner-1", db=db, now=NOW)
        with pytest.raises(ValidationError):
            create_contact(ctx, ContactDraft(first_name=" "))
        with pytest.raises(ValidationError):
            create_contact(ctx, ContactDraft(first_name="Bad", email="no-at-sign"))
        with pytest.raises(ValidationError):
            create_contact(ctx, ContactDraft(first_name="Bad", relationship_strength=11))
        with pytest.raises(ValidationError):
            create_contact(ctx, ContactDraft(first_name="Bad", contact_frequency_days=0))
        with pytest.raises(ValidationError):
            create_contact(ctx, ContactDraft(first_name="Bad", last_contact_date=NOW + timedelta(hours=1)))
        with pytest.raises(ValidationError):
            normalize_tags(["x" * 65])
        assert _live_count(db) == 0
    finally:
        db.close()


def test_same_email_for_one_owner_is_a_conflict() -> None:
    reset_db()
    db = SessionLocal()
    try:
        ctx = RequestContext(owner_id="owner-1", db=db, now=NOW)
        create_contact(ctx, ContactDraft(first_name="John", email="john@example.com"))

        with pytest.raises(ConflictError):
            create_contact(ctx, ContactDraft(first_name="Johnny", email=" JOHN@example.com"))

        other = RequestContext(owner_id="owner-2", db=db, now=NOW)
        create_contact(other, ContactDraft(first_name="John", email="john@example.com"))
        assert _live_count(db) == 1
        assert _live_count(db, "owner-2") == 1
    finally:
        db.close()


def test_create_reports_near_matches_without_blocking() -> None:
    reset_db()
    db = SessionLocal()
    try:
        ctx = RequestContext(owner_id="owner-1", db=db, now=NOW)
        first = create_contact(
            ctx, ContactDraft(first_name="Jonathan", last_name="Smith", email="jonathan.smith@acme.io")
        )
        assert first.duplicate_matches == []

        second = create_contact(
            ctx, ContactDraft(first_name="Jonathan", last_name="Smyth", email="jonathan.smyth@acme.io")
        )

        assert [match.contact_id for match in second.duplicate_matches] == [first.contact.contact_id]
        assert second.duplicate_matches[0].category == DuplicateCategory.FUZZY
        assert _live_count(db) == 2
    finally:
        db.close()


def test_racing_creates_produce_exactly_one_contact() -> None:
    reset_db()
    first = SessionLocal()
    second = SessionLocal()
    try:
        ctx_a = RequestContext(owner_id="owner-1", db=first, now=NOW)
        ctx_b = RequestContext(owner_id="owner-1", db=second, now=NOW)

        # Both callers see no duplicate before either one writes.
        assert check_duplicate(ctx_a, email="race@example.com").is_duplicate is False
        assert check_duplicate(ctx_b, email="race@example.com").is_duplicate is False
        first.rollback()
        second.rollback()

        create_contact(ctx_a, ContactDraft(first_name="Racer", email="race@example.com"))
        with pytest.raises(ConflictError):
            create_contact(ctx_b, ContactDraft(first_name="Racer", email="Race@Example.com"))
        second.rollback()

        assert _live_count(second) == 1
    finally:
        first.close()
        second.close()


def test_contact_can_be_recreated_after_soft_delete() -> None:
    reset_db()
    db = SessionLocal()
    try:
        ctx = RequestContext(owner_id="owner-1", db=db, now=NOW)
        original = create_contact(ctx, ContactDraft(first_name="Grace", email="grace@example.com"))

        soft_delete_contact(ctx, original.contact.contact_id)
        with pytest.raises(NotFoundError):
            get_contact(ctx, original.contact.contact_id)
        with pytest.raises(NotFoundError):
            soft_delete_contact(ctx, original.contact.contact_id)

        again = create_contact(ctx, ContactDraft(first_name="Grace", email="grace@example.com"))
        assert again.contact.contact_id != original.contact.contact_id
        assert _live_count(db) == 1
    finally:
        db.close()


def test_contacts_are_invisible_to_other_owners() -> None:
    reset_db()
    db = SessionLocal()
    try:
        ctx = RequestContext(owner_id="owner-1", db=db, now=NOW)
        view = create_contact(ctx, ContactDraft(first_name="Private", email="p@example.com"))
        intruder = RequestContext(owner_id="owner-2", db=db, now=NOW)

        with pytest.raises(NotFoundError):
            get_contact(intruder, view.contact.contact_id)
        with pytest.raises(NotFoundError):
            set_contact_frequency(intruder, view.contact.contact_id, 10)
    finally:
        db.close()


def test_cadence_updates_single_and_by_tag() -> None:
    reset_db()
    db = SessionLocal()
    try:
        ctx = RequestContext(owner_id="owner-1", db=db, now=NOW)
        vip = create_contact(ctx, ContactDraft(first_name="Vip", email="vip@example.com", tags=[" VIP "]))
        family = create_contact(ctx, ContactDraft(first_name="Fam", email="fam@example.com", tags=["family"]))
        both = create_contact(ctx, ContactDraft(first_name="Both", email="both@example.com", tags=["vip", "family"]))

        updated = bulk_set_frequency_by_tags(ctx, ["vip"], 90)

        assert updated == 2
        assert db.get(Contact, vip.contact.contact_id).contact_frequency_days == 90
        assert db.get(Contact, both.contact.contact_id).contact_frequency_days == 90
        assert db.get(Contact, family.contact.contact_id).contact_frequency_days == 30

        view = set_contact_frequency(ctx, family.contact.contact_id, 7)
        assert view.followup.due_date == NOW + timedelta(days=7)

        with pytest.raises(ValidationError):
            bulk_set_frequency_by_tags(ctx, [], 10)
        with pytest.raises(ValidationError):
            set_contact_frequency(ctx, family.contact.contact_id, 0)
    finally:
        db.close()


def test_import_reports_an_outcome_per_row() -> None:
    reset_db()
    db = SessionLocal()
    try:
        ctx = RequestContext(owner_id="owner-1", db=db, now=NOW)
        existing = create_contact(ctx, ContactDraft(first_name="Grace", last_name="Hopper", email="grace@navy.mil"))

        summary = import_contacts(
            ctx,
            [
                ContactDraft(first_name="Ada", email="ada@example.com"),
                ContactDraft(first_name="Ada", last_name="Lovelace", email="ADA@example.com", company="Analytical"),
                ContactDraft(first_name=""),
                ContactDraft(first_name="Grace", last_name="Hopper", email="GRACE@navy.mil"),
                ContactDraft(first_name="Alan", last_name="Turing"),
            ],
        )

        assert [row.status for row in summary.rows] == ["duplicate", "created", "invalid", "duplicate", "created"]
        assert summary.rows[0].message == "Same email as row 1"
        assert summary.rows[3].contact_id == existing.contact.contact_id
        assert summary.rows[3].matches
        assert summary.count("created") == 2
        assert _live_count(db) == 3
        ada = db.get(Contact, summary.rows[1].contact_id)
        assert ada.company == "Analytical"
    finally:
        db.close()


def test_import_limits() -> None:
    reset_db()
    db = SessionLocal()
    try:
        ctx = RequestContext(owner_id="owner-1", db=db, now=NOW)
        with pytest.raises(ValidationError):
            import_contacts(ctx, [])
        with pytest.raises(ValidationError):
            import_contacts(ctx, [ContactDraft(first_name=f"C{i}") for i in range(1001)])
    finally:
        db.close()


def test_dedupe_prefers_most_complete_row() -> None:
    rows = [
        ContactDraft(first_name="Sam", email="sam@example.com", phone="+1 555 0100"),
        ContactDraft(first_name="Sam", email="Sam@Example.com"),
        ContactDraft(first_name="Pat"),
    ]

    kept, replaced_by = dedupe_import_rows(rows)

    assert [idx for idx, _ in kept] == [0, 2]
    assert replaced_by == {1: 0}
