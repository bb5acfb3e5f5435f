from __future__ import annotations

import logging

from sqlalchemy import select

from app.core.context import RequestContext, utcnow
from app.db.pg.models import Contact
from app.db.pg.session import SessionLocal
from app.services.recommendations.engine import refresh_owner_recommendations

logger = logging.getLogger(__name__)


def refresh_owner_recommendations_job(owner_id: str) -> dict:
    db = SessionLocal()
    try:
        ctx = RequestContext(owner_id=owner_id, db=db, now=utcnow())
        contacts = refresh_owner_recommendations(ctx)
        db.commit()
        logger.info("owner_recommendations_refreshed", extra={"owner_id": owner_id, "contacts": contacts})
        return {"owner_id": owner_id, "contacts": contacts}
    finally:
        db.close()


def sweep_all_owners() -> dict:
    """Recomputes recommendations for every owner; reads already do this lazily, the sweep only warms state."""
    db = SessionLocal()
    try:
        owner_ids = db.scalars(
            select(Contact.owner_id).where(Contact.deleted_at.is_(None)).distinct().order_by(Contact.owner_id)
        ).all()
    finally:
        db.close()

    refreshed = 0
    failed = 0
    for owner_id in owner_ids:
        try:
            refresh_owner_recommendations_job(owner_id)
            refreshed += 1
        except Exception:
            failed += 1
            logger.exception("owner_sweep_failed", extra={"owner_id": owner_id})
    logger.info(
        "recommendation_sweep_complete",
        extra={"owners": len(owner_ids), "refreshed": refreshed, "failed": failed},
    )
    return {"owners": len(owner_ids), "refreshed": refreshed, "failed": failed}
