"""
Webhook Routes — Row-change feed from the database.

The ``user_documents`` table posts every insert/update/delete here; the
change is republished on the owner's Redis channel so open status pollers
refresh right away.
"""
from fastapi import APIRouter, Header, HTTPException
from fastapi.concurrency import run_in_threadpool
from pydantic import BaseModel
from typing import Any, Dict, Optional
import hmac
import logging

from docutrain_admin.core.config import settings
from docutrain_admin.services.realtime import publish_document_change

logger = logging.getLogger(__name__)
router = APIRouter()


class DocumentChangeEvent(BaseModel):
    type: str
    table: str = "user_documents"
    record: Optional[Dict[str, Any]] = None
    old_record: Optional[Dict[str, Any]] = None

    def owner_id(self) -> Optional[str]:
        for row in (self.record, self.old_record):
            if row and row.get("user_id"):
                return str(row["user_id"])
        return None


@router.post("/webhooks/document-change")
async def document_change(event: DocumentChangeEvent, x_webhook_secret: Optional[str] = Header(None)):
    if not settings.WEBHOOK_SECRET:
        logger.warning("Document change webhook called but WEBHOOK_SECRET is not configured")
        raise HTTPException(status_code=403, detail="Webhook not configured")
    if not x_webhook_secret or not hmac.compare_digest(x_webhook_secret, settings.WEBHOOK_SECRET):
        raise HTTPException(status_code=403, detail="Invalid webhook secret")

    user_id = event.owner_id()
    if not user_id:
        raise HTTPException(status_code=400, detail="Change event has no user_id")

    payload = event.model_dump()
    published = await run_in_threadpool(publish_document_change, user_id, payload)
    if not published:
        logger.debug(f"{event.type} on {event.table} for {user_id} not published (Redis unavailable)")
    return {"published": published}
