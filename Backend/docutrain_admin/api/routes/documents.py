"""
Document Routes — Metadata edits for documents and owner branding.
"""
from fastapi import APIRouter, Body, Depends, Request
from fastapi.concurrency import run_in_threadpool
from typing import Any, Dict
import logging

from docutrain_admin.core.errors import ValidationError
from docutrain_admin.core.limiter import limiter, RETRAIN_LIMIT
from docutrain_admin.core.session import Session, get_session
from docutrain_admin.services.backend_client import backend_client
from docutrain_admin.services.branding import prepare_owner_update

logger = logging.getLogger(__name__)
router = APIRouter()


@router.put("/documents/{identifier}")
@limiter.limit(RETRAIN_LIMIT)
async def update_document(
    request: Request,
    identifier: str,
    fields: Dict[str, Any] = Body(...),
    session: Session = Depends(get_session),
):
    """
    Update document metadata (title, slug, visibility, ...). ``identifier``
    may be the document id or its slug; the backend resolves either.
    """
    if not fields:
        raise ValidationError("No fields to update")
    logger.info(f"Updating document {identifier}: {sorted(fields)}")
    return await run_in_threadpool(backend_client.update_document, session, identifier, fields)


@router.put("/owners/{owner_id}")
@limiter.limit(RETRAIN_LIMIT)
async def update_owner(
    request: Request,
    owner_id: str,
    fields: Dict[str, Any] = Body(...),
    session: Session = Depends(get_session),
):
    if not fields:
        raise ValidationError("No fields to update")
    updates = prepare_owner_update(fields)
    return await run_in_threadpool(backend_client.update_owner, session, owner_id, updates)
