"""
Attachment Routes — Download links shown next to a document.
"""
from fastapi import APIRouter, Depends, File, Form, Request, UploadFile
from fastapi.concurrency import run_in_threadpool
from pydantic import BaseModel
from typing import Optional
import logging

from docutrain_admin.core.limiter import limiter, UPLOAD_LIMIT, STATUS_LIMIT
from docutrain_admin.core.session import Session, get_session
from docutrain_admin.services.attachments import AttachmentManager
from docutrain_admin.services.backend_client import backend_client
from docutrain_admin.services.storage import get_storage_provider

logger = logging.getLogger(__name__)
router = APIRouter()

attachment_manager = AttachmentManager(backend_client, get_storage_provider())


class LinkRequest(BaseModel):
    title: str
    url: str


class RenameRequest(BaseModel):
    title: str


@router.get("/documents/{document_id}/attachments")
@limiter.limit(STATUS_LIMIT)
async def list_attachments(request: Request, document_id: str, session: Session = Depends(get_session)):
    attachments = await run_in_threadpool(attachment_manager.list_attachments, session, document_id)
    return {"attachments": attachments}


@router.post("/documents/{document_id}/attachments")
@limiter.limit(UPLOAD_LIMIT)
async def upload_attachment(
    request: Request,
    document_id: str,
    file: UploadFile = File(...),
    title: Optional[str] = Form(None),
    copyright_acknowledged_at: Optional[str] = Form(None),
    session: Session = Depends(get_session),
):
    """
    Store a file in the downloads bucket and register it as a link.
    Title defaults to the filename without its extension.
    """
    attachment = await run_in_threadpool(
        attachment_manager.upload_attachment,
        session,
        document_id,
        file.filename or "",
        file.file,
        title,
        file.content_type,
        copyright_acknowledged_at,
    )
    return {"attachment": attachment}


@router.post("/documents/{document_id}/links")
@limiter.limit(UPLOAD_LIMIT)
async def add_link(request: Request, document_id: str, body: LinkRequest, session: Session = Depends(get_session)):
    attachment = await run_in_threadpool(attachment_manager.add_link, session, document_id, body.title, body.url)
    return {"attachment": attachment}


@router.put("/attachments/{attachment_id}")
@limiter.limit(UPLOAD_LIMIT)
async def rename_attachment(
    request: Request, attachment_id: str, body: RenameRequest, session: Session = Depends(get_session)
):
    attachment = await run_in_threadpool(attachment_manager.rename_attachment, session, attachment_id, body.title)
    return {"attachment": attachment}


@router.delete("/attachments/{attachment_id}")
@limiter.limit(UPLOAD_LIMIT)
async def delete_attachment(request: Request, attachment_id: str, session: Session = Depends(get_session)):
    await run_in_threadpool(attachment_manager.remove_attachment, session, attachment_id)
    logger.info(f"Deleted attachment {attachment_id}")
    return {"success": True}
