"""
Processing Routes — Retraining, processing triggers and the job list.
"""
from fastapi import APIRouter, Depends, File, Form, HTTPException, Request, UploadFile
from fastapi.concurrency import run_in_threadpool
from pydantic import BaseModel, Field
from typing import Any, Dict, List
import logging

from docutrain_admin.core.limiter import limiter, RETRAIN_LIMIT, STATUS_LIMIT
from docutrain_admin.core.session import Session, get_session
from docutrain_admin.services.backend_client import backend_client
from docutrain_admin.services.retrainer import DocumentRetrainer, force_retry, start_processing

logger = logging.getLogger(__name__)
router = APIRouter()


class RetrainTextRequest(BaseModel):
    document_id: str
    content: str
    retrain_mode: str = "replace"


class RetrainResponse(BaseModel):
    user_document_id: str
    message: str


class ProcessResponse(BaseModel):
    user_document_id: str
    message: str
    backend: Dict[str, Any] = Field(default_factory=dict)


class DocumentsResponse(BaseModel):
    documents: List[Dict[str, Any]]
    has_active_jobs: bool


@router.post("/retrain/text", response_model=RetrainResponse)
@limiter.limit(RETRAIN_LIMIT)
async def retrain_text(request: Request, body: RetrainTextRequest, session: Session = Depends(get_session)):
    """
    Replace (or extend) a document's content with pasted text.
    Validation runs before anything is sent to the backend.
    """
    retrainer = DocumentRetrainer(backend_client, session, body.document_id)
    user_document_id = await retrainer.retrain_text(body.content, body.retrain_mode)
    return RetrainResponse(user_document_id=user_document_id, message="Retraining started. Processing...")


@router.post("/retrain/file", response_model=RetrainResponse)
@limiter.limit(RETRAIN_LIMIT)
async def retrain_file(
    request: Request,
    document_id: str = Form(...),
    retrain_mode: str = Form("replace"),
    file: UploadFile = File(...),
    session: Session = Depends(get_session),
):
    retrainer = DocumentRetrainer(backend_client, session, document_id)
    user_document_id = await retrainer.retrain_file(file.filename or "", file.file, retrain_mode)
    return RetrainResponse(user_document_id=user_document_id, message="PDF uploaded. Processing started.")


@router.post("/documents/{user_document_id}/process", response_model=ProcessResponse)
@limiter.limit(RETRAIN_LIMIT)
async def process_document(request: Request, user_document_id: str, session: Session = Depends(get_session)):
    result = await start_processing(backend_client, session, user_document_id)
    return ProcessResponse(
        user_document_id=user_document_id,
        message=result.get("message") or "Document processing started",
        backend=result,
    )


@router.post("/documents/{user_document_id}/force-retry", response_model=ProcessResponse)
@limiter.limit(RETRAIN_LIMIT)
async def force_retry_document(request: Request, user_document_id: str, session: Session = Depends(get_session)):
    """Manual override for a job that stopped reporting progress."""
    documents = await run_in_threadpool(backend_client.list_user_documents, session)
    job = next((doc for doc in documents if doc.id == user_document_id), None)
    if job is None:
        raise HTTPException(status_code=404, detail="Document not found or access denied")

    result = await force_retry(backend_client, session, job)
    return ProcessResponse(
        user_document_id=user_document_id,
        message=result.get("message") or "Processing restarted",
        backend=result,
    )


@router.get("/documents", response_model=DocumentsResponse)
@limiter.limit(STATUS_LIMIT)
async def list_documents(request: Request, session: Session = Depends(get_session)):
    documents = await run_in_threadpool(backend_client.list_user_documents, session)
    return DocumentsResponse(
        documents=[doc.to_dict() for doc in documents],
        has_active_jobs=any(doc.is_active for doc in documents),
    )
