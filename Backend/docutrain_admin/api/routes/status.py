"""
Status Routes — Processing snapshots and WebSocket live progress.
"""
from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect, Request
from fastapi.concurrency import run_in_threadpool
from pydantic import BaseModel
from typing import Dict, Any, Optional
import logging
import asyncio

from docutrain_admin.core.config import settings
from docutrain_admin.core.limiter import limiter, STATUS_LIMIT
from docutrain_admin.core.session import Session, get_session, session_from_token
from docutrain_admin.services.backend_client import backend_client
from docutrain_admin.services.progress import ProgressView, parse_processing_progress
from docutrain_admin.services.status_poller import RetrainingStatusPoller

logger = logging.getLogger(__name__)
router = APIRouter()

# Close code for a socket opened without credentials.
WS_AUTH_REQUIRED = 4401


class StatusResponse(BaseModel):
    user_document_id: str
    document: Dict[str, Any]
    progress: Dict[str, Any]
    logs_count: int
    error: Optional[str] = None


@router.get("/status/{user_document_id}", response_model=StatusResponse)
@limiter.limit(STATUS_LIMIT)
async def get_status(request: Request, user_document_id: str, session: Session = Depends(get_session)):
    """
    One-shot progress snapshot for a processing job.
    """
    status = await run_in_threadpool(backend_client.get_processing_status, session, user_document_id)
    document = status.document
    view = parse_processing_progress(status.logs, document.status.value, document.error_message)
    return StatusResponse(
        user_document_id=user_document_id,
        document=document.to_dict(),
        progress=view.to_dict(),
        logs_count=len(status.logs),
        error=document.error_message,
    )


def _websocket_token(websocket: WebSocket) -> Optional[str]:
    # Browsers can't set headers on a WebSocket handshake, so accept ?token= too.
    token = websocket.query_params.get("token")
    if token:
        return token
    auth_header = websocket.headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        return auth_header.removeprefix("Bearer ").strip() or None
    return None


@router.websocket("/ws/status/{user_document_id}")
async def websocket_status(websocket: WebSocket, user_document_id: str):
    """
    Real-time progress via the status poller (timer + Redis PubSub wake-ups).
    Sends one message per refresh and closes once the job is ready or failed.
    """
    token = _websocket_token(websocket)
    if not token:
        await websocket.close(code=WS_AUTH_REQUIRED)
        return

    await websocket.accept()
    logger.info(f"WebSocket connected for document {user_document_id}")

    updates: asyncio.Queue = asyncio.Queue()
    poller = RetrainingStatusPoller(
        backend_client,
        session_from_token(token),
        user_document_id,
        on_update=updates.put_nowait,
    )
    heartbeat = max(settings.RETRAIN_POLL_INTERVAL_SECONDS * 10, 15)

    try:
        async with poller:
            while True:
                try:
                    view: ProgressView = await asyncio.wait_for(updates.get(), timeout=heartbeat)
                except asyncio.TimeoutError:
                    # No successful refresh lately; a send also detects a dead client.
                    await websocket.send_json({"type": "heartbeat", "user_document_id": user_document_id})
                    continue

                await websocket.send_json({"user_document_id": user_document_id, **view.to_dict()})
                if view.status in ("ready", "error"):
                    break

        await websocket.close()
    except WebSocketDisconnect:
        logger.info(f"WebSocket disconnected for document {user_document_id}")
