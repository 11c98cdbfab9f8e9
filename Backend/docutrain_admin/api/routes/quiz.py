"""
Quiz Routes — Question bank generation for a document.
"""
from fastapi import APIRouter, Depends, Request
from fastapi.concurrency import run_in_threadpool
from pydantic import BaseModel
from typing import Optional

from docutrain_admin.core.limiter import limiter, QUIZ_LIMIT, STATUS_LIMIT
from docutrain_admin.core.session import Session, get_session
from docutrain_admin.services.backend_client import backend_client
from docutrain_admin.services.quiz import QuizService

router = APIRouter()

quiz_service = QuizService(backend_client)


class GenerateQuizRequest(BaseModel):
    num_questions: Optional[int] = None


@router.post("/quiz/{document_slug}/generate")
@limiter.limit(QUIZ_LIMIT)
async def generate_quiz(
    request: Request,
    document_slug: str,
    body: Optional[GenerateQuizRequest] = None,
    session: Session = Depends(get_session),
):
    num_questions = body.num_questions if body else None
    return await run_in_threadpool(quiz_service.generate, session, document_slug, num_questions)


@router.get("/quiz/{document_slug}/status")
@limiter.limit(STATUS_LIMIT)
async def quiz_status(request: Request, document_slug: str, session: Session = Depends(get_session)):
    return await run_in_threadpool(quiz_service.status, session, document_slug)


@router.get("/quiz/{document_slug}/statistics")
@limiter.limit(STATUS_LIMIT)
async def quiz_statistics(request: Request, document_slug: str, session: Session = Depends(get_session)):
    return await run_in_threadpool(quiz_service.statistics, session, document_slug)
