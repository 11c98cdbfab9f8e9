import logging
from typing import Any, Dict, Optional

from docutrain_admin.core.errors import ValidationError
from docutrain_admin.core.session import Session
from docutrain_admin.services.backend_client import DocuTrainClient

logger = logging.getLogger(__name__)

MIN_QUESTIONS = 1
MAX_QUESTIONS = 20


class QuizService:
    """Triggers quiz (question bank) generation for a document."""

    def __init__(self, client: DocuTrainClient):
        self.client = client

    def generate(self, session: Session, document_slug: str, num_questions: Optional[int] = None) -> Dict[str, Any]:
        if not document_slug:
            raise ValidationError("documentSlug is required")
        if num_questions is not None and not MIN_QUESTIONS <= num_questions <= MAX_QUESTIONS:
            raise ValidationError(f"numQuestions must be between {MIN_QUESTIONS} and {MAX_QUESTIONS}")

        logger.info(f"Generating quiz for {document_slug} (questions={num_questions or 'auto'})")
        # A 429 means the regeneration window is still closed; the backend message says until when.
        return self.client.generate_quiz(session, document_slug, num_questions)

    def status(self, session: Session, document_slug: str) -> Dict[str, Any]:
        return self.client.get_quiz_status(session, document_slug)

    def statistics(self, session: Session, document_slug: str) -> Dict[str, Any]:
        return self.client.get_quiz_statistics(session, document_slug)
