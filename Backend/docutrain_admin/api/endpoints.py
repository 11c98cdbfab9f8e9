from fastapi import APIRouter

from docutrain_admin.api.routes import attachments, documents, processing, quiz, status, webhooks

router = APIRouter()

# ─── Route Modules ───────────────────────────────────────────────────────────

router.include_router(processing.router, tags=["processing"])
router.include_router(status.router, tags=["status"])
router.include_router(documents.router, tags=["documents"])
router.include_router(attachments.router, tags=["attachments"])
router.include_router(quiz.router, tags=["quiz"])
router.include_router(webhooks.router, tags=["webhooks"])
