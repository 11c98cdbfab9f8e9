from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from docutrain_admin.core.config import settings
from docutrain_admin.core.errors import DocuTrainError, docutrain_error_handler
from docutrain_admin.core.limiter import limiter

from contextlib import asynccontextmanager
import logging

from docutrain_admin.api import endpoints
from docutrain_admin.services.backend_client import backend_client

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(f"{settings.PROJECT_NAME} starting; backend at {settings.DOCUTRAIN_API_URL}")
    if not settings.REDIS_URL:
        logger.warning("REDIS_URL not set: realtime updates disabled, status falls back to polling only.")
    yield
    # Shutdown: release pooled backend connections
    backend_client.close()


app = FastAPI(title=settings.PROJECT_NAME, lifespan=lifespan)

# Rate Limiting
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

# Errors raised on purpose (validation, auth, backend failures)
app.add_exception_handler(DocuTrainError, docutrain_error_handler)

_cors_origins = [o.strip() for o in settings.CORS_ORIGINS.split(",") if o.strip()]
if any("localhost" in o for o in _cors_origins) and not settings.DOCUTRAIN_API_URL.startswith("http://localhost"):
    logger.warning(
        "⚠ CORS allows localhost origins while the backend is not local (production?). "
        "Set CORS_ORIGINS env var to restrict origins in production."
    )

app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(endpoints.router, prefix="/api", tags=["api"])


@app.get("/health")
def health_check():
    return {"status": "healthy", "project": settings.PROJECT_NAME}


@app.get("/")
def root():
    return {"message": f"Welcome to {settings.PROJECT_NAME}"}
