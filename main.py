from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
from dotenv import load_dotenv
import logging

from app.core.config import settings
from app.api.v1.api import api_router
from app.core.database import Base, SessionLocal, engine
from app.core.exceptions import BaseAppException, ValidationError
from app.services.capacity_gate import CapacityGate
from app import models  # noqa: F401  registers tables on Base.metadata

# Load environment variables
load_dotenv()

logger = logging.getLogger(__name__)

# Configure audit logger (JSON lines)
audit_logger = logging.getLogger("audit")
if not audit_logger.handlers:
    handler = logging.StreamHandler()
    # Keep raw JSON line without extra prefixes
    handler.setFormatter(logging.Formatter("%(message)s"))
    audit_logger.addHandler(handler)
audit_logger.setLevel(logging.INFO)
# Do not propagate to root to avoid duplication
audit_logger.propagate = False

api_description = """
## Beta Admission API

Capacity-gated admission for a closed beta.

- **Waitlist**: submit an application, check its status and queue position
- **Invites**: members issue invite codes from their quota; redeeming one admits immediately while capacity remains
- **Referrals**: attribute sign-ups to members; every third referral earns a bonus invite
- **Admin**: approve, reject, remove members, change the cap and run capacity waves (`X-Admin-Token`)
"""

app = FastAPI(
    title="Beta Admission API",
    description=api_description,
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc"
)

# GZip compression for large JSON responses
app.add_middleware(GZipMiddleware, minimum_size=500)

# Set up CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(BaseAppException)
async def app_exception_handler(request: Request, exc: BaseAppException):
    if not isinstance(exc, ValidationError) and exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.error_code} {exc.details}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


# Include API router
app.include_router(api_router, prefix="/api/v1")


@app.on_event("startup")
def prepare_capacity_on_startup():
    """Create missing tables, seed the capacity row and reconcile the admitted counter."""
    Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    try:
        gate = CapacityGate(db)
        config = gate.ensure_config()
        admitted = gate.sync_admitted_count()
        logger.info(f"Capacity ready: cap={config.cap} admitted={admitted} public={config.public_admission_enabled}")
    finally:
        db.close()


@app.get("/")
async def root():
    return {"message": "Beta Admission API is running"}


@app.get("/health")
async def health_check():
    return {"status": "healthy"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
