from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from dotenv import load_dotenv
import logging

from budget_tracker.core.config import settings
from budget_tracker.api.v1.api import api_router
from budget_tracker.core.database import SessionLocal, init_db
from budget_tracker.services.budget_alert_engine import build_engine

# Load environment variables
load_dotenv()

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
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
## Budget Tracker - Budget Progress & Alerts

- **Transactions / Budgets**: CRUD endpoints; every change triggers a debounced recompute
- **Overview**: spent, remaining and percentage per active budget, exceeded budgets first
- **Alerts**: raised when a budget moves into *near limit* or *exceeded*, dismissals are remembered
"""

app = FastAPI(
    title="Budget Tracker API",
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

# Include API router
app.include_router(api_router, prefix="/api/v1")

@app.on_event("startup")
async def start_budget_engine():
    init_db()
    engine = build_engine(SessionLocal)
    engine.start()
    app.state.alert_engine = engine
    try:
        await engine.refresh("startup")
    except Exception as e:
        # Do not block startup if the first recompute fails; just log
        logger.error(f"⚠️ Initial budget recompute failed: {e}")

@app.on_event("shutdown")
async def stop_budget_engine():
    engine = getattr(app.state, "alert_engine", None)
    if engine is not None:
        await engine.shutdown()

@app.get("/")
async def root():
    return {"message": "Budget Tracker API is running"}

@app.get("/health")
async def health_check():
    return {"status": "healthy"}

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
