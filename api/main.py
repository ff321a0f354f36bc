# api/main.py
from dotenv import load_dotenv
import os

env = os.getenv("APP_ENV", "local")
if env == "local":
    load_dotenv(".env.local")
else:
    load_dotenv(".env")

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
import logging
from database.db import init_db
from fastapi.middleware.cors import CORSMiddleware

from api.routers import (
    health,
    auth,
    session,
    users,
    papers,
    ai_checks,
)
from clients.identity_client import IdentityProviderClient
from clients.storage_client import LocalObjectStorage
from services.exceptions import PortalError
from services.navigation import NavigationIntentStore
from services.session_orchestrator import SessionOrchestrator
from services.user_service import load_bootstrap_admin_emails

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)
logger.info(f"Loaded environment: {env}")


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Starting paper portal backend, initializing DB")
    try:
        init_db()
    except Exception as e:
        logger.error(f"Failed to initialize database: {e}", exc_info=True)
        raise
    yield
    logger.info("Shutting down paper portal backend")


app = FastAPI(
    title="Paper Portal API",
    version="1.0.0",
    description="Backend API for the research paper submission and review portal.",
    lifespan=lifespan
)

navigation_store = NavigationIntentStore()
app.state.identity_client = IdentityProviderClient.from_env()
app.state.storage = LocalObjectStorage.from_env()
app.state.navigation = navigation_store
app.state.orchestrator = SessionOrchestrator(navigation_store, load_bootstrap_admin_emails())


@app.exception_handler(PortalError)
async def portal_error_handler(request: Request, exc: PortalError):
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


# CORS Configuration
origins = []
if env == "local":
    origins = ["http://localhost:3000", "http://localhost:9002"]
else:
    origins_str = os.getenv("ALLOWED_ORIGINS", "")
    origins = [origin.strip() for origin in origins_str.split(",") if origin.strip()]

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.include_router(health.router)
app.include_router(auth.router, prefix="/auth", tags=["Authentication"])
app.include_router(session.router, prefix="/session", tags=["Session"])
app.include_router(users.router, prefix="/users", tags=["Users"])
app.include_router(papers.router, prefix="/papers", tags=["Papers"])
app.include_router(ai_checks.router, prefix="/ai", tags=["AI Checks"])


@app.get("/")
async def root():
    return {"message": "Paper portal backend running"}
