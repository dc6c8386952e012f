"""
Google Link Service

Handles:
1. Google sign-in and account linking
2. Google access tokens for linked accounts (lazy refresh)
3. Application sessions (refresh and logout)
"""

from pathlib import Path
from dotenv import load_dotenv
import os

# Load .env file from backend/src directory (parent of apis/)
env_path = Path(__file__).parent.parent.parent / '.env'
load_dotenv(dotenv_path=env_path)

from botocore.exceptions import BotoCoreError, ClientError
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
import logging

from apis.shared.auth.session_tokens import get_session_token_service

# Set up logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


# Lifespan event handler (replaces on_event)
@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    logger.info("=== Google Link Service Starting ===")

    try:
        purged = await get_session_token_service().purge_expired()
        logger.info(f"Purged {purged} expired session refresh tokens")
    except (ValueError, BotoCoreError, ClientError) as e:
        logger.warning(f"Skipping expired session cleanup: {e}")

    yield  # Application is running

    # Shutdown
    logger.info("=== Google Link Service Shutting Down ===")


# Create FastAPI app with lifespan
app = FastAPI(
    title="Google Link Service - API",
    version="1.0.0",
    description="Google account linking and token lifecycle service",
    lifespan=lifespan
)

# Add CORS middleware for local development
# In production, the frontend is served from the same origin
if os.getenv('ENVIRONMENT', 'development') == 'development':
    logger.info("Adding CORS middleware for local development")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[
            os.getenv('FRONTEND_URL', "http://localhost:4200"),  # Frontend dev server
        ],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

# Import routers
from .health import router as health_router
from .auth.routes import router as auth_router
from .google.routes import router as google_router
# Include routers
app.include_router(health_router)
app.include_router(auth_router)
app.include_router(google_router)

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
        log_level="info"
    )
