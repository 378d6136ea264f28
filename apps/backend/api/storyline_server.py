"""
FastAPI application serving the storyline section engine.

Run with: uvicorn api.storyline_server:app --reload (from apps/backend)
"""
import logging
import os
from contextlib import asynccontextmanager
from datetime import datetime

import sentry_sdk
from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.logging import LoggingIntegration

from agents.generation.config import get_config
from api.middleware import RequestLoggingMiddleware
from api.requests.api_storyline import router as storyline_router
from config.logging_config import apply_logging_config
from setup_logging_optimized import get_logger

apply_logging_config()
logger = get_logger(__name__)

load_dotenv()

ENVIRONMENT = (
    os.getenv("ENVIRONMENT")
    or os.getenv("ENV")
    or "development"
).lower()

# No-op unless SENTRY_DSN is set
sentry_sdk.init(
    dsn=os.getenv("SENTRY_DSN"),
    integrations=[
        FastApiIntegration(transaction_style='endpoint'),
        LoggingIntegration(level=logging.INFO, event_level=logging.ERROR),
    ],
    traces_sample_rate=0.1,
    environment=ENVIRONMENT,
    release=os.getenv("RENDER_GIT_COMMIT", "unknown"),
    send_default_pii=False,
)

allowed_origins = {
    origin.strip()
    for origin in os.getenv("CORS_ORIGINS", "").split(",")
    if origin.strip()
}

if ENVIRONMENT != "production":
    allowed_origins.update(
        {
            "http://localhost:3000",
            "http://localhost:3001",
            "http://127.0.0.1:3000",
            "http://127.0.0.1:3001",
        }
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(f"Storyline API starting ({ENVIRONMENT}): {get_config().to_dict()}")
    yield


app = FastAPI(title="Storyline Section Engine API", lifespan=lifespan)

app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=list(allowed_origins),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-Request-ID", "X-Process-Time"],
    max_age=3600,
)

app.include_router(storyline_router)


@app.get("/api/health")
async def health_check():
    return {"status": "healthy", "timestamp": datetime.now().isoformat()}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=int(os.getenv("PORT", "8000")))
