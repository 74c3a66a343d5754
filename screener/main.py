import logging

import sentry_sdk
from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware

from screener.api.v1.candidates import router as candidates_router
from screener.api.v1.health import router as health_router
from screener.api.v1.notifications import router as notifications_router
from screener.api.v1.screening import router as screening_router
from screener.core.config import settings
from screener.core.cors import cors_allow_origin_regex, cors_allowed_origins
from screener.core.lifespan import lifespan
from screener.core.rate_limit import limiter

load_dotenv()
logging.basicConfig(level=settings.log_level, format="%(message)s")
if settings.sentry_dsn:
    sentry_sdk.init(dsn=settings.sentry_dsn)

app = FastAPI(title="Resume Screening API", version="0.1.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_allowed_origins(),
    allow_origin_regex=cors_allow_origin_regex(),
    allow_credentials=settings.cors_allow_credentials,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["Retry-After"],
)
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
app.add_middleware(SlowAPIMiddleware)

app.include_router(health_router, prefix="/v1", tags=["Health"])
app.include_router(screening_router, prefix="/v1", tags=["Screening"])
app.include_router(candidates_router, prefix="/v1", tags=["Candidates"])
app.include_router(notifications_router, prefix="/v1", tags=["Notifications"])
