from fastapi import APIRouter

from screener.integrations.email import get_email_client
from screener.services.scoring_gateway import get_scoring_gateway

router = APIRouter()


@router.get("/health", summary="Health Check", description="Report service status and which upstreams are configured.")
async def health_check():
    gateway = get_scoring_gateway()
    return {
        "status": "healthy",
        "scoring_webhook": gateway.primary_configured,
        "ai_fallback": gateway.fallback_configured,
        "email": get_email_client().configured,
    }
