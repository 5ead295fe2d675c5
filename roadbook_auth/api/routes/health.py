"""Health check endpoints."""

from fastapi import APIRouter, Request

router = APIRouter()


@router.get("/health")
async def health_check(request: Request):
    """Check if the API is running."""
    return {"status": "healthy", "app": request.app.title}
