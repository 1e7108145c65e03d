from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from .security import verify_token
from ..ingestion import PhotoEventsPipeline

security = HTTPBearer()


def get_current_identity(
    credentials: HTTPAuthorizationCredentials = Depends(security),
) -> str:
    """Get the authenticated identity (the user's email) from the bearer token."""
    payload = verify_token(credentials.credentials)

    if payload is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    identity = payload.get("sub") or payload.get("email")
    if not identity:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token missing subject",
            headers={"WWW-Authenticate": "Bearer"},
        )

    return identity


def get_pipeline(request: Request) -> PhotoEventsPipeline:
    """Get the ingestion pipeline built during application startup."""
    pipeline = getattr(request.app.state, "pipeline", None)
    if pipeline is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Ingestion is temporarily unavailable. Please try again later.",
        )
    return pipeline
