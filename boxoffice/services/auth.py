import secrets
from typing import Optional
from fastapi import Depends, Header, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from boxoffice.config import get_settings

settings = get_settings()
security = HTTPBearer(auto_error=False)


def get_session_id(x_session_id: Optional[str] = Header(None, alias="X-Session-Id")) -> str:
    """Opaque buyer identity; guests and signed-in users alike."""
    if not x_session_id or not x_session_id.strip():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Session ID is required"
        )
    if len(x_session_id) > 255:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Session ID is too long"
        )
    return x_session_id.strip()


def _check_bearer(credentials: Optional[HTTPAuthorizationCredentials], expected: str) -> bool:
    if not credentials or not expected:
        return False
    return secrets.compare_digest(credentials.credentials, expected)


def require_admin(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security)
) -> None:
    if not _check_bearer(credentials, settings.admin_token):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required"
        )


def require_cron(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security)
) -> None:
    # No secret configured means the trigger is open (local development)
    if not settings.cron_secret:
        return
    if not _check_bearer(credentials, settings.cron_secret):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized"
        )
