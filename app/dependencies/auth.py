"""
Authentication dependencies for FastAPI
"""
from fastapi import Depends, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session
from typing import Optional

from app.db.session import get_db
from app.models.consultant import Consultant
from app.utils.auth import decode_access_token
from app.utils.errors import AuthenticationError, AuthorizationError

security = HTTPBearer(auto_error=False)  # Don't auto-raise error, check cookie first


def get_current_consultant(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: Session = Depends(get_db)
) -> Consultant:
    """
    Get current authenticated consultant from JWT token
    Supports both Authorization header and httpOnly cookie
    """
    if credentials:
        token = credentials.credentials
    else:
        token = request.cookies.get("access_token")

    if not token:
        raise AuthenticationError("Could not validate credentials")

    payload = decode_access_token(token)
    if payload is None or not payload.get("sub"):
        raise AuthenticationError("Could not validate credentials")

    consultant = db.query(Consultant).filter(Consultant.id == payload["sub"]).first()
    if consultant is None:
        raise AuthenticationError("Could not validate credentials")

    if not consultant.is_active:
        raise AuthorizationError("Inactive consultant")

    request.state.user_id = consultant.id
    return consultant
