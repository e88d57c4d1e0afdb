"""Authentication routes.

Branch users are synced from the head office directory; the password hash
checked here is the one the reconciliation job copied to this branch.
"""

import logging

from fastapi import APIRouter, HTTPException, Request, status
from sqlalchemy import select

from branchpos.core.config import settings
from branchpos.core.rate_limit import limiter
from branchpos.core.security import create_access_token, verify_password
from branchpos.db.session import DbSession
from branchpos.models.user import BranchUser
from branchpos.schemas.auth import LoginRequest, Token

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/login", response_model=Token)
@limiter.limit(settings.login_rate_limit)
def login(request: Request, login_request: LoginRequest, db: DbSession):
    """Authenticate a branch user and return a JWT token."""
    client_ip = request.client.host if request.client else "unknown"
    user = db.scalar(select(BranchUser).where(BranchUser.username == login_request.username))

    if not user or not verify_password(login_request.password, user.password_hash):
        logger.warning(f"Failed login attempt for {login_request.username} from IP: {client_ip}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid username or password",
        )
    if not user.is_active:
        logger.warning(f"Login attempt for inactive user {user.username} (ID: {user.id}) from IP: {client_ip}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User account is inactive",
        )

    logger.info(f"Successful login: {user.username} (ID: {user.id}, role: {user.role}) from IP: {client_ip}")
    token = create_access_token(data={"sub": user.id, "email": user.email or "", "role": user.role})
    return Token(access_token=token)
