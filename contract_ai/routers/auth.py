"""
Credentials registration and sign-in.

Route summary
-------------
POST /api/auth/register — create user + personal organization, return session
POST /api/auth/signin   — check credentials, return session
GET  /api/auth/me       — current user
"""
import logging

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from contract_ai.database import get_db
from contract_ai.dependencies.auth import get_current_user
from contract_ai.models.database_models import User
from contract_ai.models.schemas import (
    RegisterRequest,
    SessionResponse,
    SignInRequest,
    UserResponse,
)
from contract_ai.services.audit import record_audit_event
from contract_ai.services.auth import (
    authenticate_user,
    create_session_token,
    get_user_by_email,
    hash_password,
    normalize_email,
)
from contract_ai.services.organizations import create_personal_organization

logger = logging.getLogger(__name__)

router = APIRouter()

PROVIDER_CREDENTIALS = "credentials"


async def _issue_session(db: AsyncSession, user: User, is_new_user: bool) -> SessionResponse:
    """Sign a session token and record the ``user_signin`` audit event."""
    token = create_session_token(user)
    await record_audit_event(
        db,
        action="user_signin",
        entity_type="user",
        entity_id=user.id,
        user_id=user.id,
        metadata={"provider": PROVIDER_CREDENTIALS, "isNewUser": is_new_user},
    )
    return SessionResponse(
        access_token=token.access_token,
        expires_at=token.expires_at,
        user=UserResponse.model_validate(user),
    )


@router.post("/register", response_model=SessionResponse, status_code=status.HTTP_201_CREATED)
async def register(
    body: RegisterRequest,
    db: AsyncSession = Depends(get_db),
) -> SessionResponse:
    """Create an account with a personal organization and sign it in."""
    email = normalize_email(body.email)
    if "@" not in email:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="Invalid email address.",
        )

    if await get_user_by_email(db, email) is not None:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="An account with this email already exists.",
        )

    user = User(email=email, name=body.name, hashed_password=hash_password(body.password))
    db.add(user)
    await db.flush()

    await create_personal_organization(db, user)
    logger.info("Registered user id=%s email=%s", user.id, user.email)

    return await _issue_session(db, user, is_new_user=True)


@router.post("/signin", response_model=SessionResponse)
async def sign_in(
    body: SignInRequest,
    db: AsyncSession = Depends(get_db),
) -> SessionResponse:
    """Exchange email + password for a session token."""
    user = await authenticate_user(db, body.email, body.password)
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid email or password.",
        )

    return await _issue_session(db, user, is_new_user=False)


@router.get("/me", response_model=UserResponse)
async def me(user: User = Depends(get_current_user)) -> UserResponse:
    return UserResponse.model_validate(user)
