"""Shared API dependencies for authentication and common functionality."""

from typing import Annotated

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from sqlalchemy.orm import Session

from consensus_engine.core.settings import settings
from consensus_engine.db.session import get_db
from consensus_engine.services.vote_service import VoteService

# HTTP Bearer scheme for JWT authentication
bearer_scheme = HTTPBearer()
optional_bearer_scheme = HTTPBearer(auto_error=False)

# Type alias for database session dependency
SessionDep = Annotated[Session, Depends(get_db)]


def _subject_from_token(token: str) -> str:
    """Return the ``sub`` claim of a bearer token issued by the auth service.

    Raises:
        HTTPException: If the token is invalid or carries no subject
    """
    try:
        payload = jwt.decode(
            token,
            settings.secret_key,
            algorithms=[settings.jwt_algorithm],
        )
    except JWTError as err:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
        ) from err

    subject = payload.get("sub")
    if not subject:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
        )
    return str(subject)


def get_current_user_id(
    credentials: Annotated[HTTPAuthorizationCredentials, Depends(bearer_scheme)],
) -> str:
    """Get the authenticated viewer id from the JWT token."""
    return _subject_from_token(credentials.credentials)


def get_optional_user_id(
    credentials: Annotated[
        HTTPAuthorizationCredentials | None, Depends(optional_bearer_scheme)
    ],
) -> str | None:
    """Like :func:`get_current_user_id` but anonymous viewers get ``None``."""
    if credentials is None:
        return None
    return _subject_from_token(credentials.credentials)


def get_operator_user_id(
    current_user_id: Annotated[str, Depends(get_current_user_id)],
) -> str:
    """Require a principal listed in ``OPERATOR_USER_IDS``.

    Raises:
        HTTPException: 403 for any other authenticated user
    """
    if current_user_id not in settings.operator_user_ids:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Operator privileges required",
        )
    return current_user_id


def get_vote_service(db: SessionDep) -> VoteService:
    """Return a vote service bound to the request session."""
    return VoteService(db)


# Type aliases for common dependencies
CurrentUserIdDep = Annotated[str, Depends(get_current_user_id)]
OptionalUserIdDep = Annotated[str | None, Depends(get_optional_user_id)]
OperatorUserIdDep = Annotated[str, Depends(get_operator_user_id)]
VoteServiceDep = Annotated[VoteService, Depends(get_vote_service)]
