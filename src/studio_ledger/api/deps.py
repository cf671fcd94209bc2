"""FastAPI dependencies."""

from typing import Annotated

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.orm import Session

from studio_ledger.adapters.video_gen.base import VideoGenProvider
from studio_ledger.db.session import get_session
from studio_ledger.domain.errors import (
    AlreadyTerminalError,
    InsufficientFundsError,
    InvalidTransitionError,
    LedgerError,
    NotFoundError,
    ProviderError,
    UnpricedModelError,
    UnsupportedModelError,
)
from studio_ledger.services.generation import get_video_gen_provider

# Database session dependency
SessionDep = Annotated[Session, Depends(get_session)]


def get_current_user(x_user_id: Annotated[str | None, Header()] = None) -> str:
    """Caller identity from the ``X-User-Id`` header."""
    if not x_user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing X-User-Id header",
        )
    return x_user_id


def get_optional_user(x_user_id: Annotated[str | None, Header()] = None) -> str | None:
    return x_user_id or None


CurrentUserDep = Annotated[str, Depends(get_current_user)]
OptionalUserDep = Annotated[str | None, Depends(get_optional_user)]


def get_provider() -> VideoGenProvider:
    """Get the configured video generation provider."""
    return get_video_gen_provider()


ProviderDep = Annotated[VideoGenProvider, Depends(get_provider)]


def http_error(error: LedgerError) -> HTTPException:
    """Translate a ledger error into the HTTP error returned to clients."""
    if isinstance(error, InsufficientFundsError):
        return HTTPException(
            status_code=status.HTTP_402_PAYMENT_REQUIRED,
            detail={
                "message": "Insufficient balance",
                "required": error.required,
                "available": error.available,
            },
        )
    if isinstance(error, ProviderError):
        return HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(error))
    if isinstance(error, (AlreadyTerminalError, InvalidTransitionError)):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(error))
    if isinstance(error, NotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(error))
    if isinstance(error, (UnpricedModelError, UnsupportedModelError)):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(error))
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(error))
