import logging
from contextlib import contextmanager
from typing import Generator, Iterator, Optional, Union

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.orm import Session

from modulegate.core.rbac import (
    AccessPipeline,
    Actor,
    CapabilityRegistry,
    ConflictError,
    DenialReason,
    InvalidCapabilityError,
    InvalidGrantError,
    NotFoundError,
    PermissionDeniedError,
    PermissionResolver,
)
from modulegate.core.rbac.pipeline import Requirement, parse_requirements
from modulegate.core.security import decode_token
from modulegate.db.models import User
from modulegate.db.session import SessionLocal

logger = logging.getLogger(__name__)

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login", auto_error=False)

NOT_AUTHENTICATED = "Not authenticated"
NOT_PERMITTED = "You do not have permission"


def get_db() -> Generator:
    """Database session dependency."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_registry(request: Request) -> CapabilityRegistry:
    """Process-wide capability registry created at startup."""
    return request.app.state.registry


def get_current_actor(
    db: Session = Depends(get_db),
    token: Optional[str] = Depends(oauth2_scheme),
) -> Optional[Actor]:
    """Resolve the bearer token to an actor. Returns None for anonymous callers."""
    if not token:
        return None

    user_id = decode_token(token)
    if user_id is None:
        return None

    user = db.query(User).filter(User.id == user_id).first()
    if user is None or not user.is_active:
        return None

    return Actor.from_user(user)


def get_authenticated_actor(actor: Optional[Actor] = Depends(get_current_actor)) -> Actor:
    if actor is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=NOT_AUTHENTICATED,
            headers={"WWW-Authenticate": "Bearer"},
        )
    return actor


def get_operator(actor: Actor = Depends(get_authenticated_actor)) -> Actor:
    """Require the caller to be a platform operator."""
    if not actor.is_operator:
        logger.warning(f"Operator endpoint denied for {actor.role.value} {actor.id}")
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=NOT_PERMITTED)
    return actor


class RequireAccess:
    """
    FastAPI dependency running the access pipeline for an endpoint.

    Requirements are parsed when the endpoint is declared, so a malformed
    declaration fails at import time rather than per request.

    Usage:
        @router.post("/invoices")
        async def create_invoice(actor: Actor = Depends(RequireAccess(
            "requires-tenant", "requires-action:invoicing:write"
        ))):
            ...
    """

    def __init__(self, *requirements: Union[str, Requirement]):
        self.requirements = parse_requirements(requirements)

    def __call__(
        self,
        actor: Optional[Actor] = Depends(get_current_actor),
        db: Session = Depends(get_db),
        registry: CapabilityRegistry = Depends(get_registry),
    ) -> Actor:
        pipeline = AccessPipeline(PermissionResolver(db, registry))
        decision = pipeline.evaluate(actor, self.requirements)

        if decision.allowed:
            return actor

        if decision.reason == DenialReason.UNAUTHENTICATED:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail=NOT_AUTHENTICATED,
                headers={"WWW-Authenticate": "Bearer"},
            )

        # Callers get one generic message; the reason stays in the server log
        logger.warning(f"Access denied ({decision.reason.value}): {decision.detail}")
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=NOT_PERMITTED)


@contextmanager
def handle_access_errors(db: Session) -> Iterator[None]:
    """Translate authorization engine errors into HTTP errors, rolling back."""
    try:
        yield
    except PermissionDeniedError as e:
        db.rollback()
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(e))
    except NotFoundError as e:
        db.rollback()
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except ConflictError as e:
        db.rollback()
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    except (InvalidGrantError, InvalidCapabilityError) as e:
        db.rollback()
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
