from fastapi import APIRouter, Depends, Response, status
from datetime import timezone

from ...api.deps import get_current_claim, get_session_broker, rate_limit_check
from ...core.errors import TokenInvalid
from ...schemas.sessions import ActiveRoles, SessionCreate, SessionIssued, SessionValidation
from ...services.session_broker import IdentityClaim, SessionBroker

router = APIRouter(prefix="/sessions", tags=["Sessions"])
users_router = APIRouter(prefix="/users", tags=["Sessions"])

@router.post(
    "",
    response_model=SessionIssued,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(rate_limit_check)],
)
def create_session(
    session_data: SessionCreate,
    broker: SessionBroker = Depends(get_session_broker),
):
    """Sign in under one role; other roles' sessions are left untouched."""
    issued = broker.issue(session_data.email, session_data.password, session_data.role)
    record = issued.record
    return SessionIssued(
        token=issued.token,
        role=record.role,
        user_id=record.user_id,
        user_name=record.display_name,
        user_email=record.email,
        expires_at=record.expires_at.replace(tzinfo=timezone.utc),
    )

@router.get("/{token}", response_model=SessionValidation, response_model_exclude_none=True)
def validate_session(
    token: str,
    broker: SessionBroker = Depends(get_session_broker),
):
    """Check a session token. Unknown or expired tokens report valid=false."""
    try:
        claim = broker.validate(token)
    except TokenInvalid:
        return SessionValidation(valid=False)
    return SessionValidation(
        valid=True,
        role=claim.role,
        user_id=claim.user_id,
        email=claim.email,
        name=claim.display_name,
    )

@router.delete("/{token}", status_code=status.HTTP_204_NO_CONTENT)
def revoke_session(
    token: str,
    broker: SessionBroker = Depends(get_session_broker),
):
    """Sign out one role. Always succeeds."""
    broker.revoke(token)
    return Response(status_code=status.HTTP_204_NO_CONTENT)

@users_router.get("/me/active-roles", response_model=ActiveRoles)
def get_active_roles(
    claim: IdentityClaim = Depends(get_current_claim),
    broker: SessionBroker = Depends(get_session_broker),
):
    """Roles the caller currently holds a live session for."""
    roles = broker.active_roles(claim.user_id)
    return ActiveRoles(user_id=claim.user_id, roles=sorted(roles))

@users_router.delete("/me/sessions", status_code=status.HTTP_204_NO_CONTENT)
def revoke_all_sessions(
    claim: IdentityClaim = Depends(get_current_claim),
    broker: SessionBroker = Depends(get_session_broker),
):
    """Sign the caller out of every role."""
    broker.revoke_all(claim.user_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
