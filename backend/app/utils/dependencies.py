from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from ..database import get_db
from ..services.ats_scoring import ScoreOrchestrator
from ..services.matcher import GeminiMatcher, Matcher
from .error_handlers import TenantRequiredError, UnauthorizedError, get_error_message
from .jwt import decode_access_token

_bearer = HTTPBearer(auto_error=False)


def get_current_user(credentials: HTTPAuthorizationCredentials | None = Depends(_bearer)) -> dict:
    if credentials is None or not credentials.credentials:
        raise UnauthorizedError(get_error_message("unauthorized"))
    claims = decode_access_token(credentials.credentials)
    if claims is None:
        raise UnauthorizedError(get_error_message("session_expired"))
    return claims


def get_client_id(user: dict = Depends(get_current_user)) -> int:
    raw = user.get("client_id")
    try:
        client_id = int(raw)
    except (TypeError, ValueError):
        raise TenantRequiredError(get_error_message("client_required")) from None
    if client_id <= 0:
        raise TenantRequiredError(get_error_message("client_required"))
    return client_id


def get_actor(user: dict = Depends(get_current_user)) -> str:
    """Display name recorded on assignments."""
    return str(user.get("name") or user.get("email") or user.get("sub") or "unknown")


def get_matcher(request: Request) -> Matcher:
    matcher = getattr(request.app.state, "matcher", None)
    if matcher is None:
        # Apps that skip the startup hook (e.g. routers mounted in tests) still get one shared matcher.
        matcher = GeminiMatcher.from_config()
        request.app.state.matcher = matcher
    return matcher


def get_orchestrator(
    db: Session = Depends(get_db),
    matcher: Matcher = Depends(get_matcher),
) -> ScoreOrchestrator:
    return ScoreOrchestrator(db, matcher)
