"""
Request identity.

Authentication happens upstream; the ingress forwards the verified user id in
a header (USER_ID_HEADER). Catalog administration and sync use a shared
bearer token (SYNC_TOKEN); an unset token rejects every request.
"""
import hmac
import logging
from typing import Optional

from fastapi import Request

from nutrilog.config import get_settings
from nutrilog.errors import AuthError

logger = logging.getLogger(__name__)


def is_valid_bearer(authorization: Optional[str], token: str) -> bool:
    if not token or not authorization or not authorization.startswith("Bearer "):
        return False
    return hmac.compare_digest(authorization[len("Bearer "):], token)


async def get_current_user_id(request: Request) -> str:
    """Dependency: the pre-authenticated user id"""
    header = get_settings().USER_ID_HEADER
    user_id = (request.headers.get(header) or "").strip()
    if not user_id:
        raise AuthError(f"Missing {header} header")
    return user_id


async def require_sync_token(request: Request) -> None:
    """Dependency: bearer token equal to SYNC_TOKEN"""
    if not is_valid_bearer(request.headers.get("authorization"), get_settings().SYNC_TOKEN):
        logger.warning(f"Rejected admin request to {request.url.path}")
        raise AuthError()
