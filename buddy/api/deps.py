from typing import Optional

from fastapi import Request

from buddy.core.errors import ValidationError
from buddy.core.middleware.request_context import header_user_id
from buddy.features.gamification.container import GamificationServices


def get_services(request: Request) -> GamificationServices:
    """Services built in the app lifespan and held on app.state."""
    return request.app.state.services


def caller_user_id(request: Request, body_user_id: Optional[str] = None) -> str:
    """
    The user a write applies to: the body's user_id when given, otherwise the
    X-User-Id header set by the identity layer in front of this service.
    """
    user_id = body_user_id or header_user_id(request)
    if not user_id:
        raise ValidationError("user_id is required (request body or X-User-Id header)")
    return user_id
