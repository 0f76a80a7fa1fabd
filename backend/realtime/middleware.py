"""WebSocket authentication: JWT access token in the querystring, else session."""

import logging
from urllib.parse import parse_qs

from channels.db import database_sync_to_async
from channels.middleware import BaseMiddleware
from django.contrib.auth import get_user_model
from django.contrib.auth.models import AnonymousUser
from rest_framework_simplejwt.exceptions import TokenError
from rest_framework_simplejwt.tokens import AccessToken

logger = logging.getLogger(__name__)


@database_sync_to_async
def get_user_for_token(raw_token: str):
    """Active user named by a valid access token, else AnonymousUser."""
    try:
        access = AccessToken(raw_token)
    except TokenError as e:
        logger.debug("JWT auth failed: %s", e)
        return AnonymousUser()

    User = get_user_model()
    try:
        return User.objects.get(id=access["user_id"], is_active=True)
    except (User.DoesNotExist, KeyError):
        return AnonymousUser()


class JWTOrCookieAuthMiddleware(BaseMiddleware):
    """
    Mobile clients pass ``?token=<access>``; browsers fall back to the
    session user set by AuthMiddlewareStack.
    """

    async def __call__(self, scope, receive, send):
        params = parse_qs(scope.get("query_string", b"").decode())

        token_list = params.get("token")
        if token_list:
            scope["user"] = await get_user_for_token(token_list[0])
        elif "user" not in scope:
            scope["user"] = AnonymousUser()

        return await super().__call__(scope, receive, send)
