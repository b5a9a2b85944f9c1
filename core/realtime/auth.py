"""
Token authentication for websocket connections.

Browsers cannot set an ``Authorization`` header on a websocket, so the
client passes ``?token=<key or JWT access token>``.  Connections without a
usable token fall back to the session user set by ``AuthMiddlewareStack``.
"""
import logging
from urllib.parse import parse_qs

from channels.db import database_sync_to_async
from channels.auth import AuthMiddlewareStack
from channels.middleware import BaseMiddleware
from rest_framework.authtoken.models import Token
from rest_framework_simplejwt.authentication import JWTAuthentication
from rest_framework_simplejwt.exceptions import AuthenticationFailed, TokenError

logger = logging.getLogger(__name__)


@database_sync_to_async
def user_for_token(raw: str):
    token = Token.objects.select_related('user').filter(key=raw).first()
    if token is not None:
        return token.user if token.user.is_active else None
    jwt = JWTAuthentication()
    try:
        return jwt.get_user(jwt.get_validated_token(raw))
    except (AuthenticationFailed, TokenError) as e:
        # expired or malformed token, or a user since deactivated or deleted
        logger.info('websocket connection refused: %s', e)
        return None


class QueryTokenAuthMiddleware(BaseMiddleware):
    async def __call__(self, scope, receive, send):
        params = parse_qs(scope.get('query_string', b'').decode())
        raw = (params.get('token') or [''])[0]
        if raw:
            user = await user_for_token(raw)
            if user is not None:
                scope = dict(scope, user=user)
        return await super().__call__(scope, receive, send)


def TokenAuthMiddlewareStack(inner):
    return AuthMiddlewareStack(QueryTokenAuthMiddleware(inner))
