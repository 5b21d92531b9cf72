"""
Bearer token authentication.

Session tokens come from the identity provider and are HS256 JWTs:
- sub: the provider's user id (one store per user)
- aud / iss: checked when AUTH_JWT_AUDIENCE / AUTH_JWT_ISSUER are configured
- exp: always verified
"""
import logging
from functools import wraps

import jwt
from flask import request, g, current_app

from ..models import StoreInfo
from ..utils.exceptions import AuthorizationError, StoreNotFoundError

logger = logging.getLogger(__name__)


def decode_session_token(token: str) -> dict | None:
    """
    Decode and verify a session token.

    Returns:
        Decoded token payload or None if invalid
    """
    if not token:
        return None

    audience = current_app.config.get('AUTH_JWT_AUDIENCE') or None
    issuer = current_app.config.get('AUTH_JWT_ISSUER') or None
    try:
        return jwt.decode(
            token,
            current_app.config['AUTH_JWT_SECRET'],
            algorithms=['HS256'],
            audience=audience,
            issuer=issuer,
            options={
                'verify_aud': bool(audience),
                'verify_exp': True,
                'require': ['sub', 'exp'],
            }
        )
    except jwt.ExpiredSignatureError:
        logger.info('[Auth] Session token expired')
        return None
    except jwt.InvalidTokenError as e:
        logger.info(f'[Auth] Invalid token: {e}')
        return None


def get_bearer_token() -> str | None:
    auth_header = request.headers.get('Authorization', '')
    if auth_header.startswith('Bearer '):
        return auth_header.split(' ', 1)[1].strip()
    return None


def require_auth(f):
    """
    Decorator to require an authenticated principal with a store.

    Sets g.user_id, g.store and g.store_id.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        payload = decode_session_token(get_bearer_token())
        if not payload:
            raise AuthorizationError('Valid bearer token required')

        user_id = str(payload['sub'])
        store = StoreInfo.query.filter_by(user_id=user_id).first()
        if store is None:
            raise StoreNotFoundError()

        g.user_id = user_id
        g.store = store
        g.store_id = store.id
        return f(*args, **kwargs)

    return decorated_function
