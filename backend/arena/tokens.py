"""Signed, expiring credential tokens shared by the socket and HTTP layers."""
from flask import current_app
from itsdangerous import URLSafeTimedSerializer, BadSignature, SignatureExpired

from arena.services.matches.exceptions import Unauthenticated

_SALT = 'arena-auth'


def _serializer():
    return URLSafeTimedSerializer(current_app.config['SECRET_KEY'], salt=_SALT)


def issue_token(user) -> str:
    return _serializer().dumps({'id': user.id, 'username': user.username})


def verify_token(token) -> dict:
    """Return the ``{id, username}`` claims or raise Unauthenticated."""
    if not token or not isinstance(token, str):
        raise Unauthenticated('Missing token')
    max_age = int(current_app.config.get('TOKEN_MAX_AGE_SEC', 3600))
    try:
        claims = _serializer().loads(token, max_age=max_age)
    except SignatureExpired:
        raise Unauthenticated('Token expired')
    except BadSignature:
        raise Unauthenticated('Invalid token')
    if not isinstance(claims, dict) or 'id' not in claims or 'username' not in claims:
        raise Unauthenticated('Invalid token')
    return claims
