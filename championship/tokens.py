"""Session tokens.

Login issues an HS256 JWT that carries a snapshot of the user's role, tenant
and permissions. Every request is authorized from that snapshot, so a token
has to be reissued before permission changes take effect.
"""
import logging
import time
from typing import Any, Dict, Optional

import jwt
from flask import current_app

from .permissions import Identity, normalize_tenant_id, parse_permissions

logger = logging.getLogger(__name__)

ALGORITHM = 'HS256'


def _secret(app=None) -> str:
    app = app or current_app
    return app.config['TOKEN_SECRET'] or app.config['SECRET_KEY']


def token_claims(user, client_id, now=None) -> Dict[str, Any]:
    """Claims for a session of ``user`` scoped to ``client_id``.

    ``client_id`` is the tenant of this session, which for a global admin
    may differ from the user's own.
    """
    now = int(now if now is not None else time.time())
    max_age = int(current_app.config['TOKEN_MAX_AGE'])
    tenant = normalize_tenant_id(client_id)
    return {
        'sub': str(user.id),
        'email': user.email,
        'name': user.name,
        'role': user.role,
        'clientId': tenant,
        'permissions': parse_permissions(user.permissions),
        'iat': now,
        'exp': now + max_age,
    }


def issue_token(user, client_id, now=None) -> str:
    return jwt.encode(token_claims(user, client_id, now), _secret(), algorithm=ALGORITHM)


def decode_token(token: Optional[str]) -> Optional[Identity]:
    """Verify ``token`` and return its identity.

    Expired, tampered or malformed tokens are logged and return ``None``.
    """
    if not token:
        return None
    try:
        claims = jwt.decode(token, _secret(), algorithms=[ALGORITHM])
    except jwt.PyJWTError as exc:
        logger.info('Rejected session token: %s', exc)
        return None
    return Identity.from_claims(claims)


def token_from_request(request) -> Optional[str]:
    header = request.headers.get('Authorization', '')
    if header.startswith('Bearer '):
        return header.split(' ', 1)[1].strip() or None
    return request.cookies.get(current_app.config['TOKEN_COOKIE'])


def identity_from_request(request) -> Optional[Identity]:
    return decode_token(token_from_request(request))
