"""Request guard.

Runs before every view, decodes the session token itself and applies the
coarse path rules. Finer module checks happen in the views through
:mod:`championship.access`.
"""
import logging
from typing import NamedTuple, Optional

from flask import flash, g, jsonify, redirect, request

from .navigation import module_for_path
from .permissions import CREATE, GENERATE_GAMES, VIEW, Identity, explicit_grant
from .tokens import identity_from_request

logger = logging.getLogger(__name__)

LOGIN_ROUTE = '/auth/login'
DEFAULT_ROUTE = '/'
BACKUP_PATH = '/backup'
GENERATE_GAMES_PATH = '/admin/gerar-jogos'
ADMIN_PREFIX = '/admin'

PUBLIC_ROUTES = frozenset(['/', LOGIN_ROUTE, '/api/clients/public', '/jogos-publicos'])
PUBLIC_PREFIXES = ('/api/auth/', '/static/', '/imagens/', '/public/')


class GuardDecision(NamedTuple):
    allowed: bool
    redirect_to: Optional[str] = None
    reason: str = 'allowed'
    message: Optional[str] = None


ALLOW = GuardDecision(True)


def denial_message(module, action):
    return f'Sem permissão: {module}/{action}'


def _under(path, base):
    return path == base or path.startswith(base + '/')


def is_public_path(path: str) -> bool:
    if path in PUBLIC_ROUTES or 'favicon.ico' in path:
        return True
    return path.startswith(PUBLIC_PREFIXES)


def _deny(reason, module, action):
    return GuardDecision(False, DEFAULT_ROUTE, reason, denial_message(module, action))


def evaluate_request(path: str, identity: Optional[Identity]) -> GuardDecision:
    """Decide whether a request for ``path`` may reach its view.

    Rules are checked in order and the first one that matches decides.
    """
    if is_public_path(path):
        return GuardDecision(True, reason='public')
    if identity is None:
        return GuardDecision(False, LOGIN_ROUTE, 'unauthenticated')

    if _under(path, BACKUP_PATH):
        if identity.is_super_admin or identity.tenant_id is not None:
            return ALLOW
        return _deny('backup_requires_tenant', 'backup', VIEW)

    if _under(path, GENERATE_GAMES_PATH):
        if identity.is_super_admin:
            return ALLOW
        # Explicit grant only. has_permission also accepts games/create for
        # normal users, so the menu may list this page for them; the route
        # stays stricter than the menu.
        if explicit_grant(identity.permissions, GENERATE_GAMES, CREATE):
            return ALLOW
        return _deny('generate_games_not_granted', GENERATE_GAMES, CREATE)

    if _under(path, ADMIN_PREFIX):
        if identity.is_super_admin:
            return ALLOW
        return _deny('admin_requires_super_admin', module_for_path(path) or 'admin', VIEW)

    return ALLOW


def init_guard(app):
    @app.before_request
    def route_guard():
        identity = identity_from_request(request)
        g.identity = identity
        decision = evaluate_request(request.path, identity)
        if decision.allowed:
            return None
        wants_json = request.path.startswith('/api/')
        if decision.reason == 'unauthenticated':
            if wants_json:
                return jsonify({'error': 'Não autenticado'}), 401
            return redirect(decision.redirect_to)

        from .models import log_site  # lazy import to avoid circular reference

        logger.info('Route guard denied %s for user %s: %s',
                    request.path, identity.user_id, decision.reason)
        log_site('route_guard', 'denied', f'{request.path}: {decision.reason}',
                 user_id=identity.user_id)
        if wants_json:
            return jsonify({'error': decision.message, 'reason': decision.reason}), 403
        flash(decision.message, 'error')
        return redirect(decision.redirect_to)

    return route_guard
