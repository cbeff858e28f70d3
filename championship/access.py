"""Conditional access for templates and views.

:func:`allows` is the framework-free predicate. The rest of the module
adapts it to Jinja (``can``/``gate`` globals) and to view functions
(:func:`permission_required`).
"""
from functools import wraps
from typing import NamedTuple, Optional, Sequence, Tuple

from flask import abort, g, redirect, request

from . import permissions as perms
from .navigation import module_for_path, route_access


class Requirement(NamedTuple):
    module: Optional[str] = None
    action: str = perms.VIEW
    any_of: Sequence[Tuple[str, str]] = ()
    all_of: Sequence[Tuple[str, str]] = ()
    admin_only: bool = False
    super_admin_only: bool = False


def allows(identity, requirement: Requirement) -> bool:
    if identity is None:
        return False
    if requirement.super_admin_only and not identity.is_super_admin:
        return False
    if requirement.admin_only and not identity.is_any_admin:
        return False
    if requirement.module is not None:
        if not perms.has_permission(identity, requirement.module, requirement.action):
            return False
    if requirement.any_of and not perms.has_any(identity, requirement.any_of):
        return False
    if requirement.all_of and not perms.has_all(identity, requirement.all_of):
        return False
    return True


def current_identity():
    return g.get('identity')


def template_helpers(identity):
    """Callables exposed to Jinja for the given identity."""
    return {
        'current_identity': identity,
        'is_super_admin': bool(identity and identity.is_super_admin),
        'is_admin': bool(identity and identity.is_any_admin),
        'can': lambda module, action=perms.VIEW: perms.has_permission(identity, module, action),
        'can_view': lambda module: perms.can_view(identity, module),
        'can_create': lambda module: perms.can_create(identity, module),
        'can_edit': lambda module: perms.can_edit(identity, module),
        'can_delete': lambda module: perms.can_delete(identity, module),
        'can_any': lambda pairs: perms.has_any(identity, pairs),
        'can_all': lambda pairs: perms.has_all(identity, pairs),
        'gate': lambda **kwargs: allows(identity, Requirement(**kwargs)),
    }


def init_access(app):
    @app.context_processor
    def inject_permissions():
        return template_helpers(current_identity())


def permission_required(module=None, action=perms.VIEW, admin_only=False, super_admin_only=False):
    """Guard a view with a permission requirement.

    Without ``module`` the module is looked up from the request path, and a
    path with no module is refused.
    """
    def decorator(view):
        @wraps(view)
        def wrapped(*args, **kwargs):
            identity = current_identity()
            if identity is None:
                return redirect('/auth/login')
            granted = allows(identity, Requirement(admin_only=admin_only,
                                                   super_admin_only=super_admin_only))
            if module is None:
                missing = module_for_path(request.path) or request.path
                granted = granted and route_access(identity, request.path, action)
            else:
                missing = perms.canonical_module(module) or module
                granted = granted and perms.has_permission(identity, module, action)
            if not granted:
                from .models import log_site  # lazy import to avoid circular reference

                log_site('unauthorized_access', 'failure', f'{missing}/{action}',
                         user_id=identity.user_id)
                abort(403, description=f'Sem permissão: {missing}/{action}')
            return view(*args, **kwargs)
        return wrapped
    return decorator
