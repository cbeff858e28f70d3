"""Role classification and permission evaluation.

Every decision in the application goes through :func:`has_permission`.
The request guard, the template gate and the navigation filter all call
into this module with an explicit :class:`Identity`, so none of them reads
ambient state and all of them agree on the outcome.
"""
import json
import logging
from typing import Any, Dict, Iterable, NamedTuple, Optional, Tuple

logger = logging.getLogger(__name__)

ROLE_USER = 'user'
ROLE_ADMIN = 'admin'
ROLE_SUPERADMIN = 'superadmin'

# Canonical identity kinds, resolved once when the identity is built.
KIND_USER = 'user'
KIND_TENANT_ADMIN = 'tenant_admin'
KIND_SUPER_ADMIN = 'super_admin'

GENERATE_GAMES = 'generate-games'
GAMES = 'games'

VIEW = 'view'
CREATE = 'create'
EDIT = 'edit'
DELETE = 'delete'
EXPORT = 'export'

# Module catalogue with display labels, in the order the permission editor
# shows them.
PERMISSION_MODULES = {
    'dashboard': 'Dashboard',
    'users': 'Usuários',
    'teams': 'Equipes',
    'players': 'Jogadores',
    'groups': 'Grupos',
    'games': 'Jogos',
    GENERATE_GAMES: 'Gerar Jogos',
    'standings': 'Classificação',
    'reports': 'Relatórios',
    'clients': 'Clientes',
    'backup': 'Backup',
    'settings': 'Configurações',
}

PERMISSION_ACTIONS = {
    VIEW: 'Visualizar',
    CREATE: 'Criar',
    EDIT: 'Editar',
    DELETE: 'Excluir',
    EXPORT: 'Exportar',
}

# Keys written by earlier releases of the permission editor.
MODULE_ALIASES = {
    'usuarios': 'users',
    'equipes': 'teams',
    'jogadores': 'players',
    'grupos': 'groups',
    'jogos': 'games',
    'gerar-jogos': GENERATE_GAMES,
    'classificacao': 'standings',
    'relatorios': 'reports',
    'clientes': 'clients',
    'configuracoes': 'settings',
}

ACTION_ALIASES = {
    'visualizar': VIEW,
    'criar': CREATE,
    'editar': EDIT,
    'excluir': DELETE,
    'exportar': EXPORT,
}

_NO_TENANT = ('', 'null', 'undefined')


def canonical_module(name: Any) -> Optional[str]:
    """Return the catalogue name for ``name`` or ``None`` if it is unknown."""
    if not isinstance(name, str):
        return None
    key = name.strip().lower()
    key = MODULE_ALIASES.get(key, key)
    return key if key in PERMISSION_MODULES else None


def canonical_action(name: Any) -> Optional[str]:
    if not isinstance(name, str):
        return None
    key = name.strip().lower()
    key = ACTION_ALIASES.get(key, key)
    return key if key in PERMISSION_ACTIONS else None


def all_permission_pairs():
    return [(m, a) for m in PERMISSION_MODULES for a in PERMISSION_ACTIONS]


# ---------- Role classification ----------

def normalize_tenant_id(value: Any) -> Optional[str]:
    """Collapse the serialized spellings of "no tenant" into ``None``.

    Tokens and form posts have been seen carrying ``"null"`` and
    ``"undefined"`` instead of a real null. Both the guard and the
    classifier must use this function so they never disagree about whether
    an admin is global or tenant scoped.
    """
    if value is None:
        return None
    value = str(value).strip()
    if value in _NO_TENANT:
        return None
    return value


class RoleFlags(NamedTuple):
    is_super_admin: bool
    is_tenant_admin: bool
    is_any_admin: bool
    is_normal_user: bool


def classify_role(role: Any, tenant_id: Any) -> RoleFlags:
    """Derive the role predicates from the raw token fields.

    Unknown roles produce all-false flags.
    """
    tenant = normalize_tenant_id(tenant_id)
    role = role.strip().lower() if isinstance(role, str) else None
    is_super = role == ROLE_SUPERADMIN or (role == ROLE_ADMIN and tenant is None)
    is_tenant_admin = role == ROLE_ADMIN and tenant is not None
    return RoleFlags(
        is_super_admin=is_super,
        is_tenant_admin=is_tenant_admin,
        is_any_admin=is_super or is_tenant_admin,
        is_normal_user=role == ROLE_USER,
    )


def resolve_kind(role: Any, tenant_id: Any) -> Optional[str]:
    flags = classify_role(role, tenant_id)
    if flags.is_super_admin:
        return KIND_SUPER_ADMIN
    if flags.is_tenant_admin:
        return KIND_TENANT_ADMIN
    if flags.is_normal_user:
        return KIND_USER
    return None


# ---------- Permission blobs ----------

def parse_permissions(blob: Any) -> Dict[str, Dict[str, bool]]:
    """Parse a stored or token-embedded permission blob.

    Accepts ``None``, a JSON string or an already decoded mapping and returns
    a fresh ``{module: {action: True}}`` dict keyed by catalogue names. Only
    values that are exactly ``True`` survive. Anything unreadable is logged
    and treated as no permissions at all.
    """
    if blob is None or blob == '':
        return {}
    data = blob
    if isinstance(blob, (str, bytes)):
        try:
            data = json.loads(blob)
        except (TypeError, ValueError) as exc:
            logger.warning('Unreadable permissions blob: %s', exc)
            return {}
    if data is None:
        return {}
    if not isinstance(data, dict):
        logger.warning('Permissions blob is %s, expected an object', type(data).__name__)
        return {}
    parsed = {}
    for raw_module, raw_actions in data.items():
        module = canonical_module(raw_module)
        if module is None:
            logger.debug('Ignoring unknown permission module %r', raw_module)
            continue
        if not isinstance(raw_actions, dict):
            logger.warning('Permissions for %r are not an object', raw_module)
            continue
        for raw_action, granted in raw_actions.items():
            action = canonical_action(raw_action)
            if action is None or granted is not True:
                continue
            parsed.setdefault(module, {})[action] = True
    return parsed


def validate_permissions(data: Any) -> Dict[str, Dict[str, bool]]:
    """Strictly check a permission blob submitted by an administrator.

    Raises ``ValueError`` naming the first offending key. Unlike
    :func:`parse_permissions` nothing is silently dropped.
    """
    if not isinstance(data, dict):
        raise ValueError('Permissions must be an object')
    validated = {}
    for raw_module, raw_actions in data.items():
        module = canonical_module(raw_module)
        if module is None:
            raise ValueError(f'Unknown module: {raw_module}')
        if not isinstance(raw_actions, dict):
            raise ValueError(f'Actions for {raw_module} must be an object')
        for raw_action, granted in raw_actions.items():
            action = canonical_action(raw_action)
            if action is None:
                raise ValueError(f'Unknown action: {raw_module}/{raw_action}')
            if not isinstance(granted, bool):
                raise ValueError(f'Value for {raw_module}/{raw_action} must be true or false')
            if granted:
                validated.setdefault(module, {})[action] = True
    return validated


def explicit_grant(permissions: Dict[str, Dict[str, bool]], module: str, action: str) -> bool:
    actions = permissions.get(module)
    if not isinstance(actions, dict):
        return False
    return actions.get(action) is True


# ---------- Identity ----------

class Identity(NamedTuple):
    """The caller as described by their session token."""

    user_id: str
    email: Optional[str]
    role: Optional[str]
    tenant_id: Optional[str]
    permissions: Dict[str, Dict[str, bool]]
    kind: Optional[str]
    name: Optional[str] = None
    issued_at: Optional[int] = None

    @classmethod
    def build(cls, user_id, role, tenant_id=None, permissions=None, email=None,
              name=None, issued_at=None) -> 'Identity':
        tenant = normalize_tenant_id(tenant_id)
        return cls(
            user_id=str(user_id),
            email=email,
            role=role,
            tenant_id=tenant,
            permissions=parse_permissions(permissions),
            kind=resolve_kind(role, tenant),
            name=name,
            issued_at=issued_at,
        )

    @classmethod
    def from_claims(cls, claims: Dict[str, Any]) -> Optional['Identity']:
        """Build an identity from decoded token claims, or ``None``."""
        if not isinstance(claims, dict) or not claims.get('sub'):
            return None
        return cls.build(
            user_id=claims['sub'],
            role=claims.get('role'),
            tenant_id=claims.get('clientId'),
            permissions=claims.get('permissions'),
            email=claims.get('email'),
            name=claims.get('name'),
            issued_at=claims.get('iat'),
        )

    @property
    def flags(self) -> RoleFlags:
        return classify_role(self.role, self.tenant_id)

    @property
    def is_super_admin(self) -> bool:
        return self.kind == KIND_SUPER_ADMIN

    @property
    def is_tenant_admin(self) -> bool:
        return self.kind == KIND_TENANT_ADMIN

    @property
    def is_any_admin(self) -> bool:
        return self.kind in (KIND_SUPER_ADMIN, KIND_TENANT_ADMIN)

    @property
    def is_normal_user(self) -> bool:
        return self.kind == KIND_USER


# ---------- Evaluation ----------

def has_permission(identity: Optional[Identity], module: Any, action: Any) -> bool:
    if identity is None:
        return False
    if identity.is_super_admin:
        return True
    module = canonical_module(module)
    action = canonical_action(action)
    if module is None or action is None:
        return False
    permissions = identity.permissions or {}
    if module == GENERATE_GAMES:
        if explicit_grant(permissions, GENERATE_GAMES, action):
            return True
        if identity.is_normal_user:
            return explicit_grant(permissions, GAMES, action)
        return False
    if identity.is_tenant_admin:
        return True
    if not identity.is_normal_user:
        return False
    return explicit_grant(permissions, module, action)


def has(identity, module, action):
    return has_permission(identity, module, action)


def can_view(identity, module):
    return has_permission(identity, module, VIEW)


def can_create(identity, module):
    return has_permission(identity, module, CREATE)


def can_edit(identity, module):
    return has_permission(identity, module, EDIT)


def can_delete(identity, module):
    return has_permission(identity, module, DELETE)


def can_export(identity, module):
    return has_permission(identity, module, EXPORT)


def can_access_admin_features(identity) -> bool:
    return identity is not None and identity.is_any_admin


def can_manage_clients(identity) -> bool:
    return identity is not None and identity.is_super_admin


def _role_guards_pass(identity, require_tenant_admin, require_super_admin):
    if identity is None:
        return False
    if require_super_admin and not identity.is_super_admin:
        return False
    if require_tenant_admin and not identity.is_tenant_admin:
        return False
    return True


def has_any(identity: Optional[Identity], pairs: Iterable[Tuple[str, str]], *,
            require_tenant_admin: bool = False, require_super_admin: bool = False) -> bool:
    """True if any ``(module, action)`` pair is granted."""
    if not _role_guards_pass(identity, require_tenant_admin, require_super_admin):
        return False
    return any(has_permission(identity, m, a) for m, a in pairs)


def has_all(identity: Optional[Identity], pairs: Iterable[Tuple[str, str]], *,
            require_tenant_admin: bool = False, require_super_admin: bool = False) -> bool:
    """True if every ``(module, action)`` pair is granted.

    An empty list is granted once the role guards pass.
    """
    if not _role_guards_pass(identity, require_tenant_admin, require_super_admin):
        return False
    return all(has_permission(identity, m, a) for m, a in pairs)
