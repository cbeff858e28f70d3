"""Static navigation data and the filters that apply permissions to it."""
from typing import List, NamedTuple, Optional, Tuple

from .permissions import VIEW, CREATE, EDIT, has_permission

# Path prefix -> permission module.
MODULE_ROUTES = {
    '/usuarios': 'users',
    '/admin/usuarios': 'users',
    '/cadastrar/usuarios': 'users',
    '/equipes': 'teams',
    '/cadastrar/equipes': 'teams',
    '/update/equipes': 'teams',
    '/jogadores': 'players',
    '/cadastrar/jogadores': 'players',
    '/update/jogadores': 'players',
    '/grupos': 'groups',
    '/cadastrar/grupos': 'groups',
    '/update/grupos': 'groups',
    '/jogos': 'games',
    '/cadastrar/jogos': 'games',
    '/update/jogos': 'games',
    '/admin/gerar-jogos': 'generate-games',
    '/cadastrar/jogos/gerar-jogos': 'generate-games',
    '/classificacao': 'standings',
    '/relatorios': 'reports',
    '/admin/clients': 'clients',
    '/cadastrar/clients': 'clients',
    '/backup': 'backup',
    '/admin/dashboard': 'dashboard',
    '/settings/config': 'settings',
}


def module_for_path(path: str, routes=None) -> Optional[str]:
    """Return the module owning ``path``.

    An exact entry wins, otherwise the longest prefix that ends on a path
    segment boundary. ``/jogos-publicos`` does not belong to ``/jogos``.
    """
    routes = MODULE_ROUTES if routes is None else routes
    if not path:
        return None
    path = path.split('?', 1)[0]
    if len(path) > 1:
        path = path.rstrip('/')
    if path in routes:
        return routes[path]
    best = None
    for prefix in routes:
        if path.startswith(prefix.rstrip('/') + '/'):
            if best is None or len(prefix) > len(best):
                best = prefix
    return routes[best] if best else None


class NavSubItem(NamedTuple):
    id: str
    title: str
    href: str
    action: str = VIEW
    super_admin_only: bool = False


class NavItem(NamedTuple):
    id: str
    title: str
    href: str
    description: str = ''
    module: Optional[str] = None
    action: str = VIEW
    admin_only: bool = False
    super_admin_only: bool = False
    sub_items: Tuple[NavSubItem, ...] = ()


NAVIGATION_ITEMS = (
    NavItem('home', 'Início', '/home', 'Painel principal do sistema'),
    NavItem('equipes', 'Equipes', '/equipes', 'Gerenciar equipes do campeonato', module='teams',
            sub_items=(
                NavSubItem('equipes-listar', 'Gerenciar Equipes', '/equipes'),
                NavSubItem('equipes-cadastrar', 'Cadastrar Equipe', '/cadastrar/equipes', CREATE),
            )),
    NavItem('jogadores', 'Jogadores', '/jogadores', 'Gerenciar jogadores', module='players',
            sub_items=(
                NavSubItem('jogadores-listar', 'Listar Jogadores', '/jogadores'),
                NavSubItem('jogadores-cadastrar', 'Cadastrar Jogador', '/cadastrar/jogadores', CREATE),
            )),
    NavItem('grupos', 'Grupos', '/grupos', 'Organizar grupos do campeonato', module='groups',
            sub_items=(
                NavSubItem('grupos-listar', 'Gerenciar Grupos', '/grupos'),
                NavSubItem('grupos-cadastrar', 'Cadastrar Grupo', '/cadastrar/grupos', CREATE),
            )),
    NavItem('jogos', 'Jogos', '/jogos', 'Gerenciar jogos e partidas', module='games',
            sub_items=(
                NavSubItem('jogos-listar', 'Ver Jogos', '/jogos'),
                NavSubItem('jogos-cadastrar', 'Cadastrar Jogo', '/cadastrar/jogos', CREATE),
            )),
    NavItem('gerar-jogos', 'Gerar Jogos', '/admin/gerar-jogos', 'Gerar a tabela de jogos',
            module='generate-games', action=CREATE),
    NavItem('classificacao', 'Classificação', '/classificacao',
            'Tabela de classificação das equipes', module='standings'),
    NavItem('relatorios', 'Relatórios', '/relatorios', 'Relatórios e estatísticas', module='reports',
            sub_items=(
                NavSubItem('relatorios-estatisticas', 'Estatísticas Gerais', '/relatorios/estatisticas'),
                NavSubItem('relatorios-classificacao', 'Classificação', '/relatorios/classificacao'),
                NavSubItem('relatorios-jogadores', 'Ranking de Jogadores', '/relatorios/jogadores'),
                NavSubItem('relatorios-jogos', 'Relatório de Jogos', '/relatorios/jogos'),
            )),
    NavItem('usuarios', 'Usuários', '/usuarios', 'Gerenciar usuários do sistema', module='users',
            admin_only=True,
            sub_items=(
                NavSubItem('usuarios-listar', 'Listar Usuários', '/usuarios'),
                NavSubItem('usuarios-cadastrar', 'Cadastrar Usuário', '/cadastrar/usuarios', CREATE),
            )),
    NavItem('clientes', 'Clientes', '/admin/clients', 'Gerenciar clientes do sistema', module='clients',
            super_admin_only=True,
            sub_items=(
                NavSubItem('clientes-listar', 'Gerenciar Clientes', '/admin/clients',
                           super_admin_only=True),
                NavSubItem('clientes-cadastrar', 'Cadastrar Cliente', '/cadastrar/clients', CREATE,
                           super_admin_only=True),
            )),
    NavItem('permissoes', 'Permissões', '/admin/permissoes', 'Configurar permissões dos usuários',
            module='users', super_admin_only=True),
    NavItem('backup', 'Backup', '/backup', 'Backup dos dados do campeonato', module='backup'),
    NavItem('configuracoes', 'Configurações', '/settings/config', 'Configurações do sistema',
            module='settings'),
)

HOME_MENU_ITEMS = (
    NavItem('atualizar-resultados', 'Atualizar Resultados', '/jogos',
            'Acesse a lista de jogos e atualize os resultados', module='games', action=EDIT),
    NavItem('ver-jogos', 'Visualizar Jogos', '/jogos', 'Confira todos os jogos e seus resultados',
            module='games'),
    NavItem('classificacao', 'Classificação', '/classificacao',
            'Confira a tabela de classificação das equipes', module='standings'),
    NavItem('equipes', 'Equipes', '/equipes', 'Gerencie as equipes participantes', module='teams'),
    NavItem('jogadores', 'Jogadores', '/jogadores', 'Gerencie os jogadores do campeonato',
            module='players'),
    NavItem('grupos', 'Grupos', '/grupos', 'Organize as equipes em grupos', module='groups'),
    NavItem('dashboard', 'Dashboard', '/admin/dashboard', 'Visão geral e principais indicadores',
            super_admin_only=True),
    NavItem('relatorios', 'Relatórios', '/relatorios', 'Estatísticas e relatórios do campeonato',
            module='reports'),
    NavItem('usuarios', 'Usuários', '/usuarios', 'Gerencie usuários do sistema', module='users',
            admin_only=True),
    NavItem('clientes', 'Clientes', '/admin/clients', 'Gerencie clientes do sistema',
            module='clients', super_admin_only=True),
    NavItem('permissoes', 'Permissões', '/admin/permissoes', 'Configure permissões dos usuários',
            module='users', super_admin_only=True),
    NavItem('jogos-publicos', 'Jogos Públicos', '/jogos-publicos', 'Página pública de resultados'),
)

ADMIN_CONFIG_SECTIONS = (
    ('Gerenciamento de Usuários', (
        NavItem('gerenciar-usuarios', 'Gerenciar Usuários', '/usuarios', module='users'),
        NavItem('cadastrar-usuario', 'Cadastrar Usuário', '/cadastrar/usuarios', module='users',
                action=CREATE),
        NavItem('configurar-permissoes', 'Configurar Permissões', '/admin/permissoes',
                module='users', super_admin_only=True),
    )),
    ('Gerenciamento de Clientes', (
        NavItem('gerenciar-clientes', 'Gerenciar Clientes', '/admin/clients', module='clients',
                super_admin_only=True),
        NavItem('cadastrar-cliente', 'Cadastrar Cliente', '/cadastrar/clients', module='clients',
                action=CREATE, super_admin_only=True),
    )),
    ('Configurações do Sistema', (
        NavItem('configuracoes-gerais', 'Configurações Gerais', '/settings/config',
                module='settings'),
        NavItem('backup-dados', 'Backup de Dados', '/backup', module='backup',
                super_admin_only=True),
    )),
)


def _role_requirements_met(identity, item) -> bool:
    if item.super_admin_only and not (identity and identity.is_super_admin):
        return False
    if getattr(item, 'admin_only', False) and not (identity and identity.is_any_admin):
        return False
    return True


def item_visible(identity, item: NavItem) -> bool:
    if not _role_requirements_met(identity, item):
        return False
    module = item.module or module_for_path(item.href)
    if module is None:
        # Free-standing links with no module stay visible; this is a menu
        # nicety, the guard and the views still decide access.
        return True
    return has_permission(identity, module, item.action)


def filter_navigation(identity, items=NAVIGATION_ITEMS) -> List[NavItem]:
    return [item for item in items if item_visible(identity, item)]


def filter_sub_items(identity, parent: NavItem) -> List[NavSubItem]:
    module = parent.module or module_for_path(parent.href)
    visible = []
    for sub in parent.sub_items:
        if not _role_requirements_met(identity, sub):
            continue
        if module is None or has_permission(identity, module, sub.action):
            visible.append(sub)
    return visible


def filter_sections(identity, sections=ADMIN_CONFIG_SECTIONS):
    """Filter grouped menus, dropping groups that end up empty."""
    result = []
    for title, items in sections:
        visible = filter_navigation(identity, items)
        if visible:
            result.append((title, visible))
    return result


def route_access(identity, path: str, action: str = VIEW) -> bool:
    """Whether ``identity`` may open ``path`` according to the route map.

    Unlike the menu filters, a path with no module is denied.
    """
    if identity is None:
        return False
    if identity.is_super_admin:
        return True
    module = module_for_path(path)
    if module is None:
        return False
    return has_permission(identity, module, action)
