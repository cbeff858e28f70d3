from championship.navigation import (
    HOME_MENU_ITEMS,
    NAVIGATION_ITEMS,
    NavItem,
    NavSubItem,
    filter_navigation,
    filter_sections,
    filter_sub_items,
    module_for_path,
    route_access,
)
from championship.guard import evaluate_request
from championship.permissions import PERMISSION_ACTIONS, PERMISSION_MODULES, Identity


def ids(items):
    return [item.id for item in items]


def test_module_for_path_exact_and_prefix():
    assert module_for_path('/equipes') == 'teams'
    assert module_for_path('/equipes/12') == 'teams'
    assert module_for_path('/cadastrar/equipes') == 'teams'
    assert module_for_path('/equipes/') == 'teams'
    assert module_for_path('/equipes?page=2') == 'teams'
    assert module_for_path('/nowhere') is None
    assert module_for_path('') is None


def test_module_for_path_prefers_longest_prefix():
    assert module_for_path('/cadastrar/jogos') == 'games'
    assert module_for_path('/cadastrar/jogos/gerar-jogos') == 'generate-games'
    assert module_for_path('/cadastrar/jogos/gerar-jogos/passo-2') == 'generate-games'
    routes = {'/a': 'teams', '/a/b': 'players'}
    assert module_for_path('/a/b/c', routes) == 'players'
    assert module_for_path('/a/x', routes) == 'teams'


def test_module_for_path_respects_segments():
    assert module_for_path('/jogos-publicos') is None
    assert module_for_path('/jogosx') is None


def test_super_admin_sees_everything():
    identity = Identity.build('s', 'admin', None)
    assert ids(filter_navigation(identity)) == ids(NAVIGATION_ITEMS)


def test_normal_user_navigation_follows_grants_and_keeps_order():
    identity = Identity.build('u', 'user', 't1', {
        'jogos': {'visualizar': True},
        'equipes': {'visualizar': True},
        'users': {'view': True},
    })
    # users is admin-only, home has no module
    assert ids(filter_navigation(identity)) == ['home', 'equipes', 'jogos']


def test_tenant_admin_navigation():
    identity = Identity.build('a', 'admin', 't1')
    visible = ids(filter_navigation(identity))
    assert 'clientes' not in visible
    assert 'usuarios' in visible
    assert 'permissoes' not in visible
    assert 'gerar-jogos' not in visible
    granted = Identity.build('a', 'admin', 't1', {'generate-games': {'create': True}})
    assert 'gerar-jogos' in ids(filter_navigation(granted))


def test_filter_preserves_relative_order():
    identity = Identity.build('u', 'user', 't1', {
        module: {'view': True} for module in ('standings', 'teams', 'reports', 'players')
    })
    visible = ids(filter_navigation(identity))
    declared = [i for i in ids(NAVIGATION_ITEMS) if i in visible]
    assert visible == declared


def test_unmapped_items_are_visible():
    items = (
        NavItem('help', 'Ajuda', '/ajuda'),
        NavItem('teams', 'Equipes', '/equipes'),
    )
    identity = Identity.build('u', 'user', 't1', {})
    assert ids(filter_navigation(identity, items)) == ['help']


def test_home_menu_derives_module_from_href():
    items = (NavItem('estatisticas', 'Estatísticas', '/relatorios/estatisticas'),)
    identity = Identity.build('u', 'user', 't1', {'reports': {'view': True}})
    assert ids(filter_navigation(identity, items)) == ['estatisticas']
    assert ids(filter_navigation(Identity.build('u', 'user', 't1'), items)) == []


def test_home_menu_hides_dashboard_from_users():
    identity = Identity.build('u', 'user', 't1', {'dashboard': {'view': True}})
    visible = ids(filter_navigation(identity, HOME_MENU_ITEMS))
    assert 'dashboard' not in visible
    assert ids(filter_navigation(Identity.build('u', 'user', 't1'), HOME_MENU_ITEMS)) == ['jogos-publicos']


def test_sub_items_use_parent_module_and_own_action():
    parent = next(item for item in NAVIGATION_ITEMS if item.id == 'equipes')
    viewer = Identity.build('u', 'user', 't1', {'teams': {'view': True}})
    assert ids(filter_sub_items(viewer, parent)) == ['equipes-listar']
    creator = Identity.build('u', 'user', 't1', {'teams': {'view': True, 'create': True}})
    assert ids(filter_sub_items(creator, parent)) == ['equipes-listar', 'equipes-cadastrar']


def test_super_admin_only_sub_items():
    parent = NavItem('x', 'X', '/equipes', module='teams', sub_items=(
        NavSubItem('open', 'Open', '/equipes'),
        NavSubItem('closed', 'Closed', '/equipes/closed', super_admin_only=True),
    ))
    assert ids(filter_sub_items(Identity.build('a', 'admin', 't1'), parent)) == ['open']
    assert ids(filter_sub_items(Identity.build('s', 'admin', None), parent)) == ['open', 'closed']


def test_admin_sections_drop_empty_groups():
    user = Identity.build('u', 'user', 't1', {'settings': {'view': True}})
    sections = filter_sections(user)
    assert [title for title, _ in sections] == ['Configurações do Sistema']
    assert ids(sections[0][1]) == ['configuracoes-gerais']


def test_route_access_fails_closed_for_unmapped_paths():
    user = Identity.build('u', 'user', 't1', {'teams': {'view': True}})
    assert route_access(user, '/equipes')
    assert not route_access(user, '/equipes', 'delete')
    assert not route_access(user, '/nowhere')
    assert route_access(Identity.build('s', 'admin', None), '/nowhere')
    assert not route_access(None, '/equipes')


def visible_hrefs(identity):
    hrefs = []
    for item in filter_navigation(identity):
        hrefs.append(item.href)
        hrefs.extend(sub.href for sub in filter_sub_items(identity, item))
    hrefs.extend(item.href for item in filter_navigation(identity, HOME_MENU_ITEMS))
    for _title, items in filter_sections(identity):
        hrefs.extend(item.href for item in items)
    return hrefs


def test_visible_links_pass_the_route_guard():
    everything = {module: {action: True for action in PERMISSION_ACTIONS}
                  for module in PERMISSION_MODULES}
    identities = [
        Identity.build('s', 'admin', None),
        Identity.build('a', 'admin', 't1'),
        Identity.build('a', 'admin', 't1', {'generate-games': {'create': True}}),
        Identity.build('u', 'user', 't1', everything),
        Identity.build('u', 'user', 't1', {'teams': {'view': True}}),
    ]
    for identity in identities:
        denied = [href for href in visible_hrefs(identity)
                  if not evaluate_request(href, identity).allowed]
        assert denied == [], identity.kind
