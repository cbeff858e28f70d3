import time

import jwt

from championship.guard import evaluate_request, is_public_path
from championship.models import SiteLog
from championship.permissions import Identity


def test_public_paths():
    for path in ['/', '/auth/login', '/api/auth/validate-session', '/static/app.css',
                 '/imagens/logo.png', '/public/x', '/favicon.ico', '/jogos-publicos',
                 '/api/clients/public']:
        assert is_public_path(path)
        assert evaluate_request(path, None).allowed
    assert not is_public_path('/home')


def test_unauthenticated_redirects_to_login_without_message():
    decision = evaluate_request('/equipes', None)
    assert not decision.allowed
    assert decision.redirect_to == '/auth/login'
    assert decision.message is None


def test_backup_rule():
    assert evaluate_request('/backup', Identity.build('s', 'admin', None)).allowed
    assert evaluate_request('/backup', Identity.build('u', 'user', 't1')).allowed
    assert evaluate_request('/backup', Identity.build('a', 'admin', 't1')).allowed
    decision = evaluate_request('/backup', Identity.build('u', 'user', None))
    assert not decision.allowed
    assert decision.redirect_to == '/'
    decision = evaluate_request('/backup', Identity.build('u', 'user', 'undefined'))
    assert not decision.allowed


def test_generate_games_rule():
    path = '/admin/gerar-jogos'
    assert evaluate_request(path, Identity.build('s', 'admin', 'null')).allowed
    denied = evaluate_request(path, Identity.build('a', 'admin', 't1'))
    assert not denied.allowed
    assert denied.message == 'Sem permissão: generate-games/create'
    granted = Identity.build('u', 'user', 't1', '{"gerar-jogos": {"criar": true}}')
    assert evaluate_request(path, granted).allowed
    broken = Identity.build('u', 'user', 't1', '{oops')
    assert not evaluate_request(path, broken).allowed


def test_generate_games_route_ignores_games_fallback():
    identity = Identity.build('u', 'user', 't1', {'games': {'create': True}})
    decision = evaluate_request('/admin/gerar-jogos', identity)
    assert not decision.allowed
    assert decision.reason == 'generate_games_not_granted'


def test_admin_prefix_is_super_admin_only():
    assert evaluate_request('/admin/permissoes', Identity.build('s', 'admin', None)).allowed
    assert evaluate_request('/admin/permissoes', Identity.build('s', 'superadmin', None)).allowed
    for identity in [Identity.build('a', 'admin', 't1'), Identity.build('u', 'user', 't1')]:
        decision = evaluate_request('/admin/clients', identity)
        assert not decision.allowed
        assert decision.message == 'Sem permissão: clients/view'
    assert not evaluate_request('/admin', Identity.build('a', 'admin', 't1')).allowed


def test_other_paths_pass_through():
    identity = Identity.build('u', 'user', 't1')
    assert evaluate_request('/equipes', identity).allowed
    assert evaluate_request('/administracao', identity).allowed


def test_guard_redirects_anonymous_page_requests(client):
    resp = client.get('/home')
    assert resp.status_code == 302
    assert resp.headers['Location'].endswith('/auth/login')


def test_guard_returns_json_for_anonymous_api(client):
    resp = client.get('/api/admin/users/1/permissions')
    assert resp.status_code == 401
    assert resp.get_json()['error']


def test_guard_rejects_tampered_token(app, client, tenants, make_user):
    u = make_user('x@example.com', client=tenants[0])
    forged = jwt.encode(
        {'sub': str(u.id), 'role': 'admin', 'clientId': None, 'iat': int(time.time())},
        'not-the-secret',
        algorithm='HS256',
    )
    client.set_cookie(app.config['TOKEN_COOKIE'], forged)
    resp = client.get('/admin/permissoes')
    assert resp.status_code == 302
    assert resp.headers['Location'].endswith('/auth/login')


def test_guard_accepts_bearer_token(client, make_user, login_as):
    admin = make_user('root@example.com', role='admin')
    token = login_as(admin)
    client.delete_cookie('championship_token')
    resp = client.get('/admin/permissoes', headers={'Authorization': f'Bearer {token}'})
    assert resp.status_code == 200


def test_backup_redirects_user_without_tenant(client, session, make_user, login_as):
    u = make_user('loose@example.com')
    login_as(u)
    resp = client.get('/backup')
    assert resp.status_code == 302
    assert resp.headers['Location'].endswith('/')
    log = session.query(SiteLog).filter_by(action='route_guard').one()
    assert log.result == 'denied'
    assert log.user_id == u.id


def test_backup_allowed_for_tenant_user(client, tenants, make_user, login_as):
    login_as(make_user('op@example.com', client=tenants[0]))
    resp = client.get('/backup')
    assert resp.status_code == 200
    assert b'Liga Norte' in resp.data
    assert b'Liga Sul' not in resp.data


def test_generate_games_denial_flashes_reason(client, tenants, make_user, login_as):
    login_as(make_user('ta@example.com', role='admin', client=tenants[0]))
    resp = client.get('/admin/gerar-jogos', follow_redirects=True)
    assert 'Sem permissão: generate-games/create' in resp.get_data(as_text=True)


def test_generate_games_allowed_with_grant(client, tenants, make_user, login_as):
    u = make_user('gen@example.com', client=tenants[0],
                  permissions={'generate-games': {'create': True}})
    login_as(u)
    assert client.get('/admin/gerar-jogos').status_code == 200
