from flask import (
    Flask,
    render_template,
    redirect,
    url_for,
    request,
    flash,
    abort,
    g,
    jsonify,
)
from flask_sqlalchemy import SQLAlchemy
from flask_login import LoginManager, current_user
from werkzeug.exceptions import HTTPException
from datetime import datetime, timedelta, timezone
import os
import json
import click


db = SQLAlchemy()
login_manager = LoginManager()

DEFAULT_TOKEN_MAX_AGE = 30 * 24 * 60 * 60


def create_app(config=None):
    app = Flask(__name__)
    db_file = os.environ.get('CHAMPIONSHIP_DB_PATH', 'championship.db')
    log_db_file = os.environ.get('CHAMPIONSHIP_LOG_DB_PATH', db_file.replace('.db', '_logs.db'))
    app.config['SQLALCHEMY_DATABASE_URI'] = f'sqlite:///{os.path.abspath(db_file)}'
    app.config['SQLALCHEMY_BINDS'] = {
        'logs': f'sqlite:///{os.path.abspath(log_db_file)}',
    }
    app.config['SQLALCHEMY_TRACK_MODIFICATIONS'] = False
    app.config['SECRET_KEY'] = os.environ.get('FLASK_SECRET', 'dev-secret-change-me')
    app.config['TOKEN_SECRET'] = os.environ.get('CHAMPIONSHIP_TOKEN_SECRET')
    app.config['TOKEN_MAX_AGE'] = int(
        os.environ.get('CHAMPIONSHIP_TOKEN_MAX_AGE', DEFAULT_TOKEN_MAX_AGE)
    )
    app.config['TOKEN_COOKIE'] = os.environ.get('CHAMPIONSHIP_TOKEN_COOKIE', 'championship_token')
    if config:
        app.config.update(config)

    db.init_app(app)
    login_manager.init_app(app)
    login_manager.login_view = 'login'

    from .models import (
        Client,
        User,
        Team,
        Player,
        CLIENT_ACTIVE,
        DEFAULT_USER_PERMISSIONS,
        ROLES,
        log_site,
        load_user_permissions,
        save_user_permissions,
        permission_matrix,
    )
    from .permissions import (
        ROLE_ADMIN,
        validate_permissions,
        normalize_tenant_id,
        parse_permissions,
    )
    from .tokens import issue_token, identity_from_request
    from .guard import init_guard
    from .access import init_access, permission_required, current_identity
    from .navigation import (
        HOME_MENU_ITEMS,
        NAVIGATION_ITEMS,
        filter_navigation,
        filter_sections,
        filter_sub_items,
    )

    init_guard(app)
    init_access(app)

    @login_manager.request_loader
    def load_user_from_token(req):
        identity = g.get('identity') or identity_from_request(req)
        if identity is None:
            return None
        try:
            return db.session.get(User, int(identity.user_id))
        except ValueError:
            return None

    # ---------- CLI ----------
    @app.cli.command('db-init')
    def db_init():
        db.create_all()
        if not db.session.query(User).filter_by(email="admin@example.com").first():
            u = User(email="admin@example.com", name="Admin", role=ROLE_ADMIN)
            u.set_password("admin123")
            db.session.add(u)
            db.session.commit()
            print("Created default super admin: admin@example.com / admin123")
        print("Database initialized.")

    @app.cli.command('create-admin')
    @click.option('--email', help='Email for the admin user')
    @click.option('--password', help='Password for the admin user')
    @click.option('--client-id', type=int, default=None,
                  help='Scope the admin to one client; omit for a super admin')
    def create_admin(email, password, client_id):
        if not email:
            email = click.prompt("Admin email", default="admin@example.com")
        if not password:
            password = click.prompt("Password", hide_input=True, confirmation_prompt=True)
        if db.session.query(User).filter_by(email=email).first():
            print("User exists")
            return
        if client_id is not None and not db.session.get(Client, client_id):
            print("Client not found")
            return
        u = User(email=email, name="Admin", role=ROLE_ADMIN, client_id=client_id)
        u.set_password(password)
        db.session.add(u)
        db.session.commit()
        print("Admin created.")

    @app.cli.command('create-client')
    @click.option('--name', required=True, help='Display name of the client')
    @click.option('--slug', default=None, help='Unique short name')
    @click.option('--days', type=int, default=None, help='Expire the client after N days')
    def create_client(name, slug, days):
        c = Client(name=name)
        if slug:
            if db.session.query(Client).filter_by(slug=slug).first():
                raise click.ClickException('Slug already in use')
            c.slug = slug
        if days:
            c.expires_at = datetime.utcnow() + timedelta(days=days)
        db.session.add(c)
        db.session.commit()
        print(f"Client {c.name} created with id {c.id}.")

    @app.cli.command('create-user')
    @click.option('--email', required=True)
    @click.option('--name', required=True)
    @click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True)
    @click.option('--client-id', type=int, required=True)
    @click.option('--role', type=click.Choice(ROLES), default='user', show_default=True)
    def create_user(email, name, password, client_id, role):
        email = email.strip().lower()
        if db.session.query(User).filter_by(email=email).first():
            raise click.ClickException('User exists')
        if not db.session.get(Client, client_id):
            raise click.ClickException('Client not found')
        u = User(email=email, name=name, role=role, client_id=client_id,
                 permissions=json.dumps(DEFAULT_USER_PERMISSIONS))
        u.set_password(password)
        db.session.add(u)
        db.session.commit()
        print(f"User {email} created.")

    @app.cli.command('set-permissions')
    @click.option('--email', required=True, help='User whose permissions are replaced')
    @click.option('--json', 'payload', required=True, help='Permission object as JSON')
    def set_permissions(email, payload):
        u = db.session.query(User).filter_by(email=email.strip().lower()).first()
        if not u:
            raise click.ClickException('User not found')
        try:
            perms = validate_permissions(json.loads(payload))
        except ValueError as exc:
            raise click.ClickException(str(exc))
        save_user_permissions(u.id, perms)
        log_site('permissions_update', 'success', f'cli: {u.email}')
        print(f"Permissions updated for {u.email}.")

    # ---------- Helpers ----------
    def identity_or_401():
        identity = current_identity()
        if identity is None:
            abort(401)
        return identity

    def scoped(query, model, identity):
        """Restrict ``query`` to the caller's tenant unless they are global."""
        if identity.tenant_id is None:
            return query
        return query.filter(model.client_id == int(identity.tenant_id))

    def target_client_id(identity):
        if identity.tenant_id is not None:
            return int(identity.tenant_id)
        raw = request.form.get('client_id', '').strip()
        if raw.isdigit() and db.session.get(Client, int(raw)):
            return int(raw)
        return None

    def token_is_stale(user, identity):
        if identity.issued_at is None or user.updated_at is None:
            return True
        # iat has whole-second resolution
        updated = int(user.updated_at.replace(tzinfo=timezone.utc).timestamp())
        return updated > identity.issued_at

    @app.errorhandler(HTTPException)
    def handle_http_error(exc):
        if request.path.startswith('/api/'):
            return jsonify({'error': exc.description}), exc.code
        return exc

    # ---------- Public routes ----------
    @app.route('/')
    def index():
        return render_template('index.html')

    @app.route('/jogos-publicos')
    def public_games():
        clients = db.session.query(Client).filter_by(status=CLIENT_ACTIVE).order_by(Client.name).all()
        return render_template('public_games.html', clients=clients)

    @app.route('/api/clients/public')
    def api_public_clients():
        clients = db.session.query(Client).filter_by(status=CLIENT_ACTIVE).order_by(Client.name).all()
        return jsonify([
            {'id': str(c.id), 'name': c.name, 'slug': c.slug}
            for c in clients if c.is_available()
        ])

    # ---------- Authentication ----------
    @app.route('/auth/login', methods=['GET', 'POST'])
    def login():
        if request.method == 'POST':
            email = request.form.get('email', '').strip().lower()
            password = request.form.get('password', '')
            requested = normalize_tenant_id(request.form.get('client_id'))
            u = db.session.query(User).filter_by(email=email).first()
            if not u or not u.check_password(password):
                flash("Credenciais inválidas", "error")
                log_site('login', 'failure', 'invalid credentials')
                return render_template('login.html'), 401
            client_id = u.tenant_id
            if requested is not None and requested != client_id:
                # Only a global admin may open a session inside another client.
                if not (u.is_admin and client_id is None):
                    flash("Credenciais inválidas", "error")
                    log_site('login', 'failure', 'client mismatch', user_id=u.id)
                    return render_template('login.html'), 401
                client_id = requested
            if client_id is None and not u.is_admin:
                flash("Credenciais inválidas", "error")
                log_site('login', 'failure', 'user without client', user_id=u.id)
                return render_template('login.html'), 401
            if client_id is not None:
                client = db.session.get(Client, int(client_id)) if client_id.isdigit() else None
                if not client or not client.is_available():
                    flash("Cliente indisponível", "error")
                    log_site('login', 'failure', 'client unavailable', user_id=u.id)
                    return render_template('login.html'), 401
            token = issue_token(u, client_id)
            log_site('login', 'success', user_id=u.id)
            response = redirect(url_for('home'))
            response.set_cookie(
                app.config['TOKEN_COOKIE'],
                token,
                max_age=app.config['TOKEN_MAX_AGE'],
                httponly=True,
                samesite='Lax',
            )
            return response
        return render_template('login.html')

    @app.route('/auth/logout')
    def logout():
        identity = current_identity()
        response = redirect(url_for('login'))
        response.delete_cookie(app.config['TOKEN_COOKIE'])
        log_site('logout', 'success', user_id=identity.user_id if identity else None)
        return response

    @app.route('/api/auth/validate-session')
    def validate_session():
        identity = identity_or_401()
        if not current_user.is_authenticated:
            return jsonify({'error': 'Usuário não encontrado', 'reason': 'user-not-found'}), 401
        u = current_user
        if token_is_stale(u, identity):
            return jsonify({
                'error': 'Sessão expirada devido à atualização de permissões',
                'reason': 'permissions-updated',
            }), 401
        return jsonify({'valid': True, 'user': u.to_dict()})

    # ---------- Pages ----------
    @app.route('/home')
    def home():
        identity = current_identity()
        navigation = [
            (item, filter_sub_items(identity, item))
            for item in filter_navigation(identity, NAVIGATION_ITEMS)
        ]
        return render_template(
            'home.html',
            navigation=navigation,
            menu=filter_navigation(identity, HOME_MENU_ITEMS),
            admin_sections=filter_sections(identity),
        )

    @app.route('/equipes')
    @permission_required('teams')
    def teams():
        identity = current_identity()
        items = scoped(db.session.query(Team), Team, identity).order_by(Team.name).all()
        return render_template('teams.html', teams=items)

    @app.route('/cadastrar/equipes', methods=['GET', 'POST'])
    @permission_required('teams', 'create')
    def new_team():
        identity = current_identity()
        if request.method == 'POST':
            name = request.form.get('name', '').strip()
            client_id = target_client_id(identity)
            if not name or client_id is None:
                flash('Nome da equipe e cliente são obrigatórios.', 'error')
                return redirect(url_for('new_team'))
            db.session.add(Team(name=name, client_id=client_id))
            db.session.commit()
            log_site('team_create', 'success', name, user_id=identity.user_id)
            flash('Equipe cadastrada.', 'success')
            return redirect(url_for('teams'))
        return render_template('team_form.html')

    @app.route('/jogadores')
    @permission_required()
    def players():
        identity = current_identity()
        items = scoped(db.session.query(Player), Player, identity).order_by(Player.name).all()
        return render_template('players.html', players=items)

    @app.route('/cadastrar/jogadores', methods=['GET', 'POST'])
    @permission_required(action='create')
    def new_player():
        identity = current_identity()
        teams_in_scope = scoped(db.session.query(Team), Team, identity).order_by(Team.name).all()
        if request.method == 'POST':
            name = request.form.get('name', '').strip()
            team_id = request.form.get('team_id', type=int)
            team = next((t for t in teams_in_scope if t.id == team_id), None)
            if not name or team is None:
                flash('Nome do jogador e equipe são obrigatórios.', 'error')
                return redirect(url_for('new_player'))
            db.session.add(Player(name=name, team=team, client_id=team.client_id))
            db.session.commit()
            log_site('player_create', 'success', name, user_id=identity.user_id)
            flash('Jogador cadastrado.', 'success')
            return redirect(url_for('players'))
        return render_template('player_form.html', teams=teams_in_scope)

    @app.route('/backup')
    def backup():
        identity = current_identity()
        query = db.session.query(Client)
        if identity.tenant_id is not None:
            query = query.filter(Client.id == int(identity.tenant_id))
        clients = query.order_by(Client.name).all()
        return render_template('backup.html', clients=clients)

    @app.route('/admin/gerar-jogos')
    def generate_games():
        identity = current_identity()
        items = scoped(db.session.query(Team), Team, identity).order_by(Team.name).all()
        return render_template('generate_games.html', teams=items)

    # ---------- Permission administration ----------
    @app.route('/admin/permissoes', methods=['GET', 'POST'])
    @permission_required('users', super_admin_only=True)
    def admin_permissions():
        identity = current_identity()
        if request.method == 'POST':
            uid = request.form.get('user_id', type=int)
            target = db.session.get(User, uid) if uid else None
            if not target:
                abort(404)
            perms = {}
            for module, _label, actions in permission_matrix():
                for action, _action_label in actions:
                    if request.form.get(f'perm_{module}_{action}'):
                        perms.setdefault(module, {})[action] = True
            save_user_permissions(target.id, perms)
            log_site('permissions_update', 'success', target.email, user_id=identity.user_id)
            flash('Permissões atualizadas. O usuário precisará entrar novamente.', 'success')
            return redirect(url_for('admin_permissions'))
        users = db.session.query(User).order_by(User.name).all()
        return render_template(
            'admin/permissions.html',
            users=users,
            matrix=permission_matrix(),
        )

    @app.route('/api/admin/users/<int:uid>/permissions', methods=['GET', 'PUT'])
    def api_user_permissions(uid):
        identity = identity_or_401()
        if not identity.is_any_admin:
            abort(403, description='Acesso negado')
        target = db.session.get(User, uid)
        if not target:
            abort(404, description='Usuário não encontrado')
        if not identity.is_super_admin:
            if target.tenant_id != identity.tenant_id:
                abort(403, description='Sem permissão para acessar este usuário')
            if request.method == 'PUT' and target.is_admin:
                abort(403, description='Sem permissão para editar este usuário')
        if request.method == 'GET':
            return jsonify({
                'id': target.id,
                'name': target.name,
                'email': target.email,
                'clientId': target.tenant_id,
                'permissions': load_user_permissions(target.id),
            })
        body = request.get_json(silent=True)
        if not isinstance(body, dict):
            abort(400, description='Permissions must be an object')
        raw = body.get('permissions', body.get('permissoes'))
        try:
            perms = validate_permissions(raw)
        except ValueError as exc:
            abort(400, description=str(exc))
        save_user_permissions(target.id, perms)
        log_site('permissions_update', 'success', target.email, user_id=identity.user_id)
        return jsonify({
            'id': target.id,
            'name': target.name,
            'email': target.email,
            'permissions': parse_permissions(target.permissions),
            'message': 'Permissões atualizadas. O usuário precisará entrar novamente.',
        })

    return app
