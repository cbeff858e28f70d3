#!/usr/bin/env python
"""Populate the development database with demo tenants, users and rosters."""
from __future__ import annotations

import argparse
import json
from datetime import datetime, timedelta
from typing import Sequence

from pathlib import Path
import sys

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from championship.app import create_app, db
from championship import models


def ensure_client(name: str, slug: str, days: int | None = 365) -> models.Client:
    client = models.Client.query.filter_by(slug=slug).first()
    if client is None:
        expires = datetime.utcnow() + timedelta(days=days) if days else None
        client = models.Client(name=name, slug=slug, expires_at=expires)
        db.session.add(client)
        db.session.commit()
    return client


def ensure_super_admin() -> models.User:
    """The global admin: role admin with no client."""
    admin = models.User.query.filter_by(email="admin@example.com").first()
    if admin is None:
        admin = models.User(email="admin@example.com", name="Admin", role=models.ROLE_ADMIN)
        admin.set_password("admin123")
        db.session.add(admin)
        db.session.commit()
    return admin


def create_user(
    name: str,
    email: str,
    client: models.Client,
    role: str = models.ROLE_USER,
    permissions: dict | None = None,
    password: str = "user123",
) -> models.User:
    user = models.User.query.filter_by(email=email).first()
    if user is None:
        user = models.User(name=name, email=email, role=role, client=client)
        user.set_password(password)
        if role == models.ROLE_USER:
            user.permissions = json.dumps(permissions or models.DEFAULT_USER_PERMISSIONS, sort_keys=True)
        db.session.add(user)
    return user


def attach_roster(client: models.Client, team_name: str, players: Sequence[str]) -> models.Team:
    team = models.Team.query.filter_by(client_id=client.id, name=team_name).first()
    if team is None:
        team = models.Team(name=team_name, client_id=client.id)
        db.session.add(team)
    for player_name in players:
        if not any(p.name == player_name for p in team.players):
            db.session.add(models.Player(name=player_name, team=team, client_id=client.id))
    db.session.commit()
    return team


def build_sample_world(reset: bool = False) -> None:
    if reset:
        db.drop_all()
    db.create_all()

    ensure_super_admin()
    norte = ensure_client("Liga Norte", "norte")
    sul = ensure_client("Liga Sul", "sul", days=30)
    ensure_client("Liga Encerrada", "encerrada", days=None).status = models.CLIENT_INACTIVE

    create_user("Admin Norte", "admin.norte@example.com", norte, role=models.ROLE_ADMIN)
    create_user("Admin Sul", "admin.sul@example.com", sul, role=models.ROLE_ADMIN)
    # default read-only operator
    create_user("Operador Norte", "operador@example.com", norte)
    # may schedule matches through the games grant
    create_user(
        "Mesa Norte",
        "mesa@example.com",
        norte,
        permissions={
            "teams": {"view": True},
            "players": {"view": True, "create": True},
            "games": {"view": True, "create": True, "edit": True},
        },
    )
    create_user(
        "Relatorios Sul",
        "relatorios@example.com",
        sul,
        permissions={"reports": {"view": True, "export": True}, "standings": {"view": True}},
    )
    db.session.commit()

    attach_roster(norte, "Tigres", ["Ana", "Bruno", "Carla"])
    attach_roster(norte, "Falcoes", ["Diego", "Elisa"])
    attach_roster(sul, "Leoes", ["Fabio", "Gabriela", "Heitor"])

    db.session.commit()
    print("Database populated with demo content.")


def main() -> None:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--reset", action="store_true", help="drop and recreate the database before loading data")
    args = parser.parse_args()

    app = create_app()
    with app.app_context():
        build_sample_world(reset=args.reset)


if __name__ == "__main__":
    main()
