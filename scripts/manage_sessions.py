#!/usr/bin/env python3
import argparse
import getpass

from sqlmodel import Session, select

from skillcast.db.init_db import init_db
from skillcast.db.session import engine
from skillcast.models.enums import UserRole
from skillcast.models.user import User
from skillcast.services.auth_service import create_user
from skillcast.services.refresh_store import RefreshStore


def create_admin(session: Session, username: str, email: str, password: str) -> User:
    user = create_user(session, username, email, password)
    user.role = UserRole.ADMIN
    session.add(user)
    session.commit()
    session.refresh(user)
    return user


def revoke_user_sessions(session: Session, email: str) -> int:
    user = session.exec(select(User).where(User.email == email)).first()
    if not user:
        raise SystemExit(f"no user with email {email}")
    return RefreshStore(session).revoke_all(user.id)


def main() -> None:
    parser = argparse.ArgumentParser(description='Administer users and refresh sessions.')
    sub = parser.add_subparsers(dest='command', required=True)

    admin = sub.add_parser('create-admin', help='Create an admin account')
    admin.add_argument('--username', required=True)
    admin.add_argument('--email', required=True)
    admin.add_argument('--password', help='Prompted for when omitted')

    sub.add_parser('purge-expired', help='Delete refresh tokens past their expiry')

    revoke = sub.add_parser('revoke', help='Sign a user out of every session')
    revoke.add_argument('--email', required=True)

    args = parser.parse_args()
    init_db()
    with Session(engine) as session:
        if args.command == 'create-admin':
            password = args.password or getpass.getpass('Password: ')
            user = create_admin(session, args.username, args.email, password)
            print(f"created admin {user.username} ({user.id})")
        elif args.command == 'purge-expired':
            print(f"purged {RefreshStore(session).purge_expired()} expired refresh token(s)")
        elif args.command == 'revoke':
            print(f"revoked {revoke_user_sessions(session, args.email)} refresh token(s)")


if __name__ == '__main__':
    main()
