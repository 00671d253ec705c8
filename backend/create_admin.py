"""Create or update an admin dashboard account.

Usage:
    python -m backend.create_admin admin@example.com

The password is read from ADMIN_PASSWORD when set, otherwise prompted for.
"""
import argparse
import getpass
import os
import sys

from backend.auth.passwords import hash_password
from backend.database import Base, SessionLocal, engine
from backend.models.user import ROLE_ADMIN, User

MIN_PASSWORD_LENGTH = 12


def upsert_admin(db, email: str, password: str) -> User:
    normalized = email.strip().lower()
    user = db.query(User).filter(User.email == normalized).first()
    if user is None:
        user = User(email=normalized)
        db.add(user)
    user.hashed_password = hash_password(password)
    user.role = ROLE_ADMIN
    db.commit()
    db.refresh(user)
    return user


def _read_password() -> str:
    password = os.getenv('ADMIN_PASSWORD')
    if password:
        return password
    password = getpass.getpass('Password: ')
    if password != getpass.getpass('Confirm password: '):
        print('Passwords do not match.', file=sys.stderr)
        sys.exit(1)
    return password


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description='Create or update an admin account.')
    parser.add_argument('email')
    args = parser.parse_args(argv)

    password = _read_password()
    if len(password) < MIN_PASSWORD_LENGTH:
        print(f'Password must be at least {MIN_PASSWORD_LENGTH} characters.', file=sys.stderr)
        sys.exit(1)

    Base.metadata.create_all(bind=engine, tables=[User.__table__])
    db = SessionLocal()
    try:
        user = upsert_admin(db, args.email, password)
    finally:
        db.close()
    print(f'Admin account ready: {user.email}')


if __name__ == '__main__':
    main()
