"""Create a facilitator (admin) account.

Usage: python scripts/create_admin.py [--username NAME] [--password PASS]

When the username already exists the script reports it and leaves the
account untouched.
"""
import sys
import argparse
import getpass
import pathlib
# Ensure `backend/` is on sys.path so `workshop` package imports work when running this script directly
ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))
from sqlmodel import Session
from workshop.database import engine, create_db_and_tables
from workshop import repositories, services


def main(username: str, password: str) -> int:
    create_db_and_tables()
    with Session(engine) as session:
        existing = repositories.UserRepository(session).get_by_username(username)
        if existing:
            print(f'User {username!r} already exists (role: {existing.role})')
            return 0
        user = services.AuthService(session).register(username, password, role='admin')
        print(f'Admin user created: {user.username} (id {user.id})')
        print('Please change the password after first login')
    return 0


if __name__ == '__main__':
    parser = argparse.ArgumentParser()
    parser.add_argument('--username', default='admin', help='Admin username')
    parser.add_argument('--password', help='Admin password (prompted when omitted)')
    args = parser.parse_args()
    password = args.password or getpass.getpass('Password: ')
    if not password:
        parser.error('password must not be empty')
    sys.exit(main(args.username, password))
