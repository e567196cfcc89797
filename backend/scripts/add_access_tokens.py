"""Backfill access tokens for teams created before tokens existed.

Usage: python scripts/add_access_tokens.py [--dry-run]

Every team without an access token gets a fresh one; the tokens are
printed so facilitators can hand them out.
"""
import sys
import argparse
import pathlib
ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))
from sqlmodel import Session
from workshop.database import engine, create_db_and_tables
from workshop import repositories, services


def main(dry_run: bool = False) -> int:
    create_db_and_tables()
    with Session(engine) as session:
        repo = repositories.TeamRepository(session)
        teams = repo.list_missing_access_token()
        if not teams:
            print('All teams already have access tokens')
            return 0
        for team in teams:
            token = services.generate_access_token()
            if not dry_run:
                team.access_token = token
                repo.save(team)
            print(f'{team.code}\t{team.name}\t{token}')
        verb = 'Would update' if dry_run else 'Updated'
        print(f'{verb} {len(teams)} team(s)')
    return 0


if __name__ == '__main__':
    parser = argparse.ArgumentParser()
    parser.add_argument('--dry-run', action='store_true', help='Print the tokens without saving them')
    args = parser.parse_args()
    sys.exit(main(dry_run=args.dry_run))
