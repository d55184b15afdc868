"""Small maintenance commands: ``python -m app.cli --initdb --seed``."""

import argparse

from app.core.database import SessionLocal, init_db
from app.core.logging import setup_logging
from app.models import models

logger = setup_logging()

SEED_USERS = [
    dict(name='Alice', email='alice@example.com'),
    dict(name='Bob', email='bob@example.com'),
]
SEED_BOOKS = [
    dict(title='Data Engineering with Python', author='J. Reader', isbn='9781111111111',
         genre='Technology', total_copies=3),
    dict(title='Designing Data-Intensive Applications', author='Martin Kleppmann', isbn='9780980000000',
         genre='Technology', total_copies=2),
]


def seed(db) -> None:
    # idempotent: only fills empty tables
    if db.query(models.User).count() == 0:
        db.add_all([models.User(**u) for u in SEED_USERS])
    if db.query(models.Book).count() == 0:
        db.add_all([
            models.Book(available_copies=b['total_copies'], version=1, **b) for b in SEED_BOOKS
        ])
    db.commit()
    logger.info('Seeded sample data')


def main(argv=None) -> None:
    parser = argparse.ArgumentParser(description='E-Library small utilities')
    parser.add_argument('--initdb', action='store_true', help='Create tables')
    parser.add_argument('--seed', action='store_true', help='Seed sample data')
    args = parser.parse_args(argv)
    init_db()
    if args.seed:
        db = SessionLocal()
        try:
            seed(db)
        finally:
            db.close()
    print('Done')


if __name__ == '__main__':
    main()
