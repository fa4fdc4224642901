"""Maintenance utilities: table creation, demo seed, overdue sweep, inventory audit.

    libdesk-admin initdb
    libdesk-admin seed
    libdesk-admin sweep-overdue [--dry-run] [--date YYYY-MM-DD]
    libdesk-admin audit
"""

import argparse
import sys
from datetime import date

from libdesk.core.config import configure_logging
from libdesk.core.database import Base, SessionLocal, engine, transactional
from libdesk.models.models import Book, Student, User, ROLE_ADMIN, ROLE_LIBRARIAN
from libdesk.services.circulation import CirculationService
from libdesk.services.inventory import InventoryLedger
from libdesk.services.repository import CirculationRepository
from libdesk.services.settings import SettingsProvider

logger = configure_logging()


def seed(db) -> None:
    # quick idempotent seed
    with transactional(db):
        if db.query(User).count() == 0:
            db.add_all([
                User(name='Ava Admin', email='admin@school.example', role=ROLE_ADMIN),
                User(name='Lee Librarian', email='librarian@school.example', role=ROLE_LIBRARIAN),
            ])
        if db.query(Student).count() == 0:
            db.add_all([
                Student(student_number='2026-0001', first_name='Ana', last_name='Reyes', grade_level='4', section='A'),
                Student(student_number='2026-0002', first_name='Ben', last_name='Cruz', grade_level='5', section='B'),
                Student(student_number='2020-0107', first_name='Carla', last_name='Santos', grade_level='6',
                        status='graduated'),
            ])
        if db.query(Book).count() == 0:
            db.add_all([
                Book(accession_number='ACC-0001', title='Charlotte\'s Web', author='E. B. White',
                     copies_total=3, copies_available=3),
                Book(accession_number='ACC-0002', title='Matilda', author='Roald Dahl',
                     copies_total=1, copies_available=1),
            ])
    SettingsProvider(SessionLocal).reset_defaults()
    logger.info('Seeded sample data')


def sweep_overdue(db, today: date, dry_run: bool) -> int:
    svc = CirculationService(db)
    if dry_run:
        candidates = svc.list_overdue(today)
        for t in candidates:
            print(f"{t.id}\t{t.student.full_name}\t{t.book.title[:30]}\tdue={t.due_date}\t"
                  f"{(today - t.due_date).days} days")
        print(f"DRY RUN: would mark {len(candidates)} transaction(s) overdue")
        return len(candidates)
    count = svc.promote_overdue(today)
    print(f"Updated {count} transaction(s) to overdue status")
    return count


def audit(db) -> int:
    mismatches = InventoryLedger(CirculationRepository(db)).audit()
    for m in mismatches:
        print(f"{m.accession_number}\tavailable={m.copies_available}\texpected={m.expected_available}\t"
              f"active={m.active_transactions}")
    print(f"{len(mismatches)} book(s) with inconsistent inventory")
    return len(mismatches)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog='libdesk-admin', description='Circulation desk utilities')
    sub = parser.add_subparsers(dest='command', required=True)
    sub.add_parser('initdb', help='Create tables')
    sub.add_parser('seed', help='Seed sample data and default settings')
    sweep = sub.add_parser('sweep-overdue', help='Mark past-due borrowed transactions as overdue')
    sweep.add_argument('--dry-run', action='store_true', help='Show what would be updated')
    sweep.add_argument('--date', type=date.fromisoformat, default=None, help='Reference date (default today)')
    sub.add_parser('audit', help='Check copies_available against active transactions')
    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    Base.metadata.create_all(bind=engine)
    if args.command == 'initdb':
        print('Done')
        return 0
    db = SessionLocal()
    try:
        if args.command == 'seed':
            seed(db)
        elif args.command == 'sweep-overdue':
            sweep_overdue(db, args.date or date.today(), args.dry_run)
        elif args.command == 'audit':
            return 1 if audit(db) else 0
    finally:
        db.close()
    return 0


if __name__ == '__main__':
    sys.exit(main())
