"""
Add database-level double-booking guard to bookings table

Migration to add:
- btree_gist extension (needed to mix = and && in one exclusion constraint)
- ex_bookings_confirmed_no_overlap: no two confirmed bookings of the same host
  may have overlapping [start_time, end_time) ranges

PostgreSQL only. The application lock serializes writers; this constraint is
the last line if that lock is bypassed or expires mid-write.

Run with: python migrations/add_booking_overlap_constraint.py
"""

import sys
from pathlib import Path

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from sqlalchemy import text

from app.database import engine
from app.domain.scheduling.repository import OVERLAP_CONSTRAINT


def upgrade():
    """Add the overlap exclusion constraint"""
    if engine.dialect.name != "postgresql":
        print(f"ℹ️  Skipping: exclusion constraints need PostgreSQL (got {engine.dialect.name})")
        return

    with engine.connect() as conn:
        # Check if constraint already exists to make migration idempotent
        result = conn.execute(
            text("SELECT 1 FROM pg_constraint WHERE conname = :name"),
            {"name": OVERLAP_CONSTRAINT},
        )
        if result.first():
            print(f"ℹ️  {OVERLAP_CONSTRAINT} already exists")
            return

        conn.execute(text("CREATE EXTENSION IF NOT EXISTS btree_gist"))
        conn.execute(text(f"""
            ALTER TABLE bookings
            ADD CONSTRAINT {OVERLAP_CONSTRAINT}
            EXCLUDE USING gist (
                host_id WITH =,
                tstzrange(start_time, end_time, '[)') WITH &&
            )
            WHERE (status = 'confirmed')
        """))
        conn.commit()
        print(f"✅ Added {OVERLAP_CONSTRAINT}")
        print("\n✅ Migration completed successfully!")


def downgrade():
    """Remove the overlap exclusion constraint"""
    if engine.dialect.name != "postgresql":
        return

    with engine.connect() as conn:
        conn.execute(text(f"ALTER TABLE bookings DROP CONSTRAINT IF EXISTS {OVERLAP_CONSTRAINT}"))
        conn.commit()
        print("✅ Migration rolled back successfully!")


if __name__ == "__main__":
    import argparse

    parser = argparse.ArgumentParser(description="Manage booking overlap constraint migration")
    parser.add_argument("--down", action="store_true", help="Rollback the migration")
    args = parser.parse_args()

    if args.down:
        print("Rolling back migration...")
        downgrade()
    else:
        print("Running migration...")
        upgrade()
