"""Seed an admin enrollment code out of band.

Usage:
    python -m scripts.seed_admin_code
    python -m scripts.seed_admin_code --expires-in-hours 24

Redeeming the code makes the redeemer an administrator while no admin
exists yet. Once an admin exists, admin codes must be issued by an admin.
"""
import argparse
import asyncio
import sys
from datetime import datetime, timedelta, timezone

from agora.database import async_session_maker, init_db, close_db
from agora.kernel.identity.enrollment import EnrollmentLedger
from agora.kernel.permissions.escalation import EscalationGuard, EscalationPhase
from agora.logging_config import configure_logging


async def seed(expires_in_hours=None):
    await init_db()
    try:
        async with async_session_maker() as session:
            expires_at = None
            if expires_in_hours:
                expires_at = datetime.now(timezone.utc) + timedelta(hours=expires_in_hours)

            state = await EscalationGuard(session).state()
            if state.phase == EscalationPhase.ADMIN_EXISTS:
                print("An administrator already exists; a seeded code will not grant admin.", file=sys.stderr)

            entry = await EnrollmentLedger(session).seed_admin_code(expires_at=expires_at)
            await session.commit()
            return entry.code, expires_at
    finally:
        await close_db()


def main():
    parser = argparse.ArgumentParser(description="Seed an admin enrollment code")
    parser.add_argument("--expires-in-hours", type=int, default=None)
    args = parser.parse_args()

    configure_logging(log_level="WARNING")
    code, expires_at = asyncio.run(seed(args.expires_in_hours))
    print(f"Admin code: {code}")
    if expires_at:
        print(f"Expires:    {expires_at.isoformat()}")


if __name__ == "__main__":
    main()
