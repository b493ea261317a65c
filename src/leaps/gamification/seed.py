"""Activity and badge catalog seed data, upserted on startup."""

from __future__ import annotations

import logging

from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession

from leaps.db.models import Activity, Badge
from leaps.domain import ACTIVITY_SEED_DATA

logger = logging.getLogger(__name__)

BADGE_SEED_DATA: list[dict] = [
    {
        "code": "FIRST_STEPS",
        "name": "First Steps",
        "description": "Complete the Learn stage",
        "criteria": {"activity": "LEARN", "approved_count": 1},
        "icon_url": "/badges/first-steps.svg",
    },
    {
        "code": "IN_CLASS_INNOVATOR",
        "name": "In-Class Innovator",
        "description": "Run an approved AI activity with your students",
        "criteria": {"activity": "EXPLORE", "approved_count": 1},
        "icon_url": "/badges/in-class-innovator.svg",
    },
    {
        "code": "AMPLIFIER",
        "name": "Amplifier",
        "description": "Train peers and students on what you learned",
        "criteria": {"activity": "AMPLIFY", "approved_count": 1},
        "icon_url": "/badges/amplifier.svg",
    },
    {
        "code": "COMMUNITY_VOICE",
        "name": "Community Voice",
        "description": "Share your story publicly",
        "criteria": {"activity": "PRESENT", "approved_count": 1},
        "icon_url": "/badges/community-voice.svg",
    },
    {
        "code": "SERIAL_PRESENTER",
        "name": "Serial Presenter",
        "description": "Have three Present submissions approved",
        "criteria": {"activity": "PRESENT", "approved_count": 3},
        "icon_url": "/badges/serial-presenter.svg",
    },
]


async def seed_activities(db: AsyncSession) -> int:
    """Upsert the five LEAPS stages. Returns number of activities seeded."""
    for activity in ACTIVITY_SEED_DATA:
        stmt = pg_insert(Activity).values(**activity)
        stmt = stmt.on_conflict_do_update(
            index_elements=["code"],
            set_={"name": stmt.excluded.name, "default_points": stmt.excluded.default_points},
        )
        await db.execute(stmt)
    return len(ACTIVITY_SEED_DATA)


async def seed_badges(db: AsyncSession) -> int:
    """Upsert the badge catalog. Returns number of badges seeded."""
    for badge_data in BADGE_SEED_DATA:
        stmt = pg_insert(Badge).values(**badge_data)
        stmt = stmt.on_conflict_do_update(
            index_elements=["code"],
            set_={
                "name": stmt.excluded.name,
                "description": stmt.excluded.description,
                "criteria": stmt.excluded.criteria,
                "icon_url": stmt.excluded.icon_url,
            },
        )
        await db.execute(stmt)
    return len(BADGE_SEED_DATA)


async def seed_catalog(db: AsyncSession) -> None:
    """Seed activities first (badges reference them by code in their criteria)."""
    activities = await seed_activities(db)
    badges = await seed_badges(db)
    await db.commit()
    logger.info("Seeded %d activities and %d badges", activities, badges)
