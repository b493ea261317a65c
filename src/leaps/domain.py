"""LEAPS domain constants: stages, statuses, roles, ledger sources."""

from __future__ import annotations

from typing import Literal

ActivityCode = Literal["LEARN", "EXPLORE", "AMPLIFY", "PRESENT", "SHINE"]
SubmissionStatus = Literal["PENDING", "APPROVED", "REJECTED"]
Visibility = Literal["PUBLIC", "PRIVATE"]
Role = Literal["PARTICIPANT", "REVIEWER", "ADMIN", "SUPERADMIN"]
LedgerSource = Literal["FORM", "WEBHOOK", "MANUAL"]

ACTIVITY_CODES: tuple[str, ...] = ("LEARN", "EXPLORE", "AMPLIFY", "PRESENT", "SHINE")
SUBMISSION_STATUSES: tuple[str, ...] = ("PENDING", "APPROVED", "REJECTED")
VISIBILITIES: tuple[str, ...] = ("PUBLIC", "PRIVATE")
ROLES: tuple[str, ...] = ("PARTICIPANT", "REVIEWER", "ADMIN", "SUPERADMIN")
LEDGER_SOURCES: tuple[str, ...] = ("FORM", "WEBHOOK", "MANUAL")

REVIEWER_ROLES: tuple[str, ...] = ("REVIEWER", "ADMIN", "SUPERADMIN")

# Cohort filter value meaning "no cohort filter"
ALL_COHORTS = "ALL"

# Activity catalog seeded on startup
ACTIVITY_SEED_DATA: list[dict] = [
    {"code": "LEARN", "name": "Learn", "default_points": 20},
    {"code": "EXPLORE", "name": "Explore", "default_points": 50},
    {"code": "AMPLIFY", "name": "Amplify", "default_points": 2},
    {"code": "PRESENT", "name": "Present", "default_points": 20},
    {"code": "SHINE", "name": "Shine", "default_points": 0},
]


def parse_activity_code(value: str | None) -> str | None:
    """Return the canonical activity code for value, or None if it is not a stage.

    Accepts any casing ("learn", "Learn", "LEARN").
    """
    if not value:
        return None
    code = value.strip().upper()
    return code if code in ACTIVITY_CODES else None


def role_rank(role: str) -> int:
    """Position of a role in the privilege order. Unknown roles rank below PARTICIPANT."""
    try:
        return ROLES.index(role.upper())
    except ValueError:
        return -1


def has_role(role: str, minimum: str) -> bool:
    """True if role is at least as privileged as minimum."""
    return role_rank(role) >= role_rank(minimum) >= 0
