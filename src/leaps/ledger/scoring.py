"""Points awarded per approved submission."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

AMPLIFY_MAX_PEERS = 50
AMPLIFY_MAX_STUDENTS = 200
AMPLIFY_POINTS_PER_PEER = 2
AMPLIFY_POINTS_PER_STUDENT = 1

FLAT_POINTS: dict[str, int] = {
    "LEARN": 20,
    "EXPLORE": 50,
    "PRESENT": 20,
    "SHINE": 0,
}


def payload_count(payload: Mapping[str, Any] | None, *keys: str) -> int:
    """First non-negative integer found under any of `keys`, else 0.

    Forms post camelCase (studentsTrained); older webhook payloads use
    snake_case (students_trained).
    """
    if not payload:
        return 0
    for key in keys:
        value = payload.get(key)
        if value is None or isinstance(value, bool):
            continue
        try:
            number = int(float(value))
        except (TypeError, ValueError):
            continue
        return max(number, 0)
    return 0


def compute_points(activity: str, payload: Mapping[str, Any] | None = None) -> int:
    """Points for one approved submission.

    LEARN 20, EXPLORE 50, PRESENT 20, SHINE 0. AMPLIFY scores
    2 per peer trained (max 50 peers) plus 1 per student (max 200).
    """
    code = activity.upper()
    if code == "AMPLIFY":
        peers = min(payload_count(payload, "peersTrained", "peers_trained"), AMPLIFY_MAX_PEERS)
        students = min(payload_count(payload, "studentsTrained", "students_trained"), AMPLIFY_MAX_STUDENTS)
        return peers * AMPLIFY_POINTS_PER_PEER + students * AMPLIFY_POINTS_PER_STUDENT
    return FLAT_POINTS.get(code, 0)
