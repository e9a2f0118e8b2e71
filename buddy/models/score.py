from __future__ import annotations

from dataclasses import dataclass

POINTS_PER_LEVEL = 100
# Largest point total a store must hold (signed 64-bit column)
MAX_POINTS = 2**63 - 1


@dataclass(frozen=True)
class UserScore:
    """
    Points snapshot for one user. Level is derived from points and is never
    written independently of them.
    """

    user_id: str
    points: int = 0
    level: int = 1
    completed_goals: int = 0
    version: int = 0
