from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True)
class ChallengeMembership:
    """A user's enrollment in a challenge; scopes challenge leaderboards."""

    challenge_id: str
    user_id: str
    joined_at: datetime
