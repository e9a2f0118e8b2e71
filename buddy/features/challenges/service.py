"""Challenge rosters. Membership scopes the challenge leaderboards."""
from __future__ import annotations

from typing import List, Optional

from buddy.core.clock import Clock, SystemClock
from buddy.core.logging import log_event
from buddy.core.validation import require_challenge_id, require_user_id
from buddy.features.gamification.store import GamificationStore
from buddy.models.challenge import ChallengeMembership


class ChallengeRoster:
    """Challenge membership (idempotent joins); scopes challenge leaderboards."""

    def __init__(self, store: GamificationStore, *, clock: Optional[Clock] = None):
        self._store = store
        self._clock = clock or SystemClock()

    def join(self, challenge_id: str, user_id: str) -> bool:
        """Enroll a user. Returns False when the user was already a member."""
        require_challenge_id(challenge_id)
        require_user_id(user_id)
        joined = self._store.add_participant(
            ChallengeMembership(challenge_id=challenge_id, user_id=user_id, joined_at=self._clock.now())
        )
        if joined:
            log_event("info", "challenge.joined", user_id=user_id, event_type="challenge.join", extra={"challenge_id": challenge_id})
        return joined

    def participants(self, challenge_id: str) -> List[str]:
        return self._store.list_participants(require_challenge_id(challenge_id))
