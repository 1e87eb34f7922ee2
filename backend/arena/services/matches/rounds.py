"""Round resolution: buffers choices per match and settles each round.

The buffer maps match id -> {slot: choice} and only ever holds the round in
progress. All reads and writes of a match's entry happen under that match's
lock, so the submission that completes the pair is the only one that
resolves it.
"""
import random
from dataclasses import dataclass
from typing import Dict, Optional

from flask import current_app

from arena import db
from arena.models import KIND_COMPUTER, STATE_ACTIVE, STATE_FINISHED
from . import registry
from .exceptions import InvalidRequest
from .locks import match_locks, with_match_lock, current_state

CHOICES = ('rock', 'paper', 'scissors')
# choice -> the choice it defeats
BEATS = {'rock': 'scissors', 'scissors': 'paper', 'paper': 'rock'}

OUTCOME_TIE = 'tie'
OUTCOME_PLAYER1 = 'player1'
OUTCOME_PLAYER2 = 'player2'


def round_outcome(choice1: str, choice2: str) -> str:
    if choice1 == choice2:
        return OUTCOME_TIE
    if BEATS[choice1] == choice2:
        return OUTCOME_PLAYER1
    return OUTCOME_PLAYER2


@dataclass
class PendingRound:
    match_id: int
    slot: int


@dataclass
class RoundResult:
    match_id: int
    kind: str
    choice1: str
    choice2: str
    outcome: str
    score1: int
    score2: int
    finished: bool = False
    winner_id: Optional[int] = None

    def to_dict(self):
        return {
            'matchId': self.match_id,
            'choice1': self.choice1,
            'choice2': self.choice2,
            'outcome': self.outcome,
            'scores': {'player1': self.score1, 'player2': self.score2},
        }


class RoundResolver:
    def __init__(self, rng=None):
        self.rng = rng or random.SystemRandom()
        self._buffers: Dict[int, Dict[int, str]] = {}

    def pending(self, match_id):
        """Copy of the buffered choices for a match."""
        with match_locks.hold(match_id):
            return dict(self._buffers.get(match_id, {}))

    def discard(self, match_id):
        with match_locks.hold(match_id):
            self._buffers.pop(match_id, None)

    def discard_all(self):
        for match_id in list(self._buffers):
            self.discard(match_id)

    def submit(self, account_id, choice):
        """Record a choice for the account's active match.

        Returns None when the submission is ignored (no match, or the match
        is not active), a PendingRound while the opponent has not chosen yet,
        or the RoundResult once the round settles.
        """
        if choice not in CHOICES:
            raise InvalidRequest(f"Unknown choice: {choice!r}")
        match = registry.find_active_match(account_id)
        if match is None or match.state != STATE_ACTIVE:
            current_app.logger.info(f"[round-ignore] player={account_id} no active match")
            return None
        match_id, kind = match.id, match.kind
        slot = match.slot_of(account_id)

        with match_locks.hold(match_id):
            # The lookup above ran unlocked; an abandon may have finished since
            if current_state(match_id) != STATE_ACTIVE:
                self._buffers.pop(match_id, None)
                current_app.logger.info(f"[round-ignore] match={match_id} player={account_id} no longer active")
                return None
            pending = dict(self._buffers.get(match_id, {}))
            pending[slot] = choice
            if kind == KIND_COMPUTER:
                pending[2] = self.rng.choice(CHOICES)
            if len(pending) < 2:
                self._buffers[match_id] = pending
                current_app.logger.info(f"[round-pending] match={match_id} slot={slot}")
                return PendingRound(match_id, slot)
            # Buffer is only cleared once the round is stored
            result = self.resolve(match_id, pending[1], pending[2])
            self._buffers.pop(match_id, None)
            return result

    def resolve(self, match_id, choice1, choice2):
        threshold = int(current_app.config.get('WIN_THRESHOLD', 3))
        with registry.transaction('resolve_round'):
            match = with_match_lock(match_id).first()
            if match is None or match.state != STATE_ACTIVE:
                # Abandoned while the round was being collected
                return None
            outcome = round_outcome(choice1, choice2)
            if outcome == OUTCOME_PLAYER1:
                match.score1 += 1
            elif outcome == OUTCOME_PLAYER2:
                match.score2 += 1

            finished = match.score1 >= threshold or match.score2 >= threshold
            if finished:
                match.state = STATE_FINISHED
                # A computer win leaves winner_id empty: no account holds slot 2
                match.winner_id = match.player1_id if match.score1 >= threshold else match.player2_id
                registry.record_result(match)
            db.session.add(match)
            result = RoundResult(
                match_id=match.id,
                kind=match.kind,
                choice1=choice1,
                choice2=choice2,
                outcome=outcome,
                score1=match.score1,
                score2=match.score2,
                finished=finished,
                winner_id=match.winner_id,
            )
        current_app.logger.info(
            f"[round-resolve] match={match_id} {choice1} vs {choice2} outcome={outcome} "
            f"scores={result.score1}-{result.score2} finished={finished}"
        )
        return result


resolver = RoundResolver()
