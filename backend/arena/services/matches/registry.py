"""
Match registry: creates, finds and updates match rows.

Guards the one-open-match-per-account rule. Every find-then-write sequence
runs under the caller's account lock, so rapid repeated requests from one
account cannot produce a second open match.
"""
from contextlib import contextmanager
from typing import List, Optional

from flask import current_app
from sqlalchemy import or_
from sqlalchemy.exc import SQLAlchemyError

from arena import db
from arena.models import (
    Match, User, MATCH_KINDS, KIND_COMPUTER, KIND_HUMAN,
    STATE_WAITING, STATE_ACTIVE, STATE_FINISHED, OPEN_STATES,
)
from .exceptions import AlreadyInMatch, NotFound, NotJoinable, InvalidRequest, StorageFailure
from .locks import account_locks, match_locks, with_match_lock


@contextmanager
def transaction(action: str):
    """Commit on success, roll back on any error.

    Database errors are logged and surfaced as StorageFailure; domain errors
    raised inside the block propagate unchanged after the rollback.
    """
    try:
        yield db.session
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.error(f"[storage] {action} failed: {exc}", exc_info=True)
        raise StorageFailure(action) from exc
    except Exception:
        db.session.rollback()
        raise


def find_active_match(account_id: int) -> Optional[Match]:
    return (
        Match.query
        .filter(Match.state.in_(OPEN_STATES))
        .filter(or_(Match.player1_id == account_id, Match.player2_id == account_id))
        .order_by(Match.id.desc())
        .first()
    )


def create_match(account_id: int, kind: str) -> Match:
    if kind not in MATCH_KINDS:
        raise InvalidRequest(f"Unknown match kind: {kind!r}")
    with account_locks.hold(account_id):
        with transaction('create_match'):
            existing = find_active_match(account_id)
            if existing is not None:
                raise AlreadyInMatch(account_id, existing.id)
            match = Match(
                kind=kind,
                state=STATE_ACTIVE if kind == KIND_COMPUTER else STATE_WAITING,
                player1_id=account_id,
                score1=0,
                score2=0,
            )
            db.session.add(match)
    current_app.logger.info(f"[match-create] match={match.id} player={account_id} kind={kind} state={match.state}")
    return match


def join_match(account_id: int, match_id: int) -> Match:
    with account_locks.hold(account_id), match_locks.hold(match_id):
        with transaction('join_match'):
            existing = find_active_match(account_id)
            if existing is not None:
                raise AlreadyInMatch(account_id, existing.id)
            match = with_match_lock(match_id).first()
            if match is None:
                raise NotFound(match_id)
            if match.state != STATE_WAITING or match.kind != KIND_HUMAN:
                raise NotJoinable(match_id)
            match.player2_id = account_id
            match.state = STATE_ACTIVE
            db.session.add(match)
    current_app.logger.info(f"[match-join] match={match.id} player1={match.player1_id} player2={account_id}")
    return match


def list_open_matches() -> List[dict]:
    rows = (
        db.session.query(Match.id, User.username)
        .join(User, Match.player1_id == User.id)
        .filter(Match.state == STATE_WAITING, Match.kind == KIND_HUMAN)
        .order_by(Match.id.asc())
        .all()
    )
    return [{'matchId': match_id, 'hostHandle': handle} for match_id, handle in rows]


def record_result(match: Match) -> None:
    """Bump played/won for the accounts of a match that just finished.

    Increments run as SQL expressions so concurrent completions touching the
    same account never lose an update. Must be called inside a transaction.
    """
    participants = [pid for pid in (match.player1_id, match.player2_id) if pid is not None]
    if participants:
        User.query.filter(User.id.in_(participants)).update(
            {User.played: User.played + 1}, synchronize_session=False
        )
    if match.winner_id is not None:
        User.query.filter(User.id == match.winner_id).update(
            {User.won: User.won + 1}, synchronize_session=False
        )


def abandon(account_id: int) -> Match:
    """Finish the caller's open match in favour of the other account.

    Without an opposing account (waiting match, or a computer match) the match
    finishes with no winner and no counters change.
    """
    with account_locks.hold(account_id):
        match = find_active_match(account_id)
        if match is None:
            raise NotFound()
        with match_locks.hold(match.id):
            with transaction('abandon'):
                match = with_match_lock(match.id).first()
                if match is None or match.state == STATE_FINISHED:
                    raise NotFound()
                opponent_id = match.opponent_of(account_id)
                match.state = STATE_FINISHED
                match.winner_id = opponent_id
                db.session.add(match)
                if opponent_id is not None:
                    record_result(match)
    current_app.logger.info(f"[match-abandon] match={match.id} by={account_id} winner={match.winner_id}")
    return match
