from functools import wraps
from typing import Dict, Any

from flask import current_app, request
from flask_socketio import join_room, close_room, emit, ConnectionRefusedError
from sqlalchemy.exc import SQLAlchemyError

from arena import socketio, db
from arena.models import User, STATE_ACTIVE, KIND_HUMAN
from arena.tokens import verify_token
from arena.services.matches import registry
from arena.services.matches.exceptions import ArenaError, InvalidRequest, StorageFailure, Unauthenticated
from arena.services.matches.ranking import compute_ranking
from arena.services.matches.rounds import resolver, PendingRound

NAMESPACE = '/ws'

# sid -> identity bound at connect time; never re-validated
_sid_to_ctx: Dict[str, Dict[str, Any]] = {}


def _get_sid() -> str:
    # type: ignore: request.sid exists in Socket.IO context
    return request.sid  # type: ignore


def match_room(match_id: int) -> str:
    return f"match:{match_id}"


def _broadcast_open_matches() -> None:
    socketio.emit('open_match_list', registry.list_open_matches(), namespace=NAMESPACE)


def _broadcast_ranking() -> None:
    socketio.emit('ranking_updated', compute_ranking(), namespace=NAMESPACE)


def _token_from_request(auth) -> str:
    if isinstance(auth, dict) and auth.get('token'):
        return auth['token']
    header = request.headers.get('Authorization', '')
    if header.startswith('Bearer '):
        return header[len('Bearer '):]
    return ''


def _report_storage_error(action: str, exc: Exception) -> None:
    db.session.rollback()
    current_app.logger.error(f"[storage] {action} failed: {exc}", exc_info=True)
    emit('error', StorageFailure(action).to_dict())


def _guarded(field=None):
    """Error boundary for inbound events.

    Resolves the identity bound to the connection and reports any failure to
    the originating connection only; the connection itself stays open.

    Payloads are objects (`{"choice": "rock"}`); events with a single field
    also accept the bare value (`"rock"`), which is stored under `field`.
    """
    def decorator(handler):
        @wraps(handler)
        def wrapper(*args):
            ctx = _sid_to_ctx.get(_get_sid())
            if ctx is None:
                emit('error', Unauthenticated().to_dict())
                return
            data = args[0] if args else None
            if not isinstance(data, dict):
                data = {field: data} if field is not None and data is not None else {}
            try:
                handler(ctx, data)
            except ArenaError as exc:
                current_app.logger.info(
                    f"[event-error] event={handler.__name__} player={ctx['account_id']} code={exc.code}"
                )
                emit('error', exc.to_dict())
            except SQLAlchemyError as exc:
                _report_storage_error(handler.__name__, exc)
        return wrapper
    return decorator


def handle_connect(auth=None):
    sid = _get_sid()
    try:
        claims = verify_token(_token_from_request(auth))
    except Unauthenticated as exc:
        current_app.logger.info(f"[connect-refused] sid={sid} reason={exc}")
        raise ConnectionRefusedError(exc.code)

    ctx = {'account_id': claims['id'], 'handle': claims['username']}
    _sid_to_ctx[sid] = ctx
    current_app.logger.info(f"[connect] sid={sid} player={ctx['account_id']} handle={ctx['handle']}")
    emit('connected', {'accountId': ctx['account_id'], 'handle': ctx['handle']})

    try:
        # Reconnecting players rejoin the room of their open match
        match = registry.find_active_match(ctx['account_id'])
        if match is not None:
            join_room(match_room(match.id))
            emit('match_in_progress', {
                'matchId': match.id,
                'kind': match.kind,
                'state': match.state,
                'player1Id': match.player1_id,
            })
        _broadcast_ranking()
    except SQLAlchemyError as exc:
        _report_storage_error('connect', exc)


def handle_disconnect(reason=None):
    # Open matches are left untouched; a reconnect picks them up again
    ctx = _sid_to_ctx.pop(_get_sid(), None)
    if ctx:
        current_app.logger.info(f"[disconnect] player={ctx['account_id']} reason={reason}")


@_guarded()
def handle_list_open_matches(ctx, data):
    emit('open_match_list', registry.list_open_matches())


@_guarded('kind')
def handle_create_match(ctx, data):
    match = registry.create_match(ctx['account_id'], data.get('kind'))
    join_room(match_room(match.id))
    if match.state == STATE_ACTIVE:
        emit('match_started', {
            'matchId': match.id,
            'opponent': 'computer',
            'player1Id': match.player1_id,
        })
        return
    emit('match_created', {'matchId': match.id})
    _broadcast_open_matches()


@_guarded('matchId')
def handle_join_match(ctx, data):
    try:
        match_id = int(data.get('matchId'))
    except (TypeError, ValueError):
        raise InvalidRequest('matchId is required')
    match = registry.join_match(ctx['account_id'], match_id)
    room = match_room(match.id)
    join_room(room)
    emit('match_started', {
        'matchId': match.id,
        'opponent': 'human',
        'player1Id': match.player1_id,
        'player2Id': match.player2_id,
    }, to=room)
    _broadcast_open_matches()


@_guarded('choice')
def handle_submit_choice(ctx, data):
    outcome = resolver.submit(ctx['account_id'], data.get('choice'))
    if outcome is None:
        return
    room = match_room(outcome.match_id)
    if isinstance(outcome, PendingRound):
        emit('waiting_for_opponent', {'matchId': outcome.match_id})
        emit('opponent_ready', {'matchId': outcome.match_id, 'slot': outcome.slot}, to=room)
        return

    emit('round_result', outcome.to_dict(), to=room)
    if not outcome.finished:
        return

    if outcome.winner_id is not None:
        winner = db.session.get(User, outcome.winner_id)
        winner_name = winner.username if winner else None
    else:
        winner_name = 'computer'
    emit('match_ended', {
        'matchId': outcome.match_id,
        'reason': 'completed',
        'winnerId': outcome.winner_id,
        'winner': winner_name,
        'scores': {'player1': outcome.score1, 'player2': outcome.score2},
    }, to=room)
    close_room(room)
    _broadcast_ranking()


@_guarded()
def handle_abandon_match(ctx, data):
    match = registry.abandon(ctx['account_id'])
    resolver.discard(match.id)
    room = match_room(match.id)
    emit('match_ended', {
        'matchId': match.id,
        'reason': 'opponent_abandoned',
        'winnerId': match.winner_id,
    }, to=room)
    emit('abandon_confirmed', {'matchId': match.id})
    close_room(room)
    if match.kind == KIND_HUMAN and match.player2_id is None:
        # A waiting match just left the lobby
        _broadcast_open_matches()
    _broadcast_ranking()


def register_socketio_handlers() -> None:
    """Register Socket.IO event handlers on namespace '/ws'."""
    socketio.on_event('connect', handle_connect, namespace=NAMESPACE)
    socketio.on_event('disconnect', handle_disconnect, namespace=NAMESPACE)
    socketio.on_event('list_open_matches', handle_list_open_matches, namespace=NAMESPACE)
    socketio.on_event('create_match', handle_create_match, namespace=NAMESPACE)
    socketio.on_event('join_match', handle_join_match, namespace=NAMESPACE)
    socketio.on_event('submit_choice', handle_submit_choice, namespace=NAMESPACE)
    socketio.on_event('abandon_match', handle_abandon_match, namespace=NAMESPACE)
