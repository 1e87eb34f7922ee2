from sqlalchemy.exc import OperationalError

from arena import db
from arena.models import Match, User, STATE_FINISHED, STATE_ACTIVE
from arena.services.matches import rounds

NS = '/ws'


def _received(sio):
    return sio.get_received(NS)


def _payloads(packets, name):
    return [pkt['args'][0] if pkt['args'] else None for pkt in packets if pkt['name'] == name]


def _names(packets):
    return [pkt['name'] for pkt in packets]


class FixedChoice:
    def __init__(self, choice):
        self.value = choice

    def choice(self, options):
        return self.value


def test_connect_without_token_is_refused(connect):
    sio = connect()
    assert not sio.is_connected(NS)


def test_connect_with_bad_token_is_refused(connect):
    sio = connect('definitely-not-signed')
    assert not sio.is_connected(NS)


def test_connect_with_expired_token_is_refused(flask_app, make_user, connect):
    _, token = make_user('alice')
    flask_app.config['TOKEN_MAX_AGE_SEC'] = -1
    sio = connect(token)
    assert not sio.is_connected(NS)


def test_connect_binds_identity_and_sends_ranking(make_user, connect):
    alice, token = make_user('alice', played=9, won=6)
    sio = connect(token)
    assert sio.is_connected(NS)
    packets = _received(sio)
    assert _payloads(packets, 'connected') == [{'accountId': alice.id, 'handle': 'alice'}]
    ranking = _payloads(packets, 'ranking_updated')[-1]
    assert ranking == [{'handle': 'alice', 'wins': 6, 'played': 9, 'winPct': 66.7}]


def test_human_match_scenario(make_user, connect):
    alice, token_a = make_user('alice')
    bob, token_b = make_user('bob')
    a = connect(token_a)
    b = connect(token_b)
    _received(a)
    _received(b)

    a.emit('create_match', {'kind': 'human'}, namespace=NS)
    packets = _received(a)
    created = _payloads(packets, 'match_created')
    assert len(created) == 1
    match_id = created[0]['matchId']
    # Everyone sees the refreshed lobby
    assert _payloads(_received(b), 'open_match_list') == [[{'matchId': match_id, 'hostHandle': 'alice'}]]

    b.emit('list_open_matches', namespace=NS)
    assert _payloads(_received(b), 'open_match_list') == [[{'matchId': match_id, 'hostHandle': 'alice'}]]

    b.emit('join_match', {'matchId': match_id}, namespace=NS)
    expected_start = {'matchId': match_id, 'opponent': 'human', 'player1Id': alice.id, 'player2Id': bob.id}
    packets_a, packets_b = _received(a), _received(b)
    assert _payloads(packets_a, 'match_started') == [expected_start]
    assert _payloads(packets_b, 'match_started') == [expected_start]
    assert _payloads(packets_b, 'open_match_list')[-1] == []

    a.emit('submit_choice', {'choice': 'rock'}, namespace=NS)
    packets_a, packets_b = _received(a), _received(b)
    assert _payloads(packets_a, 'waiting_for_opponent') == [{'matchId': match_id}]
    assert _payloads(packets_b, 'opponent_ready') == [{'matchId': match_id, 'slot': 1}]
    assert 'round_result' not in _names(packets_a) + _names(packets_b)

    b.emit('submit_choice', {'choice': 'scissors'}, namespace=NS)
    expected_result = {
        'matchId': match_id,
        'choice1': 'rock',
        'choice2': 'scissors',
        'outcome': 'player1',
        'scores': {'player1': 1, 'player2': 0},
    }
    assert _payloads(_received(a), 'round_result') == [expected_result]
    assert _payloads(_received(b), 'round_result') == [expected_result]


def test_human_match_to_completion(make_user, connect):
    alice, token_a = make_user('alice')
    bob, token_b = make_user('bob')
    a = connect(token_a)
    b = connect(token_b)
    a.emit('create_match', {'kind': 'human'}, namespace=NS)
    match_id = _payloads(_received(a), 'match_created')[0]['matchId']
    b.emit('join_match', {'matchId': match_id}, namespace=NS)
    _received(a)
    _received(b)

    for _ in range(3):
        a.emit('submit_choice', {'choice': 'paper'}, namespace=NS)
        b.emit('submit_choice', {'choice': 'rock'}, namespace=NS)

    packets = _received(b)
    ended = _payloads(packets, 'match_ended')
    assert ended == [{
        'matchId': match_id,
        'reason': 'completed',
        'winnerId': alice.id,
        'winner': 'alice',
        'scores': {'player1': 3, 'player2': 0},
    }]
    ranking = _payloads(packets, 'ranking_updated')[-1]
    assert ranking[0] == {'handle': 'alice', 'wins': 1, 'played': 1, 'winPct': 100.0}
    assert ranking[1] == {'handle': 'bob', 'wins': 0, 'played': 1, 'winPct': 0.0}


def test_computer_match_scenario(monkeypatch, make_user, connect):
    monkeypatch.setattr(rounds.resolver, 'rng', FixedChoice('scissors'))
    alice, token = make_user('alice')
    a = connect(token)
    _received(a)

    a.emit('create_match', {'kind': 'computer'}, namespace=NS)
    started = _payloads(_received(a), 'match_started')
    assert len(started) == 1
    assert started[0]['opponent'] == 'computer'
    assert started[0]['player1Id'] == alice.id
    match_id = started[0]['matchId']

    for expected in (1, 2, 3):
        a.emit('submit_choice', {'choice': 'paper'}, namespace=NS)
        packets = _received(a)
        result = _payloads(packets, 'round_result')[0]
        assert result['choice2'] == 'scissors'
        assert result['outcome'] == 'player2'
        assert result['scores'] == {'player1': 0, 'player2': expected}

    ended = _payloads(packets, 'match_ended')[0]
    assert ended['reason'] == 'completed'
    assert ended['winner'] == 'computer'
    assert ended['winnerId'] is None

    db.session.expire_all()
    account = db.session.get(User, alice.id)
    assert (account.played, account.won) == (1, 0)
    assert db.session.get(Match, match_id).state == STATE_FINISHED


def test_abandon_waiting_match(make_user, connect):
    alice, token = make_user('alice')
    a = connect(token)
    a.emit('create_match', {'kind': 'human'}, namespace=NS)
    match_id = _payloads(_received(a), 'match_created')[0]['matchId']

    a.emit('abandon_match', namespace=NS)
    packets = _received(a)
    assert _payloads(packets, 'abandon_confirmed') == [{'matchId': match_id}]
    assert _payloads(packets, 'match_ended')[0]['reason'] == 'opponent_abandoned'
    assert _payloads(packets, 'open_match_list')[-1] == []

    db.session.expire_all()
    match = db.session.get(Match, match_id)
    assert match.state == STATE_FINISHED
    assert match.winner_id is None
    account = db.session.get(User, alice.id)
    assert (account.played, account.won) == (0, 0)


def test_abandon_notifies_opponent(make_user, connect):
    alice, token_a = make_user('alice')
    bob, token_b = make_user('bob')
    a = connect(token_a)
    b = connect(token_b)
    a.emit('create_match', {'kind': 'human'}, namespace=NS)
    match_id = _payloads(_received(a), 'match_created')[0]['matchId']
    b.emit('join_match', {'matchId': match_id}, namespace=NS)
    _received(a)
    _received(b)

    b.emit('abandon_match', namespace=NS)
    ended = _payloads(_received(a), 'match_ended')
    assert ended == [{'matchId': match_id, 'reason': 'opponent_abandoned', 'winnerId': alice.id}]
    assert _payloads(_received(b), 'abandon_confirmed') == [{'matchId': match_id}]


def test_reconnect_resumes_open_match(make_user, connect):
    alice, token = make_user('alice')
    a = connect(token)
    a.emit('create_match', {'kind': 'computer'}, namespace=NS)
    match_id = _payloads(_received(a), 'match_started')[0]['matchId']
    a.disconnect(namespace=NS)

    # Disconnecting does not abandon
    db.session.expire_all()
    assert db.session.get(Match, match_id).state == STATE_ACTIVE

    again = connect(token)
    resumed = _payloads(_received(again), 'match_in_progress')
    assert resumed == [{'matchId': match_id, 'kind': 'computer', 'state': 'active', 'player1Id': alice.id}]


def test_error_events_stay_with_the_sender(make_user, connect):
    alice, token_a = make_user('alice')
    bob, token_b = make_user('bob')
    a = connect(token_a)
    b = connect(token_b)
    a.emit('create_match', {'kind': 'computer'}, namespace=NS)
    match_id = _payloads(_received(a), 'match_started')[0]['matchId']
    _received(b)

    a.emit('create_match', {'kind': 'human'}, namespace=NS)
    assert _payloads(_received(a), 'error')[0]['code'] == 'AlreadyInMatch'

    b.emit('join_match', {'matchId': 999}, namespace=NS)
    assert _payloads(_received(b), 'error')[0]['code'] == 'NotFound'

    b.emit('join_match', {'matchId': match_id}, namespace=NS)
    assert _payloads(_received(b), 'error')[0]['code'] == 'NotJoinable'

    b.emit('create_match', {'kind': 'tournament'}, namespace=NS)
    assert _payloads(_received(b), 'error')[0]['code'] == 'InvalidRequest'

    b.emit('abandon_match', namespace=NS)
    assert _payloads(_received(b), 'error')[0]['code'] == 'NotFound'

    # None of the failures leaked to the other connection, which stays usable
    assert _payloads(_received(a), 'error') == []
    assert a.is_connected(NS) and b.is_connected(NS)


def test_choice_without_match_is_silently_ignored(make_user, connect):
    _, token = make_user('alice')
    a = connect(token)
    _received(a)
    a.emit('submit_choice', {'choice': 'rock'}, namespace=NS)
    assert _received(a) == []


def test_storage_failure_is_reported_to_the_sender_only(monkeypatch, make_user, connect):
    monkeypatch.setattr(rounds.resolver, 'rng', FixedChoice('scissors'))
    alice, token_a = make_user('alice')
    _, token_b = make_user('bob')
    a = connect(token_a)
    b = connect(token_b)
    a.emit('create_match', {'kind': 'computer'}, namespace=NS)
    match_id = _payloads(_received(a), 'match_started')[0]['matchId']
    _received(b)

    def failing_commit():
        raise OperationalError('COMMIT', {}, Exception('disk I/O error'))

    with monkeypatch.context() as patched:
        patched.setattr(db.session, 'commit', failing_commit)
        a.emit('submit_choice', {'choice': 'rock'}, namespace=NS)
        packets = _received(a)
    assert _names(packets) == ['error']
    assert packets[0]['args'][0]['code'] == 'StorageFailure'
    assert _payloads(_received(b), 'error') == []

    db.session.expire_all()
    stored = db.session.get(Match, match_id)
    assert stored.state == STATE_ACTIVE
    assert (stored.score1, stored.score2) == (0, 0)
    assert rounds.resolver.pending(match_id) == {}
    assert a.is_connected(NS)

    # The next round goes through once storage recovers
    a.emit('submit_choice', {'choice': 'rock'}, namespace=NS)
    result = _payloads(_received(a), 'round_result')[0]
    assert result['scores'] == {'player1': 1, 'player2': 0}


def test_single_field_events_accept_bare_values(make_user, connect):
    alice, token_a = make_user('alice')
    bob, token_b = make_user('bob')
    a = connect(token_a)
    b = connect(token_b)

    a.emit('create_match', 'human', namespace=NS)
    match_id = _payloads(_received(a), 'match_created')[0]['matchId']
    _received(b)

    b.emit('join_match', match_id, namespace=NS)
    started = _payloads(_received(b), 'match_started')[0]
    assert started['player2Id'] == bob.id
    _received(a)

    a.emit('submit_choice', 'paper', namespace=NS)
    b.emit('submit_choice', 'rock', namespace=NS)
    result = _payloads(_received(b), 'round_result')[0]
    assert result['outcome'] == 'player1'

    # Values that fit no field are still validated
    a.emit('submit_choice', ['paper'], namespace=NS)
    assert _payloads(_received(a), 'error')[0]['code'] == 'InvalidRequest'
