from flask import Blueprint, jsonify
from flask_login import login_required, current_user
from arena.services.matches.registry import find_active_match, list_open_matches
from arena.services.matches.ranking import compute_ranking

matches = Blueprint('matches', __name__)


@matches.route('/open', methods=['GET'])
def open_matches():
    return jsonify(list_open_matches()), 200


@matches.route('/active', methods=['GET'])
@login_required
def active_match():
    """
    Returns the caller's waiting or active match, if any.
    """
    match = find_active_match(current_user.id)
    if match is None:
        return jsonify({'error': 'No open match'}), 404
    return jsonify(match.to_dict()), 200


@matches.route('/ranking', methods=['GET'])
def ranking():
    return jsonify(compute_ranking()), 200
