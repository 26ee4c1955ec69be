"""
Flask web application for the padel bracket engine.
"""
import os
from datetime import timedelta
from functools import wraps
from flask import Flask, request, jsonify, session, g
from werkzeug.exceptions import HTTPException
from brackets.adapter import load_structure
from brackets.errors import BracketError, InvalidConfiguration, TournamentNotFound
from brackets.generation import (
    advance_match,
    generate_compass_for_tournament,
    generate_knockout_for_tournament,
    generate_round_robin_for_tournament,
    reset_bracket,
)
from brackets.models import Participant
from brackets.persistence import TournamentStore
from brackets.progression import compute_layout
from brackets.standings import group_standings

app = Flask(__name__)

ORGANIZER_ROLES = ('owner', 'admin')


def _get_or_create_secret_key() -> bytes:
    """Get SECRET_KEY from env, or generate and persist to file."""
    env_key = os.environ.get('SECRET_KEY')
    if env_key:
        return env_key.encode() if isinstance(env_key, str) else env_key
    key_file = os.path.join(DATA_DIR, '.secret_key')
    if os.path.exists(key_file):
        with open(key_file, 'rb') as f:
            return f.read()
    key = os.urandom(24)
    os.makedirs(os.path.dirname(key_file), exist_ok=True)
    with open(key_file, 'wb') as f:
        f.write(key)
    return key


BASE_DIR = os.path.dirname(os.path.dirname(__file__))
DATA_DIR = os.environ.get('PADEL_DATA_DIR', os.path.join(BASE_DIR, 'data'))
LOCK_TIMEOUT = float(os.environ.get('PADEL_LOCK_TIMEOUT', '10'))

app.secret_key = _get_or_create_secret_key()
app.config['PERMANENT_SESSION_LIFETIME'] = timedelta(days=30)


def get_store() -> TournamentStore:
    """Store for the current request, rooted at DATA_DIR."""
    if 'store' not in g:
        g.store = TournamentStore(DATA_DIR, lock_timeout=LOCK_TIMEOUT)
    return g.store


def organizer_required(f):
    """Require the session user to be an owner or admin of the tournament."""
    @wraps(f)
    def decorated_function(tournament_id, *args, **kwargs):
        user = session.get('user')
        if not user:
            return jsonify({'error': 'Unauthorized'}), 401
        tournament = get_store().load_tournament(tournament_id)
        organizers = (tournament or {}).get('organizers') or {}
        if organizers.get(user) not in ORGANIZER_ROLES:
            app.logger.warning(f'User {user} denied access to tournament {tournament_id}')
            raise TournamentNotFound('Tournament not found or unauthorized')
        return f(tournament_id, *args, **kwargs)
    return decorated_function


def _json_body() -> dict:
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise InvalidConfiguration('Request body must be a JSON object')
    return data


@app.errorhandler(BracketError)
def handle_bracket_error(error):
    if error.status_code >= 500:
        app.logger.error(f'{request.method} {request.path}: {error.message}')
    else:
        app.logger.warning(f'{request.method} {request.path} rejected: {error.message}')
    return jsonify(error.to_dict()), error.status_code


@app.errorhandler(Exception)
def handle_unexpected_error(error):
    if isinstance(error, HTTPException):
        return jsonify({'error': error.description}), error.code
    app.logger.exception(f'Unexpected error on {request.method} {request.path}')
    return jsonify({'error': 'Internal server error'}), 500


@app.route('/tournaments/<tournament_id>/generate/knockout', methods=['POST'])
@organizer_required
def api_generate_knockout(tournament_id):
    """Generate a single or double elimination bracket."""
    summary = generate_knockout_for_tournament(get_store(), tournament_id, _json_body())
    return jsonify({'success': True, **summary}), 201


@app.route('/tournaments/<tournament_id>/generate/compass', methods=['POST'])
@organizer_required
def api_generate_compass(tournament_id):
    """Generate a compass draw with its consolation brackets."""
    summary = generate_compass_for_tournament(get_store(), tournament_id, _json_body())
    return jsonify({'success': True, **summary}), 201


@app.route('/tournaments/<tournament_id>/generate/round-robin', methods=['POST'])
@organizer_required
def api_generate_round_robin(tournament_id):
    """Generate round robin groups."""
    summary = generate_round_robin_for_tournament(get_store(), tournament_id, _json_body())
    return jsonify({'success': True, **summary}), 201


@app.route('/tournaments/<tournament_id>/bracket', methods=['GET'])
@organizer_required
def api_get_bracket(tournament_id):
    """Stored bracket rows plus a drawing layout for every match."""
    store = get_store()
    tournament = store.load_tournament(tournament_id)
    bracket = store.load_bracket(tournament_id)
    participants = [Participant.from_dict(p) for p in store.load_participants(tournament_id)]
    layout = {}
    if bracket['rounds']:
        structure = load_structure(tournament, participants, bracket)
        layout = {f'{tournament_id}_{match_id}': position
                  for match_id, position in compute_layout(structure).items()}
    return jsonify({
        'tournament': {
            'id': tournament['id'],
            'name': tournament.get('name'),
            'type': tournament['type'],
            'status': tournament.get('status'),
        },
        'rounds': bracket['rounds'],
        'matches': bracket['matches'],
        'bracket_slots': bracket['bracket_slots'],
        'groups': bracket['groups'],
        'layout': layout,
    })


@app.route('/tournaments/<tournament_id>/bracket', methods=['DELETE'])
@organizer_required
def api_reset_bracket(tournament_id):
    """Delete the generated bracket so it can be generated again."""
    reset_bracket(get_store(), tournament_id)
    return jsonify({'success': True})


@app.route('/tournaments/<tournament_id>/standings', methods=['GET'])
@organizer_required
def api_get_standings(tournament_id):
    """Standings, ordered per group for round robin tournaments."""
    bracket = get_store().load_bracket(tournament_id)
    return jsonify({
        'standings': bracket['standings'],
        'groups': group_standings(bracket['groups'], bracket['standings']),
    })


@app.route('/tournaments/<tournament_id>/matches/<match_id>/advance', methods=['POST'])
@organizer_required
def api_advance_match(tournament_id, match_id):
    """Record a match result and move the winner (and loser) on."""
    result = advance_match(get_store(), tournament_id, match_id, _json_body())
    return jsonify({'success': True, **result})


if __name__ == '__main__':
    app.run(debug=True)
