"""
Shared pytest fixtures for bracket engine tests.

Running tests:
    pytest tests/                  - full suite
    pytest tests/ -m "not slow"   - fast subset
"""
import pytest
import sys
import os

# Add src directory to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

# Keep the app from writing a secret key file into the repository
os.environ.setdefault('SECRET_KEY', 'test-secret-key')

from brackets.models import Participant
from brackets.persistence import TournamentStore


def make_participants(count, prefix='p'):
    """Participants p1..pN where p1 has the most ranking points."""
    return [
        Participant(user_id=f"{prefix}{i}", ranking_points=(count - i + 1) * 100)
        for i in range(1, count + 1)
    ]


@pytest.fixture
def participants():
    """Factory for ranked participant lists."""
    return make_participants


@pytest.fixture
def store(tmp_path):
    """Tournament store rooted in a temporary directory."""
    return TournamentStore(str(tmp_path / "data"), lock_timeout=5)


@pytest.fixture
def make_tournament(store):
    """Create a tournament with checked-in participants p1..pN."""
    def _make(tournament_id='cup', type='knockout_single', checked_in=8, registered_only=0,
              organizers=None, **settings):
        store.create_tournament(
            tournament_id, name=f"{tournament_id} open", type=type,
            organizers=organizers or {'organizer': 'owner', 'helper': 'admin', 'player': 'member'},
            **settings
        )
        for i in range(1, checked_in + 1):
            store.add_participant(tournament_id, f"p{i}", ranking_points=(checked_in - i + 1) * 100,
                                  partner_id=f"p{i}-partner")
            store.check_in(tournament_id, f"p{i}")
        for i in range(1, registered_only + 1):
            store.add_participant(tournament_id, f"late{i}", ranking_points=10)
        return tournament_id
    return _make


@pytest.fixture
def temp_data_dir(store, monkeypatch):
    """Point the Flask app at the temporary store."""
    import app as app_module
    monkeypatch.setattr(app_module, 'DATA_DIR', store.data_dir)
    return store.data_dir


@pytest.fixture
def client(temp_data_dir):
    """Create a test client logged in as the tournament owner."""
    from app import app
    app.config['TESTING'] = True
    with app.test_client() as client:
        with client.session_transaction() as sess:
            sess['user'] = 'organizer'
        yield client
