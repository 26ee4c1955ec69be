"""
YAML-backed tournament storage.

Each tournament lives in its own directory under the data directory:

    tournaments/<tournament_id>/tournament.yaml     settings, type, status, organizers
    tournaments/<tournament_id>/participants.yaml   registrations and check-ins
    tournaments/<tournament_id>/bracket.yaml        rounds, matches, bracket_slots, groups, standings
    tournaments/<tournament_id>/.lock               lock guarding the files above

Writes to the bracket and tournament files go through a Transaction, which
stages every change in memory and then swaps the files in together. If any
file cannot be written the already swapped files are put back, so readers
never see half a bracket.
"""
import copy
import logging
import os
import re
import shutil
from typing import Dict, List, Optional

import yaml
from filelock import FileLock

from .errors import InvalidConfiguration, PersistenceFailed, TournamentNotFound
from .models import Participant

logger = logging.getLogger(__name__)

TOURNAMENT_FILE = 'tournament.yaml'
PARTICIPANTS_FILE = 'participants.yaml'
BRACKET_FILE = 'bracket.yaml'
LOCK_FILE = '.lock'

BRACKET_TABLES = ('rounds', 'matches', 'bracket_slots', 'groups', 'standings')

CHECKED_IN = 'checked_in'

_ID_PATTERN = re.compile(r'^[A-Za-z0-9][A-Za-z0-9_-]*$')


def _read_yaml(path: str, default):
    if not os.path.exists(path):
        return default
    with open(path, 'r', encoding='utf-8') as f:
        data = yaml.safe_load(f)
    return data if data is not None else default


def _write_yaml(path: str, data):
    with open(path, 'w', encoding='utf-8') as f:
        yaml.dump(data, f, default_flow_style=False)


def _install(temp_path: str, path: str):
    """Move a fully written temp file over its target."""
    os.replace(temp_path, path)


def empty_bracket() -> Dict[str, List]:
    return {table: [] for table in BRACKET_TABLES}


class TournamentStore:
    def __init__(self, data_dir: str, lock_timeout: float = 10):
        self.data_dir = data_dir
        self.lock_timeout = lock_timeout

    def tournament_dir(self, tournament_id: str) -> str:
        if not _ID_PATTERN.match(str(tournament_id)):
            raise TournamentNotFound("Tournament not found or unauthorized")
        return os.path.join(self.data_dir, 'tournaments', tournament_id)

    def path(self, tournament_id: str, filename: str) -> str:
        return os.path.join(self.tournament_dir(tournament_id), filename)

    def exists(self, tournament_id: str) -> bool:
        return os.path.exists(self.path(tournament_id, TOURNAMENT_FILE))

    def lock(self, tournament_id: str) -> FileLock:
        """Per-tournament lock; hold it around any read-then-write sequence."""
        os.makedirs(self.tournament_dir(tournament_id), exist_ok=True)
        return FileLock(self.path(tournament_id, LOCK_FILE), timeout=self.lock_timeout)

    def create_tournament(self, tournament_id: str, name: str, type: str, organizers: Dict[str, str],
                          status: str = 'registration', format_settings: Optional[Dict] = None,
                          **settings) -> Dict:
        """Create the tournament files. organizers maps user id to role ('owner' or 'admin')."""
        tournament = {
            'id': tournament_id,
            'name': name,
            'type': type,
            'status': status,
            'organizers': dict(organizers),
            'format_settings': dict(format_settings or {}),
        }
        tournament.update(settings)
        with self.lock(tournament_id):
            if self.exists(tournament_id):
                raise InvalidConfiguration(f"Tournament {tournament_id} already exists")
            _write_yaml(self.path(tournament_id, TOURNAMENT_FILE), tournament)
            _write_yaml(self.path(tournament_id, PARTICIPANTS_FILE), [])
            _write_yaml(self.path(tournament_id, BRACKET_FILE), empty_bracket())
        logger.info(f"Created tournament {tournament_id} ({type})")
        return tournament

    def load_tournament(self, tournament_id: str) -> Optional[Dict]:
        if not self.exists(tournament_id):
            return None
        return _read_yaml(self.path(tournament_id, TOURNAMENT_FILE), None)

    def load_participants(self, tournament_id: str) -> List[Dict]:
        return _read_yaml(self.path(tournament_id, PARTICIPANTS_FILE), [])

    def save_participants(self, tournament_id: str, participants: List[Dict]):
        _write_yaml(self.path(tournament_id, PARTICIPANTS_FILE), participants)

    def add_participant(self, tournament_id: str, user_id: str, ranking_points=None, partner_id=None,
                        seed=None, status: str = 'registered') -> Dict:
        """Register a participant, or update an existing registration."""
        if not self.exists(tournament_id):
            raise TournamentNotFound("Tournament not found or unauthorized")
        with self.lock(tournament_id):
            participants = self.load_participants(tournament_id)
            entry = {
                'user_id': user_id,
                'status': status,
                'seed': seed,
                'ranking_points': ranking_points,
                'partner_id': partner_id,
            }
            for i, existing in enumerate(participants):
                if existing['user_id'] == user_id:
                    participants[i] = entry
                    break
            else:
                participants.append(entry)
            self.save_participants(tournament_id, participants)
        return entry

    def check_in(self, tournament_id: str, user_id: str):
        with self.lock(tournament_id):
            participants = self.load_participants(tournament_id)
            for entry in participants:
                if entry['user_id'] == user_id:
                    entry['status'] = CHECKED_IN
                    break
            else:
                raise InvalidConfiguration(f"User {user_id} is not registered")
            self.save_participants(tournament_id, participants)

    def checked_in_participants(self, tournament_id: str) -> List[Participant]:
        """Snapshot of checked-in participants in registration order."""
        return [
            Participant.from_dict(entry)
            for entry in self.load_participants(tournament_id)
            if entry.get('status') == CHECKED_IN
        ]

    def load_bracket(self, tournament_id: str) -> Dict[str, List]:
        data = _read_yaml(self.path(tournament_id, BRACKET_FILE), {})
        bracket = empty_bracket()
        for table in BRACKET_TABLES:
            bracket[table] = data.get(table) or []
        return bracket

    def transaction(self, tournament_id: str) -> 'Transaction':
        if not self.exists(tournament_id):
            raise TournamentNotFound("Tournament not found or unauthorized")
        return Transaction(self, tournament_id)


class Transaction:
    """
    Staged changes to one tournament's bracket and settings.

    Use as a context manager: changes are committed when the block exits
    normally and discarded when it raises. The caller is expected to hold the
    tournament lock for the duration.
    """

    def __init__(self, store: TournamentStore, tournament_id: str):
        self.store = store
        self.tournament_id = tournament_id
        self.tournament = copy.deepcopy(store.load_tournament(tournament_id))
        self.bracket = copy.deepcopy(store.load_bracket(tournament_id))
        self._dirty = []

    def _touch(self, filename: str):
        if filename not in self._dirty:
            self._dirty.append(filename)

    def insert(self, table: str, rows: List[Dict]):
        self.bracket[table].extend(copy.deepcopy(rows))
        self._touch(BRACKET_FILE)

    def replace(self, table: str, rows: List[Dict]):
        self.bracket[table] = copy.deepcopy(rows)
        self._touch(BRACKET_FILE)

    def clear_bracket(self):
        self.bracket = empty_bracket()
        self._touch(BRACKET_FILE)

    def update_tournament(self, **changes):
        self.tournament.update(changes)
        self._touch(TOURNAMENT_FILE)

    def _staged(self) -> Dict[str, object]:
        data = {BRACKET_FILE: self.bracket, TOURNAMENT_FILE: self.tournament}
        return {filename: data[filename] for filename in self._dirty}

    def commit(self):
        """
        Write every staged file, all or nothing.

        Raises:
            PersistenceFailed: a file could not be written; nothing on disk
                has changed
        """
        staged = self._staged()
        temps = {}
        installed = []
        try:
            for filename, data in staged.items():
                path = self.store.path(self.tournament_id, filename)
                temps[path] = path + '.tmp'
                _write_yaml(temps[path], data)
            for path, temp_path in temps.items():
                backup = None
                if os.path.exists(path):
                    backup = path + '.bak'
                    shutil.copy2(path, backup)
                installed.append((path, backup))
                _install(temp_path, path)
        except (OSError, yaml.YAMLError) as e:
            logger.error(f"Rolling back tournament {self.tournament_id}: {e}")
            for path, backup in reversed(installed):
                if backup:
                    os.replace(backup, path)
                elif os.path.exists(path):
                    os.remove(path)
            raise PersistenceFailed(f"Failed to save tournament {self.tournament_id}") from e
        finally:
            for temp_path in temps.values():
                if os.path.exists(temp_path):
                    os.remove(temp_path)
            for _, backup in installed:
                if backup and os.path.exists(backup):
                    os.remove(backup)
        self._dirty = []

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        if exc_type is None:
            self.commit()
        else:
            self._dirty = []
        return False
