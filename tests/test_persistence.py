"""
Tests for the YAML tournament store, transactions and row conversion.
"""
import pytest
import sys
import os
import yaml

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

import brackets.persistence as persistence
from brackets.adapter import flatten_structure, load_structure
from brackets.compass import generate_compass_draw
from brackets.double_elimination import generate_double_elimination
from brackets.elimination import generate_knockout
from brackets.errors import InvalidConfiguration, PersistenceFailed, TournamentNotFound
from brackets.models import Participant
from brackets.progression import record_result


def snapshot(store, tournament_id):
    """Raw bytes of every data file of a tournament."""
    directory = store.tournament_dir(tournament_id)
    files = {}
    for name in sorted(os.listdir(directory)):
        if name.endswith('.yaml'):
            with open(os.path.join(directory, name), 'rb') as f:
                files[name] = f.read()
    return files


class TestTournamentStore:
    """Tests for tournament files."""

    def test_create_and_load(self, store):
        """Test a created tournament can be loaded back."""
        store.create_tournament('cup', name='Cup', type='compass', organizers={'org': 'owner'}, is_doubles=False)
        tournament = store.load_tournament('cup')
        assert tournament['type'] == 'compass'
        assert tournament['status'] == 'registration'
        assert tournament['organizers'] == {'org': 'owner'}
        assert tournament['is_doubles'] is False
        assert store.load_bracket('cup') == {
            'rounds': [], 'matches': [], 'bracket_slots': [], 'groups': [], 'standings': [],
        }

    def test_create_twice(self, store):
        """Test a tournament id cannot be reused."""
        store.create_tournament('cup', name='Cup', type='compass', organizers={})
        with pytest.raises(InvalidConfiguration):
            store.create_tournament('cup', name='Cup', type='compass', organizers={})

    def test_missing_tournament(self, store):
        """Test loading an unknown tournament returns None."""
        assert store.load_tournament('nope') is None
        assert not store.exists('nope')

    def test_unsafe_id_rejected(self, store):
        """Test ids that could escape the data directory are rejected."""
        with pytest.raises(TournamentNotFound):
            store.load_tournament('../other')

    def test_checked_in_participants(self, store, make_tournament):
        """Test only checked-in participants are returned, in registration order."""
        make_tournament(checked_in=3, registered_only=2)
        checked_in = store.checked_in_participants('cup')
        assert [p.user_id for p in checked_in] == ['p1', 'p2', 'p3']
        assert checked_in[0].partner_id == 'p1-partner'
        assert len(store.load_participants('cup')) == 5

    def test_check_in_unknown_user(self, store, make_tournament):
        """Test checking in someone who never registered fails."""
        make_tournament(checked_in=2)
        with pytest.raises(InvalidConfiguration):
            store.check_in('cup', 'stranger')


class TestTransaction:
    """Tests for staged, all-or-nothing writes."""

    def test_commit(self, store, make_tournament):
        """Test staged rows and tournament changes are written on exit."""
        make_tournament()
        with store.transaction('cup') as tx:
            tx.insert('rounds', [{'id': 'r1'}])
            tx.update_tournament(status='in_progress')
        assert store.load_bracket('cup')['rounds'] == [{'id': 'r1'}]
        assert store.load_tournament('cup')['status'] == 'in_progress'

    def test_exception_discards_changes(self, store, make_tournament):
        """Test nothing is written when the block raises."""
        make_tournament()
        before = snapshot(store, 'cup')
        with pytest.raises(RuntimeError):
            with store.transaction('cup') as tx:
                tx.insert('rounds', [{'id': 'r1'}])
                raise RuntimeError("boom")
        assert snapshot(store, 'cup') == before

    def test_write_failure_leaves_files_untouched(self, store, make_tournament, monkeypatch):
        """Test a failed temp file write raises PersistenceFailed and changes nothing."""
        make_tournament()
        before = snapshot(store, 'cup')
        real_write = persistence._write_yaml

        def failing_write(path, data):
            if path.endswith(persistence.TOURNAMENT_FILE + '.tmp'):
                raise OSError("disk full")
            real_write(path, data)

        monkeypatch.setattr(persistence, '_write_yaml', failing_write)
        with pytest.raises(PersistenceFailed):
            with store.transaction('cup') as tx:
                tx.insert('rounds', [{'id': 'r1'}])
                tx.update_tournament(status='in_progress')
        assert snapshot(store, 'cup') == before
        assert not [f for f in os.listdir(store.tournament_dir('cup')) if f.endswith(('.tmp', '.bak'))]

    def test_partial_install_rolled_back(self, store, make_tournament, monkeypatch):
        """Test a file already swapped in is restored when a later one fails."""
        make_tournament()
        before = snapshot(store, 'cup')
        real_install = persistence._install

        def failing_install(temp_path, path):
            if path.endswith(persistence.TOURNAMENT_FILE):
                raise OSError("device busy")
            real_install(temp_path, path)

        monkeypatch.setattr(persistence, '_install', failing_install)
        with pytest.raises(PersistenceFailed):
            with store.transaction('cup') as tx:
                tx.insert('matches', [{'id': 'm1'}])
                tx.update_tournament(status='in_progress')
        assert snapshot(store, 'cup') == before
        assert store.load_bracket('cup')['matches'] == []
        assert not [f for f in os.listdir(store.tournament_dir('cup')) if f.endswith(('.tmp', '.bak'))]

    def test_persistence_failed_is_server_error(self):
        """Test persistence failures map to HTTP 500."""
        assert PersistenceFailed('x').status_code == 500


class TestFlattenStructure:
    """Tests for converting structures into stored rows."""

    def test_knockout_rows(self):
        """Test rounds, matches and slots for a 5 player bracket."""
        field = [Participant(f"p{i}", ranking_points=100 - i, partner_id=f"q{i}") for i in range(1, 6)]
        rows = flatten_structure(generate_knockout(field), 'cup')
        assert [r['id'] for r in rows['rounds']] == ['cup_main_r1', 'cup_main_r2', 'cup_main_r3']
        assert len(rows['matches']) == 7
        assert len(rows['bracket_slots']) == 7

        bye_match = rows['matches'][0]
        assert bye_match['id'] == 'cup_main_r1_m0'
        assert bye_match['round_id'] == 'cup_main_r1'
        assert (bye_match['team1_player1_id'], bye_match['team1_player2_id']) == ('p1', 'q1')
        assert (bye_match['team2_player1_id'], bye_match['team2_player2_id']) == (None, None)
        assert bye_match['status'] == 'completed'
        assert bye_match['winner_team'] == 1

        slot = rows['bracket_slots'][1]
        assert (slot['bracket_type'], slot['round_number'], slot['position']) == ('main', 1, 1)
        assert slot['match_id'] == 'cup_main_r1_m1'
        assert (slot['winner_to'], slot['winner_to_slot']) == ('cup_main_r2_m0', 2)
        assert rows['rounds'][0]['status'] == 'in_progress'

    def test_doubles_without_partner(self, participants):
        """Test a doubles entry without a partner fills both columns with the same id."""
        rows = flatten_structure(generate_knockout(participants(2)), 'cup')
        match = rows['matches'][0]
        assert (match['team1_player1_id'], match['team1_player2_id']) == ('p1', 'p1')

    def test_singles_leave_second_player_empty(self, participants):
        """Test singles matches have no second player."""
        rows = flatten_structure(generate_knockout(participants(2), is_doubles=False), 'cup')
        match = rows['matches'][0]
        assert (match['team1_player1_id'], match['team1_player2_id']) == ('p1', None)

    def test_compass_slots_unlinked(self, participants):
        """Test consolation slots have no match id until the feeding round is decided."""
        structure = generate_compass_draw(participants(4))
        rows = flatten_structure(structure, 'cup')
        east = [s for s in rows['bracket_slots'] if s['bracket_name'] == 'east']
        assert len(east) == 1
        assert east[0]['match_id'] is None
        assert east[0]['bracket_type'] == 'consolation'

        record_result(structure, 'main_r1_m0', 1)
        record_result(structure, 'main_r1_m1', 1)
        rows = flatten_structure(structure, 'cup')
        east = [s for s in rows['bracket_slots'] if s['bracket_name'] == 'east']
        assert east[0]['match_id'] == 'cup_east_r1_m0'
        east_match = [m for m in rows['matches'] if m['bracket_name'] == 'east'][0]
        assert (east_match['team1_id'], east_match['team2_id']) == ('p4', 'p3')

    def test_rounds_keyed_by_bracket(self, participants):
        """Test losers rounds keep their own numbering next to the winners rounds."""
        rows = flatten_structure(generate_double_elimination(participants(8)), 'cup')
        keys = [(r['bracket_name'], r['round_number']) for r in rows['rounds']]
        assert len(keys) == len(set(keys))
        assert ('losers', 1) in keys and ('main', 1) in keys


class TestLoadStructure:
    """Tests for rebuilding a structure from stored rows."""

    @pytest.mark.parametrize("generator", [generate_knockout, generate_double_elimination, generate_compass_draw])
    def test_reload_matches_original(self, participants, generator):
        """Test stored rows rebuild into a structure that flattens identically."""
        field = participants(6)
        structure = generator(field)
        rows = flatten_structure(structure, 'cup')
        tournament = {
            'id': 'cup',
            'type': {'single': 'knockout_single', 'double': 'knockout_double', 'compass': 'compass'}[structure.type],
            'format_settings': {'seed_order': [p.user_id for p in structure.participants], 'bracket_size': 8},
        }
        rows['standings'] = []
        reloaded = load_structure(tournament, field, rows)
        assert flatten_structure(reloaded, 'cup') == {k: v for k, v in rows.items() if k != 'standings'}

    def test_reload_keeps_bronze_feeders(self, participants):
        """Test bronze routing survives a reload."""
        field = participants(4)
        rows = flatten_structure(generate_knockout(field, bronze_match=True), 'cup')
        rows['standings'] = []
        tournament = {'id': 'cup', 'type': 'knockout_single', 'format_settings': {}}
        reloaded = load_structure(tournament, field, rows)
        assert reloaded.bronze_feeders == {
            'main_r1_m0': ('third_place_r1_m0', 1),
            'main_r1_m1': ('third_place_r1_m0', 2),
        }
        assert reloaded.node('main_r1_m0').next_loser_match_id is None

    def test_rows_are_yaml_safe(self, participants):
        """Test flattened rows survive a YAML round trip unchanged."""
        rows = flatten_structure(generate_compass_draw(participants(5)), 'cup')
        assert yaml.safe_load(yaml.dump(rows, default_flow_style=False)) == rows
