"""
Unit tests for round robin groups and group standings.
"""
import pytest
import sys
import os

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from brackets.errors import InvalidGroupConfiguration
from brackets.round_robin import (
    generate_groups,
    generate_pairings,
    generate_round_robin,
    group_name,
    schedule_rounds,
    split_into_groups,
)
from brackets.standings import apply_match_result, group_standings, initial_standings, sort_group_standings


class TestGroupNames:
    """Tests for group naming."""

    def test_letters(self):
        """Test groups are named A, B, C..."""
        assert [group_name(i) for i in range(4)] == ['A', 'B', 'C', 'D']

    def test_past_z(self):
        """Test naming continues after Z."""
        assert group_name(25) == 'Z'
        assert group_name(26) == 'AA'
        assert group_name(27) == 'AB'


class TestSplitIntoGroups:
    """Tests for dividing participants into groups."""

    def test_even_split(self, participants):
        """Test 8 participants in 2 groups of 4."""
        groups = split_into_groups(participants(8), 2)
        assert [len(g) for g in groups] == [4, 4]
        assert [p.user_id for p in groups[0]] == ['p1', 'p2', 'p3', 'p4']

    def test_last_group_smaller(self, participants):
        """Test ceil division leaves the last group smaller."""
        groups = split_into_groups(participants(7), 2)
        assert [len(g) for g in groups] == [4, 3]

    def test_group_too_small(self, participants):
        """Test a group with fewer than 2 participants is rejected."""
        with pytest.raises(InvalidGroupConfiguration):
            split_into_groups(participants(5), 3)

    def test_zero_groups(self, participants):
        """Test at least one group is required."""
        with pytest.raises(InvalidGroupConfiguration):
            split_into_groups(participants(4), 0)


class TestScheduling:
    """Tests for pairing and round scheduling inside a group."""

    def test_pairings_count(self):
        """Test k participants give k(k-1)/2 pairings."""
        for k in range(2, 9):
            assert len(generate_pairings([f"u{i}" for i in range(k)])) == k * (k - 1) // 2

    @pytest.mark.parametrize("size", [2, 3, 4, 5, 6, 7, 8])
    def test_every_pair_once(self, size):
        """Test the schedule contains every pairing exactly once."""
        user_ids = [f"u{i}" for i in range(size)]
        scheduled = [frozenset(pair) for rnd in schedule_rounds(user_ids) for pair in rnd]
        assert len(scheduled) == len(set(scheduled))
        assert set(scheduled) == {frozenset(pair) for pair in generate_pairings(user_ids)}

    @pytest.mark.parametrize("size", [3, 4, 5, 6])
    def test_nobody_plays_twice_per_round(self, size):
        """Test each participant appears at most once per round."""
        for rnd in schedule_rounds([f"u{i}" for i in range(size)]):
            players = [player for pair in rnd for player in pair]
            assert len(players) == len(set(players))

    def test_round_count(self):
        """Test even groups need k-1 rounds and odd groups k rounds."""
        assert len(schedule_rounds(['a', 'b', 'c', 'd'])) == 3
        assert len(schedule_rounds(['a', 'b', 'c'])) == 3


class TestGenerateGroups:
    """Tests for group generation."""

    def test_groups(self, participants):
        """Test groups carry names, members and advancement count."""
        groups = generate_groups(participants(8), 2, 2)
        assert [g['name'] for g in groups] == ['A', 'B']
        assert [g['number'] for g in groups] == [1, 2]
        assert groups[1]['participant_ids'] == ['p5', 'p6', 'p7', 'p8']
        assert all(g['top_advance'] == 2 for g in groups)
        total = sum(len(rnd) for g in groups for rnd in g['rounds'])
        assert total == 12

    def test_top_advance_capped_by_group_size(self, participants):
        """Test a group cannot advance more participants than it has."""
        groups = generate_groups(participants(3), 1, 5)
        assert groups[0]['top_advance'] == 3

    def test_negative_top_advance(self, participants):
        """Test a negative advancement count is rejected."""
        with pytest.raises(InvalidGroupConfiguration):
            generate_groups(participants(4), 1, -1)

    def test_round_robin_structure(self, participants):
        """Test each group becomes a bracket of scheduled matches without progression."""
        structure = generate_round_robin(participants(7), group_count=2, top_advance_per_group=1)
        assert structure.type == 'round_robin'
        assert list(structure.brackets) == ['A', 'B']
        assert len(structure.bracket_nodes('A')) == 6
        assert len(structure.bracket_nodes('B')) == 3
        for node in structure.iter_nodes():
            assert node.team1 and node.team2
            assert node.next_match_id is None
            assert node.next_loser_match_id is None
        assert structure.brackets['A'].round_names[1] == "Group A Round 1"


class TestGroupStandings:
    """Tests for group standings ordering."""

    def test_sort_by_points_then_difference(self):
        """Test points first, then games difference, ties stay in order."""
        rows = [
            {'user_id': 'a', 'points': 6, 'games_won': 10, 'games_lost': 5},
            {'user_id': 'b', 'points': 6, 'games_won': 12, 'games_lost': 4},
            {'user_id': 'c', 'points': 9, 'games_won': 1, 'games_lost': 10},
            {'user_id': 'd', 'points': 6, 'games_won': 10, 'games_lost': 5},
        ]
        assert [r['user_id'] for r in sort_group_standings(rows)] == ['c', 'b', 'a', 'd']

    def test_group_tables_mark_advancing(self):
        """Test the top N of each group are marked as advancing."""
        standings = initial_standings('cup', ['a', 'b', 'c', 'd'])
        standings[1]['points'] = 3
        standings[3]['points'] = 3
        groups = [
            {'group_name': 'A', 'top_advance': 1, 'participant_ids': ['a', 'b']},
            {'group_name': 'B', 'top_advance': 1, 'participant_ids': ['c', 'd']},
        ]
        tables = group_standings(groups, standings)
        assert [t['group_name'] for t in tables] == ['A', 'B']
        assert [(r['user_id'], r['position'], r['advances']) for r in tables[0]['standings']] == [
            ('b', 1, True), ('a', 2, False),
        ]
        assert tables[1]['standings'][0]['user_id'] == 'd'

    def test_initial_standings_zeroed(self):
        """Test new standing rows start at zero."""
        rows = initial_standings('cup', ['a', 'b'])
        assert len(rows) == 2
        assert rows[0]['tournament_id'] == 'cup'
        for key in ('matches_played', 'points', 'games_won', 'fair_play_points', 'yellow_cards',
                    'red_cards', 'conduct_bonus'):
            assert rows[0][key] == 0

    def test_apply_match_result(self):
        """Test wins, losses and draws update both rows."""
        rows = initial_standings('cup', ['a', 'b'])
        apply_match_result(rows, 'a', 'b', 6, 3, winner_team=1)
        assert (rows[0]['points'], rows[0]['matches_won'], rows[0]['games_won']) == (3, 1, 6)
        assert (rows[1]['points'], rows[1]['matches_lost'], rows[1]['games_lost']) == (0, 1, 6)

        apply_match_result(rows, 'a', 'b', 4, 4, is_draw=True, points={'points_per_draw': 2})
        assert rows[0]['points'] == 5
        assert rows[1]['points'] == 2
        assert rows[1]['matches_drawn'] == 1
        assert rows[1]['matches_played'] == 2
