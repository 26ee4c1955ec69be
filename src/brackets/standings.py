"""
Tournament standings.
"""
from typing import Dict, List, Optional

STANDING_COUNTERS = (
    'matches_played', 'matches_won', 'matches_drawn', 'matches_lost',
    'games_won', 'games_lost', 'points',
    'fair_play_points', 'yellow_cards', 'red_cards', 'conduct_bonus',
)

DEFAULT_POINTS = {
    'points_per_win': 3,
    'points_per_draw': 1,
    'points_per_loss': 0,
}


def initial_standings(tournament_id: str, user_ids: List[str]) -> List[Dict]:
    """One zeroed standing row per participant."""
    rows = []
    for user_id in user_ids:
        row = {'tournament_id': tournament_id, 'user_id': user_id}
        row.update({counter: 0 for counter in STANDING_COUNTERS})
        rows.append(row)
    return rows


def games_difference(row: Dict) -> int:
    return row.get('games_won', 0) - row.get('games_lost', 0)


def sort_group_standings(rows: List[Dict]) -> List[Dict]:
    """Sort by points, then games difference, both descending. Ties keep their order."""
    return sorted(rows, key=lambda r: (-r.get('points', 0), -games_difference(r)))


def group_standings(groups: List[Dict], standings: List[Dict]) -> List[Dict]:
    """
    Build the ordered standings table of every group.

    Returns a list of dicts with:
    - group_name
    - top_advance
    - standings: rows sorted by sort_group_standings, each with 'position'
      and 'advances' added
    """
    by_user = {row['user_id']: row for row in standings}
    tables = []
    for group in groups:
        rows = [by_user[user_id] for user_id in group['participant_ids'] if user_id in by_user]
        ordered = []
        for position, row in enumerate(sort_group_standings(rows), start=1):
            entry = dict(row)
            entry['position'] = position
            entry['games_diff'] = games_difference(row)
            entry['advances'] = position <= group['top_advance']
            ordered.append(entry)
        tables.append({
            'group_name': group['group_name'],
            'top_advance': group['top_advance'],
            'standings': ordered,
        })
    return tables


def apply_match_result(standings: List[Dict], team1_id: str, team2_id: str,
                       team1_score: int, team2_score: int, winner_team: Optional[int] = None,
                       is_draw: bool = False, points: Optional[Dict] = None) -> None:
    """
    Credit a finished match to both entries' standing rows in place.

    Team ids are participant user ids; rows for other ids are left alone.
    """
    points = {**DEFAULT_POINTS, **(points or {})}
    by_user = {row['user_id']: row for row in standings}
    sides = ((team1_id, team1_score, team2_score, 1), (team2_id, team2_score, team1_score, 2))
    for user_id, scored, conceded, team_number in sides:
        row = by_user.get(user_id)
        if row is None:
            continue
        row['matches_played'] += 1
        row['games_won'] += scored
        row['games_lost'] += conceded
        if is_draw:
            row['matches_drawn'] += 1
            row['points'] += points['points_per_draw']
        elif winner_team == team_number:
            row['matches_won'] += 1
            row['points'] += points['points_per_win']
        else:
            row['matches_lost'] += 1
            row['points'] += points['points_per_loss']
