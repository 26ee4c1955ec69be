"""
Conversion between in-memory bracket structures and stored rows.

Rows are plain dicts so they can be written with yaml.dump:

- rounds: one per (bracket_name, round_number)
- matches: one per match node, team slots as player ids
- bracket_slots: one per elimination match, carrying its forward pointers
- groups: one per round robin group
"""
import logging
from typing import Dict, List, Optional

from .compass import COMPASS_BRACKETS
from .models import (
    BRACKET_CONSOLATION, BRACKET_GROUP, BRACKET_MAIN, DECIDED_STATUSES, MATCH_COMPLETED,
    MATCH_IN_PROGRESS, MATCH_PENDING, NOT_APPLICABLE, BracketStructure, Participant,
)
from .persistence import Transaction
from .progression import is_round_linked, resolve_destinations
from .standings import initial_standings

logger = logging.getLogger(__name__)

STRUCTURE_TYPES = {
    'knockout_single': 'single',
    'knockout_double': 'double',
    'compass': 'compass',
    'round_robin': 'round_robin',
}


def _prefixed(tournament_id: str, local_id: Optional[str]) -> Optional[str]:
    return f"{tournament_id}_{local_id}" if local_id else None


def _local(tournament_id: str, stored_id: Optional[str]) -> Optional[str]:
    if not stored_id:
        return None
    prefix = f"{tournament_id}_"
    return stored_id[len(prefix):] if stored_id.startswith(prefix) else stored_id


def round_id(tournament_id: str, bracket_name: str, round_number: int) -> str:
    return f"{tournament_id}_{bracket_name}_r{round_number}"


def _team_columns(structure: BracketStructure, team) -> List[Optional[str]]:
    participant = structure.participant(team) if team else None
    if participant is None:
        return [None, None]
    return list(participant.team_players(structure.is_doubles))


def _is_linked(structure: BracketStructure, bracket_name: str) -> bool:
    """A consolation bracket is linked once its feeding main round is fully decided."""
    feeding_round = COMPASS_BRACKETS.index(bracket_name) + 1
    return is_round_linked(structure, BRACKET_MAIN, feeding_round)


def _round_status(nodes) -> str:
    if all(node.is_decided for node in nodes):
        return MATCH_COMPLETED
    if any(node.is_decided for node in nodes):
        return MATCH_IN_PROGRESS
    return MATCH_PENDING


def flatten_structure(structure: BracketStructure, tournament_id: str) -> Dict[str, List[Dict]]:
    """Turn a bracket structure into rounds, matches, bracket_slots and groups rows."""
    rows = {'rounds': [], 'matches': [], 'bracket_slots': [], 'groups': []}
    for bracket in structure.brackets.values():
        linked = bracket.bracket_type != BRACKET_CONSOLATION or _is_linked(structure, bracket.name)
        for round_number in sorted(bracket.rounds):
            nodes = structure.round_nodes(bracket.name, round_number)
            this_round_id = round_id(tournament_id, bracket.name, round_number)
            rows['rounds'].append({
                'id': this_round_id,
                'tournament_id': tournament_id,
                'bracket_type': bracket.bracket_type,
                'bracket_name': bracket.name,
                'round_number': round_number,
                'name': bracket.round_names.get(round_number),
                'status': _round_status(nodes),
            })
            for node in nodes:
                match_id = _prefixed(tournament_id, node.id)
                team1 = _team_columns(structure, node.team1)
                team2 = _team_columns(structure, node.team2)
                rows['matches'].append({
                    'id': match_id,
                    'round_id': this_round_id,
                    'bracket_name': bracket.name,
                    'round_number': round_number,
                    'position': node.position,
                    'team1_id': node.team1,
                    'team2_id': node.team2,
                    'team1_player1_id': team1[0],
                    'team1_player2_id': team1[1],
                    'team2_player1_id': team2[0],
                    'team2_player2_id': team2[1],
                    'status': node.status,
                    'winner_team': node.winner_team,
                    'is_draw': node.is_draw,
                    'team1_score': None,
                    'team2_score': None,
                })
                if bracket.bracket_type == BRACKET_GROUP:
                    continue
                destinations = resolve_destinations(structure, node.id)
                winner = destinations['winner'] or (None, None)
                loser = destinations['loser'] or (None, None)
                rows['bracket_slots'].append({
                    'tournament_id': tournament_id,
                    'bracket_type': bracket.bracket_type,
                    'bracket_name': bracket.name,
                    'round_number': round_number,
                    'position': node.position,
                    'match_id': match_id if linked else None,
                    'winner_to': _prefixed(tournament_id, winner[0]),
                    'winner_to_slot': winner[1],
                    'loser_to': _prefixed(tournament_id, loser[0]),
                    'loser_to_slot': loser[1],
                    'loser_deferred': node.loser_deferred,
                })

    for group in structure.groups:
        rows['groups'].append({
            'tournament_id': tournament_id,
            'group_name': group['name'],
            'group_number': group['number'],
            'participant_ids': list(group['participant_ids']),
            'top_advance': group['top_advance'],
        })
    return rows


def load_structure(tournament: Dict, participants: List[Participant], bracket: Dict[str, List]) -> BracketStructure:
    """
    Rebuild the bracket structure of a tournament from its stored rows.

    participants are ordered by the seed order recorded at generation.
    """
    tournament_id = tournament['id']
    settings = tournament.get('format_settings') or {}
    by_id = {p.user_id: p for p in participants}
    seed_order = settings.get('seed_order') or [p.user_id for p in participants]
    seeded = [by_id[user_id] for user_id in seed_order if user_id in by_id]
    structure = BracketStructure(
        STRUCTURE_TYPES.get(tournament['type'], tournament['type']),
        seeded,
        settings.get('bracket_size', len(seeded)),
        tournament.get('is_doubles', True),
    )

    for row in bracket['rounds']:
        if row['bracket_name'] not in structure.brackets:
            structure.add_bracket(row['bracket_name'], row['bracket_type'])
        structure.brackets[row['bracket_name']].round_names[row['round_number']] = row.get('name')

    for row in bracket['matches']:
        node = structure.add_node(structure.brackets[row['bracket_name']], row['round_number'], row['position'])
        node.team1 = row.get('team1_id')
        node.team2 = row.get('team2_id')
        node.status = row['status']
        node.winner_team = row.get('winner_team')
        node.is_draw = row.get('is_draw', False)

    for row in bracket['bracket_slots']:
        node = structure.node(f"{row['bracket_name']}_r{row['round_number']}_m{row['position']}")
        node.next_match_id = _local(tournament_id, row.get('winner_to'))
        node.next_match_slot = row.get('winner_to_slot')
        loser_to = _local(tournament_id, row.get('loser_to'))
        if loser_to and structure.type == 'single':
            structure.bronze_feeders[node.id] = (loser_to, row['loser_to_slot'])
        elif loser_to:
            node.next_loser_match_id = loser_to
            node.next_loser_slot = row.get('loser_to_slot')
            node.loser_deferred = row.get('loser_deferred', False)

    if structure.type == 'compass':
        for name in COMPASS_BRACKETS:
            structure.consolation[name] = structure.brackets.get(name, NOT_APPLICABLE)

    for row in bracket['groups']:
        structure.groups.append({
            'name': row['group_name'],
            'number': row['group_number'],
            'participant_ids': list(row['participant_ids']),
            'top_advance': row['top_advance'],
        })
    return structure


def persist_generation(tx: Transaction, structure: BracketStructure, format_settings: Dict) -> Dict[str, int]:
    """
    Stage everything a freshly generated bracket needs inside a transaction.

    Rows are staged in dependency order (rounds, matches, slots, groups,
    standings) and the tournament moves to in_progress. Returns the number
    of rows staged per table.
    """
    tournament_id = tx.tournament_id
    rows = flatten_structure(structure, tournament_id)
    rows['standings'] = initial_standings(tournament_id, [p.user_id for p in structure.participants])
    for table in ('rounds', 'matches', 'bracket_slots', 'groups', 'standings'):
        tx.insert(table, rows[table])

    settings = dict(tx.tournament.get('format_settings') or {})
    settings.update(format_settings)
    settings['seed_order'] = [p.user_id for p in structure.participants]
    settings['bracket_size'] = structure.bracket_size
    tx.update_tournament(status='in_progress', format_settings=settings)
    return {table: len(table_rows) for table, table_rows in rows.items()}


def merge_progress(tx: Transaction, structure: BracketStructure, scores: Dict[str, Dict]) -> None:
    """
    Replace the stored rows with the current state of the structure.

    Scores already recorded are kept; ``scores`` adds or overrides scores by
    stored match id.
    """
    rows = flatten_structure(structure, tx.tournament_id)
    previous = {row['id']: row for row in tx.bracket['matches']}
    for row in rows['matches']:
        old = previous.get(row['id'], {})
        row['team1_score'] = old.get('team1_score')
        row['team2_score'] = old.get('team2_score')
        row.update(scores.get(row['id'], {}))
    for table in ('rounds', 'matches', 'bracket_slots'):
        tx.replace(table, rows[table])


def all_decided(structure: BracketStructure) -> bool:
    return all(node.status in DECIDED_STATUSES for node in structure.nodes.values())
