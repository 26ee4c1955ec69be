"""
Bracket progression and layout.

Given a BracketStructure, this module answers "where does the winner (and
loser) of this match go", applies results, resolves byes, and computes a grid
layout for drawing the bracket.
"""
import logging
from typing import Dict, List, Optional, Tuple

from .errors import InvalidResult
from .models import (
    BYE, MATCH_COMPLETED, MATCH_FORFEITED, BRACKET_MAIN, BRACKET_GROUP,
    BracketStructure, MatchNode,
)

logger = logging.getLogger(__name__)

# Pixel constants for bracket drawing
MATCH_WIDTH = 240
MATCH_HEIGHT = 80
HORIZONTAL_GAP = 100
VERTICAL_GAP = 20
BRACKET_GAP = 60

LOSER_ROUTING_TYPES = ('double', 'compass')


def resolve_destinations(structure: BracketStructure, match_id: str) -> Dict[str, Optional[Tuple[str, int]]]:
    """
    Return where the winner and the loser of a match are routed.

    Each destination is a (match_id, slot) tuple or None. Semifinal losers of
    a single elimination bracket with a bronze match resolve to the bronze
    match.
    """
    node = structure.node(match_id)
    winner = (node.next_match_id, node.next_match_slot) if node.next_match_id else None
    loser = None
    if node.next_loser_match_id:
        loser = (node.next_loser_match_id, node.next_loser_slot)
    elif node.id in structure.bronze_feeders:
        loser = structure.bronze_feeders[node.id]
    return {'winner': winner, 'loser': loser}


def place_team(structure: BracketStructure, match_id: str, slot: int, team) -> List[str]:
    """Put a team into a match slot, then settle the match. Returns touched match ids."""
    node = structure.node(match_id)
    node.set_team(slot, team)
    return [match_id] + settle(structure, node)


def settle(structure: BracketStructure, node: MatchNode) -> List[str]:
    """
    Resolve a match whose slots are both known and at least one is a bye.

    One bye is a walkover for the other side; two byes leave the match
    forfeited with no winner, and a bye travels on in its place.
    """
    if node.is_decided or node.team1 is None or node.team2 is None:
        return []
    if node.team1 == BYE and node.team2 == BYE:
        node.status = MATCH_FORFEITED
        node.winner_team = None
    elif node.team1 == BYE:
        node.status = MATCH_COMPLETED
        node.winner_team = 2
    elif node.team2 == BYE:
        node.status = MATCH_COMPLETED
        node.winner_team = 1
    else:
        return []
    return _route(structure, node)


def record_result(structure: BracketStructure, match_id: str, winner_team: Optional[int] = None,
                  is_draw: bool = False) -> List[str]:
    """
    Record the result of a played match and push it through the bracket.

    Returns the ids of every match whose state changed, the played match
    first.

    Raises:
        InvalidResult: the match is already decided, not ready, or the result
            is not allowed for the format
    """
    node = structure.node(match_id)
    if node.is_decided:
        raise InvalidResult(f"Match {match_id} is already decided")
    if node.team1 in (None, BYE) or node.team2 in (None, BYE):
        raise InvalidResult(f"Match {match_id} does not have two teams yet")

    if is_draw:
        if structure.type != 'round_robin':
            raise InvalidResult("Elimination matches cannot end in a draw")
        node.is_draw = True
        node.status = MATCH_COMPLETED
        return [node.id]

    if winner_team not in (1, 2):
        raise InvalidResult("winner_team must be 1 or 2")
    node.winner_team = winner_team
    node.status = MATCH_COMPLETED
    logger.info(f"Match {match_id} won by team {winner_team} ({node.winner})")
    return [node.id] + _route(structure, node)


def _route(structure: BracketStructure, node: MatchNode) -> List[str]:
    touched = []
    if node.next_match_id:
        advancing = node.winner if node.winner_team else BYE
        touched += place_team(structure, node.next_match_id, node.next_match_slot, advancing)
    if node.next_loser_match_id and not node.loser_deferred:
        touched += place_team(structure, node.next_loser_match_id, node.next_loser_slot, node.loser)
    if node.id in structure.bronze_feeders:
        bronze_id, slot = structure.bronze_feeders[node.id]
        touched += place_team(structure, bronze_id, slot, node.loser)
    if node.loser_deferred:
        touched += link_deferred_losers(structure, node.bracket, node.round)
    return touched


def link_deferred_losers(structure: BracketStructure, bracket_name: str, round_number: int) -> List[str]:
    """
    Place the losers of a round into their consolation bracket.

    Nothing happens until every match of the round is decided; after that
    each loser is placed once.
    """
    nodes = structure.round_nodes(bracket_name, round_number)
    if not all(node.is_decided for node in nodes):
        return []
    touched = []
    for node in nodes:
        if not node.next_loser_match_id:
            continue
        target = structure.node(node.next_loser_match_id)
        if target.team(node.next_loser_slot) is not None:
            continue
        touched += place_team(structure, node.next_loser_match_id, node.next_loser_slot, node.loser)
    if touched:
        logger.info(f"Linked losers of {bracket_name} round {round_number} into consolation")
    return touched


def is_round_linked(structure: BracketStructure, bracket_name: str, round_number: int) -> bool:
    """True once every match of the round is decided and its deferred losers are placed."""
    for node in structure.round_nodes(bracket_name, round_number):
        if not node.is_decided:
            return False
        if node.next_loser_match_id:
            target = structure.node(node.next_loser_match_id)
            if target.team(node.next_loser_slot) is None:
                return False
    return True


def validate_progression(structure: BracketStructure) -> List[str]:
    """
    Check the progression graph and return a list of problems (empty if valid).
    """
    errors = []
    fed_slots = {}

    def feed(source_id, target, kind):
        if target is None:
            return
        target_id, slot = target
        if target_id not in structure.nodes:
            errors.append(f"{source_id}: {kind} destination {target_id} does not exist")
            return
        if slot not in (1, 2):
            errors.append(f"{source_id}: {kind} destination slot {slot} is invalid")
            return
        if (target_id, slot) in fed_slots:
            errors.append(f"{target_id} slot {slot} is fed by both {fed_slots[(target_id, slot)]} and {source_id}")
            return
        fed_slots[(target_id, slot)] = source_id

    for node in structure.iter_nodes():
        destinations = resolve_destinations(structure, node.id)
        feed(node.id, destinations['winner'], 'winner')
        if node.next_loser_match_id and structure.type not in LOSER_ROUTING_TYPES:
            errors.append(f"{node.id}: loser routing is not allowed in {structure.type} brackets")
        feed(node.id, destinations['loser'], 'loser')

    if structure.type != 'round_robin' and BRACKET_MAIN in structure.brackets:
        main = structure.upper
        terminals = [n for n in structure.bracket_nodes(BRACKET_MAIN) if not n.next_match_id]
        if len(terminals) != 1:
            errors.append(f"main bracket has {len(terminals)} terminal matches, expected 1")
        elif terminals[0].round != max(main.rounds):
            errors.append(f"terminal match {terminals[0].id} is not in the last round")

    if _has_cycle(structure):
        errors.append("progression graph contains a cycle")
    return errors


def _has_cycle(structure: BracketStructure) -> bool:
    edges = {}
    for node in structure.nodes.values():
        destinations = resolve_destinations(structure, node.id)
        edges[node.id] = [d[0] for d in destinations.values() if d is not None]

    visiting, done = set(), set()

    def visit(match_id) -> bool:
        if match_id in done:
            return False
        if match_id in visiting:
            return True
        visiting.add(match_id)
        found = any(visit(target) for target in edges.get(match_id, []))
        visiting.discard(match_id)
        done.add(match_id)
        return found

    return any(visit(match_id) for match_id in edges)


def compute_layout(structure: BracketStructure) -> Dict[str, Dict]:
    """
    Compute a drawing position for every match.

    Each bracket is a grid with one column per round and one row per match of
    its widest round. ``span`` is how many rows a match covers, so later
    rounds sit centred between the two matches feeding them. Brackets are
    stacked vertically in creation order.
    """
    layout = {}
    offset_y = 0
    for bracket in structure.brackets.values():
        if not bracket.rounds:
            continue
        widest = max(len(ids) for ids in bracket.rounds.values())
        for column, round_number in enumerate(sorted(bracket.rounds)):
            ids = bracket.rounds[round_number]
            span = widest / len(ids) if bracket.bracket_type != BRACKET_GROUP else 1
            for row, match_id in enumerate(ids):
                center = offset_y + (row + 0.5) * span * (MATCH_HEIGHT + VERTICAL_GAP)
                layout[match_id] = {
                    'bracket': bracket.name,
                    'column': column,
                    'row': row,
                    'span': span,
                    'x': column * (MATCH_WIDTH + HORIZONTAL_GAP),
                    'y': center - MATCH_HEIGHT / 2,
                }
        offset_y += widest * (MATCH_HEIGHT + VERTICAL_GAP) + BRACKET_GAP
    return layout
