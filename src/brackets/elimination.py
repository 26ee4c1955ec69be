"""
Single elimination bracket generation.
"""
import logging
import math
import random
from typing import List, Optional

from .errors import InsufficientParticipants
from .models import (
    BYE, BRACKET_MAIN, BRACKET_THIRD_PLACE,
    Bracket, BracketStructure, Participant,
)
from .progression import settle
from .seeding import seed_participants

logger = logging.getLogger(__name__)


def get_round_name(teams_in_round: int) -> str:
    """Get the name of a round based on number of teams."""
    if teams_in_round == 2:
        return "Final"
    elif teams_in_round == 4:
        return "Semifinal"
    elif teams_in_round == 8:
        return "Quarterfinal"
    else:
        return f"Round of {teams_in_round}"


def calculate_bracket_size(num_teams: int) -> int:
    """Calculate the bracket size (next power of 2)."""
    if num_teams <= 0:
        return 0
    return 2 ** math.ceil(math.log2(num_teams))


def calculate_byes(num_teams: int) -> int:
    """Calculate number of byes needed."""
    return calculate_bracket_size(num_teams) - num_teams


def calculate_total_rounds(num_teams: int) -> int:
    """Number of rounds needed to reduce the field to a single winner."""
    bracket_size = calculate_bracket_size(num_teams)
    if bracket_size < 2:
        return 0
    return int(math.log2(bracket_size))


def _generate_bracket_order(bracket_size: int) -> List[int]:
    """
    Generate the standard tournament bracket order.
    This ensures that if all higher seeds win, they meet in the proper rounds.

    For 8 teams: [1, 8, 4, 5, 2, 7, 3, 6]
    This gives matchups: 1v8, 4v5, 2v7, 3v6
    Final: 1v2 (if chalk)
    """
    if bracket_size <= 2:
        return [1, 2][:bracket_size]

    half_size = bracket_size // 2
    upper_half = _generate_bracket_order(half_size)
    lower_half = [bracket_size + 1 - seed for seed in upper_half]

    result = []
    for u, l in zip(upper_half, lower_half):
        result.extend([u, l])
    return result


def add_elimination_rounds(structure: BracketStructure, bracket: Bracket, first_round_matches: int,
                           name_prefix: str = "") -> None:
    """
    Create the rounds of a knockout bracket and wire winner edges.

    The winner of the match at position p goes to position p // 2 of the next
    round, in slot 1 for even positions and slot 2 for odd ones.
    """
    matches_in_round = first_round_matches
    round_number = 1
    previous = []
    while matches_in_round >= 1:
        current = [structure.add_node(bracket, round_number, position) for position in range(matches_in_round)]
        bracket.round_names[round_number] = f"{name_prefix}{get_round_name(matches_in_round * 2)}"
        for node in previous:
            node.next_match_id = current[node.position // 2].id
            node.next_match_slot = node.position % 2 + 1
        previous = current
        matches_in_round //= 2
        round_number += 1


def seat_seeds(structure: BracketStructure, bracket_name: str = BRACKET_MAIN) -> None:
    """
    Place the seeded participants into the first round and resolve byes.

    Seeds beyond the number of participants are byes, so the top seeds are
    the ones that receive them.
    """
    seeded = structure.participants
    first_round = structure.round_nodes(bracket_name, 1)
    order = _generate_bracket_order(len(first_round) * 2)
    for node in first_round:
        for slot, seed in ((1, order[node.position * 2]), (2, order[node.position * 2 + 1])):
            node.set_team(slot, seeded[seed - 1].user_id if seed <= len(seeded) else BYE)
    for node in first_round:
        settle(structure, node)


def prepare_field(participants: List[Participant], seeding: str, manual_order: Optional[List[str]],
                  rng: Optional[random.Random]) -> List[Participant]:
    """Seed the participants and check there are enough for a bracket."""
    seeded = seed_participants(participants, seeding, manual_order, rng=rng)
    if len(seeded) < 2:
        raise InsufficientParticipants(f"At least 2 participants are required, got {len(seeded)}")
    return seeded


def _add_bronze_match(structure: BracketStructure) -> None:
    """Add a third place match fed by the two semifinal losers."""
    main = structure.upper
    semifinals = structure.round_nodes(BRACKET_MAIN, main.total_rounds - 1)
    bronze_bracket = structure.add_bracket(BRACKET_THIRD_PLACE, BRACKET_THIRD_PLACE)
    bronze = structure.add_node(bronze_bracket, 1, 0)
    bronze_bracket.round_names[1] = "Third Place"
    for semifinal in semifinals:
        structure.bronze_feeders[semifinal.id] = (bronze.id, semifinal.position + 1)


def generate_knockout(participants: List[Participant], seeding: str = 'ranked',
                      manual_order: Optional[List[str]] = None, is_doubles: bool = True,
                      bronze_match: bool = False, rng: Optional[random.Random] = None) -> BracketStructure:
    """
    Generate a single elimination bracket.

    Args:
        participants: Checked-in participants
        seeding: 'ranked', 'random' or 'manual'
        manual_order: user ids in seed order, used with manual seeding
        is_doubles: fill both player columns of each team
        bronze_match: add a third place match between the semifinal losers
        rng: random source for random seeding

    Returns:
        BracketStructure of type 'single'. Matches decided by byes are already
        completed and their winners placed in round 2.
    """
    seeded = prepare_field(participants, seeding, manual_order, rng)
    bracket_size = calculate_bracket_size(len(seeded))
    structure = BracketStructure('single', seeded, bracket_size, is_doubles)
    main = structure.add_bracket(BRACKET_MAIN, BRACKET_MAIN)
    add_elimination_rounds(structure, main, bracket_size // 2)
    if bronze_match and main.total_rounds >= 2:
        _add_bronze_match(structure)
    seat_seeds(structure)

    logger.info(f"Generated single elimination: {len(seeded)} participants, bracket of {bracket_size}, "
                f"{calculate_byes(len(seeded))} byes, {main.total_rounds} rounds")
    return structure
