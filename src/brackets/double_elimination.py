"""
Double elimination bracket generation.

In double elimination:
- Teams must lose twice to be eliminated
- Winners Bracket: Teams that haven't lost yet
- Losers Bracket: Teams that have lost once
- Grand Final: Winners bracket champion vs Losers bracket champion
"""
import logging
import math
import random
from typing import List, Optional

from .elimination import add_elimination_rounds, calculate_bracket_size, prepare_field, seat_seeds
from .models import BRACKET_LOSERS, BRACKET_MAIN, Bracket, BracketStructure, Participant

logger = logging.getLogger(__name__)


def get_losers_round_name(round_num: int, total_losers_rounds: int) -> str:
    """Get the name for a losers bracket round (0-indexed)."""
    rounds_from_end = total_losers_rounds - round_num - 1
    if rounds_from_end == 0:
        return "Losers Final"
    elif rounds_from_end == 1:
        return "Losers Semifinal"
    else:
        return f"Losers Round {round_num + 1}"


def get_winners_round_name(teams_in_round: int) -> str:
    """Get the name for a winners bracket round."""
    if teams_in_round == 2:
        return "Winners Final"
    elif teams_in_round == 4:
        return "Winners Semifinal"
    elif teams_in_round == 8:
        return "Winners Quarterfinal"
    else:
        return f"Winners Round of {teams_in_round}"


def calculate_losers_bracket_rounds(bracket_size: int) -> int:
    """
    Calculate number of rounds in losers bracket.
    For N teams in winners bracket (power of 2):
    - Winners bracket has log2(N) rounds
    - Losers bracket has 2 * (log2(N) - 1) rounds

    Pattern: minor, major, minor, major, ... ending with a major round
    """
    if bracket_size < 2:
        return 0
    winners_rounds = int(math.log2(bracket_size))
    return 2 * (winners_rounds - 1)


def _add_losers_bracket(structure: BracketStructure, losers: Bracket) -> None:
    """
    Build the losers bracket and route winners bracket losers into it.

    The losers bracket alternates between:
    - Minor rounds (1, 3, 5...): only losers bracket teams compete
    - Major rounds (2, 4, 6...): losers from the winners bracket drop in

    For 8-team bracket:
    - L Round 1 (minor): 4 W-QF losers pair off -> 2 matches
    - L Round 2 (major): 2 W-SF losers + 2 L-R1 winners -> 2 matches
    - L Round 3 (minor): 2 L-R2 winners pair off -> 1 match
    - L Round 4 (major): W-F loser + L-R3 winner -> 1 match (L champion)

    Drop-ins from even winners rounds are placed in reverse order so a team
    does not meet the side of the draw it has just come through.
    """
    bracket_size = structure.bracket_size
    total_losers_rounds = calculate_losers_bracket_rounds(bracket_size)
    previous = []
    matches_in_round = bracket_size // 4

    for round_number in range(1, total_losers_rounds + 1):
        is_major_round = round_number % 2 == 0
        if round_number > 1 and not is_major_round:
            matches_in_round //= 2
        current = [structure.add_node(losers, round_number, position) for position in range(matches_in_round)]
        losers.round_names[round_number] = get_losers_round_name(round_number - 1, total_losers_rounds)

        if round_number == 1:
            for node in structure.round_nodes(BRACKET_MAIN, 1):
                node.next_loser_match_id = current[node.position // 2].id
                node.next_loser_slot = node.position % 2 + 1
        elif is_major_round:
            winners_round = round_number // 2 + 1
            for node in structure.round_nodes(BRACKET_MAIN, winners_round):
                target = node.position
                if winners_round % 2 == 0:
                    target = matches_in_round - 1 - node.position
                node.next_loser_match_id = current[target].id
                node.next_loser_slot = 1
            for node in previous:
                node.next_match_id = current[node.position].id
                node.next_match_slot = 2
        else:
            for node in previous:
                node.next_match_id = current[node.position // 2].id
                node.next_match_slot = node.position % 2 + 1
        previous = current


def generate_double_elimination(participants: List[Participant], seeding: str = 'ranked',
                                manual_order: Optional[List[str]] = None, is_doubles: bool = True,
                                rng: Optional[random.Random] = None) -> BracketStructure:
    """
    Generate a double elimination bracket.

    The winners bracket is seeded exactly like single elimination. Every
    winners match routes its loser into the losers bracket, and the grand
    final (last round of the main bracket) pairs both champions.

    Returns:
        BracketStructure of type 'double'; ``winners`` and ``losers`` give the
        two brackets.
    """
    seeded = prepare_field(participants, seeding, manual_order, rng)
    bracket_size = calculate_bracket_size(len(seeded))
    structure = BracketStructure('double', seeded, bracket_size, is_doubles)

    winners = structure.add_bracket(BRACKET_MAIN, BRACKET_MAIN)
    add_elimination_rounds(structure, winners, bracket_size // 2)
    winners_rounds = winners.total_rounds
    for round_number in range(1, winners_rounds + 1):
        winners.round_names[round_number] = get_winners_round_name(bracket_size >> (round_number - 1))

    losers = structure.add_bracket(BRACKET_LOSERS, BRACKET_LOSERS)
    _add_losers_bracket(structure, losers)

    grand_final = structure.add_node(winners, winners_rounds + 1, 0)
    winners.round_names[winners_rounds + 1] = "Grand Final"
    winners_final = structure.round_nodes(BRACKET_MAIN, winners_rounds)[0]
    winners_final.next_match_id = grand_final.id
    winners_final.next_match_slot = 1
    if losers.rounds:
        losers_final = structure.round_nodes(BRACKET_LOSERS, losers.total_rounds)[0]
        losers_final.next_match_id = grand_final.id
        losers_final.next_match_slot = 2
    else:
        # Two-team field: the only loser goes straight to the grand final
        winners_final.next_loser_match_id = grand_final.id
        winners_final.next_loser_slot = 2

    seat_seeds(structure)

    logger.info(f"Generated double elimination: {len(seeded)} participants, bracket of {bracket_size}, "
                f"{winners_rounds} winners rounds, {losers.total_rounds} losers rounds")
    return structure
