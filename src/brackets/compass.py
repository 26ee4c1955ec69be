"""
Compass draw generation.

Every team keeps playing after a loss: the losers of each main draw round
start a consolation bracket named after a compass point.

- Main draw round 1 losers -> East
- Main draw round 2 losers -> West
- Main draw round 3 losers -> North East
- Main draw round 4 losers -> South East
- Main draw round 5 losers -> North West
- Main draw round 6 losers -> South West

A consolation bracket only exists when its feeding round produces at least
two losers. Its matches stay empty until the whole feeding round has been
decided.
"""
import logging
import random
from typing import List, Optional

from .elimination import add_elimination_rounds, calculate_bracket_size, prepare_field, seat_seeds
from .models import (
    BRACKET_CONSOLATION, BRACKET_MAIN, NOT_APPLICABLE,
    BracketStructure, Participant,
)

logger = logging.getLogger(__name__)

COMPASS_BRACKETS = ('east', 'west', 'northeast', 'southeast', 'northwest', 'southwest')

COMPASS_LABELS = {
    'east': 'East',
    'west': 'West',
    'northeast': 'North East',
    'southeast': 'South East',
    'northwest': 'North West',
    'southwest': 'South West',
}


def consolation_bracket_for_round(round_number: int) -> Optional[str]:
    """Name of the consolation bracket fed by a main draw round, if any."""
    if 1 <= round_number <= len(COMPASS_BRACKETS):
        return COMPASS_BRACKETS[round_number - 1]
    return None


def generate_compass_draw(participants: List[Participant], seeding: str = 'ranked',
                          manual_order: Optional[List[str]] = None, is_doubles: bool = True,
                          rng: Optional[random.Random] = None) -> BracketStructure:
    """
    Generate a compass draw.

    The main draw is a standard single elimination bracket. For main round k
    the consolation bracket COMPASS_BRACKETS[k - 1] is a knockout over that
    round's losers; the loser of main match p enters its round 1 at position
    p // 2. Brackets the draw size cannot fill are NOT_APPLICABLE.

    Returns:
        BracketStructure of type 'compass'; ``main_draw`` and
        ``consolation_brackets`` give the brackets.
    """
    seeded = prepare_field(participants, seeding, manual_order, rng)
    bracket_size = calculate_bracket_size(len(seeded))
    structure = BracketStructure('compass', seeded, bracket_size, is_doubles)

    main = structure.add_bracket(BRACKET_MAIN, BRACKET_MAIN)
    add_elimination_rounds(structure, main, bracket_size // 2)

    for round_number, name in enumerate(COMPASS_BRACKETS, start=1):
        losers_count = bracket_size >> round_number
        if losers_count < 2:
            structure.consolation[name] = NOT_APPLICABLE
            continue
        bracket = structure.add_bracket(name, BRACKET_CONSOLATION)
        add_elimination_rounds(structure, bracket, losers_count // 2, name_prefix=f"{COMPASS_LABELS[name]} ")
        structure.consolation[name] = bracket
        entry_round = structure.round_nodes(name, 1)
        for node in structure.round_nodes(BRACKET_MAIN, round_number):
            node.next_loser_match_id = entry_round[node.position // 2].id
            node.next_loser_slot = node.position % 2 + 1
            node.loser_deferred = True

    seat_seeds(structure)

    active = [name for name, bracket in structure.consolation.items() if bracket is not NOT_APPLICABLE]
    logger.info(f"Generated compass draw: {len(seeded)} participants, bracket of {bracket_size}, "
                f"consolation brackets: {', '.join(active) or 'none'}")
    return structure
