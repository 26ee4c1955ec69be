"""
Round robin group generation.

Participants are split into groups named A, B, C... and every pair inside a
group meets exactly once. Group matches are scheduled into rounds with the
circle method, so nobody plays twice in the same round.
"""
import logging
import math
import random
import string
from itertools import combinations
from typing import Dict, List, Optional, Tuple

from .errors import InvalidGroupConfiguration
from .models import BYE, BRACKET_GROUP, BracketStructure, Participant
from .seeding import seed_participants

logger = logging.getLogger(__name__)

DEFAULT_GROUP_COUNT = 1
DEFAULT_TOP_PER_GROUP = 2


def group_name(index: int) -> str:
    """Letter name for a 0-indexed group: A, B, ..., Z, AA, AB..."""
    letters = string.ascii_uppercase
    name = ''
    index += 1
    while index > 0:
        index, remainder = divmod(index - 1, 26)
        name = letters[remainder] + name
    return name


def split_into_groups(participants: List[Participant], group_count: int) -> List[List[Participant]]:
    """
    Split participants into contiguous groups of ceil(n / group_count).

    The last group may be smaller than the others.
    """
    if group_count < 1:
        raise InvalidGroupConfiguration("At least one group is required")
    size = math.ceil(len(participants) / group_count)
    groups = [participants[i * size:(i + 1) * size] for i in range(group_count)]
    for index, members in enumerate(groups):
        if len(members) < 2:
            raise InvalidGroupConfiguration(
                f"{len(participants)} participants cannot fill {group_count} groups: "
                f"group {group_name(index)} would have {len(members)} participants"
            )
    return groups


def generate_pairings(user_ids: List[str]) -> List[Tuple[str, str]]:
    """All pairs of a group, each exactly once."""
    return list(combinations(user_ids, 2))


def schedule_rounds(user_ids: List[str]) -> List[List[Tuple[str, str]]]:
    """
    Arrange every pairing of the group into rounds (circle method).

    One participant stays fixed while the others rotate. Odd groups get a
    BYE placeholder, and pairings against it are dropped.
    """
    rotation = list(user_ids)
    if len(rotation) % 2 == 1:
        rotation.append(BYE)
    rounds = []
    for _ in range(len(rotation) - 1):
        pairs = []
        for i in range(len(rotation) // 2):
            home, away = rotation[i], rotation[len(rotation) - 1 - i]
            if home != BYE and away != BYE:
                pairs.append((home, away))
        rounds.append(pairs)
        rotation = [rotation[0], rotation[-1]] + rotation[1:-1]
    return rounds


def generate_groups(participants: List[Participant], group_count: int = DEFAULT_GROUP_COUNT,
                    top_advance_per_group: int = DEFAULT_TOP_PER_GROUP) -> List[Dict]:
    """
    Build the groups of a round robin stage.

    Returns a list of dicts with:
    - name: 'A', 'B', ...
    - number: 1-indexed group number
    - participant_ids: user ids in the group
    - top_advance: how many of the group advance
    - rounds: list of rounds, each a list of (user_id, user_id) pairings
    """
    if top_advance_per_group < 0:
        raise InvalidGroupConfiguration("top_per_group cannot be negative")
    groups = []
    for index, members in enumerate(split_into_groups(participants, group_count)):
        user_ids = [p.user_id for p in members]
        if top_advance_per_group > len(user_ids):
            logger.warning(f"Group {group_name(index)} has {len(user_ids)} participants, "
                           f"fewer than top_per_group={top_advance_per_group}")
        groups.append({
            'name': group_name(index),
            'number': index + 1,
            'participant_ids': user_ids,
            'top_advance': min(top_advance_per_group, len(user_ids)),
            'rounds': schedule_rounds(user_ids),
        })
    return groups


def generate_round_robin(participants: List[Participant], seeding: str = 'ranked',
                         manual_order: Optional[List[str]] = None, is_doubles: bool = True,
                         group_count: int = DEFAULT_GROUP_COUNT,
                         top_advance_per_group: int = DEFAULT_TOP_PER_GROUP,
                         rng: Optional[random.Random] = None) -> BracketStructure:
    """
    Generate a round robin stage as a BracketStructure of type 'round_robin'.

    Each group becomes its own bracket (named after the group) whose rounds
    hold the scheduled matches. Group matches have no progression edges.
    """
    seeded = seed_participants(participants, seeding, manual_order, rng=rng)
    groups = generate_groups(seeded, group_count, top_advance_per_group)
    structure = BracketStructure('round_robin', seeded, len(seeded), is_doubles)
    structure.groups = groups

    total_matches = 0
    for group in groups:
        bracket = structure.add_bracket(group['name'], BRACKET_GROUP)
        for round_number, pairs in enumerate(group['rounds'], start=1):
            bracket.round_names[round_number] = f"Group {group['name']} Round {round_number}"
            for position, (home, away) in enumerate(pairs):
                node = structure.add_node(bracket, round_number, position)
                node.team1 = home
                node.team2 = away
                total_matches += 1

    logger.info(f"Generated round robin: {len(seeded)} participants, {len(groups)} groups, "
                f"{total_matches} matches")
    return structure
