"""
Participant seeding.

Three modes are supported:
- ranked: highest ranking points first, ties keep registration order
- random: uniform shuffle
- manual: explicit order chosen by the organizer
"""
import logging
import random
from typing import List, Optional

from .errors import DuplicateParticipant, EmptyParticipantList, InvalidSeedingMode
from .models import Participant

logger = logging.getLogger(__name__)

SEEDING_MODES = ('ranked', 'random', 'manual')


def seed_participants(participants: List[Participant], mode: str,
                      manual_order: Optional[List[str]] = None,
                      rng: Optional[random.Random] = None) -> List[Participant]:
    """
    Return the participants ordered by seed (index 0 is seed 1).

    The result is always a permutation of the input: no participant is
    dropped or duplicated, whatever the mode.

    Raises:
        InvalidSeedingMode: mode is not one of SEEDING_MODES
        EmptyParticipantList: no participants were given
        DuplicateParticipant: the same user_id appears twice
    """
    if mode not in SEEDING_MODES:
        raise InvalidSeedingMode(f"Unknown seeding mode '{mode}'. Expected one of: {', '.join(SEEDING_MODES)}")
    if not participants:
        raise EmptyParticipantList("Cannot seed an empty participant list")
    _check_unique(participants)

    if mode == 'ranked':
        return _seed_ranked(participants)
    if mode == 'random':
        return _seed_random(participants, rng or random.Random())
    return _seed_manual(participants, manual_order)


def _check_unique(participants: List[Participant]):
    seen = set()
    for participant in participants:
        if participant.user_id in seen:
            raise DuplicateParticipant(f"Participant {participant.user_id} is registered more than once")
        seen.add(participant.user_id)


def _seed_ranked(participants: List[Participant]) -> List[Participant]:
    # sorted() is stable, so equal ranking points keep input order
    return sorted(
        participants,
        key=lambda p: (p.ranking_points is None, -(p.ranking_points or 0)),
    )


def _seed_random(participants: List[Participant], rng: random.Random) -> List[Participant]:
    """Fisher-Yates shuffle over a copy of the input."""
    shuffled = list(participants)
    for i in range(len(shuffled) - 1, 0, -1):
        j = rng.randint(0, i)
        shuffled[i], shuffled[j] = shuffled[j], shuffled[i]
    return shuffled


def _seed_manual(participants: List[Participant], manual_order: Optional[List[str]]) -> List[Participant]:
    """
    Order participants by manual_order.

    Participants missing from manual_order are appended in their original
    relative order. Unknown or repeated ids in manual_order are skipped.
    Without a manual_order, participants carrying an explicit seed come first
    in seed order, followed by the rest as registered.
    """
    if manual_order is None:
        with_seed = [p for p in participants if p.seed is not None]
        without_seed = [p for p in participants if p.seed is None]
        return sorted(with_seed, key=lambda p: p.seed) + without_seed

    by_id = {p.user_id: p for p in participants}
    ordered = []
    placed = set()
    for user_id in manual_order:
        if user_id not in by_id:
            logger.warning(f"Ignoring unknown participant {user_id} in manual seed order")
            continue
        if user_id in placed:
            logger.warning(f"Ignoring repeated participant {user_id} in manual seed order")
            continue
        ordered.append(by_id[user_id])
        placed.add(user_id)

    missing = [p for p in participants if p.user_id not in placed]
    if missing:
        logger.info(f"Appending {len(missing)} participants absent from manual seed order")
    return ordered + missing
