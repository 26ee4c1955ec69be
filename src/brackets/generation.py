"""
Bracket generation and result processing for stored tournaments.

Each entry point runs the same guarded sequence while holding the
tournament lock:

1. tournament exists (else TournamentNotFound)
2. tournament type matches the format (else TournamentTypeMismatch)
3. no rounds were generated yet (else RoundsAlreadyExist)
4. at least one participant checked in (else EmptyParticipantList)
5. seed, generate, and persist rounds, matches, slots and standings
"""
import logging
import random
from typing import Callable, Dict, List, Optional, Tuple

from .adapter import all_decided, load_structure, merge_progress, persist_generation
from .compass import generate_compass_draw
from .double_elimination import generate_double_elimination
from .elimination import generate_knockout
from .errors import (
    EmptyParticipantList, InvalidConfiguration, InvalidResult, MatchNotFound,
    RoundsAlreadyExist, TournamentNotFound, TournamentTypeMismatch,
)
from .models import BracketStructure, Participant
from .persistence import TournamentStore
from .progression import record_result
from .round_robin import DEFAULT_GROUP_COUNT, DEFAULT_TOP_PER_GROUP, generate_round_robin
from .standings import apply_match_result

logger = logging.getLogger(__name__)

KNOCKOUT_TYPES = ('knockout_single', 'knockout_double')
COMPASS_TYPES = ('compass',)
ROUND_ROBIN_TYPES = ('round_robin',)


def _positive_int(options: Dict, key: str, default: int, minimum: int) -> int:
    value = options.get(key, default)
    if isinstance(value, bool):
        raise InvalidConfiguration(f"{key} must be an integer")
    try:
        value = int(value)
    except (TypeError, ValueError):
        raise InvalidConfiguration(f"{key} must be an integer") from None
    if value < minimum:
        raise InvalidConfiguration(f"{key} must be at least {minimum}")
    return value


def _locked(store: TournamentStore, tournament_id: str):
    if not store.exists(tournament_id):
        raise TournamentNotFound("Tournament not found or unauthorized")
    return store.lock(tournament_id)


def _seeding_options(options: Dict) -> Tuple[str, Optional[List[str]]]:
    seeding = options.get('seeding', 'ranked')
    seed_order = options.get('seed_order')
    if seed_order is not None and not isinstance(seed_order, list):
        raise InvalidConfiguration("seed_order must be a list of user ids")
    return seeding, seed_order


def _run_generation(store: TournamentStore, tournament_id: str, allowed_types: Tuple[str, ...],
                    build: Callable[[Dict, List[Participant]], Tuple[BracketStructure, Dict]]) -> Dict:
    with _locked(store, tournament_id):
        tournament = store.load_tournament(tournament_id)
        if tournament.get('type') not in allowed_types:
            raise TournamentTypeMismatch(f"Tournament type must be {' or '.join(allowed_types)}")
        if store.load_bracket(tournament_id)['rounds']:
            raise RoundsAlreadyExist("Tournament already has generated rounds")
        participants = store.checked_in_participants(tournament_id)
        if not participants:
            raise EmptyParticipantList("No checked-in participants found")

        structure, format_settings = build(tournament, participants)
        with store.transaction(tournament_id) as tx:
            counts = persist_generation(tx, structure, format_settings)

    logger.info(f"Tournament {tournament_id}: generated {structure.type} bracket for "
                f"{len(participants)} participants ({counts['rounds']} rounds, {counts['matches']} matches)")
    return {
        'tournament_id': tournament_id,
        'format': structure.type,
        'participants': len(participants),
        'rounds': counts['rounds'],
        'matches': counts['matches'],
        'bracket_slots': counts['bracket_slots'],
    }


def generate_knockout_for_tournament(store: TournamentStore, tournament_id: str, options: Dict,
                                     rng: Optional[random.Random] = None) -> Dict:
    """
    Generate a single or double elimination bracket.

    Options:
        elimination_type: 'single' or 'double', must agree with the tournament type
        seeding: 'ranked', 'random' or 'manual'
        seed_order: user ids for manual seeding
        bronze_match: add a third place match (single elimination only)
    """
    def build(tournament, participants):
        default_type = 'double' if tournament['type'] == 'knockout_double' else 'single'
        elimination_type = options.get('elimination_type') or default_type
        if elimination_type not in ('single', 'double'):
            raise InvalidConfiguration("elimination_type must be 'single' or 'double'")
        if elimination_type != default_type:
            raise TournamentTypeMismatch(
                f"Tournament type {tournament['type']} cannot use elimination_type '{elimination_type}'"
            )
        seeding, seed_order = _seeding_options(options)
        bronze_match = bool(options.get('bronze_match', False))
        is_doubles = tournament.get('is_doubles', True)
        if elimination_type == 'double':
            structure = generate_double_elimination(participants, seeding, seed_order, is_doubles, rng=rng)
        else:
            structure = generate_knockout(participants, seeding, seed_order, is_doubles, bronze_match, rng=rng)
        settings = {'elimination_type': elimination_type, 'seeding': seeding, 'bronze_match': bronze_match}
        return structure, settings

    return _run_generation(store, tournament_id, KNOCKOUT_TYPES, build)


def generate_compass_for_tournament(store: TournamentStore, tournament_id: str, options: Dict,
                                    rng: Optional[random.Random] = None) -> Dict:
    """Generate a compass draw. Options: seeding, seed_order."""
    def build(tournament, participants):
        seeding, seed_order = _seeding_options(options)
        structure = generate_compass_draw(participants, seeding, seed_order,
                                          tournament.get('is_doubles', True), rng=rng)
        return structure, {'seeding': seeding}

    return _run_generation(store, tournament_id, COMPASS_TYPES, build)


def generate_round_robin_for_tournament(store: TournamentStore, tournament_id: str, options: Dict,
                                        rng: Optional[random.Random] = None) -> Dict:
    """Generate round robin groups. Options: groups, top_per_group, seeding, seed_order."""
    def build(tournament, participants):
        seeding, seed_order = _seeding_options(options)
        group_count = _positive_int(options, 'groups', DEFAULT_GROUP_COUNT, 1)
        top_per_group = _positive_int(options, 'top_per_group', DEFAULT_TOP_PER_GROUP, 0)
        structure = generate_round_robin(participants, seeding, seed_order,
                                         tournament.get('is_doubles', True),
                                         group_count, top_per_group, rng=rng)
        settings = {'seeding': seeding, 'groups': group_count, 'top_per_group': top_per_group}
        return structure, settings

    return _run_generation(store, tournament_id, ROUND_ROBIN_TYPES, build)


def reset_bracket(store: TournamentStore, tournament_id: str) -> None:
    """Delete every generated row so the tournament can be generated again."""
    with _locked(store, tournament_id):
        with store.transaction(tournament_id) as tx:
            settings = dict(tx.tournament.get('format_settings') or {})
            settings.pop('seed_order', None)
            settings.pop('bracket_size', None)
            tx.clear_bracket()
            tx.update_tournament(status='registration', format_settings=settings)
    logger.info(f"Tournament {tournament_id}: bracket reset")


def _score(value, name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise InvalidResult(f"{name} must be a non-negative integer")
    return value


def _check_scores_agree(team1_score: int, team2_score: int, winner_team, is_draw: bool):
    if is_draw:
        if team1_score != team2_score:
            raise InvalidResult(f"A draw needs equal scores, got {team1_score}-{team2_score}")
    elif (winner_team == 1 and team1_score <= team2_score) or (winner_team == 2 and team2_score <= team1_score):
        raise InvalidResult(f"winner_team {winner_team} does not match the score {team1_score}-{team2_score}")


def advance_match(store: TournamentStore, tournament_id: str, match_id: str, result: Dict) -> Dict:
    """
    Record a match result and advance the bracket.

    result keys: winner_team (1 or 2), is_draw (round robin only), and the
    optional team1_score/team2_score, which also update the standings. When
    scores are given without winner_team the higher score wins.

    Returns the ids of the matches that changed and the tournament status.
    """
    with _locked(store, tournament_id):
        tournament = store.load_tournament(tournament_id)
        bracket = store.load_bracket(tournament_id)
        if not bracket['rounds']:
            raise MatchNotFound(f"Match {match_id} not found")
        participants = [Participant.from_dict(p) for p in store.load_participants(tournament_id)]
        structure = load_structure(tournament, participants, bracket)

        prefix = f"{tournament_id}_"
        if not match_id.startswith(prefix):
            raise MatchNotFound(f"Match {match_id} not found")
        node = structure.node(match_id[len(prefix):])

        team1_score = result.get('team1_score')
        team2_score = result.get('team2_score')
        has_scores = team1_score is not None or team2_score is not None
        if has_scores:
            team1_score = _score(team1_score, 'team1_score')
            team2_score = _score(team2_score, 'team2_score')
        is_draw = bool(result.get('is_draw', False))
        winner_team = result.get('winner_team')
        if winner_team is None and has_scores and not is_draw:
            if team1_score == team2_score:
                is_draw = True
            else:
                winner_team = 1 if team1_score > team2_score else 2
        if has_scores:
            _check_scores_agree(team1_score, team2_score, winner_team, is_draw)

        team1, team2 = node.team1, node.team2
        touched = list(dict.fromkeys(record_result(structure, node.id, winner_team, is_draw=is_draw)))

        with store.transaction(tournament_id) as tx:
            scores = {}
            if has_scores:
                scores[match_id] = {'team1_score': team1_score, 'team2_score': team2_score}
                standings = tx.bracket['standings']
                apply_match_result(standings, team1, team2, team1_score, team2_score,
                                   winner_team=winner_team, is_draw=is_draw,
                                   points=tournament.get('points'))
                tx.replace('standings', standings)
            merge_progress(tx, structure, scores)
            status = tournament.get('status')
            if all_decided(structure):
                status = 'completed'
                tx.update_tournament(status=status)

    logger.info(f"Tournament {tournament_id}: match {match_id} decided, {len(touched) - 1} matches updated")
    return {
        'match_id': match_id,
        'updated_matches': [f"{prefix}{local_id}" for local_id in touched],
        'tournament_status': status,
    }
