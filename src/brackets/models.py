from typing import Dict, Iterator, List, Optional, Tuple

from .errors import MatchNotFound

BYE = 'BYE'

MATCH_PENDING = 'pending'
MATCH_IN_PROGRESS = 'in_progress'
MATCH_COMPLETED = 'completed'
MATCH_FORFEITED = 'forfeited'
DECIDED_STATUSES = (MATCH_COMPLETED, MATCH_FORFEITED)

BRACKET_MAIN = 'main'
BRACKET_LOSERS = 'losers'
BRACKET_CONSOLATION = 'consolation'
BRACKET_THIRD_PLACE = 'third_place'
BRACKET_GROUP = 'group'


class Participant:
    def __init__(self, user_id, seed=None, ranking_points=None, partner_id=None):
        self.user_id = user_id
        self.seed = seed
        self.ranking_points = ranking_points
        self.partner_id = partner_id  # second player of a padel pair

    @classmethod
    def from_dict(cls, data: Dict) -> 'Participant':
        return cls(
            user_id=data['user_id'],
            seed=data.get('seed'),
            ranking_points=data.get('ranking_points'),
            partner_id=data.get('partner_id'),
        )

    def team_players(self, is_doubles: bool = True) -> Tuple[str, Optional[str]]:
        if not is_doubles:
            return self.user_id, None
        return self.user_id, self.partner_id or self.user_id

    def __repr__(self):
        return f"Participant(user_id={self.user_id}, seed={self.seed}, ranking_points={self.ranking_points})"


class MatchNode:
    def __init__(self, id, bracket, round, position):
        self.id = id
        self.bracket = bracket
        self.round = round
        self.position = position
        self.team1 = None  # user_id, BYE, or None while undetermined
        self.team2 = None
        self.status = MATCH_PENDING
        self.winner_team = None
        self.is_draw = False
        self.next_match_id = None
        self.next_match_slot = None
        self.next_loser_match_id = None
        self.next_loser_slot = None
        self.loser_deferred = False  # loser is placed once the whole round is decided

    def team(self, slot: int):
        return self.team1 if slot == 1 else self.team2

    def set_team(self, slot: int, value):
        if slot == 1:
            self.team1 = value
        else:
            self.team2 = value

    @property
    def is_decided(self) -> bool:
        return self.status in DECIDED_STATUSES

    @property
    def winner(self):
        if self.winner_team is None:
            return None
        return self.team(self.winner_team)

    @property
    def loser(self):
        if self.winner_team is None:
            return BYE if self.status == MATCH_FORFEITED else None
        return self.team(3 - self.winner_team)

    def __repr__(self):
        return (f"MatchNode(id={self.id}, team1={self.team1}, team2={self.team2}, "
                f"status={self.status}, winner_team={self.winner_team})")


class Bracket:
    def __init__(self, name, bracket_type):
        self.name = name
        self.bracket_type = bracket_type
        self.rounds: Dict[int, List[str]] = {}
        self.round_names: Dict[int, str] = {}

    @property
    def total_rounds(self) -> int:
        return len(self.rounds)

    def match_ids(self) -> List[str]:
        ids = []
        for round_number in sorted(self.rounds):
            ids.extend(self.rounds[round_number])
        return ids

    def __repr__(self):
        return f"Bracket(name={self.name}, type={self.bracket_type}, rounds={self.total_rounds})"


class NotApplicable:
    """Marker for a consolation bracket the draw size cannot produce."""
    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self):
        return False

    def __repr__(self):
        return 'NOT_APPLICABLE'


NOT_APPLICABLE = NotApplicable()


class BracketStructure:
    """
    In-memory bracket graph.

    Matches live in ``nodes`` keyed by id; progression edges between them are
    ids as well, so the structure can be flattened into rows without walking
    object references.
    """

    def __init__(self, type, participants: List[Participant], bracket_size: int = 0, is_doubles: bool = True):
        self.type = type
        self.participants = list(participants)
        self.bracket_size = bracket_size
        self.is_doubles = is_doubles
        self.nodes: Dict[str, MatchNode] = {}
        self.brackets: Dict[str, Bracket] = {}
        self.consolation: Dict[str, object] = {}
        self.bronze_feeders: Dict[str, Tuple[str, int]] = {}  # semifinal id -> (bronze match id, slot)
        self.groups: List[Dict] = []

    def add_bracket(self, name, bracket_type) -> Bracket:
        bracket = Bracket(name, bracket_type)
        self.brackets[name] = bracket
        return bracket

    def add_node(self, bracket: Bracket, round_number: int, position: int) -> MatchNode:
        node = MatchNode(f"{bracket.name}_r{round_number}_m{position}", bracket.name, round_number, position)
        self.nodes[node.id] = node
        bracket.rounds.setdefault(round_number, []).append(node.id)
        return node

    def node(self, match_id) -> MatchNode:
        try:
            return self.nodes[match_id]
        except KeyError:
            raise MatchNotFound(f"Match {match_id} not found") from None

    def round_nodes(self, bracket_name, round_number) -> List[MatchNode]:
        bracket = self.brackets[bracket_name]
        return [self.nodes[match_id] for match_id in bracket.rounds.get(round_number, [])]

    def bracket_nodes(self, bracket_name) -> List[MatchNode]:
        return [self.nodes[match_id] for match_id in self.brackets[bracket_name].match_ids()]

    def iter_nodes(self) -> Iterator[MatchNode]:
        for bracket in self.brackets.values():
            for match_id in bracket.match_ids():
                yield self.nodes[match_id]

    def participant(self, user_id) -> Optional[Participant]:
        for participant in self.participants:
            if participant.user_id == user_id:
                return participant
        return None

    @property
    def upper(self) -> Bracket:
        return self.brackets[BRACKET_MAIN]

    @property
    def lower(self) -> Optional[Bracket]:
        return self.brackets.get(BRACKET_LOSERS)

    # Format specific views over the same arena
    winners = upper
    main_draw = upper
    losers = lower

    @property
    def consolation_brackets(self) -> Dict[str, object]:
        return self.consolation

    @property
    def bronze(self) -> Optional[Bracket]:
        return self.brackets.get(BRACKET_THIRD_PLACE)

    def __repr__(self):
        return f"BracketStructure(type={self.type}, brackets={list(self.brackets)}, matches={len(self.nodes)})"
