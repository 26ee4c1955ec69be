"""
Errors raised by the bracket engine.

Each error carries the HTTP status the web layer answers with and a stable
``code`` string that clients can match on.
"""


class BracketError(Exception):
    status_code = 400
    code = 'bracket_error'

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {'error': self.message, 'code': self.code}


class InvalidSeedingMode(BracketError):
    code = 'invalid_seeding_mode'


class EmptyParticipantList(BracketError):
    code = 'empty_participant_list'


class InsufficientParticipants(BracketError):
    code = 'insufficient_participants'


class DuplicateParticipant(BracketError):
    code = 'duplicate_participant'


class TournamentTypeMismatch(BracketError):
    code = 'tournament_type_mismatch'


class InvalidConfiguration(BracketError):
    code = 'invalid_configuration'


class InvalidGroupConfiguration(InvalidConfiguration):
    code = 'invalid_group_configuration'


class RoundsAlreadyExist(BracketError):
    code = 'rounds_already_exist'


class InvalidResult(BracketError):
    code = 'invalid_result'


class TournamentNotFound(BracketError):
    status_code = 404
    code = 'tournament_not_found'


class MatchNotFound(BracketError):
    status_code = 404
    code = 'match_not_found'


class PersistenceFailed(BracketError):
    status_code = 500
    code = 'persistence_failed'
