"""
Match domain errors.

Every error carries the ``code`` sent to clients in ``error`` events, so the
event router can report any of them without knowing the concrete type.
"""


class ArenaError(Exception):
    """Base class for errors reported back to the originating connection."""
    code = 'ArenaError'

    def to_dict(self):
        return {'code': self.code, 'message': str(self)}


class Unauthenticated(ArenaError):
    """Missing, forged or expired credential token."""
    code = 'Unauthenticated'

    def __init__(self, message='Authentication required'):
        super().__init__(message)


class AlreadyInMatch(ArenaError):
    code = 'AlreadyInMatch'

    def __init__(self, account_id, match_id=None):
        self.account_id = account_id
        self.match_id = match_id
        super().__init__(f"Account {account_id} already has an open match")


class NotFound(ArenaError):
    code = 'NotFound'

    def __init__(self, match_id=None):
        self.match_id = match_id
        if match_id is None:
            super().__init__("No open match found")
        else:
            super().__init__(f"Match {match_id} not found")


class NotJoinable(ArenaError):
    """Match exists but is not waiting for a human opponent."""
    code = 'NotJoinable'

    def __init__(self, match_id):
        self.match_id = match_id
        super().__init__(f"Match {match_id} is not open for joining")


class InvalidRequest(ArenaError):
    """Malformed event payload (unknown kind, choice or match id)."""
    code = 'InvalidRequest'


class StorageFailure(ArenaError):
    """The database rejected or failed an operation; nothing was changed."""
    code = 'StorageFailure'

    def __init__(self, action):
        self.action = action
        super().__init__('Could not complete the request, please try again')
