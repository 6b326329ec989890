"""Domain exceptions.

Raised by the store, the lobby operations and the round coordinator; the
HTTP layer maps them onto status codes in one place.
"""


class BlindRankError(Exception):
    """Base class for every game error."""
    status_code = 400


# ---- Missing records ----

class RoomNotFound(BlindRankError):
    status_code = 404

    def __init__(self, code):
        self.code = code
        super().__init__(f"Room {code} not found")


class PlayerNotFound(BlindRankError):
    status_code = 404

    def __init__(self, player_id):
        self.player_id = player_id
        super().__init__(f"Player {player_id} not found")


# ---- Rejected user actions ----

class ValidationError(BlindRankError):
    """A user action was rejected; nothing was written."""
    status_code = 400


class MissingField(ValidationError):
    pass


class UnknownTopic(ValidationError):
    def __init__(self, topic_id):
        self.topic_id = topic_id
        super().__init__(f"Unknown topic {topic_id!r}")


class RoomNotInLobby(ValidationError):
    pass


class RoomNotInRound(ValidationError):
    pass


class SlotNotChosen(ValidationError):
    pass


class ItemAlreadyPlaced(ValidationError):
    pass


class SlotUnavailable(ValidationError):
    pass


class NotHost(BlindRankError):
    status_code = 403


# ---- Store failures ----

class StoreUnavailable(BlindRankError):
    """The document store could not complete the request. Safe to retry."""
    status_code = 503


class TransactionConflict(StoreUnavailable):
    """An atomic operation kept losing the version check."""

    def __init__(self, attempts):
        self.attempts = attempts
        super().__init__(f"Atomic operation conflicted {attempts} times")
