from __future__ import annotations

from typing import Any


class PlansError(Exception):
    """Base for typed engine failures. Routers map `status_code` onto HTTPException."""

    status_code = 400
    default_detail = "Bad request"

    def __init__(self, detail: str | None = None):
        super().__init__(detail or self.default_detail)
        self.detail = detail or self.default_detail


class NotFound(PlansError):
    status_code = 404
    default_detail = "Not found"


class Forbidden(PlansError):
    status_code = 403
    default_detail = "Forbidden"


class NotAMember(Forbidden):
    default_detail = "Not a participant"


class SuggestionsDisabled(Forbidden):
    default_detail = "Only the host can add options to this hangout"


class InvalidState(PlansError):
    status_code = 409
    default_detail = "Operation not allowed in the current hangout status"


class VotingClosed(InvalidState):
    default_detail = "Voting is closed for this hangout"


class NoOptions(InvalidState):
    status_code = 400
    default_detail = "No options to vote on"


class AlreadyExists(PlansError):
    status_code = 409
    default_detail = "Already exists"


class AlreadyMember(AlreadyExists):
    default_detail = "Already a participant"

    def __init__(self, membership: Any = None, detail: str | None = None):
        super().__init__(detail)
        self.membership = membership


class InvalidToken(PlansError):
    status_code = 401
    default_detail = "Invalid or expired token"


class InvalidInput(PlansError):
    status_code = 400
    default_detail = "Invalid input"


class Conflict(PlansError):
    status_code = 409
    default_detail = "Concurrent update, please retry"
