from __future__ import annotations

from typing import Optional


class AuthorizationError(Exception):
    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message)
        self.status_code = status_code


class AuthorizationAlreadyPending(AuthorizationError):
    def __init__(self, entity_type: str, entity_id: str, authorization_id: Optional[str] = None):
        super().__init__(
            f"A request for {entity_type} {entity_id} is already awaiting approval.",
            status_code=409,
        )
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.authorization_id = authorization_id


class AuthorizationRejected(AuthorizationError):
    """The approver said no. A business outcome, not a transport fault."""

    def __init__(self, authorization_id: str, message: str = "The request was rejected by the approver."):
        super().__init__(message, status_code=403)
        self.authorization_id = authorization_id


class AuthorizationInvalidated(AuthorizationError):
    def __init__(self, authorization_id: str):
        super().__init__("The authorization request was cancelled.", status_code=410)
        self.authorization_id = authorization_id


class AuthorizationTimeout(AuthorizationError):
    def __init__(self, authorization_id: str, waited: float):
        super().__init__(f"No decision after {waited:.0f}s.", status_code=408)
        self.authorization_id = authorization_id
        self.waited = waited
