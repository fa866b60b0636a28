"""Exception hierarchy for TeamCRM."""


class TeamCRMError(Exception):
    """Base exception for all TeamCRM errors."""


class AuthenticationError(TeamCRMError):
    """Raised when a request carries no valid user identity."""


class AuthorizationError(TeamCRMError):
    """Raised when a valid user may not select a team or perform an action."""


class NotFoundError(TeamCRMError):
    """Raised when a record is absent or belongs to another team.

    The two cases are indistinguishable to callers.
    """


class StorageError(TeamCRMError):
    """Raised when storage operations fail."""


class ConfigError(TeamCRMError):
    """Raised when configuration is invalid."""


class InvalidRecordError(TeamCRMError, ValueError):
    """Raised when record attributes are malformed (unknown fields, bad references)."""
