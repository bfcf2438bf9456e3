"""Error taxonomy shared by the domain, services and API layers."""


class DomainError(Exception):
    """Base class for every error the core raises on purpose."""


class ValidationError(DomainError):
    """Missing or malformed input (booking fields, ratings, coordinates)."""


class NotFoundError(DomainError):
    """Unknown trip / driver id."""


class PersistenceError(DomainError):
    """Storage read/write failure.  Always surfaced, never defaulted away."""


class StaleDataError(DomainError):
    """Driver location older than the freshness window."""


class InvalidTransitionError(DomainError):
    """Trip status change violating the lifecycle graph."""
