"""
BizIntel error taxonomy.

Every error the dispatcher knows how to report derives from
BusinessIntelligenceError. None of them are retried.
"""


class BusinessIntelligenceError(Exception):
    """Base class for errors reported back to the caller verbatim."""

    kind = "error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class AuthenticationError(BusinessIntelligenceError):
    """Missing, invalid or expired credential."""

    kind = "authentication"


class ValidationError(BusinessIntelligenceError):
    """Request shape or parameter contract violated."""

    kind = "validation"


class InvalidFilterKey(ValidationError):
    def __init__(self, key: str):
        super().__init__(f"Invalid filter key: {key}")
        self.key = key


class InvalidFilterValueType(ValidationError):
    def __init__(self, key: str):
        super().__init__(f"Invalid filter value type for {key}")
        self.key = key


class InvalidDateFormat(ValidationError):
    def __init__(self, field: str, value):
        super().__init__(f"Invalid {field} date format: {value!r}")
        self.field = field


class NotFoundError(BusinessIntelligenceError):
    """A referenced entity id does not exist."""

    kind = "not_found"

    def __init__(self, entity: str, entity_id):
        super().__init__(f"{entity} with ID {entity_id} not found")
        self.entity = entity
        self.entity_id = entity_id


class DomainError(BusinessIntelligenceError):
    """Well-formed input that violates a business rule."""

    kind = "domain"


class InvalidDateRange(DomainError):
    def __init__(self):
        super().__init__("Start date cannot be after end date")


class RateLimitExceeded(BusinessIntelligenceError):
    kind = "rate_limit"

    def __init__(self, retry_after_seconds: float):
        super().__init__(f"Rate limit exceeded; retry in {retry_after_seconds:.0f}s")
        self.retry_after_seconds = retry_after_seconds
