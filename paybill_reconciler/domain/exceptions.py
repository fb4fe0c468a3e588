"""Domain-specific exceptions"""


class DomainException(Exception):
    """Base exception for domain layer"""

    pass


class NotificationSendError(DomainException):
    """SMS gateway rejected the message, timed out, or is unavailable"""

    pass


class ConcurrentDebtUpdateError(DomainException):
    """Debt kept changing underneath us until the commit attempts ran out"""

    pass
