"""Domain-specific exceptions"""


class DomainException(Exception):
    """Base exception for domain layer"""

    pass


class LedgerError(DomainException):
    """A credit ledger operation could not be applied"""

    pass


class UserNotFoundError(LedgerError):
    """Target user of a ledger operation does not exist"""

    def __init__(self, user_id: str, role: str = "User"):
        super().__init__(f"{role} not found: {user_id}")
        self.user_id = user_id


class RecipientNotFoundError(UserNotFoundError):
    """Transfer recipient does not exist"""

    def __init__(self, user_id: str):
        super().__init__(user_id, role="Recipient")


class InsufficientBalanceError(LedgerError):
    """User balance does not cover the requested amount"""

    def __init__(self, user_id: str, balance: int, requested: int):
        super().__init__(f"Insufficient balance for user {user_id}: has {balance}, needs {requested}")
        self.user_id = user_id
        self.balance = balance
        self.requested = requested


class InvalidLedgerOperationError(LedgerError):
    """Operation arguments violate ledger preconditions (non-positive amount, self-transfer, ...)"""

    pass


class HierarchyCycleError(LedgerError):
    """Assigning a superior would create a cycle in the doctor hierarchy"""

    pass


class SignatureServiceError(DomainException):
    """Base exception for the digital signature service"""

    pass


class SigningError(SignatureServiceError):
    """Document could not be signed; the underlying cause is logged, not exposed"""

    pass


class TokenAuthError(SignatureServiceError):
    """A3 hardware token authentication was rejected"""

    pass
