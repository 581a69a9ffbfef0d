"""Account error classes.

Every failure the account layer reports to its caller is one of these.
Unexpected database errors (connectivity, etc.) are not wrapped and
propagate unchanged.

Token errors are coarse:
- A missing, expired, mis-scoped or raced token all surface as the same
  TransactionAborted / None result
- Callers (and anyone probing them) cannot tell which check failed
"""

INVALID_CREDENTIALS_MSG = "invalid credentials"
INVALID_LINK_MSG = "link is invalid or has expired"


class AccountsError(Exception):
    """Base class for account errors.

    Attributes:
        code: Machine-readable error code (e.g., "VALIDATION_ERROR").
        message: Human-readable error message.
    """

    def __init__(self, code: str, message: str) -> None:
        self.code = code
        self.message = message
        super().__init__(message)


class ValidationFailure(AccountsError):
    """One or more fields failed validation.

    Holds every problem found, keyed by field, so a caller can render
    them all at once. Nothing is persisted when this is raised.

    Attributes:
        errors: Mapping of field name to list of reasons.
    """

    def __init__(self, errors: dict[str, list[str]]) -> None:
        self.errors = {field: list(reasons) for field, reasons in errors.items()}
        summary = "; ".join(
            f"{field} {reason}"
            for field, reasons in self.errors.items()
            for reason in reasons
        )
        super().__init__(code="VALIDATION_ERROR", message=summary or "invalid")


class ConstraintViolation(AccountsError):
    """A storage-level unique constraint rejected a write.

    Raised at the repository boundary in place of the driver's
    IntegrityError. Services re-surface it as a ValidationFailure on
    ``field``.

    Attributes:
        field: Model field the constraint protects.
        constraint: Constraint name, when known.
    """

    def __init__(self, field: str, constraint: str | None = None) -> None:
        self.field = field
        self.constraint = constraint
        super().__init__(
            code="CONSTRAINT_VIOLATION",
            message=f"{field} violates {constraint or 'a unique constraint'}",
        )


class TransactionAborted(AccountsError):
    """A token-consuming unit of work was rolled back.

    Deliberately carries no detail about which step failed.
    """

    def __init__(self) -> None:
        super().__init__(code="TRANSACTION_ABORTED", message=INVALID_LINK_MSG)


class InvalidEncoding(AccountsError):
    """A transported token string could not be decoded.

    Callers treat this exactly like "token not found".
    """

    def __init__(self) -> None:
        super().__init__(code="INVALID_ENCODING", message=INVALID_LINK_MSG)


class DeliveryError(AccountsError):
    """The email provider did not accept a message."""

    def __init__(self, message: str = "Email delivery failed") -> None:
        super().__init__(code="DELIVERY_FAILED", message=message)
