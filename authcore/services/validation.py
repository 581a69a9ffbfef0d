"""Field validation for registration, password and email changes.

Every rule runs and every failure is collected, keyed by field, so a
caller can show all problems at once. Uniqueness needs the database and
is checked by AccountService on top of these format rules.
"""

import re

from authcore.core.config import Settings
from authcore.core.errors import ValidationFailure

FieldErrors = dict[str, list[str]]

# local@domain with no whitespace, commas or semicolons
EMAIL_PATTERN = re.compile(r"^[^@,;\s]+@[^@,;\s]+$")

BLANK_MSG = "can't be blank"
EMAIL_FORMAT_MSG = "must have the @ sign and no spaces"
EMAIL_TAKEN_MSG = "has already been taken"
EMAIL_UNCHANGED_MSG = "did not change"
CONFIRMATION_MSG = "does not match password"


def _add(errors: FieldErrors, field: str, reason: str) -> None:
    errors.setdefault(field, []).append(reason)


def validate_email(email: str | None, config: Settings) -> FieldErrors:
    """Format and length rules for an email address.

    Args:
        email: Candidate address.
        config: Settings providing ``email_max_length``.

    Returns:
        Field errors (empty when valid).
    """
    errors: FieldErrors = {}
    if email is None or not email.strip():
        _add(errors, "email", BLANK_MSG)
        return errors

    email = email.strip()
    if not EMAIL_PATTERN.match(email):
        _add(errors, "email", EMAIL_FORMAT_MSG)
    if len(email) > config.email_max_length:
        _add(
            errors,
            "email",
            f"should be at most {config.email_max_length} character(s)",
        )
    return errors


def validate_password(
    password: str | None,
    confirmation: str | None,
    config: Settings,
) -> FieldErrors:
    """Length and confirmation rules for a new password.

    The lower bound is for strength. The upper bound caps hashing cost. Both
    count characters, not encoded bytes.

    Args:
        password: Candidate password.
        confirmation: Repeated password; must equal ``password``.
        config: Settings providing the length bounds.

    Returns:
        Field errors (empty when valid).
    """
    errors: FieldErrors = {}
    if not password:
        _add(errors, "password", BLANK_MSG)
    else:
        if len(password) < config.password_min_length:
            _add(
                errors,
                "password",
                f"should be at least {config.password_min_length} character(s)",
            )
        if len(password) > config.password_max_length:
            _add(
                errors,
                "password",
                f"should be at most {config.password_max_length} character(s)",
            )

    if confirmation != password:
        _add(errors, "password_confirmation", CONFIRMATION_MSG)
    return errors


def merge_errors(*groups: FieldErrors) -> FieldErrors:
    """Combine field errors from several validators."""
    merged: FieldErrors = {}
    for group in groups:
        for field, reasons in group.items():
            merged.setdefault(field, []).extend(reasons)
    return merged


def raise_for_errors(errors: FieldErrors) -> None:
    """Raise ValidationFailure if any field failed."""
    if errors:
        raise ValidationFailure(errors)
