"""Pydantic input schemas for account operations."""

from authcore.schemas.accounts import (
    EmailChangeParams,
    RegistrationParams,
    cast_email_change_params,
    cast_registration_params,
)

__all__ = [
    "EmailChangeParams",
    "RegistrationParams",
    "cast_email_change_params",
    "cast_registration_params",
]
