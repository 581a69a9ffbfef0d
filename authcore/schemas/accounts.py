"""Typed inputs for account operations.

Callers often hold loosely-typed params (form posts, JSON bodies). These
models keep only the recognised fields and drop everything else, so an
extra key such as ``confirmed_at`` can never reach the database.
Validation proper happens in authcore.services.validation, which reports
every failing field at once.
"""

from collections.abc import Mapping
from typing import Any

from pydantic import BaseModel, ConfigDict


class RegistrationParams(BaseModel):
    """Input for AccountService.register()."""

    model_config = ConfigDict(extra="ignore")

    email: str | None = None
    password: str | None = None
    password_confirmation: str | None = None


class EmailChangeParams(BaseModel):
    """Input for AccountService.deliver_update_email_instructions()."""

    model_config = ConfigDict(extra="ignore")

    email: str | None = None


def _string_keys(params: Mapping[Any, Any]) -> dict[str, Any]:
    return {str(key): value for key, value in params.items()}


def cast_registration_params(params: Mapping[Any, Any]) -> RegistrationParams:
    """Keep only email, password and password_confirmation from ``params``."""
    return RegistrationParams.model_validate(_string_keys(params))


def cast_email_change_params(params: Mapping[Any, Any]) -> EmailChangeParams:
    """Keep only email from ``params``."""
    return EmailChangeParams.model_validate(_string_keys(params))
