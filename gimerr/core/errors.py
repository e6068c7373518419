"""
Application error taxonomy.

Raise one of these from services; the handlers installed by ``create_app``
turn them into ``{"ok": false, "error": <message>}`` with the matching status.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

from botocore.exceptions import ClientError


class AppError(Exception):
    status: int = 500

    def __init__(self, message: str, status: Optional[int] = None, context: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.message = message
        if status is not None:
            self.status = status
        self.context = context or {}


class InvalidInput(AppError):
    status = 400


class Unauthenticated(AppError):
    status = 401


class Forbidden(AppError):
    status = 403


class NotFound(AppError):
    status = 404


class Conflict(AppError):
    status = 409


class InsufficientBalance(Conflict):
    pass


class FeatureUnprovisioned(Conflict):
    """Storage schema for a feature (wallet, payouts) is not deployed."""


class Upstream(AppError):
    """A payment processor or blob store call failed; message is the provider's."""

    status = 500


def client_error_code(exc: ClientError) -> str:
    return str(exc.response.get("Error", {}).get("Code", ""))


def is_conditional_failure(exc: ClientError) -> bool:
    return client_error_code(exc) == "ConditionalCheckFailedException"


def is_missing_table(exc: ClientError) -> bool:
    return client_error_code(exc) == "ResourceNotFoundException"
