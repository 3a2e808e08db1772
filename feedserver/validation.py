"""Field-level checks for request payloads.

Every check runs, and all failures are reported together in a single
:class:`~feedserver.errors.ValidationFailed` so clients can show every problem
at once.
"""
from __future__ import annotations

from typing import Callable, Dict, Iterable, List, Optional, Tuple

from email_validator import EmailNotValidError, validate_email

from .errors import ValidationFailed

MIN_PASSWORD_LENGTH = 5
MIN_TEXT_LENGTH = 5

FieldCheck = Callable[[object], Optional[str]]


def _as_text(value: object) -> str:
    if value is None:
        return ""
    return str(value).strip()


def check_email(value: object) -> Optional[str]:
    text = _as_text(value)
    if not text:
        return "Please enter a valid email."
    try:
        validate_email(text, check_deliverability=False)
    except EmailNotValidError:
        return "Please enter a valid email."
    return None


def check_not_empty(message: str) -> FieldCheck:
    def _check(value: object) -> Optional[str]:
        return None if _as_text(value) else message

    return _check


def check_min_length(length: int, message: str) -> FieldCheck:
    def _check(value: object) -> Optional[str]:
        text = _as_text(value)
        if not text or len(text) < length:
            return message
        return None

    return _check


def collect_errors(checks: Iterable[Tuple[str, object, FieldCheck]]) -> List[Dict[str, str]]:
    errors: List[Dict[str, str]] = []
    for field_name, value, check in checks:
        message = check(value)
        if message is not None:
            errors.append({"field": field_name, "message": message})
    return errors


def _raise_if_any(errors: List[Dict[str, str]]) -> None:
    if errors:
        raise ValidationFailed("Validation failed.", details=errors)


def validate_signup(email: object, name: object, password: object) -> None:
    _raise_if_any(
        collect_errors(
            [
                ("email", email, check_email),
                ("name", name, check_not_empty("Name must not be empty.")),
                (
                    "password",
                    password,
                    check_min_length(MIN_PASSWORD_LENGTH, "Password too short!"),
                ),
            ]
        )
    )


def validate_post(title: object, content: object, image_url: object) -> None:
    _raise_if_any(
        collect_errors(
            [
                ("title", title, check_min_length(MIN_TEXT_LENGTH, "Title is invalid.")),
                ("content", content, check_min_length(MIN_TEXT_LENGTH, "Content is invalid.")),
                ("imageUrl", image_url, check_not_empty("No image provided.")),
            ]
        )
    )


def validate_status(status: object) -> None:
    _raise_if_any(collect_errors([("status", status, check_not_empty("Status must not be empty."))]))


__all__ = [
    "MIN_PASSWORD_LENGTH",
    "MIN_TEXT_LENGTH",
    "check_email",
    "check_min_length",
    "check_not_empty",
    "collect_errors",
    "validate_post",
    "validate_signup",
    "validate_status",
]
