"""Structural format checks applied before a secret is written.

Only the shape of a value is checked here; whether a key is accepted by the
third-party service it belongs to is left to an injected validator.
"""
from typing import Awaitable, Callable, Optional
from urllib.parse import urlparse

import orjson

from .models import SecretKind, ValidationResult

Validator = Callable[
    [str, str, SecretKind, Optional[str]], Awaitable[ValidationResult]
]

_PEM_MARKERS = {
    SecretKind.PRIVATE_KEY: "PRIVATE KEY-----",
    SecretKind.PUBLIC_KEY: "PUBLIC KEY-----",
}


async def validate_format(
    key: str,
    value: str,
    kind: SecretKind,
    validation_method: Optional[str] = None,
) -> ValidationResult:
    """Check that ``value`` looks like a secret of ``kind``.

    Args:
        key: Secret name, used in error messages.
        value: Candidate value.
        kind: Declared secret kind.
        validation_method: Optional named check; ``"json"`` forces a JSON
            check regardless of kind.

    Returns:
        The validation outcome.
    """
    if not isinstance(value, str) or not value.strip():
        return ValidationResult(is_valid=False, error=f"{key} must not be empty")

    if kind is SecretKind.CONFIG or validation_method == "json":
        try:
            orjson.loads(value)
        except orjson.JSONDecodeError as err:
            return ValidationResult(
                is_valid=False,
                error=f"{key} must be valid JSON",
                details=str(err),
            )

    if kind is SecretKind.URL:
        parsed = urlparse(value)
        if parsed.scheme not in ("http", "https", "ws", "wss") or not parsed.netloc:
            return ValidationResult(
                is_valid=False,
                error=f"{key} must be an absolute http(s) or ws(s) URL",
            )

    marker = _PEM_MARKERS.get(kind)
    if marker and "-----BEGIN" in value and marker not in value:
        return ValidationResult(
            is_valid=False,
            error=f"{key} does not contain a {kind.value.replace('_', ' ')}",
        )

    if kind in (SecretKind.API_KEY, SecretKind.CREDENTIAL) and any(
        ch.isspace() for ch in value.strip()
    ):
        return ValidationResult(
            is_valid=False, error=f"{key} must not contain whitespace"
        )

    return ValidationResult(is_valid=True)
