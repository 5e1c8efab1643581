"""Utility helpers shared across the supervisor."""

from typing import Any

# Port range constants
MIN_PORT = 1
MAX_PORT = 65535

SENSITIVE_FIELDS = frozenset(
    {
        "auth_token",
        "token",
        "password",
        "secret",
        "api_key",
        "access_token",
    }
)


def validate_port(port: int, port_name: str = "Port") -> int:
    """Validate port number range.

    Args:
        port: Port number to validate
        port_name: Name of the port for error messages

    Returns:
        The validated port

    Raises:
        ValueError: If port is not in valid range (1-65535)
    """
    if isinstance(port, bool) or not isinstance(port, int):
        raise ValueError(f"{port_name} must be an integer")
    if not (MIN_PORT <= port <= MAX_PORT):
        raise ValueError(f"{port_name} must be between {MIN_PORT} and {MAX_PORT}")
    return port


def parse_port(raw: str) -> int | None:
    """Parse a port number, returning None when the text is not a valid port."""
    try:
        port = int(raw)
    except ValueError:
        return None
    if not (0 <= port <= MAX_PORT):
        return None
    return port


def mask_sensitive_data(
    value: str | None, mask_char: str = "*", show_chars: int = 4
) -> str:
    """Mask sensitive data for logging while keeping the last few characters.

    Args:
        value: Sensitive string to mask (e.g., auth token)
        mask_char: Character to use for masking
        show_chars: Number of characters to show at the end

    Returns:
        Masked string safe for logging
    """
    if not value:
        return "<None>"

    if len(value) <= show_chars:
        return mask_char * len(value)

    return mask_char * (len(value) - show_chars) + value[-show_chars:]


def sanitize_log_data(data: dict[str, Any]) -> dict[str, Any]:
    """Return a copy of ``data`` with sensitive values masked."""
    sanitized = {}
    for key, value in data.items():
        if key.lower() in SENSITIVE_FIELDS:
            sanitized[key] = mask_sensitive_data(str(value) if value else None)
        else:
            sanitized[key] = value
    return sanitized
