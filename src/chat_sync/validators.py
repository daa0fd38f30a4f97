"""
Input validation for chat identities, credentials, and message text.

Validators return ``(is_valid, error_message)`` tuples so callers decide
whether a failure is fatal (raise ``ValueError``) or simply means
"do nothing" (the sync core never subscribes with an empty identifier).
"""

MAX_MESSAGE_BYTES = 64_000


def format_validation_error(field_name: str, reason: str) -> str:
    """
    Generate consistent error message for validation failures.

    Args:
        field_name: Human-readable field name (e.g., "User identifier")
        reason: Description of validation failure (e.g., "cannot be empty")

    Returns:
        Formatted error message string
    """
    return f"{field_name} {reason}"


def validate_identifier(
    identifier: str | None, field_name: str = "User identifier"
) -> tuple[bool, str]:
    """
    Validate a user identifier.

    Identifiers are opaque; the only rule is that they are a non-empty,
    non-whitespace string. Escaping for path safety happens later.

    Returns:
        (True, "") if valid, (False, reason) otherwise.
    """
    if not isinstance(identifier, str):
        return False, format_validation_error(field_name, "must be a string")
    if not identifier.strip():
        return False, format_validation_error(field_name, "cannot be empty")
    return True, ""


def validate_message_text(
    text: str, max_size: int = MAX_MESSAGE_BYTES
) -> tuple[bool, str]:
    """
    Validate outgoing message text.

    Validation rules:
        - Cannot be empty or whitespace-only
        - Cannot exceed max_size bytes (UTF-8)
    """
    if not isinstance(text, str) or not text.strip():
        return False, format_validation_error("Message text", "cannot be empty")

    if len(text.encode("utf-8")) > max_size:
        return False, format_validation_error(
            "Message text", f"exceeds maximum size of {max_size} bytes"
        )

    return True, ""


def validate_credentials(email: str, password: str) -> tuple[bool, str]:
    """
    Validate email/password before they are sent to the auth endpoint.
    """
    if not email or not email.strip():
        return False, format_validation_error("Email", "cannot be empty")
    if "@" not in email:
        return False, format_validation_error("Email", "must contain '@'")
    if not password:
        return False, format_validation_error("Password", "cannot be empty")
    return True, ""
