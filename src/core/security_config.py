"""Security configuration constants for the DB Advisor API.

This module centralizes security-related configuration including:
- Sensitive keys that should be sanitized from logs
- Error handling security settings
- Masking of API credentials before they reach a log line
"""

# Keys redacted from structured log data
SENSITIVE_KEYS: set[str] = {
    # Credentials
    "password",
    "secret",
    "token",
    "access_token",
    "authorization",
    "api_key",
    "mistral_api_key",
    "bearer",
    "x-api-key",
    # Connection strings may embed credentials
    "database_url",
    "dsn",
    "connection_string",
}

# Production-only error response fields
# In production, error responses should only contain these fields to
# prevent information leakage
PRODUCTION_ERROR_FIELDS: set[str] = {
    "correlation_id",
    "type",
}

# Development error response fields (additional fields allowed in development)
DEVELOPMENT_ERROR_FIELDS: set[str] = PRODUCTION_ERROR_FIELDS | {
    "details",
    "traceback",
    "exception_type",
    "validation_errors",
}


def get_allowed_error_fields(environment: str) -> set[str]:
    """Get allowed error response fields based on environment.

    Args:
        environment: The application environment (production, development, etc.)

    Returns:
        Set of allowed field names for error responses
    """
    if environment == "production":
        return PRODUCTION_ERROR_FIELDS.copy()
    return DEVELOPMENT_ERROR_FIELDS.copy()


def is_sensitive_key(key: str) -> bool:
    """Check if a key should be considered sensitive and redacted."""
    key_lower = key.lower()
    return any(sensitive in key_lower for sensitive in SENSITIVE_KEYS)


def mask_secret(value: str | None, visible: int = 4) -> str:
    """Return a log-safe rendering of a secret, keeping only its last characters."""
    if not value or len(value) <= visible:
        return "****"
    return f"...{value[-visible:]}"
