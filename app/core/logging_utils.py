import re
from typing import Any, Dict, Optional
from fastapi import Request

MASK = "***MASKED***"

SECRET_KEY_TERMS = ("password", "passwd", "secret", "private_key", "api_key", "apikey", "api-key")
TOKEN_KEY_TERMS = ("token", "jwt", "authorization", "bearer")


def mask_sensitive_data(data: Any, mask_string: str = MASK) -> Any:
    """
    Recursively mask sensitive data in dictionaries, lists, and strings.

    Args:
        data: Data structure to mask (dict, list, str, or other)
        mask_string: String to use for masking

    Returns:
        Masked data structure
    """
    if isinstance(data, dict):
        masked = {}
        for key, value in data.items():
            key_lower = str(key).lower()

            # NEVER mask request_id - it's needed for traceability
            if key_lower in ("requestid", "request_id"):
                masked[key] = value
            elif any(term in key_lower for term in SECRET_KEY_TERMS):
                masked[key] = mask_string
            elif any(term in key_lower for term in TOKEN_KEY_TERMS):
                masked[key] = mask_string
            # Partial mask for email (show first 3 chars + domain)
            elif key_lower == "email" and isinstance(value, str):
                parts = value.split("@")
                if len(parts) == 2 and len(parts[0]) > 3:
                    masked[key] = parts[0][:3] + "***@" + parts[1]
                else:
                    masked[key] = mask_string
            else:
                masked[key] = mask_sensitive_data(value, mask_string)

        return masked

    elif isinstance(data, list):
        return [mask_sensitive_data(item, mask_string) for item in data]

    elif isinstance(data, str):
        # JWT tokens start with eyJ
        if data.startswith("eyJ") and len(data) > 50:
            return mask_string
        # Long opaque keys (no hyphens, so UUID request ids survive)
        if len(data) > 32 and re.match(r'^[A-Za-z0-9_]+$', data):
            return mask_string

        return data

    return data


def mask_headers(headers: Dict[str, str]) -> Dict[str, str]:
    """
    Mask sensitive HTTP headers.

    Args:
        headers: Dictionary of HTTP headers

    Returns:
        Dictionary with sensitive headers masked
    """
    sensitive_headers = (
        "authorization",
        "x-api-key",
        "api-key",
        "x-auth-token",
        "cookie",
        "set-cookie"
    )

    return {
        key: MASK if any(sensitive in key.lower() for sensitive in sensitive_headers) else value
        for key, value in headers.items()
    }


def get_request_id(request: Optional[Request]) -> Optional[str]:
    """
    Extract request ID from request state.

    Args:
        request: FastAPI Request object (can be None)

    Returns:
        Request ID (UUID string) or None if not available
    """
    if request and hasattr(request.state, "request_id"):
        return request.state.request_id
    return None


def sanitize_log_message(message: str, **kwargs: Any) -> str:
    """
    Sanitize log message by masking sensitive data in keyword arguments.

    The context is rendered as `message | Key: value | ...`. A RequestID
    keyword is appended last so the log formatter can lift it into its
    own column.

    Args:
        message: Base log message
        **kwargs: Additional context to include (will be masked)

    Returns:
        Sanitized log message with context
    """
    request_id = kwargs.pop('RequestID', None) or kwargs.pop('request_id', None)

    masked_kwargs = mask_sensitive_data(kwargs) if kwargs else {}

    context_parts = []
    for key, value in masked_kwargs.items():
        if isinstance(value, (dict, list)):
            context_parts.append(f"{key}: {str(value)[:200]}")
        else:
            context_parts.append(f"{key}: {value}")

    formatted_message = f"{message} | {' | '.join(context_parts)}" if context_parts else message

    if request_id:
        formatted_message = f"{formatted_message} | RequestID: {request_id}"

    return formatted_message
