"""Utility functions for Claude Gateway."""

import logging
import sys
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Optional


def setup_logging(log_level: str = "INFO") -> None:
    """Setup application logging."""
    logging.basicConfig(
        level=getattr(logging, log_level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
    )


def generate_request_id() -> str:
    """Generate a unique request ID."""
    return str(uuid.uuid4())


def generate_message_id() -> str:
    """Anthropic-style message id."""
    return f"msg_{uuid.uuid4().hex}"


def generate_tool_use_id() -> str:
    """Anthropic-style tool use id for upstream calls that carry none."""
    return f"toolu_{uuid.uuid4().hex}"


def get_current_timestamp() -> str:
    """Get current timestamp in ISO format."""
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def extract_api_key_from_headers(headers: Dict[str, Any]) -> Optional[str]:
    """
    Extract the client's API key for credential passthrough.
    Priority: x-api-key > Authorization Bearer
    """
    # Check x-api-key header (Claude style)
    if api_key := headers.get("x-api-key"):
        return api_key

    # Check Authorization header (OpenAI style)
    auth_header = headers.get("authorization", "")
    if auth_header.startswith("Bearer "):
        return auth_header[len("Bearer "):]

    return None


def extract_session_id(user_id: Optional[str]) -> Optional[str]:
    """Session id is whatever follows the literal ``_session_`` in a user id."""
    if not user_id:
        return None
    _, sep, session_id = user_id.partition("_session_")
    if not sep or not session_id:
        return None
    return session_id
