# Copyright (c) Microsoft. All rights reserved.

"""Error classification for transport failures and tool errors.

Two independent surfaces:

1. **Transport/API recoverability** - a failed send is recoverable when its
   message matches one of the recoverable patterns or when it is a genuine HTTP
   5xx. Recoverable errors are fed back to the model as a short message; the
   rest end the task.
2. **Tool fatality** - a tool error is fatal when its formatted message matches
   the strategy's fatal patterns (or the default set). An unknown tool is never
   fatal, since the model can correct the name on the next turn.
"""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Iterable
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any

from ._constants import DEFAULT_FATAL_TOOL_PATTERNS, DEFAULT_RECOVERABLE_PATTERNS, TOOL_NOT_FOUND_MARKER

if TYPE_CHECKING:
    from ._messages import ToolError, ToolResponse

logger = logging.getLogger(__name__)

# Stand-alone 5xx status code; digits inside grouped numbers such as token counts do not count
_SERVER_STATUS_RE = re.compile(r"(?<![\d,.])5\d{2}(?!\d|[,.]\d)")
_TOKEN_LIMIT_RE = re.compile(r"token.*count.*exceeds", re.IGNORECASE)
_RATE_LIMIT_RE = re.compile(r"rate.*limit|quota.*exceeded", re.IGNORECASE)
_NETWORK_RE = re.compile(
    r"timeout|network.*error|connection|socket.*hang.*up|econnreset|enotfound|econnrefused|etimedout",
    re.IGNORECASE,
)
_BRACKETED_JSON_RE = re.compile(r"\[(\{.*?\})\]", re.DOTALL)
_ERROR_JSON_RE = re.compile(r"\{[\s\S]*\"error\"[\s\S]*\}")


class TaskSetupError(Exception):
    """Raised when a task cannot start: invalid request or session construction failure."""


class ErrorCategory(Enum):
    """Category of a transport/API error."""

    TOKEN_LIMIT = "token_limit"
    RATE_LIMIT = "rate_limit"
    NETWORK = "network"
    SERVER = "server"
    OTHER = "other"


@dataclass(frozen=True)
class ApiErrorClassification:
    """Classification of a failed send.

    Attributes:
        message: The error message that was classified.
        category: Coarse category, used to phrase the feedback to the model.
        recoverable: Whether the model should be told and the loop continued.
    """

    message: str
    category: ErrorCategory
    recoverable: bool


def compile_patterns(patterns: Iterable[re.Pattern[str] | str]) -> list[re.Pattern[str]]:
    """Compile string patterns case-insensitively; compiled patterns pass through."""
    compiled: list[re.Pattern[str]] = []
    for pattern in patterns:
        if isinstance(pattern, re.Pattern):
            compiled.append(pattern)
        else:
            compiled.append(re.compile(pattern, re.IGNORECASE))
    return compiled


def error_message(error: BaseException | str) -> str:
    """Return the message of an exception, or the string itself."""
    if isinstance(error, str):
        return error
    message = str(error)
    return message or type(error).__name__


def http_status_of(error: Any) -> int | None:
    """Return the HTTP status surfaced on an error object, if any."""
    for attr in ("status", "status_code", "code"):
        value = getattr(error, attr, None)
        if isinstance(value, int):
            return value
    response = getattr(error, "response", None)
    if response is not None:
        for attr in ("status", "status_code"):
            value = getattr(response, attr, None)
            if isinstance(value, int):
                return value
    return None


def is_server_error(error: BaseException | str) -> bool:
    """Whether an error is a genuine HTTP 5xx.

    A 400-class token-count error whose numbers happen to contain ``5xx`` digits
    is never a server error.
    """
    status = None if isinstance(error, str) else http_status_of(error)
    if status is not None:
        return 500 <= status < 600
    message = error_message(error)
    if "token count" in message.lower() and "400" in message:
        return False
    return _SERVER_STATUS_RE.search(message) is not None


def extract_api_error_details(message: str) -> dict[str, Any] | None:
    """Extract an embedded ``{"error": {...}}`` payload from an error message."""
    candidates: list[str] = []
    bracketed = _BRACKETED_JSON_RE.search(message)
    if bracketed:
        candidates.append(bracketed.group(1))
    direct = _ERROR_JSON_RE.search(message)
    if direct:
        candidates.append(direct.group(0))

    for candidate in candidates:
        try:
            parsed = json.loads(candidate)
        except ValueError:
            continue
        if isinstance(parsed, dict) and isinstance(parsed.get("error"), dict):
            return parsed["error"]
    return None


class ErrorClassifier:
    """Classifies transport errors and formats them as feedback for the model."""

    def __init__(self, recoverable_patterns: Iterable[re.Pattern[str] | str] = DEFAULT_RECOVERABLE_PATTERNS) -> None:
        self._recoverable = compile_patterns(recoverable_patterns)

    def is_recoverable(self, error: BaseException | str) -> bool:
        message = error_message(error)
        if any(pattern.search(message) for pattern in self._recoverable):
            return True
        return is_server_error(error)

    def classify(self, error: BaseException | str) -> ApiErrorClassification:
        message = error_message(error)
        return ApiErrorClassification(
            message=message,
            category=self.categorize(error),
            recoverable=self.is_recoverable(error),
        )

    @staticmethod
    def categorize(error: BaseException | str) -> ErrorCategory:
        message = error_message(error)
        if _TOKEN_LIMIT_RE.search(message):
            return ErrorCategory.TOKEN_LIMIT
        if _RATE_LIMIT_RE.search(message):
            return ErrorCategory.RATE_LIMIT
        if _NETWORK_RE.search(message):
            return ErrorCategory.NETWORK
        if is_server_error(error):
            return ErrorCategory.SERVER
        return ErrorCategory.OTHER

    @staticmethod
    def format_for_model(classification: ApiErrorClassification) -> str:
        """Render a concise error message the model can act on."""
        category = classification.category
        if category is ErrorCategory.TOKEN_LIMIT:
            return (
                "[API Error: Token limit exceeded]\n\n"
                "Consider using smaller parameters or processing data in chunks."
            )
        if category is ErrorCategory.RATE_LIMIT:
            return "[API Error: Rate/quota limit exceeded]\n\nTry using fewer API calls or wait before retrying."
        if category is ErrorCategory.NETWORK:
            return (
                "[Network Error: Connection issue detected]\n\n"
                "This appears to be a temporary network problem. Retrying the same operation..."
            )
        if category is ErrorCategory.SERVER:
            return "[API Error: Service temporarily unavailable]\n\nThe model service returned a server error."

        details = extract_api_error_details(classification.message)
        if details and details.get("message"):
            code = details.get("code")
            suffix = f" (Code: {code})" if code is not None else ""
            return f"[API Error: {details['message']}{suffix}]"
        core = re.sub(r"^Error:\s*", "", classification.message, flags=re.IGNORECASE).split("\n")[0]
        return f"[API Error: {core}]"


def is_tool_not_found(error: ToolError) -> bool:
    return error.not_found or TOOL_NOT_FOUND_MARKER in error.message


def format_tool_error(tool_name: str, response: ToolResponse) -> str:
    """Format a failed tool response, preferring its display text over the raw error."""
    detail = response.result_display if isinstance(response.result_display, str) and response.result_display else None
    if detail is None and response.error is not None:
        detail = response.error.message
    return f"Error executing tool {tool_name}: {detail}"


def is_fatal_tool_error(
    message: str,
    *,
    not_found: bool,
    patterns: Iterable[re.Pattern[str] | str] | None = None,
) -> bool:
    """Decide whether a tool error ends the task.

    Args:
        message: The formatted tool error message.
        not_found: Whether the tool was missing from the registry; such errors are never fatal.
        patterns: Fatal patterns; the default set is used when None.

    Returns:
        True when the task must stop.
    """
    if not_found:
        return False
    compiled = compile_patterns(DEFAULT_FATAL_TOOL_PATTERNS if patterns is None else patterns)
    return any(pattern.search(message) for pattern in compiled)
