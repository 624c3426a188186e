# Copyright (c) Microsoft. All rights reserved.

"""Tests for transport and tool error classification."""

import re

import pytest

from task_engine import (
    ErrorCategory,
    ErrorClassifier,
    ToolError,
    ToolResponse,
    compile_patterns,
    extract_api_error_details,
    format_tool_error,
    is_fatal_tool_error,
    is_server_error,
    is_tool_not_found,
)


class _StatusError(Exception):
    def __init__(self, message: str, status: int):
        super().__init__(message)
        self.status = status


class _Response:
    def __init__(self, status: int):
        self.status = status


class _ResponseError(Exception):
    def __init__(self, message: str, status: int):
        super().__init__(message)
        self.response = _Response(status)


# ---------------------------------------------------------------------------
# Recoverability
# ---------------------------------------------------------------------------


class TestRecoverability:
    """Tests for ErrorClassifier.is_recoverable."""

    @pytest.mark.parametrize(
        "message",
        [
            "Input token count (1048577) exceeds the maximum",
            "context length exceeded",
            "Request too large for model",
            "Rate limit exceeded, retry later",
            "Quota exceeded for project",
            "Service temporarily unavailable",
            "Request timeout after 30s",
            "socket hang up",
            "getaddrinfo ENOTFOUND api.example.com",
            "read ECONNRESET",
            "Temporary failure in name resolution",
        ],
    )
    def test_recoverable_messages(self, message: str) -> None:
        assert ErrorClassifier().is_recoverable(RuntimeError(message))

    @pytest.mark.parametrize("message", ["Invalid API key", "Model not found", "Bad request: missing field"])
    def test_other_messages_are_fatal(self, message: str) -> None:
        assert not ErrorClassifier().is_recoverable(RuntimeError(message))

    def test_custom_patterns_replace_defaults(self) -> None:
        classifier = ErrorClassifier([r"try again"])
        assert classifier.is_recoverable("Please TRY AGAIN later")
        assert not classifier.is_recoverable("socket hang up")

    def test_server_errors_are_recoverable(self) -> None:
        assert ErrorClassifier().is_recoverable(_StatusError("upstream failure", 502))


# ---------------------------------------------------------------------------
# 5xx detection
# ---------------------------------------------------------------------------


class TestServerErrorDetection:
    """Tests for is_server_error."""

    def test_status_attribute(self) -> None:
        assert is_server_error(_StatusError("boom", 503))
        assert not is_server_error(_StatusError("boom", 429))

    def test_response_status(self) -> None:
        assert is_server_error(_ResponseError("boom", 500))
        assert not is_server_error(_ResponseError("boom", 404))

    def test_status_code_in_message(self) -> None:
        assert is_server_error("Got HTTP 502 Bad Gateway")
        assert is_server_error("server answered 503.")

    def test_token_count_digits_are_not_status_codes(self) -> None:
        """Digits inside token counts must not look like a 5xx."""
        assert not is_server_error("Input token count 1,050,500 exceeds maximum of 1,048,576")
        assert not is_server_error("400 Bad Request: input token count 510 exceeds limit")
        assert not is_server_error("used 12.504 seconds")

    def test_plain_message_is_not_server_error(self) -> None:
        assert not is_server_error("Invalid API key")


# ---------------------------------------------------------------------------
# Feedback formatting
# ---------------------------------------------------------------------------


class TestFeedbackFormatting:
    """Tests for categorizing errors and formatting them for the model."""

    def _format(self, error) -> str:
        classifier = ErrorClassifier()
        return classifier.format_for_model(classifier.classify(error))

    def test_token_limit(self) -> None:
        message = self._format("Input token count exceeds maximum")
        assert message.startswith("[API Error: Token limit exceeded]")

    def test_rate_limit(self) -> None:
        assert self._format("Rate limit reached").startswith("[API Error: Rate/quota limit exceeded]")

    def test_network(self) -> None:
        assert self._format("socket hang up").startswith("[Network Error: Connection issue detected]")

    def test_server(self) -> None:
        classification = ErrorClassifier().classify(_StatusError("upstream failure", 500))
        assert classification.category is ErrorCategory.SERVER
        assert classification.recoverable is True

    def test_other_uses_first_line_without_prefix(self) -> None:
        assert self._format("Error: Something broke\nstack trace here") == "[API Error: Something broke]"

    def test_other_uses_embedded_payload(self) -> None:
        message = 'Request failed [{"error": {"code": 429, "message": "Slow down"}}]'
        assert self._format(message) == "[API Error: Slow down (Code: 429)]"


class TestExtractApiErrorDetails:
    """Tests for extract_api_error_details."""

    def test_bracketed_payload(self) -> None:
        details = extract_api_error_details('failed: [{"error": {"code": 400, "message": "bad"}}]')
        assert details == {"code": 400, "message": "bad"}

    def test_bare_payload(self) -> None:
        details = extract_api_error_details('status 500 {"error": {"code": 500, "message": "internal"}}')
        assert details == {"code": 500, "message": "internal"}

    def test_no_payload(self) -> None:
        assert extract_api_error_details("plain failure") is None

    def test_malformed_payload(self) -> None:
        assert extract_api_error_details('{"error": oops}') is None


# ---------------------------------------------------------------------------
# Tool fatality
# ---------------------------------------------------------------------------


class TestToolFatality:
    """Tests for tool error formatting and fatality."""

    def test_default_patterns(self) -> None:
        assert is_fatal_tool_error("Error executing tool q: connect ECONNREFUSED", not_found=False)
        assert is_fatal_tool_error("Error executing tool q: Permission denied", not_found=False)
        assert not is_fatal_tool_error("Error executing tool q: invalid argument", not_found=False)

    def test_not_found_overrides_patterns(self) -> None:
        assert not is_fatal_tool_error("Error executing tool q: ETIMEDOUT", not_found=True)

    def test_custom_patterns_are_case_insensitive(self) -> None:
        assert is_fatal_tool_error("fatal_error in step", not_found=False, patterns=[r"FATAL_ERROR"])
        assert not is_fatal_tool_error("ECONNREFUSED", not_found=False, patterns=[r"FATAL_ERROR"])

    def test_not_found_detection(self) -> None:
        assert is_tool_not_found(ToolError("anything", not_found=True))
        assert is_tool_not_found(ToolError("Tool x not found in registry"))
        assert not is_tool_not_found(ToolError("Tool x crashed"))

    def test_format_prefers_display_text(self) -> None:
        response = ToolResponse(result_display="Readable failure", error=ToolError("raw failure"))
        assert format_tool_error("fetch", response) == "Error executing tool fetch: Readable failure"

    def test_format_falls_back_to_error_message(self) -> None:
        response = ToolResponse(result_display={"partial": True}, error=ToolError("raw failure"))
        assert format_tool_error("fetch", response) == "Error executing tool fetch: raw failure"

    def test_compile_patterns_keeps_compiled(self) -> None:
        compiled = re.compile("x")
        patterns = compile_patterns([compiled, "Y"])
        assert patterns[0] is compiled
        assert patterns[1].search("y")
