# Copyright (c) Microsoft. All rights reserved.

"""Constants and defaults for the turn-execution engine."""

# Hard turn ceilings. The engine never runs more turns than the active ceiling,
# whatever the session's own max-turns setting says.
DEFAULT_HARD_TURN_LIMIT = 100
EXTENDED_HARD_TURN_LIMIT = 200

# Soft limit used for progress reporting when the session does not configure one
DEFAULT_MAX_TURNS = 50

# Fallback progress never reaches 100 until the task succeeds
DEFAULT_PROGRESS_CEILING = 95.0

# Message sent when the continuation oracle asks the model to keep going
DEFAULT_CONTINUATION_PROMPT = "Please continue."

# Marker some tool registries put in their error text for unknown tools
TOOL_NOT_FOUND_MARKER = "not found in registry"

# Extracted-data key a strategy uses to attach an exported artifact to a tool call
EXPORT_PATH_KEY = "export_path"

# Default fatal tool-error patterns used when no strategy supplies its own
DEFAULT_FATAL_TOOL_PATTERNS: tuple[str, ...] = (r"(ECONN|ETIMEDOUT|auth|permission|timeout|ECONNREFUSED)",)

# Transport/API errors the model can recover from when told about them
DEFAULT_RECOVERABLE_PATTERNS: tuple[str, ...] = (
    r"token.*count.*exceeds.*maximum",
    r"input.*token.*count.*exceeds",
    r"context.*length.*exceeded",
    r"request.*too.*large",
    r"rate.*limit.*exceeded",
    r"quota.*exceeded",
    r"service.*temporarily.*unavailable",
    r"timeout",
    r"network.*error",
    r"connection.*reset",
    r"socket.*hang.*up",
    r"econnreset",
    r"enotfound",
    r"econnrefused",
    r"etimedout",
    r"temporary.*failure",
)

# Environment variables read by EngineSettings.from_env()
ENV_HARD_TURN_LIMIT = "TASK_ENGINE_HARD_TURN_LIMIT"
ENV_DEFAULT_MAX_TURNS = "TASK_ENGINE_DEFAULT_MAX_TURNS"
ENV_ENFORCE_TOOL_VALIDATION = "TASK_ENGINE_ENFORCE_TOOL_VALIDATION"

# Tracer name for OpenTelemetry spans
TRACER_NAME = "task_engine"
