# Copyright (c) Microsoft. All rights reserved.

"""Message and response types exchanged with the model session and tool executor."""

from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any, Literal


@dataclass(frozen=True)
class ToolInvocation:
    """A request from the model to run a named tool.

    Attributes:
        name: The tool name.
        args: Argument map; opaque to the engine.
        id: Call identifier, if the model provided one.
    """

    name: str
    args: dict[str, Any] = field(default_factory=dict)
    id: str | None = None


@dataclass(frozen=True)
class ContentPart:
    """One fragment of a message.

    A part carries text, a tool invocation, a tool response payload, or any
    combination. ``thought`` marks internal model reasoning that is never
    surfaced.
    """

    text: str | None = None
    thought: bool = False
    function_call: ToolInvocation | None = None
    function_response: dict[str, Any] | None = None

    def is_empty(self) -> bool:
        return (
            self.text is None
            and not self.thought
            and self.function_call is None
            and self.function_response is None
        )


@dataclass(frozen=True)
class Message:
    """A message in the conversation: a role and its content parts."""

    role: Literal["user", "model"]
    parts: tuple[ContentPart, ...] = ()

    @classmethod
    def user_text(cls, text: str) -> "Message":
        return cls(role="user", parts=(ContentPart(text=text),))

    @property
    def text(self) -> str:
        return "".join(part.text for part in self.parts if part.text and not part.thought)


@dataclass(frozen=True)
class ResponseChunk:
    """One partial response streamed by the model session."""

    parts: tuple[ContentPart, ...] = ()

    def is_valid(self) -> bool:
        """A chunk is usable when it has parts and none of them is empty."""
        if not self.parts:
            return False
        return not any(part is None or part.is_empty() for part in self.parts)

    @property
    def text(self) -> str:
        """Concatenated non-thought text of this chunk."""
        return "".join(part.text for part in self.parts if part.text and not part.thought)

    @property
    def function_calls(self) -> list[ToolInvocation]:
        return [part.function_call for part in self.parts if part.function_call is not None]


@dataclass(frozen=True)
class ToolError:
    """Error returned by the tool executor.

    Attributes:
        message: Error message.
        not_found: True when the tool name is unknown to the registry.
    """

    message: str
    not_found: bool = False


@dataclass(frozen=True)
class ToolResponse:
    """Result of one tool execution.

    Attributes:
        result_display: Displayable result (string or structured value).
        response_parts: Content returned to the model; strings become text parts.
        error: Set when the execution failed.
    """

    result_display: Any = None
    response_parts: Any = None
    error: ToolError | None = None

    def iter_response_parts(self) -> list[ContentPart]:
        """Normalize ``response_parts`` into a list of content parts."""
        if self.response_parts is None:
            return []
        raw: Iterable[Any]
        if isinstance(self.response_parts, (list, tuple)):
            raw = self.response_parts
        else:
            raw = [self.response_parts]
        parts: list[ContentPart] = []
        for item in raw:
            if isinstance(item, str):
                parts.append(ContentPart(text=item))
            elif isinstance(item, ContentPart):
                parts.append(item)
            elif isinstance(item, dict):
                parts.append(ContentPart(function_response=item))
            elif item:
                parts.append(ContentPart(text=str(item)))
        return parts


@dataclass(frozen=True)
class ContinuationDecision:
    """Answer from the continuation oracle."""

    should_continue: bool
    reasoning: str | None = None
