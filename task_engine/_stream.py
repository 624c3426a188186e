# Copyright (c) Microsoft. All rights reserved.

"""Consumption of one turn's streamed model response."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from ._messages import ContentPart, Message

if TYPE_CHECKING:
    from ._cancellation import CancellationToken
    from ._messages import ResponseChunk, ToolInvocation

logger = logging.getLogger(__name__)


@dataclass
class TurnOutput:
    """Everything the model produced in one turn.

    Attributes:
        text: Accumulated non-thought text, in arrival order.
        tool_invocations: Tool calls requested by the model, in request order.
        chunk_count: Number of valid chunks consumed.
        skipped_chunks: Number of structurally invalid chunks skipped.
        cancelled: True when the cancellation token stopped consumption.
    """

    text: str = ""
    tool_invocations: list[ToolInvocation] = field(default_factory=list)
    chunk_count: int = 0
    skipped_chunks: int = 0
    cancelled: bool = False

    def as_message(self) -> Message:
        """Assemble the model's turn into a history message."""
        parts: list[ContentPart] = []
        if self.text:
            parts.append(ContentPart(text=self.text))
        parts.extend(ContentPart(function_call=invocation) for invocation in self.tool_invocations)
        return Message(role="model", parts=tuple(parts))


async def consume_turn_stream(
    stream: AsyncIterator[ResponseChunk],
    cancellation: CancellationToken,
    on_text: Callable[[str], None] | None = None,
) -> TurnOutput:
    """Read a chunk stream to the end, accumulating text and tool calls.

    ``on_text`` receives the whole accumulated text after every chunk that adds
    text. The cancellation token is checked once per chunk; consumption stops at
    the first chunk seen after cancellation. A stream that ends on its own after
    cancellation is still reported as cancelled.
    """
    output = TurnOutput()
    fragments: list[str] = []

    async for chunk in stream:
        if cancellation.is_cancelled:
            logger.info("consume_turn_stream: cancellation observed, stopping stream consumption")
            output.cancelled = True
            aclose = getattr(stream, "aclose", None)
            if aclose is not None:
                await aclose()
            break

        if chunk is None or not chunk.is_valid():
            output.skipped_chunks += 1
            logger.debug("consume_turn_stream: skipping invalid chunk")
            continue

        output.chunk_count += 1
        output.tool_invocations.extend(chunk.function_calls)

        text = chunk.text
        if text:
            fragments.append(text)
            output.text = "".join(fragments)
            if on_text is not None:
                on_text(output.text)

    if not output.cancelled and cancellation.is_cancelled:
        logger.info("consume_turn_stream: stream ended after cancellation")
        output.cancelled = True
    return output
