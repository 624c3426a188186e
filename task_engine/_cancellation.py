# Copyright (c) Microsoft. All rights reserved.

"""Cooperative cancellation token passed through every suspension point."""

import logging

logger = logging.getLogger(__name__)


class CancellationToken:
    """A flag that collaborators check explicitly.

    The engine checks the token once per streamed chunk and passes it to the
    tool executor and the continuation oracle, which are responsible for
    honoring it themselves.
    """

    def __init__(self) -> None:
        self._cancelled = False
        self._reason: str | None = None

    @property
    def is_cancelled(self) -> bool:
        return self._cancelled

    @property
    def reason(self) -> str | None:
        return self._reason

    def cancel(self, reason: str | None = None) -> None:
        """Request cancellation. Repeated calls keep the first reason."""
        if self._cancelled:
            return
        self._cancelled = True
        self._reason = reason
        logger.info("CancellationToken: cancellation requested (%s)", reason or "no reason given")

    def __repr__(self) -> str:
        return f"CancellationToken(cancelled={self._cancelled}, reason={self._reason!r})"
