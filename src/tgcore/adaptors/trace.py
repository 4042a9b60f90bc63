from __future__ import annotations

import enum
from typing import Any

from ..logging import get_logger
from ..payloads import Payload
from ..requests import Adaptor, Requester

logger = get_logger(__name__)


class TraceSettings(enum.Flag):
    """What :class:`Trace` logs; verbose flags imply their plain counterpart."""

    NONE = 0
    REQUESTS = 1
    REQUEST_PAYLOADS = 2
    RESPONSES = 4
    RESPONSE_RESULTS = 8
    REQUESTS_VERBOSE = REQUESTS | REQUEST_PAYLOADS
    RESPONSES_VERBOSE = RESPONSES | RESPONSE_RESULTS
    EVERYTHING = REQUESTS | RESPONSES
    EVERYTHING_VERBOSE = REQUESTS_VERBOSE | RESPONSES_VERBOSE


class Trace(Adaptor):
    """Logs requests and responses at debug level."""

    def __init__(
        self,
        inner: Requester,
        settings: TraceSettings = TraceSettings.EVERYTHING,
    ) -> None:
        super().__init__(inner)
        self.settings = settings

    async def execute(self, payload: Payload) -> Any:
        settings = self.settings
        method = payload.method
        if TraceSettings.REQUESTS_VERBOSE in settings:
            logger.debug("trace.request", method=method, payload=repr(payload))
        elif TraceSettings.REQUESTS in settings:
            logger.debug("trace.request", method=method)
        try:
            result = await self.inner.execute(payload)
        except Exception as exc:
            if TraceSettings.RESPONSES in settings:
                logger.debug(
                    "trace.response",
                    method=method,
                    ok=False,
                    error_type=exc.__class__.__name__,
                    error=str(exc),
                )
            raise
        if TraceSettings.RESPONSES_VERBOSE in settings:
            logger.debug(
                "trace.response", method=method, ok=True, result=repr(result)
            )
        elif TraceSettings.RESPONSES in settings:
            logger.debug("trace.response", method=method, ok=True)
        return result
