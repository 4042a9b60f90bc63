from __future__ import annotations

from typing import Any

import msgspec

from ..payloads import Payload, has_parse_mode
from ..requests import Adaptor, Requester


class DefaultParseMode(Adaptor):
    """Fills ``parse_mode`` on payloads that support it and left it unset."""

    def __init__(self, inner: Requester, parse_mode: str) -> None:
        super().__init__(inner)
        self.default_parse_mode = parse_mode

    async def execute(self, payload: Payload) -> Any:
        if has_parse_mode(payload) and getattr(payload, "parse_mode") is None:
            payload = msgspec.structs.replace(
                payload, parse_mode=self.default_parse_mode
            )
        return await self.inner.execute(payload)
