from __future__ import annotations

import os
from collections.abc import AsyncIterator
from typing import Any

import httpx

from .config import DEFAULT_API_URL, ENV_BOT_TOKEN, ENV_PROXY, BotConfig, ConfigError
from .net import DEFAULT_TIMEOUT_S, Transport, api_url_from_env
from .payloads import Payload, lower_payload
from .requests import Requester


class Bot(Requester):
    """Requester that sends payloads straight to the Bot API."""

    def __init__(
        self,
        token: str,
        *,
        api_url: str = DEFAULT_API_URL,
        client: httpx.AsyncClient | None = None,
        timeout_s: float = DEFAULT_TIMEOUT_S,
        proxy: str | None = None,
    ) -> None:
        self.transport = Transport(
            token,
            api_url=api_url,
            client=client,
            timeout_s=timeout_s,
            proxy=proxy,
        )

    @classmethod
    def from_env(cls, *, client: httpx.AsyncClient | None = None) -> Bot:
        token = os.environ.get(ENV_BOT_TOKEN, "").strip()
        if not token:
            raise ConfigError(f"Missing bot token; set {ENV_BOT_TOKEN}.")
        proxy = os.environ.get(ENV_PROXY) or None
        return cls(token, api_url=api_url_from_env(), client=client, proxy=proxy)

    @classmethod
    def from_config(
        cls, config: BotConfig, *, client: httpx.AsyncClient | None = None
    ) -> Bot:
        return cls(
            config.token, api_url=config.api_url, client=client, proxy=config.proxy
        )

    async def execute(self, payload: Payload) -> Any:
        fields, files = lower_payload(payload)
        timeout = payload.timeout_hint()
        if files:
            return await self.transport.request_multipart(
                payload.method,
                fields,
                files,
                output=payload.output,
                timeout=timeout,
            )
        return await self.transport.request_json(
            payload.method, fields, output=payload.output, timeout=timeout
        )

    def download_file(self, file_path: str) -> AsyncIterator[bytes]:
        return self.transport.download_file(file_path)

    async def download_file_bytes(self, file_path: str) -> bytes:
        return await self.transport.download_file_bytes(file_path)

    async def download_file_to(self, file_path: str, dst: str | os.PathLike[str]) -> int:
        return await self.transport.download_file_to(file_path, dst)

    async def aclose(self) -> None:
        await self.transport.close()

    async def __aenter__(self) -> Bot:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()
