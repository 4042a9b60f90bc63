from __future__ import annotations

import contextlib
import hmac
import re
import secrets
import string
from collections.abc import AsyncGenerator, Iterator
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any
from urllib.parse import urlsplit

import anyio
import msgspec
import uvicorn
from fastapi import FastAPI, Header, HTTPException, Request

from ..api_models import Update, decode_update
from ..errors import RequestError, excerpt
from ..logging import get_logger
from ..payloads import InputFile
from ..requests import Requester
from .base import ListenerEvent, UpdateListener

if TYPE_CHECKING:
    from anyio.abc import TaskGroup
    from anyio.streams.memory import MemoryObjectReceiveStream, MemoryObjectSendStream

    from ..shutdown import ShutdownToken

logger = get_logger(__name__)

SECRET_HEADER = "X-Telegram-Bot-Api-Secret-Token"
SECRET_ALPHABET = string.ascii_letters + string.digits + "_-"
SECRET_RE = re.compile(r"^[A-Za-z0-9_-]{1,256}$")


def generate_secret_token(length: int = 32) -> str:
    return "".join(secrets.choice(SECRET_ALPHABET) for _ in range(length))


def validate_secret_token(token: str) -> str:
    if not SECRET_RE.match(token):
        raise ValueError(
            "secret_token must be 1-256 characters of A-Z, a-z, 0-9, _ and -"
        )
    return token


@dataclass(slots=True)
class WebhookOptions:
    url: str
    address: tuple[str, int] = ("127.0.0.1", 8443)
    path: str | None = None
    secret_token: str | None = None
    max_connections: int | None = None
    drop_pending_updates: bool = False
    allowed_updates: list[str] | None = None
    certificate: InputFile | None = None
    delete_on_shutdown: bool = True
    queue_size: int = 64
    backpressure_timeout: float = 10.0

    def __post_init__(self) -> None:
        if self.secret_token is None:
            self.secret_token = generate_secret_token()
        else:
            validate_secret_token(self.secret_token)
        if self.path is None:
            self.path = urlsplit(self.url).path or "/"
        if not self.path.startswith("/"):
            self.path = "/" + self.path


class WebhookReceiver:
    """Validates webhook deliveries and feeds them into a bounded stream."""

    def __init__(
        self,
        send_stream: MemoryObjectSendStream[Update],
        *,
        secret_token: str | None,
        backpressure_timeout: float = 10.0,
    ) -> None:
        self._send = send_stream
        self._secret_token = secret_token
        self._backpressure_timeout = backpressure_timeout
        self.last_update_id: int | None = None

    def _secret_ok(self, provided: str | None) -> bool:
        if self._secret_token is None:
            return True
        if provided is None:
            return False
        return hmac.compare_digest(provided, self._secret_token)

    async def receive(self, body: bytes, secret: str | None) -> int:
        if not self._secret_ok(secret):
            logger.warning("webhook.bad_secret")
            return 401
        try:
            update = decode_update(body)
        except msgspec.DecodeError as exc:
            logger.error(
                "webhook.parse_error",
                error=str(exc),
                body=excerpt(body.decode("utf-8", errors="replace")),
            )
            return 400
        previous = self.last_update_id
        if previous is not None and update.update_id <= previous:
            logger.debug(
                "webhook.stale_update",
                update_id=update.update_id,
                last_update_id=previous,
            )
            return 200
        self.last_update_id = update.update_id
        try:
            with anyio.fail_after(self._backpressure_timeout):
                await self._send.send(update)
        except (TimeoutError, anyio.ClosedResourceError, anyio.BrokenResourceError):
            if self.last_update_id == update.update_id:
                self.last_update_id = previous
            logger.warning("webhook.backpressure", update_id=update.update_id)
            return 503
        return 200


def webhook_app(receiver: WebhookReceiver, path: str = "/") -> FastAPI:
    app = FastAPI(openapi_url=None, docs_url=None, redoc_url=None)

    @app.post(path)
    async def telegram_webhook(
        request: Request,
        x_telegram_bot_api_secret_token: str | None = Header(None),
    ) -> dict[str, bool]:
        status = await receiver.receive(
            await request.body(), x_telegram_bot_api_secret_token
        )
        if status == 401:
            raise HTTPException(status_code=401, detail="Unauthorized")
        if status == 400:
            raise HTTPException(status_code=400, detail="Invalid update")
        if status == 503:
            raise HTTPException(status_code=503, detail="Update queue unavailable")
        return {"ok": True}

    return app


class _Server(uvicorn.Server):
    # the dispatcher owns signal handling
    @contextlib.contextmanager
    def capture_signals(self) -> Iterator[None]:
        yield


class Webhook(UpdateListener):
    """Listener that registers a webhook and serves it with uvicorn.

    With ``serve=False`` no server is started; mount ``listener.app`` into an
    existing ASGI application instead.
    """

    def __init__(
        self,
        bot: Requester,
        options: WebhookOptions,
        *,
        shutdown_token: ShutdownToken | None = None,
        serve: bool = True,
    ) -> None:
        super().__init__()
        self.bot = bot
        self.options = options
        self.allowed_updates = options.allowed_updates
        self._shutdown_token = shutdown_token
        self._serve = serve
        self._send: MemoryObjectSendStream[Update] | None = None
        self._receive: MemoryObjectReceiveStream[Update] | None = None
        self._server: _Server | None = None
        self._tg: TaskGroup | None = None
        self._server_done: anyio.Event | None = None
        self.receiver: WebhookReceiver | None = None
        self.app: FastAPI | None = None

    async def __aenter__(self) -> Webhook:
        options = self.options
        self._send, self._receive = anyio.create_memory_object_stream(
            options.queue_size
        )
        self.receiver = WebhookReceiver(
            self._send,
            secret_token=options.secret_token,
            backpressure_timeout=options.backpressure_timeout,
        )
        assert options.path is not None
        self.app = webhook_app(self.receiver, options.path)
        await self.bot.set_webhook(
            options.url,
            certificate=options.certificate,
            max_connections=options.max_connections,
            allowed_updates=self.allowed_updates,
            drop_pending_updates=options.drop_pending_updates or None,
            secret_token=options.secret_token,
        )
        logger.info("webhook.registered", path=options.path)
        self._tg = await anyio.create_task_group().__aenter__()
        if self._serve:
            host, port = options.address
            self._server = _Server(
                uvicorn.Config(self.app, host=host, port=port, log_level="warning")
            )
            self._server_done = anyio.Event()
            self._tg.start_soon(self._run_server, self._server)
        if self._shutdown_token is not None:
            self._tg.start_soon(self._watch_shutdown, self._shutdown_token)
        return self

    async def _run_server(self, server: _Server) -> None:
        try:
            await server.serve()
        finally:
            if self._send is not None:
                self._send.close()
            if self._server_done is not None:
                self._server_done.set()

    async def _watch_shutdown(self, token: ShutdownToken) -> None:
        await token.wait_for_shutdown()
        self.stop()

    def stop(self) -> None:
        if self._server is not None:
            # uvicorn finishes in-flight requests before serve() returns
            self._server.should_exit = True
        elif self._send is not None:
            self._send.close()

    async def events(self) -> AsyncGenerator[ListenerEvent, None]:
        assert self._receive is not None, "enter the listener before iterating it"
        async with self._receive:
            async for update in self._receive:
                yield update
        logger.info("webhook.stopped")

    async def __aexit__(self, *exc_info: Any) -> None:
        self.stop()
        tg, self._tg = self._tg, None
        try:
            if tg is not None:
                if self._server_done is not None:
                    await self._server_done.wait()
                tg.cancel_scope.cancel()
                await tg.__aexit__(None, None, None)
        finally:
            await super().__aexit__(*exc_info)
            if self.options.delete_on_shutdown:
                try:
                    await self.bot.delete_webhook()
                except RequestError as exc:
                    logger.warning(
                        "webhook.delete_failed",
                        error=str(exc),
                        error_type=exc.__class__.__name__,
                    )
