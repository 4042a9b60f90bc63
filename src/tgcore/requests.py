from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Generator
from typing import TYPE_CHECKING, Any, Generic, TypeVar

import msgspec

from . import payloads as p
from .api_models import BotCommand

if TYPE_CHECKING:
    from .adaptors.auto_retry import AutoRetry
    from .adaptors.cache_me import CacheMe
    from .adaptors.parse_mode import DefaultParseMode
    from .adaptors.throttle import Settings, Throttle
    from .adaptors.trace import Trace, TraceSettings
    from .shutdown import ShutdownToken

T = TypeVar("T")


class Request(Generic[T]):
    """A payload bound to the requester that will send it."""

    __slots__ = ("payload", "requester")

    def __init__(self, payload: p.Payload, requester: Requester) -> None:
        self.payload = payload
        self.requester = requester

    async def send(self) -> T:
        return await self.requester.execute(self.payload)

    def with_payload(self, **changes: Any) -> Request[T]:
        return Request(msgspec.structs.replace(self.payload, **changes), self.requester)

    def __await__(self) -> Generator[Any, None, T]:
        return self.send().__await__()

    def __repr__(self) -> str:
        return f"Request({self.payload!r})"


class RequesterMethods:
    """Typed factories for the supported Bot API methods."""

    def request(self, payload: p.Payload) -> Request[Any]:
        return Request(payload, self)  # type: ignore[arg-type]

    def get_me(self) -> Request[Any]:
        return self.request(p.GetMe())

    def get_updates(self, **params: Any) -> Request[Any]:
        return self.request(p.GetUpdates(**params))

    def get_updates_non_strict(self, **params: Any) -> Request[Any]:
        return self.request(p.GetUpdatesNonStrict(**params))

    def send_message(self, chat_id: int | str, text: str, **params: Any) -> Request[Any]:
        return self.request(p.SendMessage(chat_id=chat_id, text=text, **params))

    def edit_message_text(
        self, chat_id: int | str, message_id: int, text: str, **params: Any
    ) -> Request[Any]:
        return self.request(
            p.EditMessageText(
                chat_id=chat_id, message_id=message_id, text=text, **params
            )
        )

    def edit_message_text_inline(
        self, inline_message_id: str, text: str, **params: Any
    ) -> Request[Any]:
        return self.request(
            p.EditMessageText(inline_message_id=inline_message_id, text=text, **params)
        )

    def delete_message(self, chat_id: int | str, message_id: int) -> Request[Any]:
        return self.request(p.DeleteMessage(chat_id=chat_id, message_id=message_id))

    def forward_message(
        self,
        chat_id: int | str,
        from_chat_id: int | str,
        message_id: int,
        **params: Any,
    ) -> Request[Any]:
        return self.request(
            p.ForwardMessage(
                chat_id=chat_id,
                from_chat_id=from_chat_id,
                message_id=message_id,
                **params,
            )
        )

    def copy_message(
        self,
        chat_id: int | str,
        from_chat_id: int | str,
        message_id: int,
        **params: Any,
    ) -> Request[Any]:
        return self.request(
            p.CopyMessage(
                chat_id=chat_id,
                from_chat_id=from_chat_id,
                message_id=message_id,
                **params,
            )
        )

    def send_photo(
        self, chat_id: int | str, photo: p.InputFile, **params: Any
    ) -> Request[Any]:
        return self.request(p.SendPhoto(chat_id=chat_id, photo=photo, **params))

    def send_document(
        self, chat_id: int | str, document: p.InputFile, **params: Any
    ) -> Request[Any]:
        return self.request(
            p.SendDocument(chat_id=chat_id, document=document, **params)
        )

    def send_media_group(
        self,
        chat_id: int | str,
        media: list[p.InputMediaPhoto | p.InputMediaDocument],
        **params: Any,
    ) -> Request[Any]:
        return self.request(p.SendMediaGroup(chat_id=chat_id, media=media, **params))

    def send_chat_action(
        self, chat_id: int | str, action: str = "typing", **params: Any
    ) -> Request[Any]:
        return self.request(p.SendChatAction(chat_id=chat_id, action=action, **params))

    def answer_callback_query(
        self, callback_query_id: str, **params: Any
    ) -> Request[Any]:
        return self.request(
            p.AnswerCallbackQuery(callback_query_id=callback_query_id, **params)
        )

    def get_chat(self, chat_id: int | str) -> Request[Any]:
        return self.request(p.GetChat(chat_id=chat_id))

    def get_file(self, file_id: str) -> Request[Any]:
        return self.request(p.GetFile(file_id=file_id))

    def set_webhook(self, url: str, **params: Any) -> Request[Any]:
        return self.request(p.SetWebhook(url=url, **params))

    def delete_webhook(self, **params: Any) -> Request[Any]:
        return self.request(p.DeleteWebhook(**params))

    def get_webhook_info(self) -> Request[Any]:
        return self.request(p.GetWebhookInfo())

    def set_my_commands(
        self, commands: list[BotCommand], **params: Any
    ) -> Request[Any]:
        return self.request(p.SetMyCommands(commands=commands, **params))

    def log_out(self) -> Request[Any]:
        return self.request(p.LogOut())

    def close_bot(self) -> Request[Any]:
        return self.request(p.Close())


class Requester(RequesterMethods, ABC):
    """Anything that can turn a payload into a Bot API call."""

    @abstractmethod
    async def execute(self, payload: p.Payload) -> Any: ...

    async def __aenter__(self) -> Any:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        return None

    def throttle(
        self,
        settings: Settings | None = None,
        *,
        shutdown_token: ShutdownToken | None = None,
    ) -> Throttle:
        from .adaptors.throttle import Throttle

        return Throttle(self, settings, shutdown_token=shutdown_token)

    def auto_retry(self, *, max_retries: int = 5) -> AutoRetry:
        from .adaptors.auto_retry import AutoRetry

        return AutoRetry(self, max_retries=max_retries)

    def parse_mode(self, parse_mode: str) -> DefaultParseMode:
        from .adaptors.parse_mode import DefaultParseMode

        return DefaultParseMode(self, parse_mode)

    def cache_me(self) -> CacheMe:
        from .adaptors.cache_me import CacheMe

        return CacheMe(self)

    def trace(self, settings: TraceSettings | None = None) -> Trace:
        from .adaptors.trace import Trace, TraceSettings

        if settings is None:
            settings = TraceSettings.EVERYTHING
        return Trace(self, settings)


class Adaptor(Requester):
    """Wraps another requester and forwards every call to it."""

    def __init__(self, inner: Requester) -> None:
        self.inner = inner

    async def execute(self, payload: p.Payload) -> Any:
        return await self.inner.execute(payload)

    async def __aenter__(self) -> Any:
        await self.inner.__aenter__()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.inner.__aexit__(*exc_info)

    def innermost(self) -> Requester:
        inner = self.inner
        while isinstance(inner, Adaptor):
            inner = inner.inner
        return inner
