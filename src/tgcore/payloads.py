"""Request payloads: one msgspec struct per Bot API method.

A payload knows its method name, the type the call returns, whether it is
subject to outbound rate limits, and how long the server may hold the
request.  ``lower_payload`` turns a payload into JSON fields plus file parts
for the transport.
"""

from __future__ import annotations

import os
from collections.abc import AsyncIterable
from pathlib import Path
from typing import Any, ClassVar

import anyio
import msgspec

from .api_models import (
    BotCommand,
    Chat,
    File,
    Me,
    Message,
    MessageEntity,
    MessageId,
    Update,
    WebhookInfo,
)

__all__ = [
    "AnswerCallbackQuery",
    "CopyMessage",
    "Close",
    "DeleteMessage",
    "DeleteWebhook",
    "EditMessageText",
    "ForwardMessage",
    "GetChat",
    "GetFile",
    "GetMe",
    "GetUpdates",
    "GetUpdatesNonStrict",
    "GetWebhookInfo",
    "InputFile",
    "InputMediaDocument",
    "InputMediaPhoto",
    "LogOut",
    "Payload",
    "SendChatAction",
    "SendDocument",
    "SendMediaGroup",
    "SendMessage",
    "SendPhoto",
    "SetMyCommands",
    "SetWebhook",
    "lower_payload",
]

LONG_POLL_SLACK_S = 5.0


class InputFile:
    """A file attached to a request.

    Local sources (path, bytes, stream) become multipart parts; ``url`` and
    ``file_id`` sources are sent as plain strings.
    """

    __slots__ = ("kind", "source", "filename")

    def __init__(self, kind: str, source: Any, filename: str | None = None) -> None:
        self.kind = kind
        self.source = source
        self.filename = filename

    @classmethod
    def file(cls, path: str | os.PathLike[str]) -> InputFile:
        path = Path(path)
        return cls("file", path, path.name)

    @classmethod
    def memory(cls, data: bytes, filename: str = "file") -> InputFile:
        return cls("memory", bytes(data), filename)

    @classmethod
    def read(cls, stream: AsyncIterable[bytes], filename: str = "file") -> InputFile:
        return cls("read", stream, filename)

    @classmethod
    def url(cls, url: str) -> InputFile:
        return cls("url", url)

    @classmethod
    def file_id(cls, file_id: str) -> InputFile:
        return cls("file_id", file_id)

    @property
    def is_remote(self) -> bool:
        return self.kind in {"url", "file_id"}

    async def read_bytes(self) -> bytes:
        if self.kind == "memory":
            return self.source
        if self.kind == "file":
            return await anyio.Path(self.source).read_bytes()
        if self.kind == "read":
            chunks = [chunk async for chunk in self.source]
            return b"".join(chunks)
        raise ValueError(f"{self.kind} input files have no local content")

    def __repr__(self) -> str:
        if self.kind in {"memory", "read"}:
            return f"InputFile({self.kind}, filename={self.filename!r})"
        return f"InputFile({self.kind}, {self.source!r})"


class Payload(msgspec.Struct, kw_only=True, omit_defaults=True):
    method: ClassVar[str]
    output: ClassVar[Any]
    throttled: ClassVar[bool] = False
    # file fields the Bot API only accepts as attach://<name> references
    attach_only: ClassVar[frozenset[str]] = frozenset()

    def timeout_hint(self) -> float | None:
        return None


class GetMe(Payload):
    method = "getMe"
    output = Me


class GetUpdates(Payload):
    method = "getUpdates"
    output = list[Update]

    offset: int | None = None
    limit: int | None = None
    timeout: int | None = None
    allowed_updates: list[str] | None = None

    def timeout_hint(self) -> float | None:
        if not self.timeout:
            return None
        return self.timeout + LONG_POLL_SLACK_S


class GetUpdatesNonStrict(GetUpdates):
    """``getUpdates`` that leaves every update undecoded."""

    output = list[msgspec.Raw]


class SendMessage(Payload):
    method = "sendMessage"
    output = Message
    throttled = True

    chat_id: int | str
    text: str
    message_thread_id: int | None = None
    parse_mode: str | None = None
    entities: list[MessageEntity] | None = None
    disable_notification: bool | None = None
    protect_content: bool | None = None
    reply_to_message_id: int | None = None
    reply_markup: dict[str, Any] | None = None


class EditMessageText(Payload):
    method = "editMessageText"
    output = Message | bool

    text: str
    chat_id: int | str | None = None
    message_id: int | None = None
    inline_message_id: str | None = None
    parse_mode: str | None = None
    entities: list[MessageEntity] | None = None
    reply_markup: dict[str, Any] | None = None


class DeleteMessage(Payload):
    method = "deleteMessage"
    output = bool

    chat_id: int | str
    message_id: int


class ForwardMessage(Payload):
    method = "forwardMessage"
    output = Message
    throttled = True

    chat_id: int | str
    from_chat_id: int | str
    message_id: int
    message_thread_id: int | None = None
    disable_notification: bool | None = None


class CopyMessage(Payload):
    method = "copyMessage"
    output = MessageId
    throttled = True

    chat_id: int | str
    from_chat_id: int | str
    message_id: int
    caption: str | None = None
    parse_mode: str | None = None
    disable_notification: bool | None = None
    reply_to_message_id: int | None = None


class SendPhoto(Payload):
    method = "sendPhoto"
    output = Message
    throttled = True

    chat_id: int | str
    photo: InputFile
    caption: str | None = None
    parse_mode: str | None = None
    message_thread_id: int | None = None
    disable_notification: bool | None = None
    reply_to_message_id: int | None = None


class SendDocument(Payload):
    method = "sendDocument"
    output = Message
    throttled = True
    attach_only = frozenset({"thumbnail"})

    chat_id: int | str
    document: InputFile
    thumbnail: InputFile | None = None
    caption: str | None = None
    parse_mode: str | None = None
    message_thread_id: int | None = None
    disable_notification: bool | None = None
    reply_to_message_id: int | None = None


class InputMediaPhoto(msgspec.Struct, kw_only=True, omit_defaults=True):
    media: InputFile
    type: str = "photo"
    caption: str | None = None
    parse_mode: str | None = None


class InputMediaDocument(msgspec.Struct, kw_only=True, omit_defaults=True):
    media: InputFile
    type: str = "document"
    caption: str | None = None
    parse_mode: str | None = None


class SendMediaGroup(Payload):
    method = "sendMediaGroup"
    output = list[Message]
    throttled = True

    chat_id: int | str
    media: list[InputMediaPhoto | InputMediaDocument]
    message_thread_id: int | None = None
    disable_notification: bool | None = None
    reply_to_message_id: int | None = None


class SendChatAction(Payload):
    method = "sendChatAction"
    output = bool

    chat_id: int | str
    action: str = "typing"
    message_thread_id: int | None = None


class AnswerCallbackQuery(Payload):
    method = "answerCallbackQuery"
    output = bool

    callback_query_id: str
    text: str | None = None
    show_alert: bool | None = None
    url: str | None = None
    cache_time: int | None = None


class GetChat(Payload):
    method = "getChat"
    output = Chat

    chat_id: int | str


class GetFile(Payload):
    method = "getFile"
    output = File

    file_id: str


class SetWebhook(Payload):
    method = "setWebhook"
    output = bool

    url: str
    certificate: InputFile | None = None
    ip_address: str | None = None
    max_connections: int | None = None
    allowed_updates: list[str] | None = None
    drop_pending_updates: bool | None = None
    secret_token: str | None = None


class DeleteWebhook(Payload):
    method = "deleteWebhook"
    output = bool

    drop_pending_updates: bool | None = None


class GetWebhookInfo(Payload):
    method = "getWebhookInfo"
    output = WebhookInfo


class SetMyCommands(Payload):
    method = "setMyCommands"
    output = bool

    commands: list[BotCommand]
    scope: dict[str, Any] | None = None
    language_code: str | None = None


class LogOut(Payload):
    method = "logOut"
    output = bool


class Close(Payload):
    method = "close"
    output = bool


def chat_id_of(payload: Payload) -> int | str | None:
    return getattr(payload, "chat_id", None)


def has_parse_mode(payload: Payload) -> bool:
    return "parse_mode" in payload.__struct_fields__


class _Lowering:
    def __init__(self) -> None:
        self.files: dict[str, InputFile] = {}
        self._attached = 0

    def attach(self, file: InputFile, name: str | None) -> str | None:
        if file.is_remote:
            return file.source
        if name is None:
            name = f"file{self._attached}"
            self._attached += 1
            self.files[name] = file
            return f"attach://{name}"
        self.files[name] = file
        return None

    def lower(self, value: Any) -> Any:
        if isinstance(value, InputFile):
            return self.attach(value, None)
        if isinstance(value, msgspec.Struct):
            return self.lower_struct(value)
        if isinstance(value, (list, tuple)):
            return [self.lower(item) for item in value]
        if isinstance(value, dict):
            return {key: self.lower(item) for key, item in value.items()}
        return value

    def lower_struct(self, value: msgspec.Struct) -> dict[str, Any]:
        lowered: dict[str, Any] = {}
        for field in msgspec.structs.fields(value):
            item = getattr(value, field.name)
            if item is None:
                continue
            lowered[field.encode_name] = self.lower(item)
        return lowered


def lower_payload(payload: Payload) -> tuple[dict[str, Any], dict[str, InputFile]]:
    """Split a payload into JSON-ready fields and local file parts.

    Top-level local files become parts named after their field; files nested
    inside other values, and fields listed in ``attach_only``, are referenced
    with ``attach://<name>``.
    """
    lowering = _Lowering()
    fields: dict[str, Any] = {}
    for field in msgspec.structs.fields(payload):
        value = getattr(payload, field.name)
        if value is None:
            continue
        if isinstance(value, InputFile):
            name = None if field.name in payload.attach_only else field.encode_name
            reference = lowering.attach(value, name)
            if reference is not None:
                fields[field.encode_name] = reference
            continue
        fields[field.encode_name] = lowering.lower(value)
    return msgspec.to_builtins(fields), lowering.files
