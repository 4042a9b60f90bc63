"""Msgspec models for the Bot API objects the runtime routes and returns.

Only the fields the dispatching core needs are modelled; unknown fields are
tolerated everywhere so newer server payloads still decode.
"""

from __future__ import annotations

import enum
from typing import Any

import msgspec

__all__ = [
    "BotCommand",
    "CallbackQuery",
    "Chat",
    "ChatBoost",
    "ChatBoostRemoved",
    "ChatBoostUpdated",
    "ChatJoinRequest",
    "ChatMember",
    "ChatMemberUpdated",
    "ChosenInlineResult",
    "Document",
    "File",
    "InlineQuery",
    "Me",
    "Message",
    "MessageEntity",
    "MessageId",
    "MessageReactionCountUpdated",
    "MessageReactionUpdated",
    "PhotoSize",
    "Poll",
    "PollAnswer",
    "PollOption",
    "PreCheckoutQuery",
    "ResponseParameters",
    "ShippingQuery",
    "TelegramResponse",
    "Update",
    "UpdateKind",
    "User",
    "WebhookInfo",
    "decode_update",
    "encode_update",
    "is_channel_or_supergroup",
    "is_group_chat_id",
]

MIN_MARKED_CHANNEL_ID = -1_000_000_000_000


def is_group_chat_id(chat_id: int) -> bool:
    return chat_id < 0


def is_channel_or_supergroup(chat_id: int) -> bool:
    return chat_id <= MIN_MARKED_CHANNEL_ID


class Model(msgspec.Struct, forbid_unknown_fields=False, omit_defaults=True):
    pass


class UpdateKind(str, enum.Enum):
    MESSAGE = "message"
    EDITED_MESSAGE = "edited_message"
    CHANNEL_POST = "channel_post"
    EDITED_CHANNEL_POST = "edited_channel_post"
    MESSAGE_REACTION = "message_reaction"
    MESSAGE_REACTION_COUNT = "message_reaction_count"
    INLINE_QUERY = "inline_query"
    CHOSEN_INLINE_RESULT = "chosen_inline_result"
    CALLBACK_QUERY = "callback_query"
    SHIPPING_QUERY = "shipping_query"
    PRE_CHECKOUT_QUERY = "pre_checkout_query"
    POLL = "poll"
    POLL_ANSWER = "poll_answer"
    MY_CHAT_MEMBER = "my_chat_member"
    CHAT_MEMBER = "chat_member"
    CHAT_JOIN_REQUEST = "chat_join_request"
    CHAT_BOOST = "chat_boost"
    REMOVED_CHAT_BOOST = "removed_chat_boost"

    @classmethod
    def all(cls) -> frozenset[UpdateKind]:
        # chat_member is not delivered unless requested explicitly, so the
        # full set is spelled out instead of relying on an empty list.
        return frozenset(cls)


class User(Model):
    id: int
    is_bot: bool = False
    first_name: str = ""
    last_name: str | None = None
    username: str | None = None
    language_code: str | None = None


class Me(User):
    can_join_groups: bool | None = None
    can_read_all_group_messages: bool | None = None
    supports_inline_queries: bool | None = None


class Chat(Model):
    id: int
    type: str = "private"
    title: str | None = None
    username: str | None = None
    first_name: str | None = None
    last_name: str | None = None
    is_forum: bool | None = None
    slow_mode_delay: int | None = None


class MessageEntity(Model):
    type: str
    offset: int
    length: int
    url: str | None = None
    user: User | None = None
    language: str | None = None


class PhotoSize(Model):
    file_id: str
    file_unique_id: str = ""
    width: int = 0
    height: int = 0
    file_size: int | None = None


class Document(Model):
    file_id: str
    file_unique_id: str = ""
    file_name: str | None = None
    mime_type: str | None = None
    file_size: int | None = None


class Message(Model):
    message_id: int
    chat: Chat
    date: int = 0
    message_thread_id: int | None = None
    from_: User | None = msgspec.field(default=None, name="from")
    sender_chat: Chat | None = None
    text: str | None = None
    caption: str | None = None
    entities: list[MessageEntity] | None = None
    caption_entities: list[MessageEntity] | None = None
    reply_to_message: Message | None = None
    media_group_id: str | None = None
    photo: list[PhotoSize] | None = None
    document: Document | None = None
    new_chat_members: list[User] | None = None
    left_chat_member: User | None = None
    migrate_to_chat_id: int | None = None
    migrate_from_chat_id: int | None = None
    reply_markup: dict[str, Any] | None = None


class MessageId(Model):
    message_id: int


class CallbackQuery(Model):
    id: str
    from_: User = msgspec.field(name="from")
    chat_instance: str = ""
    message: Message | None = None
    inline_message_id: str | None = None
    data: str | None = None
    game_short_name: str | None = None


class InlineQuery(Model):
    id: str
    from_: User = msgspec.field(name="from")
    query: str = ""
    offset: str = ""
    chat_type: str | None = None


class ChosenInlineResult(Model):
    result_id: str
    from_: User = msgspec.field(name="from")
    query: str = ""
    inline_message_id: str | None = None


class ShippingQuery(Model):
    id: str
    from_: User = msgspec.field(name="from")
    invoice_payload: str = ""
    shipping_address: dict[str, Any] | None = None


class PreCheckoutQuery(Model):
    id: str
    from_: User = msgspec.field(name="from")
    currency: str = ""
    total_amount: int = 0
    invoice_payload: str = ""
    shipping_option_id: str | None = None


class PollOption(Model):
    text: str
    voter_count: int = 0


class Poll(Model):
    id: str
    question: str
    options: list[PollOption] = msgspec.field(default_factory=list)
    total_voter_count: int = 0
    is_closed: bool = False
    is_anonymous: bool = True
    type: str = "regular"
    allows_multiple_answers: bool = False


class PollAnswer(Model):
    poll_id: str
    option_ids: list[int] = msgspec.field(default_factory=list)
    voter_chat: Chat | None = None
    user: User | None = None


class ChatMember(Model):
    status: str
    user: User | None = None


class ChatMemberUpdated(Model):
    chat: Chat
    from_: User = msgspec.field(name="from")
    date: int = 0
    old_chat_member: ChatMember | None = None
    new_chat_member: ChatMember | None = None


class ChatJoinRequest(Model):
    chat: Chat
    from_: User = msgspec.field(name="from")
    user_chat_id: int = 0
    date: int = 0
    bio: str | None = None


class ChatBoost(Model):
    boost_id: str
    add_date: int = 0
    expiration_date: int = 0
    source: dict[str, Any] | None = None


class ChatBoostUpdated(Model):
    chat: Chat
    boost: ChatBoost


class ChatBoostRemoved(Model):
    chat: Chat
    boost_id: str
    remove_date: int = 0
    source: dict[str, Any] | None = None


class MessageReactionUpdated(Model):
    chat: Chat
    message_id: int
    date: int = 0
    user: User | None = None
    actor_chat: Chat | None = None
    old_reaction: list[dict[str, Any]] = msgspec.field(default_factory=list)
    new_reaction: list[dict[str, Any]] = msgspec.field(default_factory=list)


class MessageReactionCountUpdated(Model):
    chat: Chat
    message_id: int
    date: int = 0
    reactions: list[dict[str, Any]] = msgspec.field(default_factory=list)


class Update(Model):
    update_id: int
    message: Message | None = None
    edited_message: Message | None = None
    channel_post: Message | None = None
    edited_channel_post: Message | None = None
    message_reaction: MessageReactionUpdated | None = None
    message_reaction_count: MessageReactionCountUpdated | None = None
    inline_query: InlineQuery | None = None
    chosen_inline_result: ChosenInlineResult | None = None
    callback_query: CallbackQuery | None = None
    shipping_query: ShippingQuery | None = None
    pre_checkout_query: PreCheckoutQuery | None = None
    poll: Poll | None = None
    poll_answer: PollAnswer | None = None
    my_chat_member: ChatMemberUpdated | None = None
    chat_member: ChatMemberUpdated | None = None
    chat_join_request: ChatJoinRequest | None = None
    chat_boost: ChatBoostUpdated | None = None
    removed_chat_boost: ChatBoostRemoved | None = None

    @property
    def kind(self) -> UpdateKind | None:
        for kind in UpdateKind:
            if getattr(self, kind.value) is not None:
                return kind
        return None

    @property
    def payload(self) -> Any:
        kind = self.kind
        return None if kind is None else getattr(self, kind.value)

    @property
    def chat(self) -> Chat | None:
        payload = self.payload
        if payload is None:
            return None
        if isinstance(payload, CallbackQuery):
            return payload.message.chat if payload.message is not None else None
        return getattr(payload, "chat", None)

    @property
    def chat_id(self) -> int | None:
        chat = self.chat
        return chat.id if chat is not None else None

    @property
    def from_user(self) -> User | None:
        payload = self.payload
        if payload is None:
            return None
        if isinstance(payload, (PollAnswer, MessageReactionUpdated)):
            return payload.user
        user = getattr(payload, "from_", None)
        return user if isinstance(user, User) else None

    @property
    def user_id(self) -> int | None:
        user = self.from_user
        return user.id if user is not None else None


class File(Model):
    file_id: str
    file_unique_id: str = ""
    file_size: int | None = None
    file_path: str | None = None


class WebhookInfo(Model):
    url: str = ""
    has_custom_certificate: bool = False
    pending_update_count: int = 0
    ip_address: str | None = None
    last_error_date: int | None = None
    last_error_message: str | None = None
    max_connections: int | None = None
    allowed_updates: list[str] | None = None


class BotCommand(Model):
    command: str
    description: str


class ResponseParameters(Model):
    migrate_to_chat_id: int | None = None
    retry_after: float | None = None


class TelegramResponse(Model):
    ok: bool
    result: msgspec.Raw = msgspec.Raw()
    description: str | None = None
    error_code: int | None = None
    parameters: ResponseParameters | None = None


class UpdateId(Model):
    update_id: int


_UPDATE_DECODER = msgspec.json.Decoder(Update)
_UPDATE_ID_DECODER = msgspec.json.Decoder(UpdateId)
_ENCODER = msgspec.json.Encoder()


def decode_update(payload: str | bytes) -> Update:
    return _UPDATE_DECODER.decode(payload)


def decode_update_id(payload: str | bytes) -> int | None:
    try:
        return _UPDATE_ID_DECODER.decode(payload).update_id
    except msgspec.DecodeError:
        return None


def encode_update(update: Update) -> bytes:
    return _ENCODER.encode(update)
