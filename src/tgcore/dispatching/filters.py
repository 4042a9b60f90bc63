from __future__ import annotations

from ..api_models import UpdateKind
from .handler import Handler, KindFilter


def filter_update(*kinds: UpdateKind) -> Handler:
    return KindFilter(kinds)


def filter_message() -> Handler:
    return KindFilter([UpdateKind.MESSAGE])


def filter_edited_message() -> Handler:
    return KindFilter([UpdateKind.EDITED_MESSAGE])


def filter_channel_post() -> Handler:
    return KindFilter([UpdateKind.CHANNEL_POST])


def filter_edited_channel_post() -> Handler:
    return KindFilter([UpdateKind.EDITED_CHANNEL_POST])


def filter_message_reaction() -> Handler:
    return KindFilter([UpdateKind.MESSAGE_REACTION])


def filter_message_reaction_count() -> Handler:
    return KindFilter([UpdateKind.MESSAGE_REACTION_COUNT])


def filter_inline_query() -> Handler:
    return KindFilter([UpdateKind.INLINE_QUERY])


def filter_chosen_inline_result() -> Handler:
    return KindFilter([UpdateKind.CHOSEN_INLINE_RESULT])


def filter_callback_query() -> Handler:
    return KindFilter([UpdateKind.CALLBACK_QUERY])


def filter_shipping_query() -> Handler:
    return KindFilter([UpdateKind.SHIPPING_QUERY])


def filter_pre_checkout_query() -> Handler:
    return KindFilter([UpdateKind.PRE_CHECKOUT_QUERY])


def filter_poll() -> Handler:
    return KindFilter([UpdateKind.POLL])


def filter_poll_answer() -> Handler:
    return KindFilter([UpdateKind.POLL_ANSWER])


def filter_my_chat_member() -> Handler:
    return KindFilter([UpdateKind.MY_CHAT_MEMBER])


def filter_chat_member() -> Handler:
    return KindFilter([UpdateKind.CHAT_MEMBER])


def filter_chat_join_request() -> Handler:
    return KindFilter([UpdateKind.CHAT_JOIN_REQUEST])


def filter_chat_boost() -> Handler:
    return KindFilter([UpdateKind.CHAT_BOOST])


def filter_removed_chat_boost() -> Handler:
    return KindFilter([UpdateKind.REMOVED_CHAT_BOOST])
