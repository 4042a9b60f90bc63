import msgspec
import pytest

from tgcore.api_models import (
    CallbackQuery,
    Chat,
    ChatBoost,
    ChatBoostRemoved,
    ChatBoostUpdated,
    ChatJoinRequest,
    ChatMember,
    ChatMemberUpdated,
    ChosenInlineResult,
    InlineQuery,
    Message,
    MessageReactionCountUpdated,
    MessageReactionUpdated,
    Poll,
    PollAnswer,
    PollOption,
    PreCheckoutQuery,
    ShippingQuery,
    Update,
    User,
    UpdateKind,
    decode_update,
    decode_update_id,
    encode_update,
    is_channel_or_supergroup,
    is_group_chat_id,
)
from tests.fakes import callback_update, message_update


def test_decode_message_update() -> None:
    update = decode_update(
        b'{"update_id": 9, "message": {"message_id": 1, "chat": {"id": -5, '
        b'"type": "group"}, "from": {"id": 3, "first_name": "a"}, "text": "hi", '
        b'"some_future_field": {"x": 1}}}'
    )

    assert update.kind is UpdateKind.MESSAGE
    assert isinstance(update.payload, Message)
    assert update.chat_id == -5
    assert update.user_id == 3
    assert update.message is not None
    assert update.message.from_ is not None
    assert update.message.text == "hi"


def test_callback_query_chat_comes_from_message() -> None:
    update = callback_update(4, chat_id=77)

    assert update.kind is UpdateKind.CALLBACK_QUERY
    assert update.chat_id == 77
    assert update.user_id == 7


def test_inline_callback_has_no_chat() -> None:
    assert callback_update(4, chat_id=None).chat_id is None


def test_unknown_update_kind() -> None:
    update = decode_update(b'{"update_id": 1, "business_message": {}}')

    assert update.kind is None
    assert update.payload is None
    assert update.chat_id is None


def test_encode_uses_wire_names() -> None:
    encoded = encode_update(message_update(1, user_id=8))

    assert b'"from":{"id":8' in encoded
    assert b"from_" not in encoded
    assert decode_update(encoded) == message_update(1, user_id=8)


def test_decode_update_rejects_bad_shape() -> None:
    with pytest.raises(msgspec.ValidationError):
        decode_update(b'{"update_id": "nope"}')


def test_decode_update_id() -> None:
    assert decode_update_id(b'{"update_id": 5, "message": 3}') == 5
    assert decode_update_id(b"garbage") is None


def test_all_kinds() -> None:
    kinds = UpdateKind.all()

    assert UpdateKind.CHAT_MEMBER in kinds
    assert len(kinds) == len(list(UpdateKind))


def test_chat_id_helpers() -> None:
    assert is_group_chat_id(-5)
    assert not is_group_chat_id(5)
    assert is_channel_or_supergroup(-1001234567890)
    assert not is_channel_or_supergroup(-5)


BIG_USER = User(id=2**63 + 5, first_name="Big", username="big")
CHANNEL = Chat(id=-1001234567890123, type="channel", title="News")
CHANNEL_POST = Message(message_id=10, chat=CHANNEL, date=1700000000, text="post")
USER_MESSAGE = Message(
    message_id=11, chat=Chat(id=BIG_USER.id), from_=BIG_USER, text="hello"
)
MEMBER_UPDATE = ChatMemberUpdated(
    chat=CHANNEL,
    from_=BIG_USER,
    date=1,
    old_chat_member=ChatMember(status="left", user=BIG_USER),
    new_chat_member=ChatMember(status="member", user=BIG_USER),
)

PAYLOADS = {
    UpdateKind.MESSAGE: USER_MESSAGE,
    UpdateKind.EDITED_MESSAGE: USER_MESSAGE,
    UpdateKind.CHANNEL_POST: CHANNEL_POST,
    UpdateKind.EDITED_CHANNEL_POST: CHANNEL_POST,
    UpdateKind.MESSAGE_REACTION: MessageReactionUpdated(
        chat=CHANNEL,
        message_id=10,
        user=BIG_USER,
        new_reaction=[{"type": "emoji", "emoji": "👍"}],
    ),
    UpdateKind.MESSAGE_REACTION_COUNT: MessageReactionCountUpdated(
        chat=CHANNEL,
        message_id=10,
        reactions=[{"type": {"type": "emoji", "emoji": "👍"}, "total_count": 2}],
    ),
    UpdateKind.INLINE_QUERY: InlineQuery(id="iq", from_=BIG_USER, query="cats"),
    UpdateKind.CHOSEN_INLINE_RESULT: ChosenInlineResult(
        result_id="r1", from_=BIG_USER, query="cats"
    ),
    UpdateKind.CALLBACK_QUERY: CallbackQuery(
        id="cb", from_=BIG_USER, message=CHANNEL_POST, data="yes"
    ),
    UpdateKind.SHIPPING_QUERY: ShippingQuery(
        id="sq", from_=BIG_USER, invoice_payload="p", shipping_address={"city": "X"}
    ),
    UpdateKind.PRE_CHECKOUT_QUERY: PreCheckoutQuery(
        id="pq", from_=BIG_USER, currency="EUR", total_amount=500
    ),
    UpdateKind.POLL: Poll(
        id="poll", question="?", options=[PollOption(text="a", voter_count=1)]
    ),
    UpdateKind.POLL_ANSWER: PollAnswer(poll_id="poll", option_ids=[0], user=BIG_USER),
    UpdateKind.MY_CHAT_MEMBER: MEMBER_UPDATE,
    UpdateKind.CHAT_MEMBER: MEMBER_UPDATE,
    UpdateKind.CHAT_JOIN_REQUEST: ChatJoinRequest(
        chat=CHANNEL, from_=BIG_USER, user_chat_id=BIG_USER.id, bio="hi"
    ),
    UpdateKind.CHAT_BOOST: ChatBoostUpdated(
        chat=CHANNEL, boost=ChatBoost(boost_id="b1", add_date=1, expiration_date=2)
    ),
    UpdateKind.REMOVED_CHAT_BOOST: ChatBoostRemoved(
        chat=CHANNEL, boost_id="b1", remove_date=3
    ),
}


def test_every_kind_has_a_sample_payload() -> None:
    assert set(PAYLOADS) == set(UpdateKind)


@pytest.mark.parametrize("kind", list(UpdateKind), ids=lambda kind: kind.value)
def test_update_survives_encode_and_decode(kind: UpdateKind) -> None:
    update = Update(update_id=2**31 + 1, **{kind.value: PAYLOADS[kind]})

    decoded = decode_update(encode_update(update))

    assert decoded == update
    assert decoded.kind is kind


def test_unknown_nested_fields_are_ignored() -> None:
    update = decode_update(
        b'{"update_id": 3, "chat_join_request": {"chat": {"id": -1001234567890123,'
        b' "type": "channel", "has_hidden_members": true}, "from": {"id": '
        b'9223372036854775813, "is_premium": true}, "invite_link": {"x": 1}}}'
    )

    assert update.kind is UpdateKind.CHAT_JOIN_REQUEST
    assert update.chat_id == -1001234567890123
    assert update.user_id == 2**63 + 5
