import msgspec
import pytest

from tgcore.api_models import Update, UpdateKind
from tgcore.errors import NetworkError, Unauthorized, UpdateParseError
from tgcore.shutdown import ShutdownToken
from tgcore.update_listeners import Polling, polling_default
from tests.fakes import FakeBot, UpdateScript, message_update, raw


async def collect(listener: Polling) -> list[object]:
    async with listener:
        return [event async for event in listener]


def update_ids(events: list[object]) -> list[int]:
    return [event.update_id for event in events if isinstance(event, Update)]


@pytest.mark.anyio
async def test_polling_yields_updates_and_advances_offset(fake_bot: FakeBot) -> None:
    listener = Polling(fake_bot, timeout=1)
    script = UpdateScript(
        [[message_update(1), message_update(2)], [message_update(3)]],
        on_exhausted=listener.stop,
    )
    fake_bot.on("getUpdates", script)

    events = await collect(listener)

    assert update_ids(events) == [1, 2, 3]
    assert script.offsets[:3] == [None, 3, 4]
    # confirming call after stop
    confirm = fake_bot.calls_for("getUpdates")[-1]
    assert (confirm.offset, confirm.limit, confirm.timeout) == (4, 1, 0)
    assert listener.offset == 4


@pytest.mark.anyio
async def test_empty_batch_keeps_offset(fake_bot: FakeBot) -> None:
    listener = Polling(fake_bot, timeout=1)
    script = UpdateScript([[], [message_update(7)], []], on_exhausted=listener.stop)
    fake_bot.on("getUpdates", script)

    events = await collect(listener)

    assert update_ids(events) == [7]
    assert script.offsets[:3] == [None, None, 8]


@pytest.mark.anyio
async def test_parse_failure_is_a_sidecar_event(fake_bot: FakeBot) -> None:
    listener = Polling(fake_bot, timeout=1)
    broken = msgspec.Raw(b'{"update_id": 2, "message": "not an object"}')
    script = UpdateScript(
        [[raw(message_update(1)), broken, raw(message_update(3))]],
        on_exhausted=listener.stop,
    )
    fake_bot.on("getUpdates", script)

    events = await collect(listener)

    assert len(events) == 3
    assert isinstance(events[1], UpdateParseError)
    assert events[1].update_id == 2
    assert update_ids(events) == [1, 3]
    assert listener.offset == 4


@pytest.mark.anyio
async def test_updates_below_offset_are_dropped(fake_bot: FakeBot) -> None:
    listener = Polling(fake_bot, timeout=1)
    script = UpdateScript(
        [[message_update(5)], [message_update(4), message_update(5), message_update(6)]],
        on_exhausted=listener.stop,
    )
    fake_bot.on("getUpdates", script)

    events = await collect(listener)

    assert update_ids(events) == [5, 6]


@pytest.mark.anyio
async def test_transient_error_is_reported_then_backs_off(fake_bot: FakeBot) -> None:
    delays: list[float] = []

    async def sleep(delay: float) -> None:
        delays.append(delay)

    listener = Polling(fake_bot, timeout=1, sleep=sleep)
    script = UpdateScript(
        [NetworkError("down"), NetworkError("down"), [message_update(1)]],
        on_exhausted=listener.stop,
    )
    fake_bot.on("getUpdates", script)

    events = await collect(listener)

    assert [type(event) for event in events[:2]] == [NetworkError, NetworkError]
    assert update_ids(events) == [1]
    assert delays == [1.0, 2.0]


@pytest.mark.anyio
async def test_unauthorized_ends_the_stream(fake_bot: FakeBot) -> None:
    listener = Polling(fake_bot, timeout=1)
    fake_bot.on("getUpdates", lambda payload: Unauthorized(401, "Unauthorized"))

    events = await collect(listener)

    assert len(events) == 1
    assert isinstance(events[0], Unauthorized)
    assert len(fake_bot.calls_for("getUpdates")) == 1


@pytest.mark.anyio
async def test_drop_pending_updates_skips_backlog(fake_bot: FakeBot) -> None:
    listener = Polling(fake_bot, timeout=1, drop_pending_updates=True)
    served: list[int | None] = []

    def get_updates(payload):
        served.append(payload.offset)
        if payload.offset == -1:
            return [raw(message_update(41))]
        listener.stop()
        if payload.offset == 42 and payload.limit is None:
            return [raw(message_update(42))]
        return []

    fake_bot.on("getUpdates", get_updates)

    events = await collect(listener)

    assert update_ids(events) == [42]
    assert served[:2] == [-1, 42]


@pytest.mark.anyio
async def test_shutdown_token_stops_polling(fake_bot: FakeBot) -> None:
    token = ShutdownToken()
    token.start_dispatching()
    listener = Polling(fake_bot, timeout=1, shutdown_token=token)
    fake_bot.on(
        "getUpdates",
        UpdateScript([[message_update(1)]], on_exhausted=token.shutdown),
    )

    events = await collect(listener)

    assert update_ids(events) == [1]


@pytest.mark.anyio
async def test_allowed_updates_hint(fake_bot: FakeBot) -> None:
    listener = Polling(fake_bot, timeout=1)
    listener.hint_allowed_updates([UpdateKind.MESSAGE, UpdateKind.CALLBACK_QUERY])
    fake_bot.on("getUpdates", UpdateScript([], on_exhausted=listener.stop))

    await collect(listener)

    first = fake_bot.calls_for("getUpdates")[0]
    assert first.allowed_updates == ["callback_query", "message"]
    assert listener.timeout_hint() == 6.0


def test_explicit_allowed_updates_win_over_hint(fake_bot: FakeBot) -> None:
    listener = Polling(fake_bot, allowed_updates=["message"])
    listener.hint_allowed_updates([UpdateKind.POLL])

    assert listener.allowed_updates == ["message"]


@pytest.mark.anyio
async def test_polling_default_removes_webhook(fake_bot: FakeBot) -> None:
    listener = await polling_default(fake_bot)

    assert isinstance(listener, Polling)
    assert len(fake_bot.calls_for("deleteWebhook")) == 1
