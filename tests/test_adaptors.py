import pytest

from tgcore.adaptors import (
    AutoRetry,
    CacheMe,
    DefaultParseMode,
    Throttle,
    Trace,
    TraceSettings,
)
from tgcore.adaptors import trace as trace_module
from tgcore.backoff import exponential_backoff
from tgcore.errors import BadRequest, NetworkError, RetryAfter
from tests.fakes import FakeBot, RecordingLogger


class Sleeps:
    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


def failing(*errors: BaseException):
    remaining = list(errors)

    def handler(payload):
        if remaining:
            return remaining.pop(0)
        return True

    return handler


@pytest.mark.anyio
async def test_auto_retry_waits_for_retry_after(fake_bot: FakeBot) -> None:
    sleeps = Sleeps()
    fake_bot.on("sendMessage", failing(RetryAfter(3), RetryAfter(1.5)))
    bot = AutoRetry(fake_bot, sleep=sleeps)

    assert await bot.send_message(1, "x") is True

    assert sleeps.delays == [3.0, 1.5]
    assert bot.retries == 2
    assert len(fake_bot.calls_for("sendMessage")) == 3


@pytest.mark.anyio
async def test_auto_retry_backs_off_on_network_errors(fake_bot: FakeBot) -> None:
    sleeps = Sleeps()
    fake_bot.on(
        "getChat",
        failing(NetworkError("a"), NetworkError("b"), NetworkError("c")),
    )
    bot = AutoRetry(fake_bot, sleep=sleeps)

    await bot.get_chat(1)

    assert sleeps.delays == [1.0, 2.0, 4.0]


@pytest.mark.anyio
async def test_auto_retry_gives_up_after_budget(fake_bot: FakeBot) -> None:
    sleeps = Sleeps()
    fake_bot.on("getChat", lambda payload: NetworkError("down"))
    bot = AutoRetry(fake_bot, max_retries=2, sleep=sleeps)

    with pytest.raises(NetworkError):
        await bot.get_chat(1)

    assert len(fake_bot.calls_for("getChat")) == 3
    assert len(sleeps.delays) == 2


@pytest.mark.anyio
async def test_auto_retry_does_not_retry_api_errors(fake_bot: FakeBot) -> None:
    sleeps = Sleeps()
    fake_bot.on("getChat", lambda payload: BadRequest(400, "chat not found"))
    bot = AutoRetry(fake_bot, sleep=sleeps)

    with pytest.raises(BadRequest):
        await bot.get_chat(1)

    assert sleeps.delays == []


def test_exponential_backoff_is_capped() -> None:
    assert [exponential_backoff(n) for n in range(8)] == [
        1.0,
        2.0,
        4.0,
        8.0,
        16.0,
        32.0,
        64.0,
        64.0,
    ]
    assert exponential_backoff(-3) == 1.0


@pytest.mark.anyio
async def test_parse_mode_fills_unset_field_only(fake_bot: FakeBot) -> None:
    bot = DefaultParseMode(fake_bot, "HTML")

    await bot.send_message(1, "a")
    await bot.send_message(1, "b", parse_mode="MarkdownV2")
    await bot.delete_message(1, 2)

    sent = fake_bot.calls_for("sendMessage")
    assert [payload.parse_mode for payload in sent] == ["HTML", "MarkdownV2"]
    assert fake_bot.calls_for("deleteMessage")[0].message_id == 2


@pytest.mark.anyio
async def test_cache_me_fetches_once(fake_bot: FakeBot) -> None:
    bot = CacheMe(fake_bot)

    first = await bot.get_me()
    second = await bot.get_me()
    bot.forget()
    await bot.get_me()

    assert first is second
    assert len(fake_bot.calls_for("getMe")) == 2


@pytest.mark.anyio
async def test_helper_methods_compose_adaptors(fake_bot: FakeBot) -> None:
    stack = fake_bot.parse_mode("HTML").cache_me().auto_retry(max_retries=1)

    assert isinstance(stack, AutoRetry)
    assert stack.max_retries == 1
    assert stack.innermost() is fake_bot
    assert isinstance(fake_bot.throttle(), Throttle)

    async with stack:
        await stack.send_message(1, "x")

    assert fake_bot.calls_for("sendMessage")[0].parse_mode == "HTML"


@pytest.fixture
def trace_log(monkeypatch: pytest.MonkeyPatch) -> RecordingLogger:
    recorder = RecordingLogger()
    monkeypatch.setattr(trace_module, "logger", recorder)
    return recorder


def traced(log: RecordingLogger) -> list[tuple[str, dict]]:
    assert {level for level, _, _ in log.records} <= {"debug"}
    return [(event, fields) for _, event, fields in log.records]


@pytest.mark.anyio
async def test_trace_logs_method_names_by_default(
    fake_bot: FakeBot, trace_log: RecordingLogger
) -> None:
    bot = fake_bot.trace()

    assert isinstance(bot, Trace)
    await bot.send_message(1, "hello")

    assert traced(trace_log) == [
        ("trace.request", {"method": "sendMessage"}),
        ("trace.response", {"method": "sendMessage", "ok": True}),
    ]


@pytest.mark.anyio
async def test_trace_verbose_includes_payload_and_result(
    fake_bot: FakeBot, trace_log: RecordingLogger
) -> None:
    bot = Trace(fake_bot, TraceSettings.EVERYTHING_VERBOSE)

    await bot.send_message(1, "hello")

    (request_event, request_fields), (response_event, response_fields) = traced(
        trace_log
    )
    assert request_event == "trace.request"
    assert "hello" in request_fields["payload"]
    assert response_event == "trace.response"
    assert "result" in response_fields


@pytest.mark.anyio
async def test_trace_requests_only(
    fake_bot: FakeBot, trace_log: RecordingLogger
) -> None:
    bot = Trace(fake_bot, TraceSettings.REQUESTS)

    await bot.get_chat(1)

    assert traced(trace_log) == [("trace.request", {"method": "getChat"})]


@pytest.mark.anyio
async def test_trace_logs_failures_and_reraises(
    fake_bot: FakeBot, trace_log: RecordingLogger
) -> None:
    error = BadRequest(400, "chat not found")
    fake_bot.on("getChat", lambda payload: error)
    bot = Trace(fake_bot, TraceSettings.RESPONSES)

    with pytest.raises(BadRequest):
        await bot.get_chat(1)

    assert traced(trace_log) == [
        (
            "trace.response",
            {
                "method": "getChat",
                "ok": False,
                "error_type": "BadRequest",
                "error": str(error),
            },
        )
    ]


@pytest.mark.anyio
async def test_trace_silent_with_no_settings(
    fake_bot: FakeBot, trace_log: RecordingLogger
) -> None:
    await Trace(fake_bot, TraceSettings.NONE).get_me()

    assert trace_log.records == []
