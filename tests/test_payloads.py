import pytest

from tgcore import payloads as p
from tgcore.api_models import BotCommand
from tgcore.payloads import InputFile, chat_id_of, has_parse_mode, lower_payload
from tgcore.requests import Request


def test_lower_payload_skips_unset_fields() -> None:
    fields, files = lower_payload(p.SendMessage(chat_id=1, text="hi"))

    assert fields == {"chat_id": 1, "text": "hi"}
    assert files == {}


def test_lower_payload_top_level_file_becomes_part() -> None:
    photo = InputFile.memory(b"x", "a.png")

    fields, files = lower_payload(p.SendPhoto(chat_id=1, photo=photo))

    assert fields == {"chat_id": 1}
    assert files == {"photo": photo}


def test_lower_payload_remote_file_is_a_string() -> None:
    fields, files = lower_payload(
        p.SendDocument(chat_id=1, document=InputFile.url("https://x/y.pdf"))
    )

    assert fields == {"chat_id": 1, "document": "https://x/y.pdf"}
    assert files == {}


def test_lower_payload_thumbnail_is_attached_by_reference() -> None:
    document = InputFile.memory(b"pdf", "report.pdf")
    thumbnail = InputFile.memory(b"jpg", "thumb.jpg")

    fields, files = lower_payload(
        p.SendDocument(chat_id=1, document=document, thumbnail=thumbnail)
    )

    assert fields == {"chat_id": 1, "thumbnail": "attach://file0"}
    assert files == {"document": document, "file0": thumbnail}


def test_lower_payload_media_group_attaches_nested_files() -> None:
    first = InputFile.memory(b"1", "1.png")
    second = InputFile.memory(b"2", "2.png")
    payload = p.SendMediaGroup(
        chat_id=5,
        media=[
            p.InputMediaPhoto(media=first, caption="one"),
            p.InputMediaPhoto(media=second),
            p.InputMediaDocument(media=InputFile.file_id("DOC")),
        ],
    )

    fields, files = lower_payload(payload)

    assert fields["media"] == [
        {"media": "attach://file0", "type": "photo", "caption": "one"},
        {"media": "attach://file1", "type": "photo"},
        {"media": "DOC", "type": "document"},
    ]
    assert files == {"file0": first, "file1": second}


def test_lower_payload_structs_become_builtins() -> None:
    fields, _ = lower_payload(
        p.SetMyCommands(commands=[BotCommand(command="start", description="go")])
    )

    assert fields == {"commands": [{"command": "start", "description": "go"}]}


def test_get_updates_timeout_hint_adds_slack() -> None:
    assert p.GetUpdates(timeout=10).timeout_hint() == 10 + p.LONG_POLL_SLACK_S
    assert p.GetUpdates().timeout_hint() is None
    assert p.SendMessage(chat_id=1, text="x").timeout_hint() is None


def test_payload_metadata() -> None:
    assert p.SendMessage.method == "sendMessage"
    assert p.SendMessage.throttled
    assert not p.GetUpdates.throttled
    assert not p.AnswerCallbackQuery.throttled
    assert chat_id_of(p.SendMessage(chat_id="@chan", text="x")) == "@chan"
    assert chat_id_of(p.GetMe()) is None
    assert has_parse_mode(p.SendMessage(chat_id=1, text="x"))
    assert not has_parse_mode(p.DeleteMessage(chat_id=1, message_id=2))


@pytest.mark.anyio
async def test_input_file_reads_local_sources(tmp_path) -> None:
    path = tmp_path / "data.txt"
    path.write_bytes(b"on disk")

    async def stream():
        yield b"a"
        yield b"b"

    assert await InputFile.file(path).read_bytes() == b"on disk"
    assert InputFile.file(path).filename == "data.txt"
    assert await InputFile.memory(b"mem").read_bytes() == b"mem"
    assert await InputFile.read(stream()).read_bytes() == b"ab"
    with pytest.raises(ValueError):
        await InputFile.url("https://x").read_bytes()


@pytest.mark.anyio
async def test_request_with_payload_overrides_fields(fake_bot) -> None:
    request = fake_bot.send_message(1, "hi")
    assert isinstance(request, Request)

    await request.with_payload(text="changed", disable_notification=True)

    sent = fake_bot.calls_for("sendMessage")[0]
    assert sent.text == "changed"
    assert sent.disable_notification is True
    assert request.payload.text == "hi"
