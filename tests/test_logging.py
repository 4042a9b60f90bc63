import logging

import pytest

from tgcore.logging import (
    RedactTokenFilter,
    redact_token,
    redact_token_processor,
    setup_logging,
)


def _record(msg: str, *args: object) -> logging.LogRecord:
    return logging.LogRecord(
        name="test",
        level=logging.INFO,
        pathname="",
        lineno=0,
        msg=msg,
        args=args,
        exc_info=None,
    )


class TestRedactToken:
    def test_redacts_url_token(self) -> None:
        text = redact_token(
            "https://api.telegram.org/bot123456789:ABCdefGHI_jkl/sendMessage"
        )

        assert "123456789" not in text
        assert "bot[REDACTED]/sendMessage" in text

    def test_redacts_bare_token(self) -> None:
        text = redact_token("Token is 123456789:ABCDEFGHIJ_klmnop")

        assert text == "Token is [REDACTED_TOKEN]"

    def test_short_pairs_are_kept(self) -> None:
        assert redact_token("ratio 16:9 at 10:30") == "ratio 16:9 at 10:30"


class TestRedactTokenProcessor:
    def test_redacts_every_field(self) -> None:
        event = {
            "event": "request.failed",
            "url": "https://api.telegram.org/bot1:secretsecret/getMe",
            "nested": {"tokens": ["123456789:ABCDEFGHIJ_klmnop"]},
            "attempt": 2,
        }

        result = redact_token_processor(None, "info", event)

        assert result["url"] == "https://api.telegram.org/bot[REDACTED]/getMe"
        assert result["nested"] == {"tokens": ["[REDACTED_TOKEN]"]}
        assert result["attempt"] == 2
        assert result["event"] == "request.failed"


class TestRedactTokenFilter:
    def test_redacts_bot_token(self) -> None:
        record = _record(
            "https://api.telegram.org/bot123456789:ABCdefGHI_jkl/sendMessage"
        )

        RedactTokenFilter().filter(record)

        assert "123456789" not in record.getMessage()
        assert "bot[REDACTED]" in record.getMessage()

    def test_no_token_unchanged(self) -> None:
        record = _record("This is a normal message")

        result = RedactTokenFilter().filter(record)

        assert result is True
        assert record.getMessage() == "This is a normal message"

    def test_handles_format_args(self) -> None:
        record = _record("Token: bot%s:%s", "123456789", "ABCdefGHI_jkl")

        RedactTokenFilter().filter(record)

        assert "123456789" not in record.getMessage()
        assert record.args == ()


class TestSetupLogging:
    @pytest.mark.parametrize(
        ("debug", "level"), [(True, logging.DEBUG), (False, logging.INFO)]
    )
    def test_root_level(self, debug: bool, level: int) -> None:
        setup_logging(debug=debug, cache_logger_on_first_use=False)

        assert logging.getLogger().level == level

    def test_installs_redacting_handler(self) -> None:
        setup_logging(cache_logger_on_first_use=False)

        handlers = logging.getLogger().handlers
        assert len(handlers) == 1
        assert any(isinstance(f, RedactTokenFilter) for f in handlers[0].filters)

    def test_silences_noisy_loggers(self) -> None:
        setup_logging(cache_logger_on_first_use=False)

        assert logging.getLogger("httpx").level == logging.WARNING
        assert logging.getLogger("httpcore").level == logging.WARNING
