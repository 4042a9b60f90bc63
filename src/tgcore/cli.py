from __future__ import annotations

from pathlib import Path

import anyio
import typer

from . import __version__
from .api_models import Me, Message
from .bot import Bot
from .config import BotConfig, ConfigError, load_config
from .dispatching import Dispatcher, Handler, LoggingErrorHandler, filters
from .errors import RequestError, Unauthorized
from .logging import get_logger, setup_logging
from .requests import Requester
from .shutdown import ShutdownToken
from .update_listeners import polling_default

logger = get_logger(__name__)

EXIT_CONFIG_ERROR = 1
EXIT_UNAUTHORIZED = 2

_CONFIG_PATH_OPTION = typer.Option(
    None,
    "--config",
    help="Path to a TOML config file with a [bot] table.",
)
_DEBUG_OPTION = typer.Option(
    False,
    "--debug/--no-debug",
    help="Log at debug level with a console renderer.",
)


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(__version__)
        raise typer.Exit()


def _load_config_or_exit(path: Path | None) -> BotConfig:
    try:
        return load_config(path)
    except ConfigError as exc:
        typer.echo(f"error: {exc}", err=True)
        raise typer.Exit(code=EXIT_CONFIG_ERROR) from exc


def _exit_request_error(exc: RequestError) -> typer.Exit:
    typer.echo(f"error: {exc}", err=True)
    if isinstance(exc, Unauthorized):
        return typer.Exit(code=EXIT_UNAUTHORIZED)
    return typer.Exit(code=EXIT_CONFIG_ERROR)


async def _fetch_me(config: BotConfig) -> Me:
    async with Bot.from_config(config) as bot:
        return await bot.get_me()


def get_me(
    config_path: Path | None = _CONFIG_PATH_OPTION,
    debug: bool = _DEBUG_OPTION,
) -> None:
    """Print the identity of the configured bot."""
    setup_logging(debug=debug, cache_logger_on_first_use=False)
    config = _load_config_or_exit(config_path)
    try:
        me = anyio.run(_fetch_me, config)
    except RequestError as exc:
        raise _exit_request_error(exc) from exc
    username = f"@{me.username}" if me.username else me.first_name
    typer.echo(f"{username} (id {me.id})")


async def _echo(message: Message, bot: Requester) -> None:
    if message.text:
        await bot.send_message(
            message.chat.id,
            message.text,
            message_thread_id=message.message_thread_id,
        )


def echo_handler() -> Handler:
    return filters.filter_message().endpoint(_echo)


class _ListenerErrors(LoggingErrorHandler):
    """Logs listener errors and keeps the first fatal one."""

    def __init__(self) -> None:
        super().__init__("echo.listener_error")
        self.fatal: Unauthorized | None = None

    async def __call__(self, error: BaseException) -> None:
        if isinstance(error, Unauthorized) and self.fatal is None:
            self.fatal = error
        await super().__call__(error)


async def _run_echo(config: BotConfig) -> None:
    token = ShutdownToken()
    errors = _ListenerErrors()
    requester = (
        Bot.from_config(config).throttle(shutdown_token=token).auto_retry()
    )
    async with requester:
        dispatcher = Dispatcher(
            requester,
            echo_handler(),
            ctrlc_handler=True,
            shutdown_token=token,
        )
        listener = await polling_default(requester, shutdown_token=token)
        await dispatcher.dispatch_with_listener(listener, errors)
    if errors.fatal is not None:
        # polling stops for good once the token is revoked
        raise errors.fatal


def echo(
    config_path: Path | None = _CONFIG_PATH_OPTION,
    debug: bool = _DEBUG_OPTION,
) -> None:
    """Run a bot that repeats every text message back to its chat."""
    setup_logging(debug=debug, cache_logger_on_first_use=False)
    config = _load_config_or_exit(config_path)
    try:
        anyio.run(_run_echo, config)
    except RequestError as exc:
        raise _exit_request_error(exc) from exc


def app_main(
    version: bool = typer.Option(
        False,
        "--version",
        help="Show the version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
) -> None:
    """tgcore CLI."""


def create_app() -> typer.Typer:
    app = typer.Typer(
        add_completion=False,
        no_args_is_help=True,
        help="Telegram Bot API toolkit.",
    )
    app.command(name="get-me")(get_me)
    app.command(name="echo")(echo)
    app.callback()(app_main)
    return app


def main() -> None:
    app = create_app()
    app()


if __name__ == "__main__":
    main()
