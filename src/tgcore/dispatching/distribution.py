from __future__ import annotations

from collections.abc import Callable, Hashable

from ..api_models import Update

DistributionFunction = Callable[[Update], Hashable | None]


def default_distribution_function(update: Update) -> Hashable | None:
    """Serialize per chat; updates without a chat run concurrently."""
    return update.chat_id


def by_user(update: Update) -> Hashable | None:
    return update.user_id
