"""Bot entity contract tests."""

from __future__ import annotations

from datetime import UTC, datetime

import pytest
from pydantic import ValidationError

from services.lifecycle.bot_runtime import Bot
from tests.helpers import StepClock


def test_new_bot_has_matching_timestamps() -> None:
    """Fresh bots start with updated_at equal to created_at."""
    bot = Bot.new(clock=StepClock(), name="crawler", tags=("web",))

    assert bot.id == "id-0001"
    assert bot.created_at == bot.updated_at
    assert bot.tags == ("web",)


def test_edit_keeps_id_and_advances_updated_at() -> None:
    """Edits never change the id and move updated_at forward."""
    clock = StepClock()
    bot = Bot.new(clock=clock, name="crawler")

    edited = bot.edited(clock=clock, description="indexes pages")

    assert edited.id == bot.id
    assert edited.name == "crawler"
    assert edited.description == "indexes pages"
    assert edited.updated_at > bot.updated_at
    assert edited.created_at == bot.created_at


def test_updated_before_created_is_rejected() -> None:
    """updated_at may not precede created_at."""
    with pytest.raises(ValidationError):
        Bot(
            id="b1",
            name="crawler",
            created_at=datetime(2026, 1, 2, tzinfo=UTC),
            updated_at=datetime(2026, 1, 1, tzinfo=UTC),
        )


def test_bot_is_immutable() -> None:
    """Bots are frozen value objects."""
    bot = Bot.new(clock=StepClock(), name="crawler")

    with pytest.raises(ValidationError):
        bot.name = "other"  # type: ignore[misc]
