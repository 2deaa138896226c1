"""Tests for logging context variables."""

import asyncio

import pytest

from core.logging.context import clear_log_context, get_log_context, set_log_context


@pytest.fixture(autouse=True)
def clean_context():
    clear_log_context()
    yield
    clear_log_context()


def test_defaults_are_empty():
    assert get_log_context() == {"cycle_id": "", "stage": "", "worker_id": "", "item_id": ""}


def test_set_and_get():
    set_log_context(cycle_id="c-1", stage="download", worker_id="w-1", item_id="105")

    assert get_log_context() == {
        "cycle_id": "c-1",
        "stage": "download",
        "worker_id": "w-1",
        "item_id": "105",
    }


def test_partial_update_keeps_other_fields():
    set_log_context(cycle_id="c-1", stage="download")
    set_log_context(stage="retry")

    ctx = get_log_context()
    assert ctx["cycle_id"] == "c-1"
    assert ctx["stage"] == "retry"


def test_clear():
    set_log_context(cycle_id="c-1", item_id="7")
    clear_log_context()

    assert get_log_context()["cycle_id"] == ""
    assert get_log_context()["item_id"] == ""


@pytest.mark.asyncio
async def test_item_context_isolated_per_task():
    set_log_context(cycle_id="c-1")
    seen = {}

    async def worker(item_id):
        set_log_context(item_id=item_id)
        await asyncio.sleep(0)
        seen[item_id] = get_log_context()

    await asyncio.gather(worker("1"), worker("2"))

    assert seen["1"]["item_id"] == "1"
    assert seen["2"]["item_id"] == "2"
    assert seen["1"]["cycle_id"] == "c-1"
    assert get_log_context()["item_id"] == ""
