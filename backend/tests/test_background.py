"""Tests for the fire-and-forget task runner."""

import asyncio

import pytest
from loguru import logger

from agora.core.background import drain, fire_and_forget, pending_count


@pytest.fixture
def log_messages():
    messages = []
    handler_id = logger.add(lambda message: messages.append(str(message)), level="ERROR")
    yield messages
    logger.remove(handler_id)


async def test_task_runs_without_being_awaited():
    done = asyncio.Event()

    async def work():
        await asyncio.sleep(0)
        done.set()

    fire_and_forget(work(), name="work")
    assert pending_count() == 1

    await drain()

    assert done.is_set()
    assert pending_count() == 0


async def test_drain_waits_for_tasks_scheduled_meanwhile():
    order = []

    async def child():
        await asyncio.sleep(0)
        order.append("child")

    async def parent():
        order.append("parent")
        fire_and_forget(child(), name="child")

    fire_and_forget(parent(), name="parent")
    await drain()

    assert order == ["parent", "child"]


async def test_failures_are_logged_not_raised(log_messages):
    async def broken():
        raise RuntimeError("mail server down")

    task = fire_and_forget(broken(), name="send-mail")
    await drain()

    assert task.exception() is None
    assert any("send-mail" in message and "mail server down" in message for message in log_messages)
