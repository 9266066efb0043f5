"""Tests for the cron tool."""

from pathlib import Path

import pytest

from relaybot.agent.tools.cron import CronTool
from relaybot.cron.service import CronService
from relaybot.cron.types import ScheduleType


@pytest.fixture
def service(tmp_path: Path):
    return CronService(tmp_path / "cron" / "jobs.json")


@pytest.fixture
def tool(service):
    cron_tool = CronTool(service)
    cron_tool.set_context("telegram", "42")
    return cron_tool


@pytest.mark.asyncio
async def test_add_every_job_targets_current_chat(tool, service):
    result = await tool.execute(action="add", message="drink water", every_seconds=3600)

    assert result.startswith("Created job 'drink water' (id: ")
    job = service.list_jobs()[0]
    assert job.schedule.kind == ScheduleType.EVERY
    assert job.schedule.every_ms == 3_600_000
    assert job.payload.deliver is True
    assert (job.payload.channel, job.payload.to) == ("telegram", "42")


@pytest.mark.asyncio
async def test_add_one_time_job_deletes_after_run(tool, service):
    await tool.execute(action="add", message="call mom", at="2999-01-01T09:00:00")
    job = service.list_jobs()[0]
    assert job.schedule.kind == ScheduleType.AT
    assert job.delete_after_run is True


@pytest.mark.asyncio
async def test_add_rejects_invalid_cron_expression(tool, service):
    result = await tool.execute(action="add", message="x", cron_expr="not a cron")
    assert result.startswith("Error:")
    assert service.list_jobs() == []


@pytest.mark.asyncio
async def test_add_requires_context(service):
    result = await CronTool(service).execute(action="add", message="x", every_seconds=10)
    assert result == "Error: no session context (channel/chat_id)"


@pytest.mark.asyncio
async def test_list_and_remove(tool):
    assert await tool.execute(action="list") == "No scheduled jobs."

    created = await tool.execute(action="add", message="standup", cron_expr="0 9 * * 1-5", tz="UTC")
    job_id = created.rsplit("id: ", 1)[1].rstrip(")")

    listing = await tool.execute(action="list")
    assert listing == f"Scheduled jobs:\n- standup (id: {job_id}, 0 9 * * 1-5 (UTC))"

    assert await tool.execute(action="remove", job_id=job_id) == f"Removed job {job_id}"
    assert await tool.execute(action="remove", job_id=job_id) == f"Job {job_id} not found"
