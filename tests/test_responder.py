"""Tests for the per-alert response flow."""

from unittest.mock import AsyncMock

import pytest

from command_responder import responder as responder_module
from command_responder.models import OutcomeStatus
from command_responder.responder import AlertResponder

from conftest import SSH_USER, make_alert


@pytest.fixture
def responder(counter) -> AlertResponder:
    return AlertResponder(counter)


class TestSkip:
    @pytest.mark.asyncio
    async def test_resolved_alert_runs_nothing(self, responder, counter, config, tmp_path):
        target = tmp_path / "touched"
        outcome = await responder.handle(config, make_alert(status="resolved", cr_local_cmd=f"touch {target}"))
        assert outcome.status == OutcomeStatus.SKIPPED
        assert not outcome.failed
        assert not target.exists()
        assert sum(counter.counts.values()) == 0

    @pytest.mark.asyncio
    async def test_resolved_alert_runs_when_listed(self, responder, config, tmp_path):
        target = tmp_path / "touched"
        alert = make_alert(status="resolved", cr_status="firing,resolved", cr_local_cmd=f"touch {target}")
        outcome = await responder.handle(config, alert)
        assert outcome.status == OutcomeStatus.SUCCEEDED
        assert target.exists()


class TestResolution:
    @pytest.mark.asyncio
    async def test_malformed_duration_runs_nothing(self, responder, counter, config, tmp_path, monkeypatch):
        run_remote = AsyncMock()
        monkeypatch.setattr(responder_module, "run_remote", run_remote)
        target = tmp_path / "touched"
        alert = make_alert(
            cr_local_cmd=f"touch {target}",
            cr_ssh_host="127.0.0.1",
            cr_ssh_cmd="true",
            cr_ssh_cmd_timeout="foo",
        )

        outcome = await responder.handle(config, alert)

        assert outcome.status == OutcomeStatus.FAILED
        assert outcome.error_type == "ResolutionError"
        assert "cr_ssh_cmd_timeout" in outcome.error
        assert not target.exists()
        run_remote.assert_not_awaited()
        assert sum(counter.counts.values()) == 0

    @pytest.mark.asyncio
    async def test_no_commands_succeeds(self, responder, counter, config):
        outcome = await responder.handle(config, make_alert())
        assert outcome.status == OutcomeStatus.SUCCEEDED
        assert outcome.error is None
        assert sum(counter.counts.values()) == 0


class TestLocal:
    @pytest.mark.asyncio
    async def test_success(self, responder, counter, config, tmp_path):
        target = tmp_path / "touched"
        outcome = await responder.handle(config, make_alert(cr_local_cmd=f"touch {target}"))
        assert outcome.status == OutcomeStatus.SUCCEEDED
        assert outcome.alertname == "TestAlert"
        assert outcome.fingerprint == "test"
        assert target.exists()
        assert counter.counts["local"] == 0

    @pytest.mark.asyncio
    async def test_failure_is_counted(self, responder, counter, config):
        outcome = await responder.handle(config, make_alert(cr_local_cmd="false"))
        assert outcome.status == OutcomeStatus.FAILED
        assert outcome.error_type == "LocalCommandError"
        assert counter.counts["local"] == 1
        assert counter.counts["ssh"] == 0

    @pytest.mark.asyncio
    async def test_timeout_is_counted(self, responder, counter, config):
        alert = make_alert(cr_local_cmd="sleep 30", cr_local_cmd_timeout="200ms")
        outcome = await responder.handle(config, alert)
        assert outcome.error == "Local command timed out: sleep 30"
        assert counter.counts["local"] == 1

    @pytest.mark.asyncio
    async def test_failure_does_not_stop_ssh(self, responder, counter, config, monkeypatch):
        run_remote = AsyncMock()
        monkeypatch.setattr(responder_module, "run_remote", run_remote)
        alert = make_alert(cr_local_cmd="false", cr_ssh_host="127.0.0.1", cr_ssh_cmd="uptime")

        outcome = await responder.handle(config, alert)

        run_remote.assert_awaited_once()
        plan = run_remote.await_args.args[0]
        assert plan.ssh_command == "uptime"
        assert outcome.status == OutcomeStatus.FAILED
        assert counter.counts["local"] == 1
        assert counter.counts["ssh"] == 0


class TestSSH:
    @pytest.mark.asyncio
    async def test_missing_host(self, responder, counter, config, monkeypatch):
        run_remote = AsyncMock()
        monkeypatch.setattr(responder_module, "run_remote", run_remote)

        outcome = await responder.handle(config, make_alert(cr_ssh_cmd="uptime"))

        assert outcome.status == OutcomeStatus.FAILED
        assert outcome.error == "Must provide SSH host using annotations"
        assert outcome.error_type == "ConfigurationError"
        assert counter.counts["ssh"] == 1
        run_remote.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_host_without_command_does_nothing(self, responder, counter, config, monkeypatch):
        run_remote = AsyncMock()
        monkeypatch.setattr(responder_module, "run_remote", run_remote)
        outcome = await responder.handle(config, make_alert(cr_ssh_host="127.0.0.1"))
        assert outcome.status == OutcomeStatus.SUCCEEDED
        run_remote.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_runs_on_server(self, responder, counter, config, ssh_keys, ssh_server):
        alert = make_alert(
            cr_ssh_user=SSH_USER,
            cr_ssh_key=ssh_keys.user_key_path,
            cr_ssh_host=ssh_server.address,
            cr_ssh_cmd="restart",
        )
        outcome = await responder.handle(config, alert)
        assert outcome.status == OutcomeStatus.SUCCEEDED
        assert ssh_server.commands == ["restart"]
        assert counter.counts["ssh"] == 0

    @pytest.mark.asyncio
    async def test_remote_failure_is_counted(self, responder, counter, config, ssh_keys, ssh_server):
        alert = make_alert(
            cr_ssh_user=SSH_USER,
            cr_ssh_key=ssh_keys.user_key_path,
            cr_ssh_host=ssh_server.address,
            cr_ssh_cmd="fail",
        )
        outcome = await responder.handle(config, alert)
        assert outcome.error_type == "RemoteCommandError"
        assert counter.counts["ssh"] == 1
        assert counter.counts["local"] == 0

    @pytest.mark.asyncio
    async def test_last_error_wins(self, responder, counter, config):
        alert = make_alert(cr_local_cmd="false", cr_ssh_cmd="uptime")
        outcome = await responder.handle(config, alert)
        assert outcome.error_type == "ConfigurationError"
        assert counter.counts == {"local": 1, "ssh": 1}


@pytest.mark.asyncio
async def test_out_of_range_duration_is_a_failed_outcome(responder, counter, config):
    alert = make_alert(cr_local_cmd="true", cr_local_cmd_timeout="99999999999999999h")
    outcome = await responder.handle(config, alert)
    assert outcome.status == OutcomeStatus.FAILED
    assert outcome.error_type == "ResolutionError"
    assert sum(counter.counts.values()) == 0
