"""Shared fixtures: generated SSH keys and an in-process SSH server."""

import asyncio
import socket
from collections import Counter
from dataclasses import dataclass, field
from datetime import timedelta
from pathlib import Path
from typing import List

import asyncssh
import pytest

from command_responder.config import ResponderConfig
from command_responder.models import Alert, ExecutionPlan

TESTDATA = Path(__file__).parent / "testdata"
SSH_USER = "test"
SSH_PASSWORD = "test"


@dataclass
class SSHKeys:
    directory: Path
    host_key: asyncssh.SSHKey
    other_host_key: asyncssh.SSHKey
    user_key: asyncssh.SSHKey
    ca_key: asyncssh.SSHKey

    @property
    def user_key_path(self) -> str:
        return str(self.directory / "id_test")

    @property
    def user_cert_path(self) -> str:
        return str(self.directory / "id_test-cert.pub")

    @property
    def other_key_path(self) -> str:
        return str(self.directory / "id_other")

    @property
    def other_cert_path(self) -> str:
        return str(self.directory / "id_other-cert.pub")

    @property
    def unauthorized_key_path(self) -> str:
        return str(self.directory / "id_unauthorized")


@pytest.fixture(scope="session")
def ssh_keys(tmp_path_factory) -> SSHKeys:
    directory = tmp_path_factory.mktemp("ssh")
    host_key = asyncssh.generate_private_key("ssh-ed25519")
    other_host_key = asyncssh.generate_private_key("ssh-ed25519")
    user_key = asyncssh.generate_private_key("ssh-ed25519")
    other_key = asyncssh.generate_private_key("ssh-ed25519")
    unauthorized_key = asyncssh.generate_private_key("ssh-ed25519")
    ca_key = asyncssh.generate_private_key("ssh-ed25519")

    user_key.write_private_key(str(directory / "id_test"))
    user_key.write_public_key(str(directory / "id_test.pub"))
    other_key.write_private_key(str(directory / "id_other"))
    unauthorized_key.write_private_key(str(directory / "id_unauthorized"))

    ca_key.generate_user_certificate(user_key, "test", principals=[SSH_USER]).write_certificate(
        str(directory / "id_test-cert.pub")
    )
    ca_key.generate_user_certificate(other_key, "other", principals=[SSH_USER]).write_certificate(
        str(directory / "id_other-cert.pub")
    )

    return SSHKeys(
        directory=directory,
        host_key=host_key,
        other_host_key=other_host_key,
        user_key=user_key,
        ca_key=ca_key,
    )


@dataclass
class ServerState:
    """What the test SSH server saw."""
    port: int = 0
    commands: List[str] = field(default_factory=list)
    connections: int = 0
    closed: int = 0

    @property
    def address(self) -> str:
        return f"127.0.0.1:{self.port}"

    async def wait_closed(self, count: int = 1, timeout: float = 5.0) -> bool:
        deadline = asyncio.get_running_loop().time() + timeout
        while self.closed < count:
            if asyncio.get_running_loop().time() > deadline:
                return False
            await asyncio.sleep(0.05)
        return True


class _TestSSHServer(asyncssh.SSHServer):
    def __init__(self, state: ServerState):
        self.state = state

    def connection_made(self, conn):
        self.state.connections += 1

    def connection_lost(self, exc):
        self.state.closed += 1

    def begin_auth(self, username):
        return True

    def password_auth_supported(self):
        return True

    def validate_password(self, username, password):
        return username == SSH_USER and password == SSH_PASSWORD


def _public_line(key: asyncssh.SSHKey) -> str:
    return key.export_public_key().decode().strip()


@pytest.fixture
async def ssh_server(ssh_keys):
    """
    An SSH server on a random local port.

    Commands: ``sleep N`` sleeps, ``fail`` exits 3, anything else echoes.
    """
    state = ServerState()
    authorized = asyncssh.import_authorized_keys(
        f"{_public_line(ssh_keys.user_key)}\ncert-authority {_public_line(ssh_keys.ca_key)}\n"
    )

    async def handle_process(process):
        command = process.command or ""
        state.commands.append(command)
        try:
            if command.startswith("sleep"):
                await asyncio.sleep(float(command.split()[1]))
            if command == "fail":
                process.stderr.write("failed\n")
                process.exit(3)
                return
            process.stdout.write(f"ran {command}\n")
            process.exit(0)
        except (OSError, asyncssh.Error):
            pass

    server = await asyncssh.create_server(
        lambda: _TestSSHServer(state),
        "127.0.0.1",
        0,
        server_host_keys=[ssh_keys.host_key],
        authorized_client_keys=authorized,
        process_factory=handle_process,
    )
    state.port = server.sockets[0].getsockname()[1]
    try:
        yield state
    finally:
        server.close()
        await server.wait_closed()


@pytest.fixture
def known_hosts(ssh_keys, ssh_server, tmp_path) -> str:
    path = tmp_path / "known_hosts"
    path.write_text(f"[127.0.0.1]:{ssh_server.port} {_public_line(ssh_keys.host_key)}\n")
    return str(path)


@pytest.fixture
def wrong_known_hosts(ssh_keys, ssh_server, tmp_path) -> str:
    path = tmp_path / "known_hosts_wrong"
    path.write_text(f"[127.0.0.1]:{ssh_server.port} {_public_line(ssh_keys.other_host_key)}\n")
    return str(path)


@pytest.fixture
def closed_port() -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


class RecordingCounter:
    """Stand-in for the Prometheus command error counter."""

    def __init__(self):
        self.counts = Counter()

    def inc(self, command_type: str) -> None:
        self.counts[command_type] += 1


@pytest.fixture
def counter() -> RecordingCounter:
    return RecordingCounter()


@pytest.fixture
def config() -> ResponderConfig:
    return ResponderConfig(
        ssh_user="config-user",
        ssh_connection_timeout="2s",
        ssh_command_timeout="3s",
        local_command_timeout="4s",
    )


def make_alert(status: str = "firing", fingerprint: str = "test", **annotations) -> Alert:
    return Alert(
        status=status,
        fingerprint=fingerprint,
        labels={"alertname": "TestAlert"},
        annotations=annotations,
    )


def make_plan(**overrides) -> ExecutionPlan:
    values = dict(
        ssh_user=SSH_USER,
        ssh_connection_timeout=timedelta(seconds=2),
        ssh_command_timeout=timedelta(seconds=2),
        local_command_timeout=timedelta(seconds=2),
    )
    values.update(overrides)
    return ExecutionPlan(**values)
