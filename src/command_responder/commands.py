"""
Local and remote command execution.

Both executors return a ``CommandResult`` on success and raise a
``ResponderError`` subclass on failure. Captured output is logged, it is not
part of any response.
"""

import asyncio
import time
from datetime import timedelta

import asyncssh
import structlog

from .errors import (
    AuthenticationSetupError,
    LocalCommandError,
    LocalCommandTimeout,
    RemoteCommandError,
    RemoteCommandTimeout,
    RemoteConnectionError,
    RemoteSessionError,
)
from .models import CommandResult, ExecutionPlan
from .ssh import AuthMethod, HostKeyVerifier, auth_method, host_key_verifier
from .utils import split_host_port

_logger = structlog.get_logger(__name__)


def _elapsed(start: float) -> timedelta:
    return timedelta(seconds=time.monotonic() - start)


async def run_local(command: str, timeout: timedelta, logger=None) -> CommandResult:
    """
    Run a command on this host.

    The command is split on whitespace; the first word is the program, the
    rest are its arguments. No shell is involved. If the deadline passes the
    process is killed and reaped before ``LocalCommandTimeout`` is raised.

    Raises:
        LocalCommandTimeout: if the command runs longer than ``timeout``
        LocalCommandError: if the command cannot start or exits non-zero
    """
    logger = logger or _logger
    args = command.split()
    if not args:
        raise LocalCommandError("Local command is empty")

    logger.info("Running local command", program=args[0], args=" ".join(args[1:]))
    start = time.monotonic()
    try:
        process = await asyncio.create_subprocess_exec(
            *args,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except OSError as e:
        logger.error("Error executing command", error=str(e))
        raise LocalCommandError(f"Unable to start local command {args[0]}: {e}") from e

    try:
        stdout, stderr = await asyncio.wait_for(process.communicate(), timeout.total_seconds())
    except asyncio.TimeoutError:
        try:
            process.kill()
        except ProcessLookupError:
            pass
        await process.wait()
        logger.error("Local command timed out", timeout=timeout.total_seconds(), pid=process.pid)
        raise LocalCommandTimeout(command) from None

    result = CommandResult(
        exit_status=process.returncode,
        stdout=stdout.decode(errors="replace"),
        stderr=stderr.decode(errors="replace"),
        duration=_elapsed(start),
    )
    if result.exit_status != 0:
        logger.error("Error executing command", exit_status=result.exit_status,
                     out=result.stdout, err=result.stderr)
        raise LocalCommandError(
            f"Local command exited with status {result.exit_status}: {command}",
            exit_status=result.exit_status,
        )

    logger.info("Local command completed", out=result.stdout, err=result.stderr)
    return result


async def _connect(plan: ExecutionPlan, auth: AuthMethod, verifier: HostKeyVerifier,
                   logger) -> asyncssh.SSHClientConnection:
    try:
        host, port = split_host_port(plan.ssh_host)
    except ValueError as e:
        raise RemoteConnectionError(f"Invalid SSH host {plan.ssh_host!r}: {e}") from e

    options = dict(
        username=plan.ssh_user,
        known_hosts=verifier(),
        connect_timeout=plan.ssh_connection_timeout.total_seconds(),
        **auth.connect_options(),
    )
    if plan.ssh_host_key_algorithms:
        options["server_host_key_algs"] = list(plan.ssh_host_key_algorithms)

    logger.debug("Dial SSH", host=host, port=port, auth=auth.kind,
                 timeout=plan.ssh_connection_timeout.total_seconds())
    try:
        return await asyncssh.connect(host, port, **options)
    except (OSError, asyncssh.Error, asyncio.TimeoutError, ValueError) as e:
        logger.error("Failed to establish SSH connection", error=str(e), error_type=type(e).__name__)
        raise RemoteConnectionError(f"Failed to establish SSH connection to {plan.ssh_host}: {e}") from e


async def _run_session(connection: asyncssh.SSHClientConnection, command: str) -> asyncssh.SSHCompletedProcess:
    try:
        return await connection.run(command, check=False)
    except asyncssh.ChannelOpenError as e:
        raise RemoteSessionError(f"Failed to establish SSH session: {e}") from e
    except (asyncssh.Error, OSError) as e:
        raise RemoteCommandError(f"Failed to run SSH command: {e}") from e


async def run_remote(plan: ExecutionPlan, logger=None) -> CommandResult:
    """
    Run ``plan.ssh_command`` on ``plan.ssh_host`` over SSH.

    The command runs as its own task and is raced against
    ``plan.ssh_command_timeout``. When the timer wins the task's result is
    abandoned; SSH offers no way to stop the remote process, so the
    connection is closed instead. The connection is closed on every path.

    Raises:
        AuthenticationSetupError: if the key or certificate cannot be loaded
        RemoteConnectionError: if the connection or host key check fails
        RemoteSessionError: if no session can be opened
        RemoteCommandError: if the command fails or exits non-zero
        RemoteCommandTimeout: if the command runs longer than its timeout
    """
    logger = logger or _logger
    logger.info("Running SSH command")

    try:
        auth = auth_method(plan.ssh_key, plan.ssh_certificate, plan.ssh_password_value)
    except AuthenticationSetupError as e:
        logger.error("Error setting up SSH authentication", error=str(e))
        raise

    connection = await _connect(plan, auth, host_key_verifier(plan.ssh_known_hosts), logger)
    start = time.monotonic()
    task = asyncio.ensure_future(_run_session(connection, plan.ssh_command))
    try:
        done, _ = await asyncio.wait({task}, timeout=plan.ssh_command_timeout.total_seconds())
        if not done:
            logger.error("Timeout executing SSH command", timeout=plan.ssh_command_timeout.total_seconds())
            raise RemoteCommandTimeout(plan.ssh_command)

        try:
            completed = task.result()
        except RemoteSessionError as e:
            logger.error("Failed to establish SSH session", error=str(e))
            raise
        except RemoteCommandError as e:
            logger.error("Failed to run SSH command", error=str(e))
            raise
    finally:
        if not task.done():
            task.cancel()
        connection.close()
        await connection.wait_closed()

    result = CommandResult(
        exit_status=completed.returncode if completed.returncode is not None else -1,
        stdout=_text(completed.stdout),
        stderr=_text(completed.stderr),
        duration=_elapsed(start),
    )
    if result.exit_status != 0:
        logger.error("Failed to run SSH command", exit_status=result.exit_status,
                     out=result.stdout, err=result.stderr)
        raise RemoteCommandError(
            f"SSH command exited with status {result.exit_status}: {plan.ssh_command}",
            exit_status=result.exit_status,
        )

    logger.info("SSH command completed", out=result.stdout, err=result.stderr)
    return result


def _text(output) -> str:
    if output is None:
        return ""
    if isinstance(output, bytes):
        return output.decode(errors="replace")
    return output
