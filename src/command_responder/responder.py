"""
The alert response engine.

``AlertResponder.handle`` takes one alert through resolution, the local
command and the remote command. Failures are logged and counted; they never
escape ``handle``, so one alert cannot affect another.
"""

import time
from typing import Optional

import structlog

from .commands import run_local, run_remote
from .config import ResponderConfig
from .errors import ConfigurationError, ResolutionError, ResponderError
from .metrics import CommandErrorCounter
from .models import Alert, AlertOutcome
from .resolver import resolve, status_filter

logger = structlog.get_logger(__name__)


class AlertResponder:
    """Runs the commands requested by an alert's annotations."""

    def __init__(self, command_errors: CommandErrorCounter):
        self.command_errors = command_errors

    async def handle(self, config: ResponderConfig, alert: Alert) -> AlertOutcome:
        """
        Handle one alert.

        1. Resolve the execution plan; a resolution error stops here.
        2. Skip the alert if its status is not in the plan's status filter.
        3. Run the local command, if any. A failure does not stop step 4.
        4. Run the SSH command, if any. A missing host fails without dialing.

        The outcome carries the last error encountered.
        """
        alert_logger = logger.bind(alert=alert.fingerprint, alertname=alert.name)
        alert_logger.debug("Handling alert")
        start = time.monotonic()

        try:
            plan = resolve(config, alert)
        except ResolutionError as e:
            alert_logger.error("Unable to resolve alert response", error=str(e))
            return AlertOutcome.completed(alert, e, self._elapsed_ms(start))

        if plan is None:
            alert_logger.debug(
                "Alert status does not match alert",
                status=alert.status.value,
                expected=",".join(status_filter(alert)),
            )
            return AlertOutcome.skipped(alert)

        error: Optional[ResponderError] = None

        if plan.local_command:
            local_logger = alert_logger.bind(type="local", command=plan.local_command)
            try:
                await run_local(plan.local_command, plan.local_command_timeout, local_logger)
            except ResponderError as e:
                error = e
                self.command_errors.inc("local")
                local_logger.error("Failed to run local command", error=str(e), error_type=type(e).__name__)
            local_logger.info("Command completed", duration=time.monotonic() - start)

        if plan.ssh_command:
            if not plan.ssh_host:
                error = ConfigurationError("Must provide SSH host using annotations")
                self.command_errors.inc("ssh")
                alert_logger.error("Failed to run SSH command", error=str(error), type="ssh",
                                   command=plan.ssh_command)
                return AlertOutcome.completed(alert, error, self._elapsed_ms(start))

            ssh_logger = alert_logger.bind(
                type="ssh",
                ssh_user=plan.ssh_user,
                ssh_key=plan.ssh_key,
                ssh_cert=plan.ssh_certificate,
                ssh_host=plan.ssh_host,
                command=plan.ssh_command,
            )
            try:
                await run_remote(plan, ssh_logger)
            except ResponderError as e:
                error = e
                self.command_errors.inc("ssh")
                ssh_logger.error("Failed to run SSH command", error=str(e), error_type=type(e).__name__)
            ssh_logger.info("Command completed", duration=time.monotonic() - start)

        return AlertOutcome.completed(alert, error, self._elapsed_ms(start))

    @staticmethod
    def _elapsed_ms(start: float) -> int:
        return int((time.monotonic() - start) * 1000)

