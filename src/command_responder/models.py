"""
Pydantic models for AlertManager webhook payloads and internal data structures.

This module defines the webhook payload, the execution plan derived from each
alert, and the results produced by the command executors and the responder.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, SecretStr, field_serializer

from .utils import format_duration


class AlertStatus(str, Enum):
    """Alert status enumeration."""
    FIRING = "firing"
    RESOLVED = "resolved"


class Alert(BaseModel):
    """Individual alert from AlertManager."""

    model_config = ConfigDict(frozen=True)

    status: AlertStatus = Field(..., description="Alert status")
    labels: Dict[str, str] = Field(default_factory=dict, description="Alert labels")
    annotations: Dict[str, str] = Field(default_factory=dict, description="Alert annotations")
    startsAt: Optional[datetime] = Field(None, description="Alert start time")
    endsAt: Optional[datetime] = Field(None, description="Alert end time")
    generatorURL: Optional[str] = Field(None, description="Generator URL")
    fingerprint: str = Field(default="", description="Alert fingerprint")

    @property
    def name(self) -> str:
        """The alertname label, or the fingerprint when the label is missing."""
        return self.labels.get("alertname") or self.fingerprint


class AlertManagerWebhook(BaseModel):
    """AlertManager webhook payload."""
    version: str = Field(default="", description="AlertManager version")
    groupKey: str = Field(default="", description="Group key")
    truncatedAlerts: int = Field(default=0, description="Number of truncated alerts")
    status: Optional[AlertStatus] = Field(None, description="Group status")
    receiver: str = Field(default="", description="Receiver name")
    groupLabels: Dict[str, str] = Field(default_factory=dict, description="Group labels")
    commonLabels: Dict[str, str] = Field(default_factory=dict, description="Common labels")
    commonAnnotations: Dict[str, str] = Field(default_factory=dict, description="Common annotations")
    externalURL: str = Field(default="", description="AlertManager external URL")
    alerts: List[Alert] = Field(default_factory=list, description="List of alerts")


class ExecutionPlan(BaseModel):
    """Fully resolved parameters for the commands of one alert."""

    model_config = ConfigDict(frozen=True)

    status: List[str] = Field(default_factory=lambda: [AlertStatus.FIRING.value])

    ssh_user: str = ""
    ssh_key: str = ""
    ssh_certificate: str = ""
    ssh_password: Optional[SecretStr] = None
    ssh_known_hosts: str = ""
    ssh_host_key_algorithms: List[str] = Field(default_factory=list)
    ssh_connection_timeout: timedelta
    ssh_command_timeout: timedelta
    ssh_host: str = ""
    ssh_command: str = ""

    local_command: str = ""
    local_command_timeout: timedelta

    @field_serializer("ssh_connection_timeout", "ssh_command_timeout", "local_command_timeout")
    def _serialize_timeout(self, value: timedelta) -> str:
        return format_duration(value)

    @property
    def ssh_password_value(self) -> str:
        return self.ssh_password.get_secret_value() if self.ssh_password else ""


@dataclass
class CommandResult:
    """Output of a finished command."""
    exit_status: int
    stdout: str
    stderr: str
    duration: timedelta


class OutcomeStatus(str, Enum):
    """What happened to an alert."""
    SKIPPED = "skipped"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class AlertOutcome(BaseModel):
    """Result of handling one alert."""
    fingerprint: str = Field(..., description="Alert fingerprint")
    alertname: str = Field(..., description="Alert name")
    status: OutcomeStatus = Field(..., description="Outcome of the alert")
    error: Optional[str] = Field(None, description="Last error encountered")
    error_type: Optional[str] = Field(None, description="Exception class of the last error")
    execution_time_ms: Optional[int] = Field(None, description="Execution time in milliseconds")

    @property
    def failed(self) -> bool:
        return self.status == OutcomeStatus.FAILED

    @classmethod
    def skipped(cls, alert: Alert) -> "AlertOutcome":
        """Create a result for an alert whose status did not match."""
        return cls(fingerprint=alert.fingerprint, alertname=alert.name, status=OutcomeStatus.SKIPPED)

    @classmethod
    def completed(cls, alert: Alert, error: Optional[Exception] = None,
                  execution_time_ms: Optional[int] = None) -> "AlertOutcome":
        """Create a result for an alert that went through resolution."""
        return cls(
            fingerprint=alert.fingerprint,
            alertname=alert.name,
            status=OutcomeStatus.FAILED if error else OutcomeStatus.SUCCEEDED,
            error=str(error) if error else None,
            error_type=type(error).__name__ if error else None,
            execution_time_ms=execution_time_ms,
        )
