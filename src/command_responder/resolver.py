"""
Build the execution plan for an alert.

Config values are the defaults; annotations on the alert override them. The
SSH password, known hosts file and host key algorithms can only be set in
the config file.
"""

from datetime import timedelta
from typing import List, Optional

from .config import ResponderConfig
from .errors import ResolutionError
from .models import Alert, AlertStatus, ExecutionPlan
from .utils import parse_duration

STATUS_ANNOTATION = "cr_status"
SSH_USER_ANNOTATION = "cr_ssh_user"
SSH_KEY_ANNOTATION = "cr_ssh_key"
SSH_CERT_ANNOTATION = "cr_ssh_cert"
SSH_HOST_ANNOTATION = "cr_ssh_host"
SSH_CONN_TIMEOUT_ANNOTATION = "cr_ssh_conn_timeout"
SSH_COMMAND_ANNOTATION = "cr_ssh_cmd"
SSH_COMMAND_TIMEOUT_ANNOTATION = "cr_ssh_cmd_timeout"
LOCAL_COMMAND_ANNOTATION = "cr_local_cmd"
LOCAL_COMMAND_TIMEOUT_ANNOTATION = "cr_local_cmd_timeout"

DEFAULT_STATUS_FILTER = [AlertStatus.FIRING.value]


def status_filter(alert: Alert) -> List[str]:
    """Statuses the alert's commands apply to, ``["firing"]`` unless annotated."""
    value = alert.annotations.get(STATUS_ANNOTATION)
    if value is None:
        return list(DEFAULT_STATUS_FILTER)
    return [status.strip() for status in value.split(",") if status.strip()]


def _timeout(alert: Alert, annotation: str, default: timedelta) -> timedelta:
    value = alert.annotations.get(annotation)
    if value is None:
        return default
    try:
        return parse_duration(value)
    except ValueError as e:
        raise ResolutionError(annotation, value, str(e)) from e


def resolve(config: ResponderConfig, alert: Alert) -> Optional[ExecutionPlan]:
    """
    Merge config defaults with the alert's annotations.

    Returns None when the alert's status is not in its status filter; that
    alert is skipped, which is not an error.

    Raises:
        ResolutionError: if a timeout annotation is not a valid duration
    """
    statuses = status_filter(alert)
    if alert.status.value not in statuses:
        return None

    annotations = alert.annotations
    return ExecutionPlan(
        status=statuses,
        ssh_user=annotations.get(SSH_USER_ANNOTATION, config.ssh_user),
        ssh_key=annotations.get(SSH_KEY_ANNOTATION, config.ssh_key),
        ssh_certificate=annotations.get(SSH_CERT_ANNOTATION, config.ssh_certificate),
        ssh_password=config.ssh_password,
        ssh_known_hosts=config.ssh_known_hosts,
        ssh_host_key_algorithms=list(config.ssh_host_key_algorithms),
        ssh_connection_timeout=_timeout(alert, SSH_CONN_TIMEOUT_ANNOTATION, config.ssh_connection_timeout),
        ssh_command_timeout=_timeout(alert, SSH_COMMAND_TIMEOUT_ANNOTATION, config.ssh_command_timeout),
        ssh_host=annotations.get(SSH_HOST_ANNOTATION, ""),
        ssh_command=annotations.get(SSH_COMMAND_ANNOTATION, ""),
        local_command=annotations.get(LOCAL_COMMAND_ANNOTATION, ""),
        local_command_timeout=_timeout(alert, LOCAL_COMMAND_TIMEOUT_ANNOTATION, config.local_command_timeout),
    )
