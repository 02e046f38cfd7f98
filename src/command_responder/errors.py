"""
Exception types for the command responder.

Every error carries an ``error_type`` which matches the label used on the
command error counter (``local`` or ``ssh``), or ``config`` for problems
found before any command runs.
"""

from typing import Optional


class ResponderError(Exception):
    """Base exception for all command responder errors."""

    error_type = "responder"

    def __init__(self, message: Optional[str] = None) -> None:
        self.message = message or "Command responder error"
        super().__init__(self.message)


class ConfigError(ResponderError):
    """The configuration file could not be read, parsed or validated."""

    error_type = "config"


class ConfigurationError(ResponderError):
    """An alert does not carry enough information to run its commands."""

    error_type = "config"


class ResolutionError(ConfigurationError):
    """An annotation on the alert could not be parsed."""

    def __init__(self, annotation: str, value: str, reason: str) -> None:
        self.annotation = annotation
        self.value = value
        super().__init__(f"Unable to parse annotation {annotation}={value!r}: {reason}")


class LocalCommandError(ResponderError):
    """A local command failed to start or exited non-zero."""

    error_type = "local"

    def __init__(self, message: str, exit_status: Optional[int] = None) -> None:
        self.exit_status = exit_status
        super().__init__(message)


class LocalCommandTimeout(LocalCommandError):
    """A local command did not finish before its deadline."""

    def __init__(self, command: str) -> None:
        self.command = command
        super().__init__(f"Local command timed out: {command}")


class SSHError(ResponderError):
    """Base for everything that fails during a remote command."""

    error_type = "ssh"


class AuthenticationSetupError(SSHError):
    """The private key or certificate could not be loaded."""


class RemoteConnectionError(SSHError):
    """The SSH connection could not be established or the host key was refused."""


class RemoteSessionError(SSHError):
    """A session could not be opened on an established connection."""


class RemoteCommandError(SSHError):
    """The remote command failed or exited non-zero."""

    def __init__(self, message: str, exit_status: Optional[int] = None) -> None:
        self.exit_status = exit_status
        super().__init__(message)


class RemoteCommandTimeout(SSHError):
    """The remote command did not finish before its timeout."""

    def __init__(self, command: str) -> None:
        self.command = command
        super().__init__(f"Timeout executing SSH command: {command}")
