"""
SSH authentication and host key handling for remote commands.

``auth_method`` picks exactly one way to authenticate, in this order:
certificate, private key, password. ``host_key_verifier`` decides which host
keys the handshake will trust. Key, certificate and known hosts files are
read every time they are used so edits on disk apply to the next alert.
"""

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

import asyncssh
import structlog

from .errors import AuthenticationSetupError, RemoteConnectionError

logger = structlog.get_logger(__name__)

HostKeyVerifier = Callable[[], Optional[asyncssh.SSHKnownHosts]]


@dataclass(frozen=True)
class AuthMethod:
    """One way of authenticating an SSH connection."""
    kind: str
    client_keys: Optional[List[Any]] = field(default=None, repr=False)
    password: Optional[str] = field(default=None, repr=False)

    def connect_options(self) -> Dict[str, Any]:
        """Keyword arguments for ``asyncssh.connect``.

        The ssh-agent and the default key files under ``~/.ssh`` are never
        used, only what was configured.
        """
        return {
            "client_keys": self.client_keys,
            "password": self.password,
            "agent_path": None,
        }


def _read_private_key(path: str) -> asyncssh.SSHKey:
    try:
        return asyncssh.read_private_key(path)
    except OSError as e:
        raise AuthenticationSetupError(f"Unable to read private key: '{path}' {e.strerror or e}") from e
    except (asyncssh.KeyImportError, ValueError) as e:
        raise AuthenticationSetupError(f"Unable to parse private key: '{path}' {e}") from e


def _read_certificate(path: str) -> asyncssh.SSHCertificate:
    try:
        return asyncssh.read_certificate(path)
    except OSError as e:
        raise AuthenticationSetupError(f"Unable to read certificate file: '{path}' {e.strerror or e}") from e
    except (asyncssh.KeyImportError, ValueError) as e:
        raise AuthenticationSetupError(f"Unable to parse certificate: '{path}' {e}") from e


def certificate_auth(key_path: str, cert_path: str) -> AuthMethod:
    """Authenticate with a private key and the OpenSSH certificate issued for it."""
    if not key_path:
        raise AuthenticationSetupError(f"SSH certificate '{cert_path}' requires an SSH key")
    key = _read_private_key(key_path)
    certificate = _read_certificate(cert_path)
    if certificate.key.public_data != key.public_data:
        raise AuthenticationSetupError(
            f"Unable to create cert signer: certificate '{cert_path}' does not match key '{key_path}'"
        )
    return AuthMethod(kind="certificate", client_keys=[(key, certificate)])


def private_key_auth(key_path: str) -> AuthMethod:
    """Authenticate with a private key."""
    return AuthMethod(kind="key", client_keys=[_read_private_key(key_path)])


def auth_method(key_path: str, cert_path: str, password: str) -> AuthMethod:
    """
    Build the authentication method for a remote command.

    A certificate wins over a key, a key over a password. Failing to load the
    certificate or key is an error; there is no fallback to the next method.
    With nothing configured an empty method is returned and the server will
    reject the connection.

    Raises:
        AuthenticationSetupError: if a key or certificate cannot be loaded
    """
    if cert_path:
        return certificate_auth(key_path, cert_path)
    if key_path:
        return private_key_auth(key_path)
    if password:
        return AuthMethod(kind="password", password=password)
    return AuthMethod(kind="none")


def host_key_verifier(known_hosts_path: str) -> HostKeyVerifier:
    """
    Return the function that supplies trusted host keys to the handshake.

    Without a known hosts file every host key is accepted. Otherwise the file
    is read when the connection is made and host keys not listed in it are
    rejected by the handshake.
    """
    if not known_hosts_path:
        def accept_any_host_key() -> None:
            return None

        return accept_any_host_key

    def load_known_hosts() -> asyncssh.SSHKnownHosts:
        logger.debug("Verify SSH known hosts", known_hosts=known_hosts_path)
        try:
            return asyncssh.read_known_hosts(known_hosts_path)
        except (OSError, ValueError) as e:
            logger.error("Error loading SSH known hosts", known_hosts=known_hosts_path, error=str(e))
            raise RemoteConnectionError(f"Unable to load SSH known hosts '{known_hosts_path}': {e}") from e

    return load_known_hosts
