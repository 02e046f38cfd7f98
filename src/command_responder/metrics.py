"""Prometheus metrics for the command responder."""

from typing import Optional, Protocol

from prometheus_client import REGISTRY, CollectorRegistry, Counter, Gauge

from . import __version__

NAMESPACE = "alertmanager_command_responder"
COMMAND_TYPES = ("local", "ssh")


class CommandErrorCounter(Protocol):
    """Counts failed command attempts by type (``local`` or ``ssh``)."""

    def inc(self, command_type: str) -> None:
        ...


class ResponderMetrics:
    """The responder's metrics, registered on one registry."""

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        self.registry = registry if registry is not None else REGISTRY

        self.build_info = Gauge(
            "build_info",
            "Build information",
            ["version"],
            namespace=NAMESPACE,
            registry=self.registry,
        )
        self.command_errors = Counter(
            "command_errors",
            "Total number of command errors",
            ["type"],
            namespace=NAMESPACE,
            registry=self.registry,
        )
        self.errors = Counter(
            "errors",
            "Total number of errors handling alerts, payloads and reloads",
            namespace=NAMESPACE,
            registry=self.registry,
        )

        self.build_info.labels(version=__version__).set(1)
        for command_type in COMMAND_TYPES:
            self.command_errors.labels(type=command_type)

    def inc(self, command_type: str) -> None:
        """Record one failed command attempt."""
        self.command_errors.labels(type=command_type).inc()

    def inc_errors(self) -> None:
        self.errors.inc()
