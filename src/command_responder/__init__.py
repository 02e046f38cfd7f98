"""
Alertmanager Command Responder

Receives Prometheus AlertManager webhooks and runs the remediation command
named in each alert's annotations, locally or on a remote host over SSH.
"""

__version__ = "0.1.0"
__author__ = "Alertmanager Command Responder Team"
__description__ = "Run local or SSH commands in response to AlertManager alerts"
