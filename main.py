"""
Entry point for the Alertmanager Command Responder.

This module provides the main entry point that delegates to the package's CLI.
"""

from command_responder.main import cli

if __name__ == "__main__":
    cli()
