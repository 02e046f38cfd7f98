"""
Main application entry point for the Alertmanager Command Responder.

Loads the responder config, serves the webhook API with uvicorn and reloads
the config file on SIGHUP.
"""

import argparse
import asyncio
import signal
import sys
from typing import Optional

import structlog
import uvicorn

from . import __version__
from .config import SafeConfig, settings
from .errors import ConfigError
from .log import configure_logging
from .metrics import ResponderMetrics
from .responder import AlertResponder
from .webhook import create_app

logger = structlog.get_logger(__name__)


class CommandResponderApp:
    """Main application class for the command responder."""

    def __init__(self, safe_config: Optional[SafeConfig] = None, metrics: Optional[ResponderMetrics] = None):
        self.safe_config = safe_config or SafeConfig(settings.config_file)
        self.metrics = metrics or ResponderMetrics()
        self.responder = AlertResponder(self.metrics)
        self.app = create_app(self.safe_config, self.responder, self.metrics)
        self.server: Optional[uvicorn.Server] = None

    def initialize(self):
        """Load the config file. Failing to load it at startup is fatal."""
        logger.info(
            "Initializing Alertmanager Command Responder",
            version=__version__,
            config_file=settings.config_file,
            listen_address=settings.listen_address,
        )
        self.safe_config.read_config()

    def reload(self) -> bool:
        """Reload the config file, keeping the old config on failure."""
        try:
            self.safe_config.read_config()
        except ConfigError:
            logger.error("Failed to load configuration file, using old config.")
            self.metrics.inc_errors()
            return False
        logger.info("Configuration reloaded", config_file=self.safe_config.path)
        return True

    def setup_signal_handlers(self):
        """Reload on SIGHUP, shut down on SIGINT, SIGTERM and SIGQUIT."""
        def reload_handler(signum, frame):
            logger.info("Received reload signal", signal=signum)
            self.reload()

        def shutdown_handler(signum, frame):
            logger.info("Received shutdown signal", signal=signum)
            if self.server:
                self.server.should_exit = True

        signal.signal(signal.SIGHUP, reload_handler)
        for signum in (signal.SIGINT, signal.SIGTERM, signal.SIGQUIT):
            signal.signal(signum, shutdown_handler)

    async def run(self):
        """Run the webhook server until shutdown."""
        server_config = uvicorn.Config(
            self.app,
            host=settings.host,
            port=settings.port,
            log_level=settings.log_level.lower(),
            access_log=settings.is_development,
        )
        self.server = uvicorn.Server(server_config)
        # uvicorn replaces the SIGINT and SIGTERM handlers while serving
        self.setup_signal_handlers()

        logger.info("Starting webhook server", host=settings.host, port=settings.port)
        await self.server.serve()
        logger.info("Shutting down")


def cli():
    """Command-line interface entry point."""
    parser = argparse.ArgumentParser(
        prog="alertmanager-command-responder",
        description="Run local or SSH commands in response to AlertManager alerts",
    )
    parser.add_argument(
        "--config-file",
        default=settings.config_file,
        help="Path to configuration file (default: %(default)s)"
    )
    parser.add_argument(
        "--host",
        default=settings.host,
        help="Server host (default: %(default)s)"
    )
    parser.add_argument(
        "--port",
        type=int,
        default=settings.port,
        help="Server port (default: %(default)s)"
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default=settings.log_level.upper(),
        help="Log level (default: %(default)s)"
    )
    parser.add_argument(
        "--log-format",
        choices=["json", "console"],
        default=settings.log_format,
        help="Log format (default: %(default)s)"
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )

    args = parser.parse_args()

    # Update settings with command-line arguments
    settings.config_file = args.config_file
    settings.host = args.host
    settings.port = args.port
    settings.log_level = args.log_level
    settings.log_format = args.log_format

    configure_logging(settings.log_level, settings.log_format)

    app_instance = CommandResponderApp()
    try:
        app_instance.initialize()
    except ConfigError:
        logger.error("Failed to load configuration file, exiting.")
        sys.exit(1)

    try:
        asyncio.run(app_instance.run())
    except KeyboardInterrupt:
        logger.info("Application interrupted by user")
    except Exception as e:
        logger.error("Application failed", error=str(e), exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    cli()
