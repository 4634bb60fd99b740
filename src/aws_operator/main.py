"""Main entry point for the AWS tenant cluster operator.

CREDENTIALS:
The operator never runs with static access keys. It authenticates with its
workload identity and reaches the control plane, tenant and default tenant
accounts by assuming roles; every credential it holds is temporary.

RESOURCES (create order, reversed on delete):
    cpi -> bridgezone -> ebsvolume

Client and account resolution (awsclient) runs ahead of every pass in both
directions.
"""

from __future__ import annotations

import asyncio
import json
import logging
import signal
import sys
from datetime import UTC, datetime

from .awsclient import AWSClientResource
from .bridgezone import BridgeZoneResource
from .config import Config, ConfigurationError
from .controller import Controller
from .cpi import CPIResource
from .credential import CredentialResolver, StaticCredentialsError, enforce_no_static_credentials
from .ebsvolume import EBSVolumeResource
from .errors import InvalidConfigError
from .resource_set import ResourceSet

# LogRecord attributes that are not structured fields
_RESERVED_LOG_ATTRS = frozenset(
    {
        "name",
        "msg",
        "args",
        "created",
        "filename",
        "funcName",
        "levelname",
        "levelno",
        "lineno",
        "module",
        "msecs",
        "pathname",
        "process",
        "processName",
        "relativeCreated",
        "stack_info",
        "exc_info",
        "exc_text",
        "thread",
        "threadName",
        "taskName",
        "message",
    }
)


class JsonFormatter(logging.Formatter):
    """Format logs as JSON for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.now(UTC).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "message": record.getMessage(),
            "logger": record.name,
        }

        # Add extra fields from the record
        for key, value in record.__dict__.items():
            if key not in _RESERVED_LOG_ATTRS:
                log_data[key] = value

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


def setup_logging(level: int = logging.INFO) -> None:
    """Configure structured logging with JSON output for production."""
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JsonFormatter())

    root_logger = logging.getLogger()
    root_logger.addHandler(handler)
    root_logger.setLevel(level)

    # Reduce noise from the AWS SDK
    for name in ("boto3", "botocore", "urllib3"):
        logging.getLogger(name).setLevel(logging.WARNING)


def build_setup_set(config: Config) -> ResourceSet:
    """Resources run ahead of every pass."""
    return ResourceSet([AWSClientResource(CredentialResolver(config))])


def build_resource_set(config: Config) -> ResourceSet:
    """Resources converged for every cluster object, in create order.

    Raises:
        InvalidConfigError: If a resource rejects its configuration.
    """
    return ResourceSet(
        [
            CPIResource(config.installation),
            BridgeZoneResource(route53_enabled=config.route53_enabled),
            EBSVolumeResource(deletion_enabled=config.ebs_volume_deletion_enabled),
        ]
    )


async def main() -> int:
    """Run the operator.

    Returns:
        Exit code (0 for success, 1 for configuration or runtime failure,
        2 for a credential violation).
    """
    setup_logging()
    logger = logging.getLogger(__name__)

    try:
        config = Config.from_env()
    except ConfigurationError as e:
        logger.error("Configuration error", extra={"error": str(e)})
        return 1

    try:
        enforce_no_static_credentials()
    except StaticCredentialsError as e:
        logger.critical(
            "Security violation: static credentials in environment",
            extra={"error": str(e)},
        )
        return 2

    try:
        controller = Controller(
            config,
            build_resource_set(config),
            setup=build_setup_set(config),
        )
    except InvalidConfigError as e:
        logger.error(
            "Failed to initialize controller",
            extra={"error": str(e), "error_type": type(e).__name__},
        )
        return 1

    logger.info(
        "Starting AWS operator",
        extra={"installation": config.installation, "region": config.region},
    )

    # Set up signal handlers for graceful shutdown
    loop = asyncio.get_running_loop()

    def signal_handler(sig: signal.Signals) -> None:
        logger.info("Received signal", extra={"signal": sig.name})
        controller.shutdown()

    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, lambda s=sig: signal_handler(s))

    try:
        await controller.run()
    except Exception as e:
        logger.exception("Unhandled exception", extra={"error": str(e)})
        return 1

    logger.info("Operator stopped")
    return 0


def run() -> None:
    """Entry point for the operator process."""
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    run()
