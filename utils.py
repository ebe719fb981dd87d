import structlog
from typing import Dict, Any, Sequence
from prometheus_client import (
    Counter,
    Histogram,
    generate_latest,
)

# Configure structured logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer(),
    ],
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    wrapper_class=structlog.stdlib.BoundLogger,
    cache_logger_on_first_use=True,
)

logger = structlog.get_logger()

# Prometheus metrics
REQUEST_COUNT = Counter(
    "http_requests_total", "Total HTTP requests", ["method", "endpoint", "status"]
)
REQUEST_LATENCY = Histogram("http_request_duration_seconds", "HTTP request latency")
COMPOSE_COMMANDS = Counter(
    "compose_commands_total", "docker-compose commands", ["command", "status"]
)
COMPOSE_COMMAND_LATENCY = Histogram(
    "compose_command_duration_seconds", "docker-compose command latency", ["command"]
)

COMPOSE_BINARY_NAME = "docker-compose"


def log_compose_operation(
    operation: str, target: str, status: str, details: Dict[str, Any] = None
):
    """Log compose operations with structured logging"""
    logger.info(
        "Compose operation",
        operation=operation,
        target=target,
        status=status,
        details=details or {},
    )
    COMPOSE_COMMANDS.labels(command=operation, status=status).inc()


def get_metrics():
    """Get Prometheus metrics"""
    return generate_latest()


# Error handling utilities
class ComposeException(Exception):
    """Base exception for the compose harness"""

    def __init__(self, message: str, error_code: str = None, status_code: int = 500):
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        super().__init__(self.message)


class ConfigurationError(ComposeException):
    """Preconditions for running docker-compose are not met"""

    def __init__(self, message: str):
        super().__init__(message, "CONFIGURATION_ERROR", 400)


class ExecutionError(ComposeException):
    """docker-compose exited with a non-zero exit code"""

    def __init__(self, exit_code: int, args: Sequence[str], output: str):
        self.exit_code = exit_code
        self.command_args = list(args)
        self.output = output
        message = (
            f"'{COMPOSE_BINARY_NAME} {' '.join(self.command_args)}' "
            f"returned exit code {exit_code}\nThe output was:\n{output}"
        )
        super().__init__(message, "EXECUTION_ERROR", 502)
