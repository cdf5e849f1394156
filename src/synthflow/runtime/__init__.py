"""Runtime clients. Importing this package registers every provider."""

from .base import (
    DeployedWorkflow,
    RuntimeAPIError,
    RuntimeClient,
    RuntimeConfigurationError,
    RuntimeExecution,
    RuntimeStep,
)
from .n8n import N8nRuntimeClient
from .pipedream import PipedreamRuntimeClient
from .registry import create_runtime_client, get_client_class, list_providers, register
from .simulator import FailureConfig, FailureRule, SimulatorRuntimeClient

__all__ = [
    "DeployedWorkflow",
    "FailureConfig",
    "FailureRule",
    "N8nRuntimeClient",
    "PipedreamRuntimeClient",
    "RuntimeAPIError",
    "RuntimeClient",
    "RuntimeConfigurationError",
    "RuntimeExecution",
    "RuntimeStep",
    "SimulatorRuntimeClient",
    "create_runtime_client",
    "get_client_class",
    "list_providers",
    "register",
]
