from .api_client import APIClient, AsyncAPIClient
from .models import (
    Container,
    ContainersResponse,
    ContainerStatus,
    CreatingContainer,
    ProgressEvent,
    StartContainerResponse,
    StartResult,
)
from .orchestrator import CreateStrategy, CreationOrchestrator
from .sse import ProgressStreamParser
from .store import ContainersState, ContainerStore

__all__ = [
    "APIClient",
    "AsyncAPIClient",
    "ContainerStore",
    "ContainersState",
    "CreationOrchestrator",
    "CreateStrategy",
    "ProgressStreamParser",
    # Models
    "Container",
    "ContainerStatus",
    "ContainersResponse",
    "CreatingContainer",
    "ProgressEvent",
    "StartContainerResponse",
    "StartResult",
]
