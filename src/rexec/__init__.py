"""Python client for Rexec terminal containers."""

from .client import AsyncRexecClient, RexecClient
from .containers import (
    Container,
    ContainersState,
    ContainerStore,
    CreateStrategy,
    CreatingContainer,
    ProgressEvent,
    StartResult,
)
from .errors import (
    APIError,
    AuthenticationError,
    CreationInProgressError,
    InvalidResponseError,
    RexecError,
    StreamError,
    TerminalConnectionError,
)
from .terminal import DeviceHint, NetworkHint, ResourceLoader, TerminalSession

__all__ = [
    "AsyncRexecClient",
    "RexecClient",
    "ContainerStore",
    "ContainersState",
    "CreateStrategy",
    "TerminalSession",
    "ResourceLoader",
    "NetworkHint",
    "DeviceHint",
    # Models
    "Container",
    "CreatingContainer",
    "ProgressEvent",
    "StartResult",
    # Errors
    "RexecError",
    "AuthenticationError",
    "APIError",
    "InvalidResponseError",
    "StreamError",
    "CreationInProgressError",
    "TerminalConnectionError",
]
