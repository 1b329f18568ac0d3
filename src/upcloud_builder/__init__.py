"""Ephemeral UpCloud build-server provisioning."""

from .errors import (
    BuilderError,
    ConfigurationError,
    PlanNotFoundError,
    RemoteAPIError,
    StateTimeoutError,
)
from .observability import configure_logging
from .provisioning import BuildState, CreateServerStep, StepAction
from .settings import BuilderSettings

__all__ = [
    'BuildState',
    'BuilderError',
    'BuilderSettings',
    'ConfigurationError',
    'CreateServerStep',
    'PlanNotFoundError',
    'RemoteAPIError',
    'StateTimeoutError',
    'StepAction',
    'configure_logging',
]
