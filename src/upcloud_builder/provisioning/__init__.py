"""Server provisioning lifecycle: plan resolution, create step, teardown."""

from .cleanup import (
    CleanupAction,
    CleanupOutcome,
    CleanupReport,
    FailurePolicy,
    run_cleanup_pipeline,
)
from .create_server import (
    DEFAULT_STORAGE_SIZE,
    CreateServerStep,
    build_provision_request,
    build_server_title,
)
from .models import (
    Plan,
    PlanCatalog,
    ProvisionRequest,
    ServerDetails,
    ServerStorageDevice,
)
from .plans import (
    DEFAULT_PLAN_NAME,
    CustomSizing,
    NamedPlan,
    PlanNotFound,
    PlanResolution,
    coalesce_positive,
    fetch_plan,
    resolve_plan,
)
from .state import BuildState, StepAction

__all__ = [
    'BuildState',
    'CleanupAction',
    'CleanupOutcome',
    'CleanupReport',
    'CreateServerStep',
    'CustomSizing',
    'DEFAULT_PLAN_NAME',
    'DEFAULT_STORAGE_SIZE',
    'FailurePolicy',
    'NamedPlan',
    'Plan',
    'PlanCatalog',
    'PlanNotFound',
    'PlanResolution',
    'ProvisionRequest',
    'ServerDetails',
    'ServerStorageDevice',
    'StepAction',
    'build_provision_request',
    'build_server_title',
    'coalesce_positive',
    'fetch_plan',
    'resolve_plan',
    'run_cleanup_pipeline',
]
