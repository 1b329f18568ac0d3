"""Builder error hierarchy.

Three families surface to the user:

* ``ConfigurationError``: user-correctable input (unknown plan, bad settings).
* ``RemoteAPIError``: a provider call failed; names the operation and target.
* ``StateTimeoutError``: a bounded state wait exceeded its deadline.

Transport-level errors (``UpCloudAPIError`` and friends) live next to the HTTP
client and are wrapped into ``RemoteAPIError`` by the provisioning step.
"""

from __future__ import annotations


class BuilderError(Exception):
    """Base class for all builder errors."""


class ConfigurationError(BuilderError, ValueError):
    """Raised when user-supplied configuration cannot be used."""


class PlanNotFoundError(ConfigurationError):
    """Raised when an explicitly requested plan is absent from the catalog."""

    def __init__(self, plan_name: str) -> None:
        self.plan_name = plan_name
        super().__init__(f'plan {plan_name!r} not found')


class RemoteAPIError(BuilderError):
    """A provider call failed.

    Attributes:
        operation: Lifecycle operation that failed, e.g. ``create_server``.
        target: Resource title or UUID the operation was aimed at.
        cause: The underlying transport/service exception.
    """

    def __init__(self, operation: str, target: str, cause: BaseException) -> None:
        self.operation = operation
        self.target = target
        self.cause = cause
        super().__init__(f'{operation} failed for {target!r}: {cause}')


class StateTimeoutError(BuilderError, TimeoutError):
    """A server did not reach (or leave) a state before the deadline."""

    def __init__(
        self,
        server_uuid: str,
        *,
        desired_state: str | None = None,
        undesired_state: str | None = None,
        timeout: float,
        last_state: str | None = None,
    ) -> None:
        self.server_uuid = server_uuid
        self.desired_state = desired_state
        self.undesired_state = undesired_state
        self.timeout = timeout
        self.last_state = last_state
        if desired_state is not None:
            goal = f'enter {desired_state!r}'
        else:
            goal = f'exit {undesired_state!r}'
        super().__init__(
            f'server {server_uuid} did not {goal} within {timeout:g}s '
            f'(last state: {last_state!r})'
        )
