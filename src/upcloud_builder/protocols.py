"""Collaborator protocol interfaces for dependency injection.

The provisioning step receives concrete implementations through its
constructor: ``UpCloudServerService`` in production, ``InMemoryServerService``
in tests and dry runs. Anything matching these protocols is accepted.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from .provisioning.models import PlanCatalog, ProvisionRequest, ServerDetails


@runtime_checkable
class ServerService(Protocol):
    """Remote server lifecycle operations."""

    async def get_plans(self) -> PlanCatalog: ...
    async def create_server(self, request: ProvisionRequest) -> ServerDetails: ...
    async def get_server_details(self, uuid: str) -> ServerDetails: ...
    async def wait_for_server_state(
        self,
        uuid: str,
        *,
        desired_state: str | None = None,
        undesired_state: str | None = None,
        timeout: float,
    ) -> ServerDetails: ...
    async def stop_server(self, uuid: str) -> ServerDetails: ...
    async def delete_server(self, uuid: str) -> None: ...
    async def delete_storage(self, uuid: str) -> None: ...


@runtime_checkable
class BuildUi(Protocol):
    """User-facing progress sink. Implementations must not block."""

    def say(self, message: str) -> None: ...
    def error(self, message: str) -> None: ...
