"""In-memory ServerService for tests and dry runs.

Satisfies the ServerService protocol but keeps servers and storages in dicts.
State waits resolve instantly unless the awaited state is configured to time
out. Every call is recorded in ``calls`` as ``(operation, uuid_or_title)``.
"""

from __future__ import annotations

from dataclasses import replace
from typing import Iterable, Mapping
from uuid import uuid4

from .errors import StateTimeoutError
from .provisioning.models import (
    SERVER_STATE_MAINTENANCE,
    SERVER_STATE_STARTED,
    SERVER_STATE_STOPPED,
    STORAGE_TYPE_DISK,
    Plan,
    PlanCatalog,
    ProvisionRequest,
    ServerDetails,
    ServerStorageDevice,
)


class InMemoryServerService:
    """Test server service that tracks calls.

    Args:
        plans: Catalog returned by ``get_plans``.
        failures: Operation name -> exception raised when it is called.
        timeout_states: States whose waits (desired or undesired) time out.
    """

    def __init__(
        self,
        plans: Iterable[Plan] = (),
        *,
        failures: Mapping[str, Exception] | None = None,
        timeout_states: Iterable[str] = (),
    ) -> None:
        self.plans: PlanCatalog = tuple(plans)
        self.failures = dict(failures or {})
        self.timeout_states = frozenset(timeout_states)
        self.calls: list[tuple[str, str]] = []
        self.servers: dict[str, ServerDetails] = {}
        self.storages: dict[str, ServerStorageDevice] = {}
        self.requests: list[ProvisionRequest] = []

    @property
    def operations(self) -> list[str]:
        return [op for op, _ in self.calls]

    def add_server(self, server: ServerDetails) -> ServerDetails:
        """Seed an existing server (and its storages) without recording a call."""
        self.servers[server.uuid] = server
        for device in server.storage_devices:
            self.storages[device.uuid] = device
        return server

    def _record(self, operation: str, target: str) -> None:
        self.calls.append((operation, target))
        failure = self.failures.get(operation)
        if failure is not None:
            raise failure

    def _server(self, server_uuid: str) -> ServerDetails:
        try:
            return self.servers[server_uuid]
        except KeyError:
            raise LookupError(f'server {server_uuid} not found') from None

    async def get_plans(self) -> PlanCatalog:
        self._record('get_plans', '')
        return self.plans

    async def create_server(self, request: ProvisionRequest) -> ServerDetails:
        self._record('create_server', request.title)
        self.requests.append(request)
        disks = tuple(
            ServerStorageDevice(
                uuid=str(uuid4()),
                title=spec.title,
                type=STORAGE_TYPE_DISK,
            )
            for spec in request.storage_devices
        )
        server = ServerDetails(
            uuid=str(uuid4()),
            title=request.title,
            state=SERVER_STATE_MAINTENANCE,
            hostname=request.hostname,
            zone=request.zone,
            storage_devices=disks,
        )
        return self.add_server(server)

    async def get_server_details(self, uuid: str) -> ServerDetails:
        self._record('get_server_details', uuid)
        return self._server(uuid)

    async def wait_for_server_state(
        self,
        uuid: str,
        *,
        desired_state: str | None = None,
        undesired_state: str | None = None,
        timeout: float,
    ) -> ServerDetails:
        self._record('wait_for_server_state', uuid)
        server = self._server(uuid)
        target = desired_state if desired_state is not None else undesired_state
        if target in self.timeout_states:
            raise StateTimeoutError(
                uuid,
                desired_state=desired_state,
                undesired_state=undesired_state,
                timeout=timeout,
                last_state=server.state,
            )

        if desired_state is not None:
            server = replace(server, state=desired_state)
        elif server.state == undesired_state:
            server = replace(server, state=SERVER_STATE_STARTED)
        self.servers[uuid] = server
        return server

    async def stop_server(self, uuid: str) -> ServerDetails:
        self._record('stop_server', uuid)
        return self._server(uuid)

    async def delete_server(self, uuid: str) -> None:
        self._record('delete_server', uuid)
        server = self._server(uuid)
        if server.state != SERVER_STATE_STOPPED:
            raise RuntimeError(f'server {uuid} must be stopped before deletion')
        del self.servers[uuid]

    async def delete_storage(self, uuid: str) -> None:
        self._record('delete_storage', uuid)
        if self.storages.pop(uuid, None) is None:
            raise LookupError(f'storage {uuid} not found')
