"""UpCloudServerService: ServerService backed by the UpCloud API.

Translates between the provisioning model and UpCloud's JSON documents, and
implements bounded state waits by polling server details.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Callable

from ..errors import StateTimeoutError
from ..provisioning.models import (
    Plan,
    PlanCatalog,
    ProvisionRequest,
    ServerDetails,
    ServerStorageDevice,
)
from .upcloud_client import UpCloudClient

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL = 5.0  # seconds


def request_to_payload(request: ProvisionRequest) -> dict[str, Any]:
    """Render a ProvisionRequest as an UpCloud ``server`` document.

    Core and memory are sent whenever positive, with or without a plan name.
    Zero values are left out and the API applies its own rules.
    """
    payload: dict[str, Any] = {
        "zone": request.zone,
        "title": request.title,
        "hostname": request.hostname,
        "password_delivery": request.password_delivery,
        "storage_devices": {
            "storage_device": [
                {
                    "action": device.action,
                    "storage": device.storage,
                    "title": device.title,
                    "size": device.size,
                    "tier": device.tier,
                }
                for device in request.storage_devices
            ]
        },
        "ip_addresses": {
            "ip_address": [
                {"access": ip.access, "family": ip.family}
                for ip in request.ip_addresses
            ]
        },
        "login_user": {
            "create_password": request.login_user.create_password,
            "username": request.login_user.username,
            "ssh_keys": {"ssh_key": list(request.login_user.ssh_keys)},
        },
    }
    if request.plan:
        payload["plan"] = request.plan
    if request.core_number > 0:
        payload["core_number"] = str(request.core_number)
    if request.memory_amount > 0:
        payload["memory_amount"] = str(request.memory_amount)
    return payload


def plan_from_payload(data: dict[str, Any]) -> Plan:
    return Plan(
        name=data.get("name", ""),
        core_number=int(data.get("core_number", 0)),
        memory_amount=int(data.get("memory_amount", 0)),
        storage_size=int(data.get("storage_size", 0)),
    )


def server_from_payload(data: dict[str, Any]) -> ServerDetails:
    devices = data.get("storage_devices", {}).get("storage_device", [])
    return ServerDetails(
        uuid=data["uuid"],
        title=data.get("title", ""),
        state=data.get("state", ""),
        hostname=data.get("hostname", ""),
        zone=data.get("zone", ""),
        storage_devices=tuple(
            ServerStorageDevice(
                uuid=device.get("storage", ""),
                title=device.get("storage_title", ""),
                type=device.get("type", ""),
            )
            for device in devices
        ),
    )


class UpCloudServerService:
    """ServerService backed by UpCloudClient.

    Conforms to the ServerService protocol defined in protocols.py.
    """

    def __init__(
        self,
        client: UpCloudClient,
        *,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        monotonic: Callable[[], float] = time.monotonic,
    ) -> None:
        self._client = client
        self._poll_interval = poll_interval
        self._monotonic = monotonic

    async def get_plans(self) -> PlanCatalog:
        plans = await self._client.list_plans()
        return tuple(plan_from_payload(p) for p in plans)

    async def create_server(self, request: ProvisionRequest) -> ServerDetails:
        logger.info(
            "Creating server: title=%s zone=%s",
            request.title,
            request.zone,
            extra={"server_title": request.title},
        )
        result = await self._client.create_server(request_to_payload(request))
        return server_from_payload(result)

    async def get_server_details(self, uuid: str) -> ServerDetails:
        return server_from_payload(await self._client.get_server(uuid))

    async def wait_for_server_state(
        self,
        uuid: str,
        *,
        desired_state: str | None = None,
        undesired_state: str | None = None,
        timeout: float,
    ) -> ServerDetails:
        """Poll until ``desired_state`` is reached or ``undesired_state`` is left.

        Raises:
            StateTimeoutError: If neither happens within ``timeout`` seconds.
            ValueError: If both or neither target states are given.
        """
        if (desired_state is None) == (undesired_state is None):
            raise ValueError("exactly one of desired_state/undesired_state is required")

        deadline = self._monotonic() + timeout
        last_state: str | None = None
        while True:
            details = await self.get_server_details(uuid)
            last_state = details.state
            if desired_state is not None and details.state == desired_state:
                return details
            if undesired_state is not None and details.state != undesired_state:
                return details

            remaining = deadline - self._monotonic()
            if remaining <= 0:
                raise StateTimeoutError(
                    uuid,
                    desired_state=desired_state,
                    undesired_state=undesired_state,
                    timeout=timeout,
                    last_state=last_state,
                )
            logger.debug(
                "Server %s in state %s, polling again",
                uuid,
                details.state,
                extra={"server_uuid": uuid},
            )
            await asyncio.sleep(min(self._poll_interval, remaining))

    async def stop_server(self, uuid: str) -> ServerDetails:
        return server_from_payload(await self._client.stop_server(uuid))

    async def delete_server(self, uuid: str) -> None:
        await self._client.delete_server(uuid)

    async def delete_storage(self, uuid: str) -> None:
        await self._client.delete_storage(uuid)
