"""Provisioning data model: plans, server requests and server snapshots.

All types are frozen. A ``ServerDetails`` snapshot is never mutated; each
fetch or wait returns a fresh one that replaces the previous handle.
"""

from __future__ import annotations

from dataclasses import dataclass, field

SERVER_STATE_STARTED = 'started'
SERVER_STATE_STOPPED = 'stopped'
SERVER_STATE_MAINTENANCE = 'maintenance'
SERVER_STATE_ERROR = 'error'

STORAGE_TYPE_DISK = 'disk'
STORAGE_TYPE_CDROM = 'cdrom'
STORAGE_ACTION_CLONE = 'clone'
STORAGE_TIER_MAXIOPS = 'maxiops'

IP_ACCESS_PRIVATE = 'private'
IP_ACCESS_PUBLIC = 'public'
IP_FAMILY_IPV4 = 'IPv4'
IP_FAMILY_IPV6 = 'IPv6'

PASSWORD_DELIVERY_NONE = 'none'


@dataclass(frozen=True, slots=True)
class Plan:
    """Named bundle of cores, memory (MiB) and default storage (GB)."""

    name: str = ''
    core_number: int = 0
    memory_amount: int = 0
    storage_size: int = 0


ZERO_PLAN = Plan()

PlanCatalog = tuple[Plan, ...]


@dataclass(frozen=True, slots=True)
class StorageDeviceSpec:
    storage: str
    title: str
    size: int
    action: str = STORAGE_ACTION_CLONE
    tier: str = STORAGE_TIER_MAXIOPS


@dataclass(frozen=True, slots=True)
class IPAddressSpec:
    access: str
    family: str


@dataclass(frozen=True, slots=True)
class LoginUser:
    username: str
    ssh_keys: tuple[str, ...]
    create_password: str = 'no'


DEFAULT_IP_ADDRESSES: tuple[IPAddressSpec, ...] = (
    IPAddressSpec(access=IP_ACCESS_PRIVATE, family=IP_FAMILY_IPV4),
    IPAddressSpec(access=IP_ACCESS_PUBLIC, family=IP_FAMILY_IPV4),
    IPAddressSpec(access=IP_ACCESS_PUBLIC, family=IP_FAMILY_IPV6),
)


@dataclass(frozen=True, slots=True)
class ProvisionRequest:
    """Everything the provider needs to create the build server."""

    title: str
    hostname: str
    zone: str
    core_number: int
    memory_amount: int
    plan: str
    storage_devices: tuple[StorageDeviceSpec, ...]
    login_user: LoginUser
    ip_addresses: tuple[IPAddressSpec, ...] = DEFAULT_IP_ADDRESSES
    password_delivery: str = PASSWORD_DELIVERY_NONE


@dataclass(frozen=True, slots=True)
class ServerStorageDevice:
    uuid: str
    title: str
    type: str


@dataclass(frozen=True, slots=True)
class ServerDetails:
    """Snapshot of a created server; the handle cleanup works from."""

    uuid: str
    title: str
    state: str
    hostname: str = ''
    zone: str = ''
    storage_devices: tuple[ServerStorageDevice, ...] = field(default_factory=tuple)

    def first_disk(self) -> ServerStorageDevice | None:
        """Return the first attached device of type ``disk``, if any."""
        for device in self.storage_devices:
            if device.type == STORAGE_TYPE_DISK:
                return device
        return None
