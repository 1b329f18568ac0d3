"""CreateServerStep.cleanup tests: ordering, abort/continue policy, no-op."""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest

from upcloud_builder.errors import RemoteAPIError, StateTimeoutError
from upcloud_builder.inmemory import InMemoryServerService
from upcloud_builder.protocols import ServerService
from upcloud_builder.provisioning.cleanup import (
    OUTCOME_FAILED,
    OUTCOME_NOT_RUN,
    OUTCOME_OK,
    OUTCOME_SKIPPED,
)
from upcloud_builder.provisioning.create_server import (
    DELETE_DISK,
    DELETE_SERVER,
    LOCATE_DISK,
    REFRESH_DETAILS,
    STOP_SERVER,
    WAIT_OUT_OF_MAINTENANCE,
    CreateServerStep,
)
from upcloud_builder.provisioning.models import (
    SERVER_STATE_MAINTENANCE,
    SERVER_STATE_STARTED,
    SERVER_STATE_STOPPED,
    STORAGE_TYPE_CDROM,
    STORAGE_TYPE_DISK,
    ServerDetails,
    ServerStorageDevice,
)
from upcloud_builder.provisioning.state import BuildState
from upcloud_builder.ui import RecordingUi

SERVER_UUID = '00798b85-efdc-41ca-8021-f6ef457b8531'
DISK_UUID = '01eff7ad-168e-413e-83b0-054f6a28fa23'


def _server(
    state: str = SERVER_STATE_STARTED,
    devices: tuple[ServerStorageDevice, ...] | None = None,
) -> ServerDetails:
    if devices is None:
        devices = (
            ServerStorageDevice(uuid=DISK_UUID, title='build-1-disk1', type=STORAGE_TYPE_DISK),
        )
    return ServerDetails(
        uuid=SERVER_UUID,
        title='build-1',
        state=state,
        storage_devices=devices,
    )


def _setup(settings, server: ServerDetails, **service_kwargs):
    service = InMemoryServerService(**service_kwargs)
    service.add_server(server)
    ui = RecordingUi()
    step = CreateServerStep(service, ui)
    state = BuildState(settings=settings, server=server)
    return step, service, ui, state


# ── No handle ────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_cleanup_without_handle_makes_no_remote_calls(settings):
    service = AsyncMock(spec=ServerService)
    ui = RecordingUi()
    step = CreateServerStep(service, ui)

    report = await step.cleanup(BuildState(settings=settings))

    assert report.outcomes == ()
    assert service.method_calls == []
    assert ui.messages == []


# ── Full teardown ────────────────────────────────────────────────────


class TestTeardownOrder:
    @pytest.mark.asyncio
    async def test_running_server_is_stopped_before_delete(self, settings):
        step, service, ui, state = _setup(settings, _server())

        report = await step.cleanup(state)

        assert report.succeeded
        assert service.calls == [
            ('wait_for_server_state', SERVER_UUID),
            ('get_server_details', SERVER_UUID),
            ('stop_server', SERVER_UUID),
            ('wait_for_server_state', SERVER_UUID),
            ('delete_server', SERVER_UUID),
            ('delete_storage', DISK_UUID),
        ]
        assert service.servers == {}
        assert service.storages == {}
        assert ui.errors == []
        assert ui.said == [
            'Waiting for server "build-1" to exit the "maintenance" state ...',
            'Stopping server "build-1" ...',
            'Waiting for server "build-1" to enter the "stopped" state ...',
            'Deleting server "build-1" ...',
            'Deleting disk "build-1-disk1" ...',
        ]

    @pytest.mark.asyncio
    async def test_already_stopped_server_skips_stop(self, settings):
        step, service, _, state = _setup(settings, _server(SERVER_STATE_STOPPED))

        report = await step.cleanup(state)

        assert report.status_of(STOP_SERVER) == OUTCOME_SKIPPED
        assert 'stop_server' not in service.operations
        assert service.operations == [
            'wait_for_server_state',
            'get_server_details',
            'delete_server',
            'delete_storage',
        ]

    @pytest.mark.asyncio
    async def test_server_in_maintenance_is_waited_out(self, settings):
        step, service, _, state = _setup(settings, _server(SERVER_STATE_MAINTENANCE))

        report = await step.cleanup(state)

        assert report.succeeded
        assert service.servers == {}

    @pytest.mark.asyncio
    async def test_handle_is_refreshed_during_cleanup(self, settings):
        step, _, _, state = _setup(settings, _server())

        await step.cleanup(state)

        assert state.server is not None
        assert state.server.state == SERVER_STATE_STOPPED

    @pytest.mark.asyncio
    async def test_delete_never_precedes_completed_stop_wait(self, settings):
        step, service, _, state = _setup(settings, _server())

        await step.cleanup(state)

        ops = service.operations
        delete_at = ops.index('delete_server')
        stop_at = ops.index('stop_server')
        assert stop_at < delete_at
        assert 'wait_for_server_state' in ops[stop_at:delete_at]


# ── Disk discovery ───────────────────────────────────────────────────


class TestDiskDiscovery:
    @pytest.mark.asyncio
    async def test_only_first_disk_is_deleted(self, settings):
        devices = (
            ServerStorageDevice(uuid='cd-1', title='installer', type=STORAGE_TYPE_CDROM),
            ServerStorageDevice(uuid='disk-1', title='first', type=STORAGE_TYPE_DISK),
            ServerStorageDevice(uuid='disk-2', title='second', type=STORAGE_TYPE_DISK),
        )
        step, service, _, state = _setup(settings, _server(devices=devices))

        await step.cleanup(state)

        deletes = [target for op, target in service.calls if op == 'delete_storage']
        assert deletes == ['disk-1']

    @pytest.mark.asyncio
    async def test_no_disk_skips_storage_delete(self, settings):
        step, service, _, state = _setup(settings, _server(devices=()))

        report = await step.cleanup(state)

        assert report.status_of(LOCATE_DISK) == OUTCOME_SKIPPED
        assert report.status_of(DELETE_DISK) == OUTCOME_SKIPPED
        assert report.succeeded
        assert 'delete_storage' not in service.operations


# ── Abort-on-failure actions ─────────────────────────────────────────


class TestAbortingFailures:
    @pytest.mark.asyncio
    async def test_maintenance_wait_timeout_aborts_everything(self, settings):
        step, service, ui, state = _setup(
            settings,
            _server(SERVER_STATE_MAINTENANCE),
            timeout_states={SERVER_STATE_MAINTENANCE},
        )

        report = await step.cleanup(state)

        assert service.operations == ['wait_for_server_state']
        assert report.status_of(WAIT_OUT_OF_MAINTENANCE) == OUTCOME_FAILED
        assert report.status_of(DELETE_SERVER) == OUTCOME_NOT_RUN
        assert report.aborted
        assert ui.errors[0].startswith(
            'Error while waiting for server "build-1" to exit the "maintenance" state: '
        )

    @pytest.mark.asyncio
    async def test_details_failure_aborts(self, settings):
        step, service, ui, state = _setup(
            settings,
            _server(),
            failures={'get_server_details': RuntimeError('api down')},
        )

        report = await step.cleanup(state)

        assert report.status_of(REFRESH_DETAILS) == OUTCOME_FAILED
        assert 'delete_server' not in service.operations
        assert ui.errors == ['Failed to get details for server "build-1": api down']

    @pytest.mark.asyncio
    async def test_stop_failure_prevents_deletion(self, settings):
        step, service, ui, state = _setup(
            settings,
            _server(),
            failures={'stop_server': RuntimeError('locked')},
        )

        report = await step.cleanup(state)

        assert report.status_of(STOP_SERVER) == OUTCOME_FAILED
        assert report.status_of(DELETE_SERVER) == OUTCOME_NOT_RUN
        assert report.status_of(DELETE_DISK) == OUTCOME_NOT_RUN
        assert 'delete_server' not in service.operations
        assert 'delete_storage' not in service.operations
        assert ui.errors == ['Failed to stop server "build-1": locked']

    @pytest.mark.asyncio
    async def test_stop_wait_timeout_prevents_deletion(self, settings):
        step, service, ui, state = _setup(
            settings,
            _server(),
            timeout_states={SERVER_STATE_STOPPED},
        )

        report = await step.cleanup(state)

        assert report.status_of(STOP_SERVER) == OUTCOME_FAILED
        assert 'delete_server' not in service.operations
        assert 'stop_server' in service.operations


# ── Continue-on-failure actions ──────────────────────────────────────


class TestContinuingFailures:
    @pytest.mark.asyncio
    async def test_disk_deleted_even_when_server_delete_fails(self, settings):
        step, service, ui, state = _setup(
            settings,
            _server(),
            failures={'delete_server': RuntimeError('server busy')},
        )

        report = await step.cleanup(state)

        assert report.status_of(DELETE_SERVER) == OUTCOME_FAILED
        assert report.status_of(DELETE_DISK) == OUTCOME_OK
        assert service.operations.count('delete_storage') == 1
        assert ('delete_storage', DISK_UUID) in service.calls
        assert ui.errors == ['Failed to delete server "build-1": server busy']
        assert not report.succeeded
        assert not report.aborted

    @pytest.mark.asyncio
    async def test_disk_delete_failure_is_reported_not_raised(self, settings):
        step, _, ui, state = _setup(
            settings,
            _server(),
            failures={'delete_storage': RuntimeError('storage attached')},
        )

        report = await step.cleanup(state)

        assert report.status_of(DELETE_SERVER) == OUTCOME_OK
        assert report.status_of(DELETE_DISK) == OUTCOME_FAILED
        assert ui.errors == ['Failed to delete disk of server "build-1": storage attached']


# ── Error taxonomy ───────────────────────────────────────────────────


def _outcome(report, name):
    return next(o for o in report.outcomes if o.name == name)


class TestTeardownErrors:
    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ('operation', 'action', 'target'),
        [
            ('wait_for_server_state', WAIT_OUT_OF_MAINTENANCE, 'build-1'),
            ('get_server_details', REFRESH_DETAILS, 'build-1'),
            ('stop_server', STOP_SERVER, 'build-1'),
            ('delete_server', DELETE_SERVER, 'build-1'),
            ('delete_storage', DELETE_DISK, 'build-1-disk1'),
        ],
    )
    async def test_provider_failures_are_wrapped(self, settings, operation, action, target):
        cause = RuntimeError('boom')
        step, _, ui, state = _setup(settings, _server(), failures={operation: cause})

        report = await step.cleanup(state)

        error = _outcome(report, action).error
        assert isinstance(error, RemoteAPIError)
        assert error.operation == operation
        assert error.target == target
        assert error.cause is cause
        assert error.__cause__ is cause
        assert ui.errors[0].endswith(': boom')

    @pytest.mark.asyncio
    async def test_state_timeout_is_not_wrapped(self, settings):
        step, _, _, state = _setup(
            settings,
            _server(),
            timeout_states={SERVER_STATE_STOPPED},
        )

        report = await step.cleanup(state)

        assert isinstance(_outcome(report, STOP_SERVER).error, StateTimeoutError)
