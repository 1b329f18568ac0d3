"""Build step that creates the ephemeral build server and tears it down.

``run`` flow (any failure halts the build):
  fetch plan -> size -> build request -> create -> publish handle
  -> wait for "started" -> re-publish handle

``cleanup`` flow (only when a handle was published):
  wait out of "maintenance" -> refresh details -> stop if needed
  -> locate disk -> delete server -> delete disk

The handle is written to ``BuildState.server`` right after creation so a
later cleanup can reap a server that never became ready.
"""

from __future__ import annotations

import logging
import time
from typing import Awaitable, Callable, TypeVar

from ..errors import BuilderError, RemoteAPIError
from ..observability import build_context
from ..protocols import BuildUi, ServerService
from ..settings import BuilderSettings
from .cleanup import (
    CleanupAction,
    CleanupReport,
    FailurePolicy,
    run_cleanup_pipeline,
)
from .models import (
    SERVER_STATE_MAINTENANCE,
    SERVER_STATE_STARTED,
    SERVER_STATE_STOPPED,
    LoginUser,
    Plan,
    ProvisionRequest,
    ServerDetails,
    ServerStorageDevice,
    StorageDeviceSpec,
)
from .plans import coalesce_positive, fetch_plan
from .state import BuildState, StepAction

logger = logging.getLogger(__name__)

T = TypeVar('T')

DEFAULT_STORAGE_SIZE = 10

WAIT_OUT_OF_MAINTENANCE = 'wait_out_of_maintenance'
REFRESH_DETAILS = 'refresh_details'
STOP_SERVER = 'stop_server'
LOCATE_DISK = 'locate_disk'
DELETE_SERVER = 'delete_server'
DELETE_DISK = 'delete_disk'


def build_server_title(prefix: str, now: float) -> str:
    """Unique per-run server title: ``{prefix}-{unix seconds}``."""
    return f'{prefix}-{int(now)}'


def build_provision_request(
    settings: BuilderSettings,
    plan: Plan,
    ssh_public_key: str,
    *,
    title: str,
) -> ProvisionRequest:
    """Assemble the create-server request from the resolved plan and settings.

    Explicit cpu/memory/storage settings override the plan's values. The disk
    falls back to ``DEFAULT_STORAGE_SIZE`` when neither provides a size.
    """
    storage_size = coalesce_positive(plan.storage_size, settings.storage_size)
    if storage_size <= 0:
        storage_size = DEFAULT_STORAGE_SIZE

    return ProvisionRequest(
        title=title,
        hostname=title,
        zone=settings.zone,
        core_number=coalesce_positive(plan.core_number, settings.cpu),
        memory_amount=coalesce_positive(plan.memory_amount, settings.memory),
        plan=plan.name,
        storage_devices=(
            StorageDeviceSpec(
                storage=settings.storage_uuid,
                title=f'{title}-disk1',
                size=storage_size,
            ),
        ),
        login_user=LoginUser(
            username=settings.ssh_username,
            ssh_keys=(ssh_public_key,),
        ),
    )


class CreateServerStep:
    """Creates the build server and guarantees its teardown."""

    def __init__(
        self,
        service: ServerService,
        ui: BuildUi,
        *,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._service = service
        self._ui = ui
        self._clock = clock

    async def run(self, state: BuildState) -> StepAction:
        title = build_server_title(state.settings.template_prefix, self._clock())
        with build_context(title):
            return await self._create(state, title)

    async def _create(self, state: BuildState, title: str) -> StepAction:
        settings = state.settings
        try:
            resolution = await fetch_plan(self._service, settings)
        except BuilderError as exc:
            return self._halt(state, exc, f'Error creating server "{title}": {exc}')
        except Exception as exc:
            error = RemoteAPIError('get_plans', title, exc)
            return self._halt(state, error, f'Error creating server "{title}": {exc}')

        request = build_provision_request(
            settings,
            resolution.plan,
            state.ssh_public_key,
            title=title,
        )
        logger.info(
            'Resolved sizing: plan=%r cores=%d memory=%d storage=%d',
            request.plan,
            request.core_number,
            request.memory_amount,
            request.storage_devices[0].size,
            extra={'server_title': title},
        )

        self._ui.say(f'Creating server "{title}" ...')
        try:
            server = await self._service.create_server(request)
        except Exception as exc:
            error = RemoteAPIError('create_server', title, exc)
            return self._halt(state, error, f'Error creating server "{title}": {exc}')

        # Publish before waiting so cleanup can always find the server.
        state.server = server
        logger.info(
            'Server created: uuid=%s title=%s',
            server.uuid,
            server.title,
            extra={'server_uuid': server.uuid, 'server_title': server.title},
        )

        self._ui.say(
            f'Waiting for server "{server.title}" to enter the '
            f'"{SERVER_STATE_STARTED}" state ...'
        )
        try:
            server = await self._service.wait_for_server_state(
                server.uuid,
                desired_state=SERVER_STATE_STARTED,
                timeout=settings.state_timeout,
            )
        except Exception as exc:
            error = _wrap('wait_for_server_state', server.title, exc)
            return self._halt(
                state,
                error,
                f'Error while waiting for server "{server.title}" to enter the '
                f'"{SERVER_STATE_STARTED}" state: {exc}',
            )

        state.server = server
        self._ui.say(f'Server "{server.title}" is now in "{SERVER_STATE_STARTED}" state')
        return StepAction.CONTINUE

    async def cleanup(self, state: BuildState) -> CleanupReport:
        """Stop and delete the published server and its disk.

        Never raises. Returns a report of what each teardown action did.
        """
        if state.server is None:
            return CleanupReport()

        teardown = _ServerTeardown(self._service, self._ui, state, state.server)
        with build_context(teardown.title):
            report = await run_cleanup_pipeline(teardown.actions(), ui=self._ui)
            logger.info(
                'Cleanup finished: succeeded=%s',
                report.succeeded,
                extra={'server_uuid': teardown.uuid, 'server_title': teardown.title},
            )
        return report

    def _halt(self, state: BuildState, error: Exception, message: str) -> StepAction:
        state.error = error
        self._ui.error(message)
        logger.error('Step halted: %s', message, extra={'step': 'create_server'})
        return StepAction.HALT


class _ServerTeardown:
    """Teardown actions for one published server handle."""

    def __init__(
        self,
        service: ServerService,
        ui: BuildUi,
        state: BuildState,
        server: ServerDetails,
    ) -> None:
        self._service = service
        self._ui = ui
        self._state = state
        self._timeout = state.settings.state_timeout
        self.uuid = server.uuid
        self.title = server.title
        self._details = server
        self._disk: ServerStorageDevice | None = None

    def actions(self) -> tuple[CleanupAction, ...]:
        title = self.title
        return (
            CleanupAction(
                name=WAIT_OUT_OF_MAINTENANCE,
                on_failure=FailurePolicy.ABORT,
                run=self.wait_out_of_maintenance,
                failure_message=(
                    f'Error while waiting for server "{title}" to exit the '
                    f'"{SERVER_STATE_MAINTENANCE}" state'
                ),
            ),
            CleanupAction(
                name=REFRESH_DETAILS,
                on_failure=FailurePolicy.ABORT,
                run=self.refresh_details,
                failure_message=f'Failed to get details for server "{title}"',
            ),
            CleanupAction(
                name=STOP_SERVER,
                on_failure=FailurePolicy.ABORT,
                run=self.stop_server,
                failure_message=f'Failed to stop server "{title}"',
            ),
            CleanupAction(
                name=LOCATE_DISK,
                on_failure=FailurePolicy.ABORT,
                run=self.locate_disk,
                failure_message=f'Failed to inspect storage of server "{title}"',
            ),
            CleanupAction(
                name=DELETE_SERVER,
                on_failure=FailurePolicy.CONTINUE,
                run=self.delete_server,
                failure_message=f'Failed to delete server "{title}"',
            ),
            CleanupAction(
                name=DELETE_DISK,
                on_failure=FailurePolicy.CONTINUE,
                run=self.delete_disk,
                failure_message=f'Failed to delete disk of server "{title}"',
            ),
        )

    async def wait_out_of_maintenance(self) -> bool:
        self._ui.say(
            f'Waiting for server "{self.title}" to exit the '
            f'"{SERVER_STATE_MAINTENANCE}" state ...'
        )
        await self._call(
            'wait_for_server_state',
            self._service.wait_for_server_state(
                self.uuid,
                undesired_state=SERVER_STATE_MAINTENANCE,
                timeout=self._timeout,
            ),
        )
        return True

    async def refresh_details(self) -> bool:
        self._details = await self._call(
            'get_server_details', self._service.get_server_details(self.uuid)
        )
        self._state.server = self._details
        return True

    async def stop_server(self) -> bool:
        if self._details.state == SERVER_STATE_STOPPED:
            return False

        self._ui.say(f'Stopping server "{self.title}" ...')
        await self._call('stop_server', self._service.stop_server(self.uuid))

        self._ui.say(
            f'Waiting for server "{self.title}" to enter the '
            f'"{SERVER_STATE_STOPPED}" state ...'
        )
        stopped = await self._call(
            'wait_for_server_state',
            self._service.wait_for_server_state(
                self.uuid,
                desired_state=SERVER_STATE_STOPPED,
                timeout=self._timeout,
            ),
        )
        self._state.server = stopped
        return True

    async def locate_disk(self) -> bool:
        # Storage is read from the pre-stop snapshot; stopping does not detach.
        self._disk = self._details.first_disk()
        return self._disk is not None

    async def delete_server(self) -> bool:
        self._ui.say(f'Deleting server "{self.title}" ...')
        await self._call('delete_server', self._service.delete_server(self.uuid))
        return True

    async def delete_disk(self) -> bool:
        if self._disk is None:
            return False
        disk = self._disk
        self._ui.say(f'Deleting disk "{disk.title}" ...')
        await self._call(
            'delete_storage',
            self._service.delete_storage(disk.uuid),
            target=disk.title,
        )
        return True

    async def _call(
        self,
        operation: str,
        pending: Awaitable[T],
        *,
        target: str | None = None,
    ) -> T:
        try:
            return await pending
        except BuilderError:
            raise
        except Exception as exc:
            raise RemoteAPIError(operation, target or self.title, exc) from exc


def _wrap(operation: str, target: str, exc: Exception) -> Exception:
    if isinstance(exc, BuilderError):
        return exc
    return RemoteAPIError(operation, target, exc)
