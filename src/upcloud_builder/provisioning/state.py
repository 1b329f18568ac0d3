"""Per-build shared state threaded through step ``run`` and ``cleanup``."""

from __future__ import annotations

import enum
from dataclasses import dataclass

from ..settings import BuilderSettings
from .models import ServerDetails


class StepAction(enum.Enum):
    """What the host should do after a step's ``run`` returns."""

    CONTINUE = 'continue'
    HALT = 'halt'


@dataclass(slots=True)
class BuildState:
    """Mutable state for one build.

    ``server`` is the published handle. It is set as soon as the server
    exists, so cleanup can find it even when ``run`` halted afterwards.
    """

    settings: BuilderSettings
    ssh_public_key: str = ''
    server: ServerDetails | None = None
    error: Exception | None = None

    @property
    def has_server(self) -> bool:
        return self.server is not None
