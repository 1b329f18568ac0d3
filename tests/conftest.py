"""Pytest configuration for upcloud_builder tests."""
import sys
from pathlib import Path

# Add src/ to path for src-layout imports without an editable install
_PROJECT_ROOT = Path(__file__).parent.parent
_SRC = _PROJECT_ROOT / 'src'
if str(_SRC) not in sys.path:
    sys.path.insert(0, str(_SRC))

import pytest

from upcloud_builder.provisioning.models import Plan
from upcloud_builder.settings import BuilderSettings


@pytest.fixture
def settings():
    """Valid settings with no explicit sizing."""
    return BuilderSettings(
        api_user='builder',
        api_password='secret',
        zone='fi-hel1',
        storage_uuid='01000000-0000-4000-8000-000030200200',
        state_timeout=60.0,
    )


@pytest.fixture
def catalog():
    return (
        Plan(name='1xCPU-1GB', core_number=1, memory_amount=1024, storage_size=25),
        Plan(name='1xCPU-2GB', core_number=1, memory_amount=2048, storage_size=50),
        Plan(name='2xCPU-4GB', core_number=2, memory_amount=4096, storage_size=80),
    )
