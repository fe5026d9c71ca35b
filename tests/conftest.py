"""Root-level pytest fixtures for the connflow test suite.

Provides shared configuration fixtures following the Pydantic-based
architecture. Tests build configs through these fixtures instead of raw dicts.
"""

import pytest
from pathlib import Path
import tempfile
import shutil

from connflow.schemas import ParamConfig, UserConfig, resolve_config
from tests.helpers.fake_tools import write_study_inputs


# =============================================================================
# Configuration Fixtures (Pydantic-based)
# =============================================================================

@pytest.fixture
def param_config():
    """Expert configuration with all defaults."""
    return ParamConfig()


@pytest.fixture
def internal_config(param_config):
    """Fully validated runtime configuration (no overrides)."""
    return resolve_config(param_config, None, None)


@pytest.fixture
def make_config(param_config):
    """Factory fixture for creating custom test configs.

    Returns a callable that accepts UserConfig-compatible kwargs.

    Examples
    --------
    >>> def test_streamlines(make_config):
    ...     config = make_config(STREAMLINES="5M")
    ...     assert config.tractography.streamlines == "5M"
    """
    def _make(**user_overrides):
        """Create InternalConfig with user overrides."""
        if user_overrides:
            user = UserConfig(**user_overrides)
            return resolve_config(param_config, user, None)
        else:
            return resolve_config(param_config, None, None)

    return _make


# =============================================================================
# Directory Fixtures
# =============================================================================

@pytest.fixture
def temp_dir():
    """Temporary directory that is cleaned up after test."""
    d = tempfile.mkdtemp()
    yield Path(d)
    shutil.rmtree(d, ignore_errors=True)


@pytest.fixture
def study_dirs(temp_dir):
    """Empty study tree: BIDS, derivatives, templates, atlases."""
    dirs = {
        "bids": temp_dir / "BIDS",
        "derivatives": temp_dir / "derivatives",
        "templates": temp_dir / "templates",
        "atlases": temp_dir / "atlases",
    }
    for d in dirs.values():
        d.mkdir(parents=True, exist_ok=True)
    return dirs


@pytest.fixture
def study_config(make_config, study_dirs):
    """InternalConfig for sub-001 pointing at the temporary study tree."""
    return make_config(
        SUBJECT="sub-001",
        BIDS_DIR=str(study_dirs["bids"]),
        DERIVATIVES_DIR=str(study_dirs["derivatives"]),
        TEMPLATE_DIR=str(study_dirs["templates"]),
        ATLAS_DIR=str(study_dirs["atlases"]),
    )


@pytest.fixture
def study(study_config):
    """Study tree with raw scans for sub-001 plus templates and atlas on disk."""
    write_study_inputs(study_config, "sub-001")
    return study_config
