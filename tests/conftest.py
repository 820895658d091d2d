import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from registry_prune.settings import Settings

_ENV_VARS = [name.upper() for name in Settings.model_fields] + [
    "GITHUB_TOKEN",
    "GITHUB_REPO_OWNER",
]


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep the CI environment (GITHUB_TOKEN and friends) out of Settings."""
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)
