import pytest


@pytest.fixture(autouse=True)
def isolated_config(tmp_path, monkeypatch):
    """Point configuration at an empty location so a developer's file never leaks in."""
    path = tmp_path / "configuration.json"
    monkeypatch.setenv("PROMPTLAB_CONFIG", str(path))
    return path
