import logging
import signal
from pathlib import Path

import pytest

from tas_quickstart import logging_utils
from tas_quickstart.logging_utils import find_latest_log_path
from tests.helpers import FakeClock, FakeController

DEFAULT_TIMEOUT = 30


@pytest.hookimpl(hookwrapper=True, tryfirst=True)
def pytest_runtest_makereport(item, call):
    """Attach the newest tas-quickstart run log to failed test reports."""
    outcome = yield
    rep = outcome.get_result()
    if rep.when != "call" or not rep.failed:
        return

    tmp_path = getattr(item, "funcargs", {}).get("tmp_path")
    if not isinstance(tmp_path, Path):
        return

    logs = [find_latest_log_path(d) for d in (tmp_path / "data", tmp_path)]
    logs = [p for p in logs if p is not None]
    if not logs:
        return
    latest = max(logs, key=lambda p: p.stat().st_mtime)

    try:
        contents = latest.read_text(encoding="utf-8")
    except OSError as exc:
        contents = f"<could not read {latest}: {exc}>"
    rep.sections.append(("tas-quickstart run log", contents))


@pytest.fixture(autouse=True)
def _enforce_timeout(request):
    """SIGALRM-based per-test limit; ``@pytest.mark.timeout(N)`` overrides it."""
    marker = request.node.get_closest_marker("timeout")
    seconds = int(marker.args[0]) if marker and marker.args else DEFAULT_TIMEOUT
    if seconds <= 0:
        yield
        return

    def _expired(signum, frame):
        pytest.fail(f"Test timed out after {seconds} seconds", pytrace=False)

    previous = signal.signal(signal.SIGALRM, _expired)
    signal.alarm(seconds)
    try:
        yield
    finally:
        signal.alarm(0)
        signal.signal(signal.SIGALRM, previous)


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def fake_controller():
    return FakeController()


@pytest.fixture
def tas_dir(tmp_path):
    """A minimal TAS checkout: app.py and requirements.txt."""
    root = tmp_path / "tas"
    root.mkdir()
    (root / "app.py").write_text("print('tas')\n")
    (root / "requirements.txt").write_text("flask\n")
    return root


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch, tmp_path):
    """Keep CLI defaults from picking up the developer's environment."""
    monkeypatch.setenv("TAS_QUICKSTART_DATA_DIR", str(tmp_path / "data"))
    monkeypatch.delenv("TAS_DIR", raising=False)
    monkeypatch.delenv("TAS_URL", raising=False)


@pytest.fixture(autouse=True)
def _reset_logging():
    """Drop handlers installed by ``setup_logging`` during a test."""
    yield
    root = logging.getLogger()
    for handler in list(root.handlers):
        if not type(handler).__module__.startswith("_pytest"):
            root.removeHandler(handler)
            handler.close()
    logging_utils._is_quiet = False
