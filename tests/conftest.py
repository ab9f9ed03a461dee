import pytest

from services.store import jobs


@pytest.fixture(autouse=True)
def clear_jobs() -> None:
    """Isolate tests by clearing the in-memory job registry."""
    jobs.clear()
    yield
    jobs.clear()
