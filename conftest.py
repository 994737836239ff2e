import pytest

from evtrip.utils.logger import setup_logger


@pytest.fixture(autouse=True, scope="session")
def _quiet_logging():
    setup_logger("SILENT")
    yield
