import logging
from collections.abc import Iterator

import pytest

from git_autosync.constants import APP_NAME


@pytest.fixture(autouse=True)
def capture_app_logs(caplog: pytest.LogCaptureFixture) -> Iterator[None]:
    """Lets caplog see every record, whatever level a previous setup_logging left.

    Handlers installed by the CLI are removed afterwards so they never write
    to a closed capture stream.
    """
    caplog.set_level(logging.DEBUG, logger=APP_NAME)
    yield
    logger = logging.getLogger(APP_NAME)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
