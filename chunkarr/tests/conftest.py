import pathlib

import pytest

from chunkarr.config import config


@pytest.fixture(params=[str, pathlib.Path])
def path_type(request):
    return request.param


@pytest.fixture(autouse=True)
def reset_config():
    yield
    config.reset()
