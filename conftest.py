from concurrent.futures import ThreadPoolExecutor

import pytest

from pyelliptic.scheduler import SliceScheduler


def pytest_addoption(parser):
    parser.addoption("--workers", action="store", default="4",
        help="number of worker threads used by threaded solves")


@pytest.fixture
def executor(request):
    """Worker pool for tests that exercise threaded solves; shut down afterwards"""
    workers = int(request.config.getoption("--workers"))
    pool = ThreadPoolExecutor(max_workers=workers)
    yield pool
    pool.shutdown(wait=True)


@pytest.fixture
def scheduler():
    """Scheduler running slices synchronously, in submission order"""
    return SliceScheduler()
