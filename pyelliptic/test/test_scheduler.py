import threading
import time

import numpy as np
import numpy.testing as npt
import pytest

from pyelliptic.equation import SeparableEquation
from pyelliptic.field import DimensionCombination, Field
from pyelliptic.params import Axis, Params
from pyelliptic.scheduler import SliceScheduler, SolveReport, default_executor, shutdown_default_executor
from pyelliptic.stabilization import StabilizationPolicy


def test_map_order(executor):
    """Results come back in submission order, whatever the completion order"""
    def task(i):
        time.sleep(0.01 * (5 - i))
        return i

    scheduler = SliceScheduler(executor)
    assert scheduler.map([lambda i=i: task(i) for i in range(5)]) == list(range(5))


def test_map_synchronous(scheduler):
    threads = scheduler.map([threading.current_thread for _ in range(3)])
    assert all(t is threading.current_thread() for t in threads)


def test_map_propagates(executor):
    def fail():
        raise RuntimeError('boom')

    scheduler = SliceScheduler(executor)
    with pytest.raises(RuntimeError):
        scheduler.map([lambda: 1, fail, lambda: 3])


def test_default_executor():
    pool = default_executor(2)
    assert default_executor() is pool
    assert SliceScheduler(pool).map([lambda: 42]) == [42]
    shutdown_default_executor()
    assert default_executor() is not pool
    shutdown_default_executor()


def poisson_fields(t_first=True):
    rng = np.random.RandomState(5)
    shape = (3, 2, 9, 10)
    S = Field.from_logical(np.zeros(shape), t_first=t_first)
    F = Field.from_logical(rng.normal(size=shape), t_first=t_first)
    A = Field.from_logical(np.ones(shape), t_first=t_first)
    C = Field.from_logical(np.ones(shape), t_first=t_first)
    return dict(S=S, A=A, B=None, C=C, F=F)


def build(b):
    params = Params(Axis(10), Axis(9))
    return SeparableEquation(b['A'], b['B'], b['C'], b['F'], params)


@pytest.mark.parametrize('t_first', [True, False])
def test_threaded_matches_synchronous(executor, t_first):
    fields = poisson_fields(t_first)
    report = SliceScheduler(executor).solve_planes(fields, DimensionCombination.XY, build, StabilizationPolicy())
    threaded = fields['S'].logical().copy()

    fields = poisson_fields(t_first)
    SliceScheduler().solve_planes(fields, DimensionCombination.XY, build, StabilizationPolicy())

    npt.assert_array_equal(threaded, fields['S'].logical())
    assert isinstance(report, SolveReport)
    assert len(report) == 6
    assert report.converged and report.ok
    assert report.results[1].identity == 't=1\tz=2'


def test_deterministic(executor):
    runs = []
    for _ in range(2):
        fields = poisson_fields()
        SliceScheduler(executor).solve_planes(fields, DimensionCombination.XY, build, StabilizationPolicy())
        runs.append(fields['S'].data.copy())
    npt.assert_array_equal(runs[0], runs[1])


def test_slices_independent():
    """Each slice is solved on its own forcing"""
    fields = poisson_fields()
    SliceScheduler().solve_planes(fields, DimensionCombination.XY, build, StabilizationPolicy())
    S = fields['S'].logical()

    single = np.zeros((9, 10))
    build(dict(A=np.ones((9, 10)), B=np.zeros((9, 10)), C=np.ones((9, 10)),
               F=fields['F'].logical()[2, 1])).solve(single)
    npt.assert_array_equal(S[2, 1], single)


def test_overflow_contained(executor):
    fields = poisson_fields()
    fields['A'].logical()[1, 0] = -1
    report = SliceScheduler(executor).solve_planes(
        fields, DimensionCombination.XY, build, StabilizationPolicy(modify=False))
    assert report.overflowed == ['t=2\tz=1']
    assert not report.ok
    assert [r.converged for r in report] == [True, True, False, True, True, True]


def test_repaired_scattered(executor):
    """Coefficients repaired on a copied plane are written back into their field"""
    fields = poisson_fields(t_first=False)
    fields['A'].logical()[0, 1, 3:5, 3:5] = -1
    report = SliceScheduler(executor).solve_planes(
        fields, DimensionCombination.XY, build, StabilizationPolicy(modify=True))
    assert report.repaired == ['t=1\tz=2']
    assert report.ok
    assert (fields['A'].logical()[0, 1, 1:-1, 1:] > 0).all()
