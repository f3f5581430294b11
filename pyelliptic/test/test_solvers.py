import logging

import numpy as np
import numpy.testing as npt
import pytest

from pyelliptic.field import Dimension, DimensionCombination, Field
from pyelliptic.params import BoundaryCondition
from pyelliptic.scheduler import SliceScheduler
from pyelliptic.solvers import EllipticEqSORSolver, EllipticEqSORSolver1D, GeneralEllipticEqSORSolver


def quadratic_field(shape, dx, dy, dz):
    """(x^2 + y^2 + z^2) / 2 on a [t, z, y, x] grid, logically ordered"""
    t, z, y, x = np.meshgrid(
        np.arange(shape[0]), np.arange(shape[1]) * dz, np.arange(shape[2]) * dy, np.arange(shape[3]) * dx,
        indexing='ij')
    return (x ** 2 + y ** 2 + z ** 2) / 2


def constant(shape, value, t_first=True):
    return Field.from_logical(np.full(shape, float(value)), t_first=t_first)


@pytest.mark.parametrize('t_first', [True, False])
def test_xy(executor, t_first):
    shape = (2, 3, 7, 9)
    exact = quadratic_field(shape, 0.5, 0.25, 1.)
    initial = exact.copy()
    initial[:, :, 1:-1, 1:-1] = 0
    S = Field.from_logical(initial, t_first=t_first)

    solver = EllipticEqSORSolver(dx=0.5, dy=0.25, scheduler=SliceScheduler(executor))
    solver.set_dim_combination(DimensionCombination.XY)
    solver.set_abc(constant(shape, 1, t_first), None, constant(shape, 1, t_first))
    solver.set_tolerance(1e-12)
    report = solver.solve(S, constant(shape, 2, t_first))

    assert report.converged and len(report) == 6
    npt.assert_allclose(S.logical(), exact, atol=1e-6)


@pytest.mark.parametrize('t_first', [True, False])
def test_yz(executor, t_first):
    shape = (2, 6, 8, 3)
    exact = quadratic_field(shape, 1., 0.5, 0.3)
    initial = exact.copy()
    initial[:, 1:-1, 1:-1, :] = 0
    S = Field.from_logical(initial, t_first=t_first)

    solver = EllipticEqSORSolver(dy=0.5, dz=0.3, scheduler=SliceScheduler(executor))
    solver.set_dim_combination('YZ')
    solver.set_abc(constant(shape, 1, t_first), constant(shape, 0, t_first), constant(shape, 1, t_first))
    solver.set_tolerance(1e-12)
    report = solver.solve(S, constant(shape, 2, t_first))

    assert len(report) == 2 * 3
    npt.assert_allclose(S.logical(), exact, atol=1e-6)


def test_general(executor):
    shape = (1, 2, 6, 6)
    exact = quadratic_field(shape, 1., 1., 1.)
    initial = exact.copy()
    initial[:, :, 1:-1, 1:-1] = 0
    S = Field.from_logical(initial)

    solver = GeneralEllipticEqSORSolver(scheduler=SliceScheduler(executor))
    solver.set_dim_combination(DimensionCombination.XY)
    solver.set_coefficients(constant(shape, 1), constant(shape, 0), constant(shape, 1), G=constant(shape, -2))
    solver.set_tolerance(1e-12)
    report = solver.solve(S)

    assert report.converged
    npt.assert_allclose(S.logical(), exact, atol=1e-6)


def test_line(executor):
    shape = (2, 2, 3, 11)
    initial = np.zeros(shape)
    initial[..., -1] = 1
    S = Field.from_logical(initial)

    solver = EllipticEqSORSolver1D(dx=0.1, scheduler=SliceScheduler(executor))
    solver.set_dimension(Dimension.X)
    solver.set_a(constant(shape, 1))
    report = solver.solve(S)

    assert len(report) == 2 * 2 * 3
    npt.assert_allclose(S.logical(), np.broadcast_to(np.linspace(0, 1, 11), shape), atol=1e-12)


def test_modify(executor, caplog):
    shape = (2, 1, 9, 9)
    A = constant(shape, 1)
    A.logical()[1, 0, 3:5, 3:5] = -1
    S = Field.from_logical(np.zeros(shape))

    solver = EllipticEqSORSolver(scheduler=SliceScheduler(executor))
    solver.set_dim_combination(DimensionCombination.XY)
    solver.set_abc(A, None, constant(shape, 1))

    caplog.set_level(logging.INFO, logger='pyelliptic')
    report = solver.solve(S.copy(), constant(shape, 1), modify=False)
    assert report.overflowed == ['t=2\tz=1']
    assert 'slices still overflow' in caplog.text

    report = solver.solve(S, constant(shape, 1), modify=True)
    assert report.ok and report.repaired == ['t=2\tz=1']
    assert (A.logical() > 0).all()
    assert 'Start solving elliptic equation using SOR with BCs (FIXED, FIXED)' in caplog.text
    assert 'Finished.' in caplog.text


def test_modify_contained(executor, caplog):
    """A slice that cannot be stabilized does not stop the others"""
    shape = (2, 1, 7, 7)
    A = constant(shape, 1)
    A.logical()[1] = -1
    S = constant(shape, 0)

    solver = EllipticEqSORSolver(scheduler=SliceScheduler(executor))
    solver.set_dim_combination(DimensionCombination.XY)
    solver.set_abc(A, None, constant(shape, 1))
    caplog.set_level(logging.INFO, logger='pyelliptic')
    report = solver.solve(S, constant(shape, 1), modify=True)

    assert report.overflowed == ['t=2\tz=1']
    assert report.results[0].converged
    assert np.isfinite(S.logical()[0]).all()
    assert (A.logical()[1] == -1).all()
    assert 't=2\tz=1 cannot be stabilized' in caplog.text


def test_verbose(caplog):
    shape = (1, 1, 7, 7)
    solver = EllipticEqSORSolver(scheduler=SliceScheduler(), verbose=True)
    solver.set_dim_combination(DimensionCombination.XY)
    solver.set_abc(constant(shape, 1), None, constant(shape, 1))
    caplog.set_level(logging.INFO, logger='pyelliptic')
    solver.solve(constant(shape, 0), constant(shape, 1))
    assert 't=1\tz=1 loops' in caplog.text


def test_configuration_errors():
    shape = (1, 1, 7, 7)
    S = constant(shape, 0)
    solver = EllipticEqSORSolver(scheduler=SliceScheduler())

    with pytest.raises(ValueError):
        solver.solve(S)     # no dimension combination
    with pytest.raises(ValueError):
        solver.set_dim_combination('XZ')
    solver.set_dim_combination(DimensionCombination.XY)
    with pytest.raises(ValueError):
        solver.solve(S)     # no coefficients

    solver.set_abc(constant(shape, 1), None, constant((1, 1, 7, 8), 1))
    with pytest.raises(ValueError):
        solver.solve(S)
    solver.set_abc(constant(shape, 1), None, constant(shape, 1, t_first=False))
    with pytest.raises(ValueError):
        solver.solve(S)
    solver.set_abc(constant(shape, 1), None, constant(shape, 1))
    with pytest.raises(ValueError):
        solver.solve(Field(np.zeros(shape, dtype=int)))

    with pytest.raises(ValueError):
        solver.set_max_loop_count(0)
    with pytest.raises(ValueError):
        solver.set_tolerance(-1)
    with pytest.raises(ValueError):
        solver.set_overflow_threshold(0)

    solver.set_dim_combination(DimensionCombination.YZ)
    with pytest.raises(ValueError):
        solver.solve(S)     # a single level

    with pytest.raises(ValueError):
        GeneralEllipticEqSORSolver(scheduler=SliceScheduler()).set_coefficients(constant(shape, 1), None, None)


def test_line_configuration_errors():
    shape = (1, 1, 5, 5)
    S = constant(shape, 0)
    solver = EllipticEqSORSolver1D(bc_x=BoundaryCondition.PERIODIC, scheduler=SliceScheduler())
    with pytest.raises(ValueError):
        solver.solve(S)
    solver.set_dimension('X')
    solver.set_a(constant(shape, 1))
    with pytest.raises(ValueError):
        solver.solve(S)
    solver.set_dimension(Dimension.Y)
    solver.solve(S)
