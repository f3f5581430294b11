import numpy as np
import numpy.testing as npt
import pytest

from pyelliptic.equation import SeparableEquation
from pyelliptic.params import Axis, BoundaryCondition, ConvergenceCriteria, Params
from pyelliptic.tridiagonal import LineEquation


def test_linear():
    """With constant A and no forcing the solution is linear between the ends"""
    params = Params.for_line(Axis(11, 0.1))
    S = np.zeros(11)
    S[-1] = 1
    result = LineEquation(np.ones(11), np.zeros(11), params).solve(S)
    assert result.converged and result.loops == 0
    npt.assert_allclose(S, np.linspace(0, 1, 11), atol=1e-12)


def test_matches_relaxation():
    """Agrees with the 2d relaxation of a problem with a single interior row and no dim2 coupling"""
    n = 12
    rng = np.random.RandomState(3)
    A = rng.uniform(1, 2, size=n)
    F = rng.normal(size=n)
    ends = rng.normal(size=2)

    S1 = np.zeros(n)
    S1[[0, -1]] = ends
    LineEquation(A, F, Params.for_line(Axis(n, 0.5))).solve(S1)

    params = Params(Axis(n, 0.5), Axis(3, 0.5))
    S2 = np.zeros((3, n))
    S2[:, [0, -1]] = ends
    zeros = np.zeros((3, n))
    equation = SeparableEquation(np.tile(A, (3, 1)), zeros, zeros, np.tile(F, (3, 1)), params)
    equation.solve(S2, ConvergenceCriteria(tolerance=1e-13))

    npt.assert_allclose(S1, S2[1], atol=1e-8)


def test_undefined_held():
    params = Params.for_line(Axis(9))
    S = np.zeros(9)
    S[4] = np.nan
    S[-1] = 1
    equation = LineEquation(np.ones(9), np.zeros(9), params)
    held = equation.held(S)
    assert held[[0, 3, 4, 5, 8]].all()
    assert not held[[1, 2, 6, 7]].any()

    equation.solve(S)
    assert np.isnan(S[4])
    assert S[3] == 0 and S[5] == 0
    # the defined pieces are solved between their held ends
    npt.assert_allclose(S[5:], np.linspace(0, 1, 4), atol=1e-12)
    npt.assert_allclose(S[:4], 0, atol=1e-12)


def test_assemble():
    params = Params.for_line(Axis(4, 2.))
    A = np.array([9., 1., 2., 3.])
    F = np.array([0., 1., 1., 0.])
    ab, rhs = LineEquation(A, F, params).assemble(np.array([5., 0., 0., 7.]))
    # row 1: A[1] S[0] - (A[1] + A[2]) S[1] + A[2] S[2]
    assert ab[2, 0] == 1 and ab[1, 1] == -3 and ab[0, 2] == 2
    # row 2: A[2] S[1] - (A[2] + A[3]) S[2] + A[3] S[3]
    assert ab[2, 1] == 2 and ab[1, 2] == -5 and ab[0, 3] == 3
    # dirichlet rows
    assert ab[1, 0] == 1 and ab[1, 3] == 1 and ab[0, 1] == 0 and ab[2, 2] == 0
    npt.assert_allclose(rhs, [5, 4, 4, 7])


@pytest.mark.parametrize('bc', [BoundaryCondition.PERIODIC, BoundaryCondition.EXPANDED])
def test_fixed_only(bc):
    with pytest.raises(ValueError):
        LineEquation(np.ones(5), np.zeros(5), Params.for_line(Axis(5, 1., bc)))


def test_overflow():
    params = Params.for_line(Axis(5))
    S = np.zeros(5)
    S[-1] = 1e12
    result = LineEquation(np.ones(5), np.zeros(5), params).solve(S)
    assert result.overflowed and not result.converged
