"""Direct solution of the one dimensional elliptic equation d/dx(A dS/dx) = F

With no cross terms and a single axis, the discrete equation is a tridiagonal
system that is solved exactly, instead of being relaxed.
"""

import numpy as np
import scipy.linalg

from pyelliptic.equation import SliceResult
from pyelliptic.params import BoundaryCondition, ConvergenceCriteria
from pyelliptic.util import abs_mean, undefined_mask


class LineEquation(object):
    """d/dx(A dS/dx) = F along a single axis with fixed end values

    A[i] lives halfway between cells i-1 and i, matching the staggering of the 2d separable form

    Parameters
    ----------
    A : ndarray, [n], float
    F : ndarray, [n], float
    params : Params
        one dimensional parameters; see Params.for_line
    """

    repairable = ()

    def __init__(self, A, F, params):
        if params.dim1.bc is not BoundaryCondition.FIXED:
            raise ValueError('only fixed boundary condition allowed, got {}'.format(params.dim1.bc.name))
        for name, c in (('A', A), ('F', F)):
            if np.shape(c) != params.shape:
                raise ValueError('coefficient {} has shape {}, expected {}'.format(name, np.shape(c), params.shape))
        self.A = A
        self.F = F
        self.params = params

    def held(self, S):
        """Cells whose value is kept: both ends, and every cell touching an undefined operand"""
        undef = self.params.undef
        n = len(S)
        A_e = np.append(self.A[1:], undef)
        missing = undefined_mask(S, undef)
        neighbour_missing = np.zeros(n, dtype=bool)
        neighbour_missing[1:] |= missing[:-1]
        neighbour_missing[:-1] |= missing[1:]
        held = (missing | neighbour_missing |
                undefined_mask(self.A, undef) | undefined_mask(A_e, undef) | undefined_mask(self.F, undef))
        held[0] = held[-1] = True
        return held

    def assemble(self, S):
        """Banded matrix and right hand side of the tridiagonal system

        Returns
        -------
        ab : ndarray, [3, n], float
            matrix in the (1, 1) banded layout of scipy.linalg.solve_banded;
            ab[0, i + 1] is the super diagonal of row i, ab[1, i] the diagonal, ab[2, i - 1] the sub diagonal
        rhs : ndarray, [n], float
        """
        n = len(S)
        A = self.A.astype(np.float64)
        held = self.held(S)
        solved = ~held

        ab = np.zeros((3, n))
        rhs = np.zeros(n)

        i = np.flatnonzero(solved)
        ab[2, i - 1] = A[i]
        ab[1, i] = -(A[i] + A[i + 1])
        ab[0, i + 1] = A[i + 1]
        rhs[i] = self.F[i] * self.params.dim1.spacing ** 2

        i = np.flatnonzero(held)
        ab[1, i] = 1
        rhs[i] = np.where(undefined_mask(S[i], self.params.undef), 0, S[i])
        return ab, rhs

    def solve(self, S, criteria=None):
        """Solve in place for S, keeping its end values

        Returns
        -------
        SliceResult
            loop count is zero; the solution is exact, unless it overflows
        """
        if np.shape(S) != self.params.shape:
            raise ValueError('solution has shape {}, expected {}'.format(np.shape(S), self.params.shape))
        if criteria is None:
            criteria = ConvergenceCriteria()
        ab, rhs = self.assemble(S)
        try:
            with np.errstate(all='ignore'):
                U = scipy.linalg.solve_banded((1, 1), ab, rhs, check_finite=False)
        except np.linalg.LinAlgError:
            # singular system; reported like a diverging iteration
            return SliceResult(S, 0, 0., False, True)
        solved = ~self.held(S)
        S[solved] = U[solved]
        norm = abs_mean(S, self.params.undef)
        overflowed = bool(np.isnan(norm) or norm > criteria.overflow_threshold)
        return SliceResult(S, 0, 0., not overflowed, overflowed)
