"""Elliptic equations over a single slice, relaxed by SOR

Each equation object wraps the coefficient buffers of one slice together with
the session parameters, and knows how to relax a solution buffer in place
and how to evaluate its own discrete residual.
"""

from collections import namedtuple

import numpy as np
from cached_property import cached_property

from pyelliptic import kernel
from pyelliptic.params import BoundaryCondition, ConvergenceCriteria
from pyelliptic.util import defined_mask, undefined_mask


class SliceResult(namedtuple('SliceResult', [
        'solved', 'loops', 'speed', 'converged', 'overflowed', 'history', 'repaired', 'identity'])):
    """Outcome of relaxing one slice

    Attributes
    ----------
    solved : ndarray
        the solution buffer; relaxed in place
    loops : int
        iteration count reached
    speed : float
        last relative change of the mean absolute value
    converged : bool
        stopped because speed dropped below tolerance;
        False if the loop count ran out or the iteration overflowed
    overflowed : bool
    history : ndarray, [loops + 1], float
        relative change after every sweep
    repaired : bool
        coefficients were modified to stabilize the iteration
    identity : str
        human readable description of the slice
    """
    __slots__ = ()

    def __new__(cls, solved, loops, speed, converged, overflowed, history=None, repaired=False, identity=''):
        if history is None:
            history = np.zeros(0)
        return super(SliceResult, cls).__new__(
            cls, solved, loops, speed, converged, overflowed, history, repaired, identity)

    def describe(self):
        return '{} loops {:4d} and tolerance is {:g}{}'.format(
            self.identity, self.loops, self.speed, '   overflows!' if self.overflowed else '')


def _rolled(a, axis0=0, axis1=0):
    """a[j + axis0, i + axis1] at every [j, i], with wrapping"""
    return np.roll(np.roll(a, -axis0, axis=0), -axis1, axis=1)


class Equation(object):
    """Abstract interface of an elliptic equation on one slice"""

    # coefficient buffers the stabilization policy may modify
    repairable = ()
    # A and C live between cells rather than on them
    staggered = False

    def __init__(self, params, **coefficients):
        self.params = params
        for name, c in coefficients.items():
            if np.shape(c) != params.shape:
                raise ValueError('coefficient {} has shape {}, expected {}'.format(name, np.shape(c), params.shape))
        self.coefficients = coefficients

    def relax(self, S, criteria, history):
        raise NotImplementedError

    def residual(self, S):
        raise NotImplementedError

    def check(self, S):
        if S.shape != self.params.shape:
            raise ValueError('solution has shape {}, expected {}'.format(S.shape, self.params.shape))

    def solve(self, S, criteria=None):
        """Relax S in place

        Parameters
        ----------
        S : ndarray, [n2, n1], float
            initial guess and boundary values; receives the solution
        criteria : ConvergenceCriteria, optional

        Returns
        -------
        SliceResult
        """
        self.check(S)
        if criteria is None:
            criteria = ConvergenceCriteria()
        history = np.zeros(criteria.max_loop_count + 2)
        loops, speed, overflowed = self.relax(S, criteria, history)
        converged = (not overflowed) and speed < criteria.tolerance
        return SliceResult(S, int(loops), float(speed), converged, bool(overflowed), history[:loops + 1])

    @cached_property
    def swept(self):
        """Mask of the cells a sweep visits"""
        n2, n1 = self.params.shape
        rows = np.zeros(n2, dtype=bool)
        cols = np.zeros(n1, dtype=bool)
        rows[1:-1] = True
        cols[1:-1] = True
        if self.params.dim2.bc is BoundaryCondition.PERIODIC:
            rows[:] = True
        if self.params.dim1.bc is BoundaryCondition.PERIODIC:
            cols[:] = True
        return rows[:, None] & cols[None, :]

    def stencil_defined(self, S):
        """Cells whose 9 point neighbourhood in S is fully defined"""
        undef = self.params.undef
        missing = undefined_mask(S, undef)
        bad = np.zeros_like(missing)
        for dj in (-1, 0, 1):
            for di in (-1, 0, 1):
                bad |= _rolled(missing, dj, di)
        return ~bad


class SeparableEquation(Equation):
    """d/dx(A dS/dx) + d/dy(B dS/dx) + d/dx(B dS/dy) + d/dy(C dS/dy) = F

    A and C are staggered: A[j, i] lives halfway between cells i-1 and i along dim1,
    C[j, i] halfway between rows j-1 and j along dim2. B and F live on the cells.
    If A C - B^2 > 0 everywhere, the solution is unique.
    """

    repairable = ('A', 'C')
    staggered = True

    def __init__(self, A, B, C, F, params):
        super(SeparableEquation, self).__init__(params, A=A, B=B, C=C, F=F)
        self.A, self.B, self.C, self.F = A, B, C, F

    def relax(self, S, criteria, history):
        p = self.params
        return kernel.relax_separable(
            S, self.A, self.B, self.C, self.F,
            int(p.dim1.bc), int(p.dim2.bc),
            p.ratio_sqr, p.ratio_qtr, p.spacing_sqr, p.optimal_relaxation_argument, p.undef,
            criteria.max_loop_count, criteria.tolerance, criteria.overflow_threshold, history,
        )

    def sweep(self, S):
        """Single in place sweep, without boundary expansion or convergence check"""
        self.check(S)
        p = self.params
        kernel.sweep_separable(
            S, self.A, self.B, self.C, self.F,
            int(p.dim1.bc), int(p.dim2.bc),
            p.ratio_sqr, p.ratio_qtr, p.spacing_sqr, p.optimal_relaxation_argument, p.undef,
        )
        return S

    def residual(self, S):
        """Discrete residual, multiplied by the squared dim2 spacing

        Returns
        -------
        ndarray, [n2, n1], float
            zero outside the swept region and wherever an operand is undefined
        """
        p = self.params
        A, B, C, F = self.A, self.B, self.C, self.F
        S_e, S_w = _rolled(S, 0, 1), _rolled(S, 0, -1)
        S_n, S_s = _rolled(S, 1, 0), _rolled(S, -1, 0)
        S_ne, S_nw = _rolled(S, 1, 1), _rolled(S, 1, -1)
        S_se, S_sw = _rolled(S, -1, 1), _rolled(S, -1, -1)
        A_e, C_n = _rolled(A, 0, 1), _rolled(C, 1, 0)
        B_e, B_w = _rolled(B, 0, 1), _rolled(B, 0, -1)
        B_n, B_s = _rolled(B, 1, 0), _rolled(B, -1, 0)

        with np.errstate(all='ignore'):
            R = ((A_e * (S_e - S) - A * (S - S_w)) * p.ratio_sqr +
                 (B_e * (S_ne - S_se) - B_w * (S_nw - S_sw)) * p.ratio_qtr +
                 (B_n * (S_ne - S_nw) - B_s * (S_se - S_sw)) * p.ratio_qtr +
                 (C_n * (S_n - S) - C * (S - S_s))) - F * p.spacing_sqr

        valid = self.swept & self.stencil_defined(S) & \
            defined_mask(F, A, A_e, C, C_n, B_e, B_w, B_n, B_s, undef=p.undef)
        return np.where(valid, R, 0)


class GeneralEquation(Equation):
    """A Sxx + B Sxy + C Syy + D Sx + E Sy + F S + G = 0

    All coefficients live on the cells. If 4 A C - B^2 > 0 everywhere, the solution is unique.
    """

    repairable = ('A', 'C')

    def __init__(self, A, B, C, D, E, F, G, params):
        super(GeneralEquation, self).__init__(params, A=A, B=B, C=C, D=D, E=E, F=F, G=G)
        self.A, self.B, self.C, self.D, self.E, self.F, self.G = A, B, C, D, E, F, G

    def relax(self, S, criteria, history):
        p = self.params
        return kernel.relax_general(
            S, self.A, self.B, self.C, self.D, self.E, self.F, self.G,
            int(p.dim1.bc), int(p.dim2.bc),
            p.ratio, p.dim2.spacing, p.optimal_relaxation_argument, p.undef,
            criteria.max_loop_count, criteria.tolerance, criteria.overflow_threshold, history,
        )

    def sweep(self, S):
        """Single in place sweep, without boundary expansion or convergence check"""
        self.check(S)
        p = self.params
        kernel.sweep_general(
            S, self.A, self.B, self.C, self.D, self.E, self.F, self.G,
            int(p.dim1.bc), int(p.dim2.bc),
            p.ratio, p.dim2.spacing, p.optimal_relaxation_argument, p.undef,
        )
        return S

    def residual(self, S):
        """Discrete residual, multiplied by the squared dim2 spacing

        Returns
        -------
        ndarray, [n2, n1], float
            zero outside the swept region and wherever an operand is undefined
        """
        p = self.params
        h = p.dim2.spacing
        S_e, S_w = _rolled(S, 0, 1), _rolled(S, 0, -1)
        S_n, S_s = _rolled(S, 1, 0), _rolled(S, -1, 0)
        S_ne, S_sw = _rolled(S, 1, 1), _rolled(S, -1, -1)
        S_se, S_nw = _rolled(S, -1, 1), _rolled(S, 1, -1)

        with np.errstate(all='ignore'):
            R = (self.A * (S_e + S_w - 2 * S) * p.ratio_sqr +
                 self.B * (S_ne + S_sw - S_se - S_nw) * p.ratio_qtr +
                 self.C * (S_n + S_s - 2 * S) +
                 self.D * (S_e - S_w) * h * p.ratio / 2 +
                 self.E * (S_n - S_s) * h / 2 +
                 (self.F * S + self.G) * p.spacing_sqr)

        valid = self.swept & self.stencil_defined(S) & \
            defined_mask(self.A, self.B, self.C, self.D, self.E, self.F, self.G, undef=p.undef)
        return np.where(valid, R, 0)
