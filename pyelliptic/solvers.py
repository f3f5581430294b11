"""Solver sessions; the user facing entry points of pyelliptic

A session holds grid spacings, boundary conditions, coefficient fields and convergence criteria,
validates them against the solution field, and hands the slice tasks to a scheduler.
The solution field is modified in place.

Example
-------
>>> solver = EllipticEqSORSolver(dx=dx, dy=dy, bc_x=BoundaryCondition.PERIODIC)
>>> solver.set_dim_combination(DimensionCombination.XY)
>>> solver.set_abc(A, B, C)
>>> report = solver.solve(S, F)
"""

import logging

import numpy as np

from pyelliptic.equation import GeneralEquation, SeparableEquation
from pyelliptic.field import Dimension, DimensionCombination
from pyelliptic.params import Axis, BoundaryCondition, ConvergenceCriteria, Params
from pyelliptic.scheduler import SliceScheduler, default_executor
from pyelliptic.stabilization import StabilizationPolicy
from pyelliptic.tridiagonal import LineEquation


logger = logging.getLogger(__name__)


def _check_like(S, fields):
    if not np.issubdtype(S.data.dtype, np.floating):
        raise ValueError('solution field should be of floating point type, got {}'.format(S.data.dtype))
    for name, field in fields.items():
        if field is not None and not S.is_like(field):
            raise ValueError('field {} with shape {} and t_first={} does not match S with shape {} and t_first={}'.format(
                name, field.shape, field.t_first, S.shape, S.t_first))


class SORSolver(object):
    """Settings shared by all sessions

    Parameters
    ----------
    dx, dy, dz : float
        grid spacings
    bc_x, bc_y, bc_z : BoundaryCondition
    scheduler : SliceScheduler, optional
        defaults to one running on the process wide worker pool
    verbose : bool
        log per slice progress at INFO rather than DEBUG level
    """

    def __init__(self, dx=1., dy=1., dz=1.,
                 bc_x=BoundaryCondition.FIXED, bc_y=BoundaryCondition.FIXED, bc_z=BoundaryCondition.FIXED,
                 scheduler=None, verbose=False):
        self.axes = {
            'x': (dx, BoundaryCondition(bc_x)),
            'y': (dy, BoundaryCondition(bc_y)),
            'z': (dz, BoundaryCondition(bc_z)),
        }
        self.scheduler = SliceScheduler(default_executor()) if scheduler is None else scheduler
        self.criteria = ConvergenceCriteria()
        self.verbose = verbose

    def axis(self, name, count):
        spacing, bc = self.axes[name]
        return Axis(count, spacing, bc)

    def set_max_loop_count(self, max_loop_count):
        self.criteria = self.criteria.replace(max_loop_count=max_loop_count)

    def set_tolerance(self, tolerance):
        self.criteria = self.criteria.replace(tolerance=tolerance)

    def set_overflow_threshold(self, overflow_threshold):
        self.criteria = self.criteria.replace(overflow_threshold=overflow_threshold)

    def set_verbose(self, verbose):
        self.verbose = bool(verbose)

    @property
    def level(self):
        return logging.INFO if self.verbose else logging.DEBUG

    def run(self, fields, params, build, policy, select):
        logger.info('Start solving elliptic equation using SOR with BCs (%s, %s)...',
                    params.dim1.bc.name, params.dim2.bc.name)
        report = select(fields, build, policy, self.criteria, self.level)
        if report.overflowed:
            logger.warning('%d slices still overflow', len(report.overflowed))
        logger.info('Finished.')
        return report


class PlaneSolver(SORSolver):
    """Session relaxing 2d planes of a DimensionCombination"""

    combination = None

    def set_dim_combination(self, combination):
        self.combination = DimensionCombination(combination)

    def params(self, S):
        if self.combination is None:
            raise ValueError('dimension combination has not been set')
        if self.combination is DimensionCombination.XY:
            dim1, dim2 = self.axis('x', S.x_count), self.axis('y', S.y_count)
        else:
            dim1, dim2 = self.axis('y', S.y_count), self.axis('z', S.z_count)
        if dim2.count < 3:
            raise ValueError('at least 3 grid points are needed along dim2, got {}'.format(dim2.count))
        return Params(dim1, dim2, S.undef)

    def relax(self, fields, build, modify):
        S = fields['S']
        params = self.params(S)
        _check_like(S, fields)

        def select(fields, build, policy, criteria, level):
            return self.scheduler.solve_planes(fields, self.combination, build, policy, criteria, level)

        return self.run(fields, params, lambda b: build(b, params), StabilizationPolicy(modify), select)


class EllipticEqSORSolver(PlaneSolver):
    """Solve d/dx(A dS/dx) + d/dy(B dS/dx) + d/dx(B dS/dy) + d/dy(C dS/dy) = F

    A is staggered half a cell back along dim1 and C half a cell back along dim2
    """

    A = B = C = None

    def set_abc(self, A, B, C):
        """B may be None, meaning no cross term"""
        self.A, self.B, self.C = A, B, C

    def solve(self, S, F=None, modify=False):
        """Solve in place for S, using its edges and current values as boundary values and first guess

        Parameters
        ----------
        S : Field
        F : Field, optional
            forcing; zero if not given
        modify : bool
            repair the coefficients of slices that overflow; A and C are modified in place

        Returns
        -------
        SolveReport
        """
        if self.A is None or self.C is None:
            raise ValueError('coefficients A and C have not been set')
        fields = dict(S=S, A=self.A, B=self.B, C=self.C, F=F)

        def build(b, params):
            return SeparableEquation(b['A'], b['B'], b['C'], b['F'], params)

        return self.relax(fields, build, modify)


class GeneralEllipticEqSORSolver(PlaneSolver):
    """Solve A Sxx + B Sxy + C Syy + D Sx + E Sy + F S + G = 0"""

    coefficients = None

    def set_coefficients(self, A, B, C, D=None, E=None, F=None, G=None):
        """Coefficients that are None are taken to be zero"""
        if A is None or B is None or C is None:
            raise ValueError('coefficients A, B and C are required')
        self.coefficients = dict(A=A, B=B, C=C, D=D, E=E, F=F, G=G)

    def solve(self, S, modify=False):
        if self.coefficients is None:
            raise ValueError('coefficients have not been set')
        fields = dict(S=S, **self.coefficients)

        def build(b, params):
            return GeneralEquation(b['A'], b['B'], b['C'], b['D'], b['E'], b['F'], b['G'], params)

        return self.relax(fields, build, modify)


class EllipticEqSORSolver1D(SORSolver):
    """Solve d/dx(A dS/dx) = F along lines of a single axis, exactly

    Only fixed boundary conditions are supported
    """

    dimension = None
    A = None

    def set_dimension(self, dimension):
        self.dimension = Dimension(dimension)

    def set_a(self, A):
        self.A = A

    def solve(self, S, F=None):
        if self.dimension is None:
            raise ValueError('dimension has not been set')
        if self.A is None:
            raise ValueError('coefficient A has not been set')
        if self.dimension is Dimension.X:
            axis = self.axis('x', S.x_count)
        else:
            axis = self.axis('y', S.y_count)
        if axis.bc is not BoundaryCondition.FIXED:
            raise ValueError('only fixed boundary condition allowed, got {}'.format(axis.bc.name))
        params = Params.for_line(axis, S.undef)
        fields = dict(S=S, A=self.A, F=F)
        _check_like(S, fields)

        def build(b):
            return LineEquation(b['A'], b['F'], params)

        def select(fields, build, policy, criteria, level):
            return self.scheduler.solve_lines(fields, self.dimension, build, policy, criteria, level)

        return self.run(fields, params, build, StabilizationPolicy(modify=False), select)
