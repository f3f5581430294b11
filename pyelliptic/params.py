"""Parameters of a relaxation session

An elliptic equation is always relaxed over an abstract plane with a fast axis `dim1`
and a slow axis `dim2`; which physical axes these are is decided once by the caller.
Buffers are indexed [dim2][dim1].
"""

from collections import namedtuple
from enum import IntEnum

import numpy as np
from cached_property import cached_property


DEFAULT_MAX_LOOP_COUNT = 5000
DEFAULT_TOLERANCE = 1e-6
DEFAULT_OVERFLOW_THRESHOLD = 1e9


class BoundaryCondition(IntEnum):
    """Treatment of the edge cells along one axis

    Integer valued so that it can be handed to compiled kernels directly
    """
    FIXED = 0       # Dirichlet; edge values are left untouched
    PERIODIC = 1    # edges are relaxed like any other cell, with wrapped neighbours
    EXPANDED = 2    # edges take the values of the nearest interior cells before every sweep


class Axis(namedtuple('Axis', ['count', 'spacing', 'bc'])):
    """Descriptor of one axis of the relaxation plane

    Parameters
    ----------
    count : int
        number of grid points along the axis
    spacing : float
        physical grid increment
    bc : BoundaryCondition
    """
    __slots__ = ()

    def __new__(cls, count, spacing=1.0, bc=BoundaryCondition.FIXED):
        count = int(count)
        spacing = float(spacing)
        bc = BoundaryCondition(bc)
        if count < 1:
            raise ValueError('axis should have at least one grid point, got {}'.format(count))
        if not (np.isfinite(spacing) and spacing > 0):
            raise ValueError('grid spacing should be positive and finite, got {}'.format(spacing))
        return super(Axis, cls).__new__(cls, count, spacing, bc)

    @property
    def periodic(self):
        return self.bc is BoundaryCondition.PERIODIC


class Params(object):
    """Immutable description of a relaxation plane, shared by all slices of one solve

    Parameters
    ----------
    dim1 : Axis
        fast axis; second index of the buffers
    dim2 : Axis
        slow axis; first index of the buffers
    undef : float
        missing value sentinel
    """

    def __init__(self, dim1, dim2, undef=np.nan):
        if dim1.count < 3:
            raise ValueError('at least 3 grid points are needed along dim1, got {}'.format(dim1.count))
        if dim2.count != 1 and dim2.count < 3:
            raise ValueError('at least 3 grid points are needed along dim2, got {}'.format(dim2.count))
        self.dim1 = dim1
        self.dim2 = dim2
        self.undef = float(undef)

    @classmethod
    def for_line(cls, axis, undef=np.nan):
        """Parameters of a one dimensional problem along `axis`"""
        return cls(axis, Axis(1), undef)

    @property
    def shape(self):
        """Shape of the buffers relaxed under these parameters"""
        if self.dim2.count == 1:
            return (self.dim1.count, )
        return self.dim2.count, self.dim1.count

    @cached_property
    def ratio(self):
        """Ratio of the dim2 increment over the dim1 increment"""
        return self.dim2.spacing / self.dim1.spacing

    @cached_property
    def ratio_sqr(self):
        return self.ratio ** 2

    @cached_property
    def ratio_qtr(self):
        return self.ratio / 4

    @cached_property
    def spacing_sqr(self):
        """Squared increment of dim2; the scale the discrete equations are multiplied with"""
        return self.dim2.spacing ** 2

    @cached_property
    def optimal_relaxation_argument(self):
        """Theoretically optimal SOR factor of the 5-point Laplacian on a rectangle of this shape

        Returns
        -------
        float
            omega = 2 / (1 + sqrt(eps * (2 - eps))), with
            eps = sin^2(pi / (2 n1 + 2)) + sin^2(pi / (2 n2 + 2))
        """
        epsilon = np.sin(np.pi / (2 * self.dim1.count + 2)) ** 2 + \
                  np.sin(np.pi / (2 * self.dim2.count + 2)) ** 2
        return float(2 / (1 + np.sqrt((2 - epsilon) * epsilon)))

    def __repr__(self):
        return 'Params(dim1={}, dim2={}, undef={})'.format(self.dim1, self.dim2, self.undef)


class ConvergenceCriteria(object):
    """Stopping rules of the relaxation loop

    Parameters
    ----------
    max_loop_count : int
        loop is abandoned once the iteration count exceeds this
    tolerance : float
        loop stops once the relative change of the mean absolute value drops below this
    overflow_threshold : float
        mean absolute value above which the iteration is considered to diverge
    """

    def __init__(self,
                 max_loop_count=DEFAULT_MAX_LOOP_COUNT,
                 tolerance=DEFAULT_TOLERANCE,
                 overflow_threshold=DEFAULT_OVERFLOW_THRESHOLD):
        if int(max_loop_count) != max_loop_count or max_loop_count < 1:
            raise ValueError('max loop count should be an integer of at least 1, got {}'.format(max_loop_count))
        if not tolerance > 0:
            raise ValueError('tolerance should be positive, got {}'.format(tolerance))
        if not overflow_threshold > 0:
            raise ValueError('overflow threshold should be positive, got {}'.format(overflow_threshold))
        self.max_loop_count = int(max_loop_count)
        self.tolerance = float(tolerance)
        self.overflow_threshold = float(overflow_threshold)

    def replace(self, **kwargs):
        """Copy with some of the criteria replaced; the result is validated again"""
        values = dict(
            max_loop_count=self.max_loop_count,
            tolerance=self.tolerance,
            overflow_threshold=self.overflow_threshold,
        )
        values.update(kwargs)
        return type(self)(**values)

    def __repr__(self):
        return 'ConvergenceCriteria(max_loop_count={}, tolerance={}, overflow_threshold={})'.format(
            self.max_loop_count, self.tolerance, self.overflow_threshold)
