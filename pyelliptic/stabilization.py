"""Coefficient repairs for slices whose relaxation overflows

A diverging SOR iteration usually means the discrete operator is not elliptic somewhere.
Two escalating repairs are tried, each followed by a fresh relaxation:

    1. make A and C positive, by filling non-positive values with neighbour means
    2. make A C - B^2 positive, by scaling A and C up where it is not, then smoothing

Coefficient buffers are modified in place.
"""

import logging

import numpy as np

from pyelliptic.util import interior_mask, neighbour_sum, reset_unknowns, undefined_mask


logger = logging.getLogger(__name__)


class StabilizationError(ArithmeticError):
    """Coefficients cannot be repaired into a valid elliptic operator"""


def _window_mask(shape, rows, cols):
    mask = np.zeros(shape, dtype=bool)
    mask[rows[0]:rows[1], cols[0]:cols[1]] = True
    return mask


def make_positive(data, window, undef):
    """Replace non-positive values inside `window` by the mean of their positive 8-neighbours

    Passes are repeated until no non-positive value remains; every pass reads
    the values as they were before that pass.

    Parameters
    ----------
    data : ndarray, [n2, n1], float
        modified in place
    window : ndarray, [n2, n1], bool
        entries that have to become positive
    undef : float

    Returns
    -------
    bool
        whether anything was modified

    Raises
    ------
    StabilizationError
        if a pass cannot repair any of the remaining entries
    """
    modified = False
    defined = ~undefined_mask(data, undef)
    while True:
        with np.errstate(invalid='ignore'):
            positive = defined & (data > 0)
        bad = window & defined & ~positive
        if not bad.any():
            return modified
        total, count = neighbour_sum(data, positive)
        fix = bad & (count > 0)
        if not fix.any():
            raise StabilizationError('{} non-positive coefficients have no positive neighbours'.format(bad.sum()))
        data[fix] = total[fix] / count[fix]
        modified = True


def _interior(data, dk=0, dj=0):
    """View of the interior of a 2d array, shifted by (dk, dj)"""
    n, m = data.shape
    return data[1 + dk:n - 1 + dk, 1 + dj:m - 1 + dj]


def _axis_window(n, periodic, staggered_axis):
    """Index range of the coefficient entries a sweep reads along one axis"""
    if periodic:
        return 0, n
    if staggered_axis:
        return 1, n
    return 1, n - 1


def modify_coefficients_ac(A, C, undef, staggered=True, periodic=(False, False)):
    """Restore A > 0 and C > 0 over the entries a sweep reads

    If staggered, A lives between cells along dim1 and C between cells along dim2,
    so under fixed boundaries the entries read are A over rows [1, n2-1) and columns [1, n1),
    and C over rows [1, n2) and columns [1, n1-1). Otherwise, the interior cells.
    A periodic axis is read over its full extent.

    Parameters
    ----------
    A, C : ndarray, [n2, n1], float
        modified in place
    undef : float
    staggered : bool
    periodic : tuple of bool
        whether dim1 and dim2 are periodic

    Returns
    -------
    a_modified, c_modified : bool

    Raises
    ------
    StabilizationError
        if either cannot be made positive; neither A nor C is modified then
    """
    n2, n1 = A.shape
    periodic1, periodic2 = periodic
    cols = _axis_window(n1, periodic1, False)
    rows = _axis_window(n2, periodic2, False)
    a_window = _window_mask(A.shape, rows, _axis_window(n1, periodic1, staggered))
    c_window = _window_mask(C.shape, _axis_window(n2, periodic2, staggered), cols)

    a, c = A.copy(), C.copy()
    a_modified = make_positive(a, a_window, undef)
    c_modified = make_positive(c, c_window, undef)
    A[...] = a
    C[...] = c
    return a_modified, c_modified


def _smooth_around(data, corrected, undef):
    """Replace interior values next to a corrected entry by the mean of their defined neighbours"""
    defined = ~undefined_mask(data, undef)
    _, near = neighbour_sum(corrected.astype(np.float64), corrected)
    total, count = neighbour_sum(data, defined)
    fix = interior_mask(data.shape) & defined & (near > 0) & (count > 0)
    data[fix] = total[fix] / count[fix]


def modify_coefficients_d(A, B, C, undef, staggered=True):
    """Restore a positive discriminant at every interior cell

    If staggered, the discriminant at interior cell [k, j] is A[k, j+1] C[k+1, j] - B[k, j]^2.
    Otherwise all coefficients live on the cells and it is A C - (B / 2)^2,
    the ellipticity condition of A Sxx + B Sxy + C Syy.
    Where it is not positive, both A and C entries are scaled by sqrt(1.1 b^2 / (A C)),
    after which the discriminant becomes 0.1 b^2 > 0. Interior cells next to a scaled entry are then
    replaced by the mean of their defined neighbours.

    Returns
    -------
    bool
        whether anything was modified

    Raises
    ------
    StabilizationError
        if a scale is not finite; for instance if A and C differ in sign
    """
    a_shift, c_shift = ((0, 1), (1, 0)) if staggered else ((0, 0), (0, 0))
    a = _interior(A, *a_shift)
    c = _interior(C, *c_shift)
    b = _interior(B)
    defined = ~(undefined_mask(a, undef) | undefined_mask(b, undef) | undefined_mask(c, undef))

    with np.errstate(all='ignore'):
        if not staggered:
            b = b / 2
        bad = defined & (a * c - b * b <= 0)
        scale = np.sqrt((b / a) * 1.1 * (b / c))

    invalid = bad & ~np.isfinite(scale)
    if invalid.any():
        k, j = np.argwhere(invalid)[0]
        raise StabilizationError('invalid scale at interior cell [{}, {}]: A={}, B={}, C={}'.format(
            k + 1, j + 1, a[k, j], B[k + 1, j + 1], c[k, j]))
    if not bad.any():
        return False

    a[bad] = a[bad] * scale[bad]
    c[bad] = c[bad] * scale[bad]

    a_corrected = np.zeros(A.shape, dtype=bool)
    c_corrected = np.zeros(C.shape, dtype=bool)
    _interior(a_corrected, *a_shift)[...] = bad
    _interior(c_corrected, *c_shift)[...] = bad

    _smooth_around(A, a_corrected, undef)
    _smooth_around(C, c_corrected, undef)
    return True


class StabilizationPolicy(object):
    """Relax a slice, repairing its coefficients if the iteration overflows

    Parameters
    ----------
    modify : bool
        if False, an overflow is reported as is
    """

    def __init__(self, modify=True):
        self.modify = modify

    @staticmethod
    def stage_ac(equation):
        """Stage 1: positive A and C"""
        p = equation.params
        a_modified, c_modified = modify_coefficients_ac(
            equation.A, equation.C, p.undef, staggered=equation.staggered,
            periodic=(p.dim1.periodic, p.dim2.periodic))
        if a_modified:
            logger.info('A has been modified')
        if c_modified:
            logger.info('C has been modified')

    @staticmethod
    def stage_d(equation):
        """Stage 2: positive discriminant A C - B^2"""
        if modify_coefficients_d(equation.A, equation.B, equation.C, equation.params.undef,
                                  staggered=equation.staggered):
            logger.info('D has been modified')

    @staticmethod
    def resolve(equation, S, undefined, criteria, identity):
        """Restart the relaxation from zero on every cell that was defined to begin with"""
        reset_unknowns(S, equation.swept, undefined)
        return equation.solve(S, criteria)._replace(identity=identity, repaired=True)

    def run(self, equation, S, criteria=None, identity=''):
        """Relax S in place, escalating through the repair stages as long as it overflows

        At most two repairs are made. If stage 1 cannot repair the coefficients, or the
        last relaxation still overflows, the result says so, and the other slices
        of a solve are unaffected

        Returns
        -------
        SliceResult

        Raises
        ------
        StabilizationError
            if stage 2 meets coefficients that cannot be scaled into an elliptic operator
        """
        undefined = undefined_mask(S, equation.params.undef)
        result = equation.solve(S, criteria)._replace(identity=identity)
        if not (self.modify and result.overflowed):
            return result

        logger.debug(result.describe())
        try:
            self.stage_ac(equation)
        except StabilizationError as e:
            logger.warning('%s cannot be stabilized: %s', identity, e)
            return result
        result = self.resolve(equation, S, undefined, criteria, identity)
        if not result.overflowed:
            return result

        logger.debug(result.describe())
        self.stage_d(equation)
        result = self.resolve(equation, S, undefined, criteria, identity)
        if result.overflowed:
            logger.warning('%s still overflow after modification', identity)
        return result
