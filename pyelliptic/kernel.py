"""Compiled successive over-relaxation sweeps

All buffers are indexed [dim2][dim1] and relaxed in place: a single buffer is read
and written row by row, left to right, so that later cells of a sweep already see
the updated values of earlier ones (Gauss-Seidel order).

The kernels release the GIL, so slices relaxed from different worker threads
run concurrently.

Boundary conditions are passed as the integer values of params.BoundaryCondition
"""

import numba
import numpy as np


FIXED = 0
PERIODIC = 1
EXPANDED = 2

FLOAT_MAX = 1.7976931348623157e308

jit = numba.njit(nogil=True, cache=True, error_model='numpy')


@jit
def is_undef(v, undef):
    return v == undef or (undef != undef and v != v)


@jit
def abs_mean(S, undef):
    """Mean absolute value over the defined cells of S"""
    total = 0.
    count = 0
    for j in range(S.shape[0]):
        for i in range(S.shape[1]):
            v = S[j, i]
            if not is_undef(v, undef):
                total += abs(v)
                count += 1
    if count == 0:
        return 0.
    return total / count


@jit
def sweep_range(n, bc):
    """Range of cells relaxed along an axis; edges only take part when periodic"""
    if bc == PERIODIC:
        return 0, n
    return 1, n - 1


@jit
def wrap(k, n):
    if k < 0:
        return n - 1
    if k >= n:
        return 0
    return k


@jit
def expand_boundaries(S, bc1, bc2):
    """Copy the nearest interior cells onto expanded edges"""
    n2, n1 = S.shape
    rows = bc2 == EXPANDED
    columns = bc1 == EXPANDED or (rows and bc1 != PERIODIC)
    if rows and columns:
        for i in range(1, n1 - 1):
            S[0, i] = S[1, i]
            S[n2 - 1, i] = S[n2 - 2, i]
        for j in range(1, n2 - 1):
            S[j, 0] = S[j, 1]
            S[j, n1 - 1] = S[j, n1 - 2]
        S[0, 0] = S[1, 1]
        S[0, n1 - 1] = S[1, n1 - 2]
        S[n2 - 1, 0] = S[n2 - 2, 1]
        S[n2 - 1, n1 - 1] = S[n2 - 2, n1 - 2]
    elif rows:
        for i in range(n1):
            S[0, i] = S[1, i]
            S[n2 - 1, i] = S[n2 - 2, i]
    elif columns:
        for j in range(n2):
            S[j, 0] = S[j, 1]
            S[j, n1 - 1] = S[j, n1 - 2]


@jit
def stencil_undef(S, j, jp, jm, i, ip, im, undef):
    """Whether any of the 9 cells of the stencil around S[j, i] is undefined"""
    return (is_undef(S[j, i], undef) or
            is_undef(S[j, ip], undef) or is_undef(S[j, im], undef) or
            is_undef(S[jp, i], undef) or is_undef(S[jm, i], undef) or
            is_undef(S[jp, ip], undef) or is_undef(S[jm, ip], undef) or
            is_undef(S[jp, im], undef) or is_undef(S[jm, im], undef))


@jit
def sweep_separable(S, A, B, C, F, bc1, bc2, ratio_sqr, ratio_qtr, spacing_sqr, omega, undef):
    """One SOR sweep of d/dx(A dS/dx) + d/dy(B dS/dx) + d/dx(B dS/dy) + d/dy(C dS/dy) = F

    A[j, i] lives halfway between cells i-1 and i, C[j, i] halfway between rows j-1 and j
    """
    n2, n1 = S.shape
    j0, j1 = sweep_range(n2, bc2)
    i0, i1 = sweep_range(n1, bc1)
    for j in range(j0, j1):
        jp = wrap(j + 1, n2)
        jm = wrap(j - 1, n2)
        for i in range(i0, i1):
            ip = wrap(i + 1, n1)
            im = wrap(i - 1, n1)

            if (is_undef(F[j, i], undef) or
                    is_undef(A[j, ip], undef) or is_undef(A[j, i], undef) or
                    is_undef(C[jp, i], undef) or is_undef(C[j, i], undef) or
                    is_undef(B[j, ip], undef) or is_undef(B[j, im], undef) or
                    is_undef(B[jp, i], undef) or is_undef(B[jm, i], undef) or
                    stencil_undef(S, j, jp, jm, i, ip, im, undef)):
                continue

            R = ((A[j, ip] * (S[j, ip] - S[j, i]) -
                  A[j, i] * (S[j, i] - S[j, im])) * ratio_sqr +
                 (B[j, ip] * (S[jp, ip] - S[jm, ip]) -
                  B[j, im] * (S[jp, im] - S[jm, im])) * ratio_qtr +
                 (B[jp, i] * (S[jp, ip] - S[jp, im]) -
                  B[jm, i] * (S[jm, ip] - S[jm, im])) * ratio_qtr +
                 (C[jp, i] * (S[jp, i] - S[j, i]) -
                  C[j, i] * (S[j, i] - S[jm, i]))
                 ) - F[j, i] * spacing_sqr

            # a zero diagonal gives inf or nan, which check_convergence reports as overflow
            S[j, i] += R * omega / ((A[j, ip] + A[j, i]) * ratio_sqr + C[jp, i] + C[j, i])


@jit
def sweep_general(S, A, B, C, D, E, F, G, bc1, bc2, ratio, spacing, omega, undef):
    """One SOR sweep of A Sxx + B Sxy + C Syy + D Sx + E Sy + F S + G = 0

    All coefficients live on the cells; the equation is multiplied by the squared dim2 spacing
    """
    n2, n1 = S.shape
    ratio_sqr = ratio * ratio
    ratio_qtr = ratio / 4
    spacing_sqr = spacing * spacing
    j0, j1 = sweep_range(n2, bc2)
    i0, i1 = sweep_range(n1, bc1)
    for j in range(j0, j1):
        jp = wrap(j + 1, n2)
        jm = wrap(j - 1, n2)
        for i in range(i0, i1):
            ip = wrap(i + 1, n1)
            im = wrap(i - 1, n1)

            if (is_undef(A[j, i], undef) or is_undef(B[j, i], undef) or
                    is_undef(C[j, i], undef) or is_undef(D[j, i], undef) or
                    is_undef(E[j, i], undef) or is_undef(F[j, i], undef) or
                    is_undef(G[j, i], undef) or
                    stencil_undef(S, j, jp, jm, i, ip, im, undef)):
                continue

            s = S[j, i]
            R = (A[j, i] * (S[j, ip] + S[j, im] - 2 * s) * ratio_sqr +
                 B[j, i] * (S[jp, ip] + S[jm, im] - S[jm, ip] - S[jp, im]) * ratio_qtr +
                 C[j, i] * (S[jp, i] + S[jm, i] - 2 * s) +
                 D[j, i] * (S[j, ip] - S[j, im]) * spacing * ratio / 2 +
                 E[j, i] * (S[jp, i] - S[jm, i]) * spacing / 2 +
                 (F[j, i] * s + G[j, i]) * spacing_sqr)

            # as above, a zero diagonal ends the relaxation as an overflow
            S[j, i] += R * omega / (2 * (A[j, i] * ratio_sqr + C[j, i]))


@jit
def check_convergence(S, undef, previous, overflow_threshold):
    """Mean absolute value after a sweep and its relative change

    Returns
    -------
    norm : float
    speed : float
        relative change of norm; zero if unchanged
    overflowed : bool
    """
    norm = abs_mean(S, undef)
    if np.isnan(norm) or norm > overflow_threshold:
        return norm, 0., True
    if norm == previous:
        return norm, 0., False
    return norm, abs(norm - previous) / previous, False


@jit
def relax_separable(S, A, B, C, F, bc1, bc2, ratio_sqr, ratio_qtr, spacing_sqr, omega, undef,
                    max_loop_count, tolerance, overflow_threshold, history):
    """Sweep until converged, out of loops, or overflowed

    Returns
    -------
    loop : int
    speed : float
        last relative change of the mean absolute value
    overflowed : bool
    """
    loop = 0
    speed = 0.
    previous = FLOAT_MAX
    while True:
        expand_boundaries(S, bc1, bc2)
        sweep_separable(S, A, B, C, F, bc1, bc2, ratio_sqr, ratio_qtr, spacing_sqr, omega, undef)
        norm, speed, overflowed = check_convergence(S, undef, previous, overflow_threshold)
        if overflowed:
            return loop, speed, True
        history[loop] = speed
        if speed < tolerance or loop > max_loop_count:
            return loop, speed, False
        previous = norm
        loop += 1


@jit
def relax_general(S, A, B, C, D, E, F, G, bc1, bc2, ratio, spacing, omega, undef,
                  max_loop_count, tolerance, overflow_threshold, history):
    """Sweep the general form until converged, out of loops, or overflowed"""
    loop = 0
    speed = 0.
    previous = FLOAT_MAX
    while True:
        expand_boundaries(S, bc1, bc2)
        sweep_general(S, A, B, C, D, E, F, G, bc1, bc2, ratio, spacing, omega, undef)
        norm, speed, overflowed = check_convergence(S, undef, previous, overflow_threshold)
        if overflowed:
            return loop, speed, True
        history[loop] = speed
        if speed < tolerance or loop > max_loop_count:
            return loop, speed, False
        previous = norm
        loop += 1
