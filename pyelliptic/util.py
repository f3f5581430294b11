"""Array helpers shared by the relaxation and stabilization code"""

import numpy as np


# offsets of the 8-connected neighbourhood
NEIGHBOURS = tuple((dk, dj) for dk in (-1, 0, 1) for dj in (-1, 0, 1) if (dk, dj) != (0, 0))


def undefined_mask(a, undef):
    """Boolean mask of the entries of `a` that equal the undefined sentinel

    A NaN sentinel matches NaN entries
    """
    a = np.asarray(a)
    if np.isnan(undef):
        return np.isnan(a)
    return a == undef


def defined_mask(*arrays, undef):
    """Entries that are defined in every one of `arrays`"""
    mask = np.ones(np.shape(arrays[0]), dtype=bool)
    for a in arrays:
        mask &= ~undefined_mask(a, undef)
    return mask


def abs_mean(a, undef):
    """Mean absolute value over the defined entries of `a`; zero if there are none"""
    a = np.asarray(a)
    defined = ~undefined_mask(a, undef)
    if not defined.any():
        return 0.
    return float(np.abs(a[defined]).mean())


def neighbour_sum(data, valid):
    """Sum and count of the valid 8-neighbours of every entry of a 2d array

    Parameters
    ----------
    data : ndarray, [n, m], float
    valid : ndarray, [n, m], bool
        entries allowed to contribute

    Returns
    -------
    total : ndarray, [n, m], float
    count : ndarray, [n, m], int

    Notes
    -----
    Positions beyond the edge of the array do not contribute; there is no wrapping
    """
    n, m = data.shape
    padded = np.pad(np.where(valid, data, 0).astype(np.float64), 1)
    padded_valid = np.pad(valid, 1)
    total = np.zeros((n, m), dtype=np.float64)
    count = np.zeros((n, m), dtype=np.int64)
    for dk, dj in NEIGHBOURS:
        window = slice(1 + dk, 1 + dk + n), slice(1 + dj, 1 + dj + m)
        total += padded[window]
        count += padded_valid[window]
    return total, count


def interior_mask(shape):
    """Mask of all entries not on the edge of a 2d array"""
    mask = np.zeros(shape, dtype=bool)
    mask[1:-1, 1:-1] = True
    return mask


def reset_unknowns(S, swept, undefined):
    """Zero the swept entries of S in place, except those in `undefined`

    `undefined` is a mask taken before relaxation started, so that values
    a diverged iteration left behind are reset regardless of what they hold
    """
    S[swept & ~undefined] = 0
    return S
