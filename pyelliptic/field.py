"""Minimal four dimensional field container, and the selection of slices out of it

A field is logically indexed (t, z, y, x). Storage order is either (t, z, y, x) or,
with the time axis stored fastest, (z, y, x, t).

Selectors cut a field into the independent slices a solve is decomposed into,
and write solved slices back. A slice is handed out as a view wherever the storage
order makes it contiguous, and as a fresh copy otherwise.
"""

import itertools
from enum import Enum

import numpy as np

from pyelliptic.util import undefined_mask


class DimensionCombination(Enum):
    """Physical axes spanning a relaxation plane"""
    XY = 'XY'   # horizontal plane; dim1 is x, dim2 is y; one slice per (t, z)
    YZ = 'YZ'   # meridional plane; dim1 is y, dim2 is z; one slice per (t, x)


class Dimension(Enum):
    """Physical axis of a one dimensional problem"""
    X = 'X'     # one line per (t, z, y)
    Y = 'Y'     # one line per (t, z, x)


class Field(object):
    """Four dimensional gridded variable

    Parameters
    ----------
    data : ndarray, 4d
        stored as [t, z, y, x] if `t_first`, else as [z, y, x, t]
    undef : float
        missing value sentinel
    t_first : bool
        storage order flag
    tstart, zstart, ystart, xstart : int
        one-based offsets of this field into a larger domain; only used in messages
    tdef, zdef : sequence, optional
        coordinate labels of the larger domain; only used in messages
    name : str, optional
    """

    def __init__(self, data, undef=np.nan, t_first=True,
                 tstart=1, zstart=1, ystart=1, xstart=1,
                 tdef=None, zdef=None, name=None):
        data = np.asarray(data)
        if data.ndim != 4:
            raise ValueError('field data should be 4 dimensional, got shape {}'.format(data.shape))
        self.data = data
        self.undef = undef
        self.t_first = bool(t_first)
        self.tstart, self.zstart, self.ystart, self.xstart = tstart, zstart, ystart, xstart
        self.tdef = tdef
        self.zdef = zdef
        self.name = name

    @classmethod
    def from_logical(cls, array, t_first=True, **kwargs):
        """Construct from an array logically ordered as [t, z, y, x], stored in the requested order"""
        array = np.asarray(array)
        data = array if t_first else np.moveaxis(array, 0, -1)
        return cls(np.ascontiguousarray(data), t_first=t_first, **kwargs)

    @classmethod
    def zeros_like(cls, other, dtype=None, **kwargs):
        """Zero field with the extents, storage order, sentinel and labels of `other`"""
        attributes = dict(
            undef=other.undef, t_first=other.t_first,
            tstart=other.tstart, zstart=other.zstart, ystart=other.ystart, xstart=other.xstart,
            tdef=other.tdef, zdef=other.zdef,
        )
        attributes.update(kwargs)
        return cls(np.zeros_like(other.data, dtype=dtype), **attributes)

    def copy(self):
        return type(self)(
            self.data.copy(), undef=self.undef, t_first=self.t_first,
            tstart=self.tstart, zstart=self.zstart, ystart=self.ystart, xstart=self.xstart,
            tdef=self.tdef, zdef=self.zdef, name=self.name,
        )

    @property
    def undef(self):
        return self._undef

    @undef.setter
    def undef(self, value):
        self._undef = float(value)

    @property
    def shape(self):
        """Logical extents (t, z, y, x), regardless of storage order"""
        if self.t_first:
            return self.data.shape
        z, y, x, t = self.data.shape
        return t, z, y, x

    @property
    def t_count(self):
        return self.shape[0]

    @property
    def z_count(self):
        return self.shape[1]

    @property
    def y_count(self):
        return self.shape[2]

    @property
    def x_count(self):
        return self.shape[3]

    def logical(self):
        """View of the data ordered as [t, z, y, x]"""
        if self.t_first:
            return self.data
        return np.moveaxis(self.data, -1, 0)

    def is_like(self, other):
        """Same logical extents and same storage order"""
        return self.shape == other.shape and self.t_first == other.t_first

    def undefined(self):
        """Logically ordered mask of undefined entries"""
        return undefined_mask(self.logical(), self.undef)

    def time_label(self, l):
        if self.tdef is None:
            return 't={}'.format(l + self.tstart)
        return str(self.tdef[l + self.tstart - 1])

    def level_label(self, k):
        if self.zdef is None:
            return 'z={}'.format(k + self.zstart)
        return str(self.zdef[k + self.zstart - 1])

    def __repr__(self):
        return 'Field(name={}, shape={}, t_first={}, undef={})'.format(
            self.name, self.shape, self.t_first, self.undef)


def _take(view):
    """Hand out a contiguous view as is; copy anything else into a fresh buffer"""
    if view.flags.c_contiguous:
        return view
    return view.copy()


class PlaneSelector(object):
    """Cut a field into the 2d slices of a DimensionCombination

    Slices are indexed by (t, z) for XY and by (t, x) for YZ,
    and are laid out as [dim2][dim1]; [y][x] and [z][y] respectively
    """

    def __init__(self, combination):
        if not isinstance(combination, DimensionCombination):
            raise ValueError('unsupported dimension combination: {}'.format(combination))
        self.combination = combination

    def indices(self, field):
        """All slice indices, in the fixed order tasks are submitted and written back in"""
        t, z, y, x = field.shape
        if self.combination is DimensionCombination.XY:
            return list(itertools.product(range(t), range(z)))
        return list(itertools.product(range(t), range(x)))

    def shape(self, field):
        t, z, y, x = field.shape
        if self.combination is DimensionCombination.XY:
            return y, x
        return z, y

    def _index(self, index):
        outer, inner = index
        if self.combination is DimensionCombination.XY:
            return outer, inner, slice(None), slice(None)
        return outer, slice(None), slice(None), inner

    def extract(self, field, index):
        return _take(field.logical()[self._index(index)])

    def assign(self, field, index, values):
        target = field.logical()[self._index(index)]
        if not np.shares_memory(target, values):
            target[...] = values

    def describe(self, field, index):
        outer, inner = index
        if self.combination is DimensionCombination.XY:
            return '{}\t{}'.format(field.time_label(outer), field.level_label(inner))
        return '{}\tx={}'.format(field.time_label(outer), inner + field.xstart)


class LineSelector(object):
    """Cut a field into the 1d lines along a Dimension

    Lines are indexed by (t, z, y) for X and by (t, z, x) for Y
    """

    def __init__(self, dimension):
        if not isinstance(dimension, Dimension):
            raise ValueError('unsupported dimension: {}'.format(dimension))
        self.dimension = dimension

    def indices(self, field):
        t, z, y, x = field.shape
        if self.dimension is Dimension.X:
            return list(itertools.product(range(t), range(z), range(y)))
        return list(itertools.product(range(t), range(z), range(x)))

    def shape(self, field):
        t, z, y, x = field.shape
        if self.dimension is Dimension.X:
            return (x, )
        return (y, )

    def _index(self, index):
        l, k, m = index
        if self.dimension is Dimension.X:
            return l, k, m, slice(None)
        return l, k, slice(None), m

    def extract(self, field, index):
        return _take(field.logical()[self._index(index)])

    def assign(self, field, index, values):
        target = field.logical()[self._index(index)]
        if not np.shares_memory(target, values):
            target[...] = values

    def describe(self, field, index):
        l, k, m = index
        other = 'y={}'.format(m + field.ystart) if self.dimension is Dimension.X else 'x={}'.format(m + field.xstart)
        return '{}\t{}\t{}'.format(field.time_label(l), field.level_label(k), other)
