"""
Rectangles, and the set of new-image pixels that have already been matched.

Region requirements:

- numpy
"""

from collections import namedtuple

import numpy as np


class Rect(namedtuple('Rect', ['x', 'y', 'w', 'h'])):
    """
    An axis aligned rectangle, half-open on its right and bottom edges.
    """
    __slots__ = ()

    @property
    def right(self):
        return self.x + self.w

    @property
    def bottom(self):
        return self.y + self.h

    @property
    def size(self):
        return (self.w, self.h)

    @property
    def area(self):
        return self.w * self.h

    def is_empty(self):
        return self.w <= 0 or self.h <= 0

    def intersects(self, other):
        return (
            self.x < other.right and other.x < self.right and
            self.y < other.bottom and other.y < self.bottom
        )

    def contains(self, other):
        return (
            self.x <= other.x and self.y <= other.y and
            other.right <= self.right and other.bottom <= self.bottom
        )

    def united(self, other):
        x = min(self.x, other.x)
        y = min(self.y, other.y)
        return Rect(x, y, max(self.right, other.right) - x, max(self.bottom, other.bottom) - y)


def _free_spans(row):
    """
    (start, end) pairs for the runs of True in a 1D boolean row.
    """
    padded = np.concatenate(([False], row, [False]))
    edges = np.flatnonzero(padded[1:] != padded[:-1])
    return tuple(zip(edges[::2].tolist(), edges[1::2].tolist()))


class UsedRegion:
    """
    Union of the new-image rects that have been claimed by a match.

    The union is kept as a boolean mask the size of the image. Intersection
    tests go through a summed-area table that is rebuilt lazily after the
    region grows, so checking a whole grid level costs one cumulative sum.
    """

    def __init__(self, width, height):
        self.width = width
        self.height = height
        self._mask = np.zeros((height, width), dtype=bool)
        self._rects = []
        self._table = None

    def __len__(self):
        return len(self._rects)

    def is_empty(self):
        return not self._rects

    def rects(self):
        return list(self._rects)

    @property
    def area(self):
        return int(np.count_nonzero(self._mask))

    @property
    def mask(self):
        view = self._mask.view()
        view.flags.writeable = False
        return view

    def add(self, rect):
        if rect.is_empty() or not Rect(0, 0, self.width, self.height).contains(rect):
            raise ValueError(f'{rect} is not inside the {self.width}x{self.height} image')
        self._mask[rect.y:rect.bottom, rect.x:rect.right] = True
        self._rects.append(rect)
        self._table = None

    def intersects(self, rect):
        if not self._rects:
            return False
        if self._table is None:
            table = np.zeros((self.height + 1, self.width + 1), dtype=np.int64)
            table[1:, 1:] = self._mask.cumsum(axis=0).cumsum(axis=1)
            self._table = table

        x1 = max(rect.x, 0)
        y1 = max(rect.y, 0)
        x2 = min(rect.right, self.width)
        y2 = min(rect.bottom, self.height)
        if x1 >= x2 or y1 >= y2:
            return False

        t = self._table
        return (t[y2, x2] - t[y1, x2] - t[y2, x1] + t[y1, x1]) > 0

    def complement(self):
        """
        Rectangularize everything that is not used into disjoint rects.

        Rows are grouped into horizontal bands that share the same free spans,
        and every span of a band becomes one rect. The result is ordered top to
        bottom, then left to right.
        """
        rects = []
        free = ~self._mask
        band_spans = ()
        band_top = 0

        for y in range(self.height):
            spans = _free_spans(free[y])
            if spans == band_spans:
                continue
            for (x1, x2) in band_spans:
                rects.append(Rect(x1, band_top, x2 - x1, y - band_top))
            band_spans = spans
            band_top = y

        for (x1, x2) in band_spans:
            rects.append(Rect(x1, band_top, x2 - x1, self.height - band_top))

        return rects
