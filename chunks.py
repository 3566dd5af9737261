"""
Pixel buffers and the chunks we cut them into.

A chunk is a rectangle over a pixel buffer. Chunks of two images get compared
pixel by pixel, under a color tolerance, to decide whether a block of the new
image can also be found in the old one.

Chunk requirements:

- numpy
"""

import numpy as np

from region import Rect

RIGHT = 'right'
LEFT = 'left'
BOTTOM = 'bottom'
TOP = 'top'


class PixelBuffer:
    """
    An immutable RGBA image, stored row-major as a (height, width, 4) array.
    """

    def __init__(self, pixels, path=None):
        pixels = np.array(pixels, dtype=np.uint8, copy=True)
        if pixels.ndim != 3 or pixels.shape[2] != 4:
            raise ValueError(f'expected an RGBA pixel array, got shape {pixels.shape}')
        if pixels.shape[0] == 0 or pixels.shape[1] == 0:
            raise ValueError('cannot build a pixel buffer without pixels')
        pixels.flags.writeable = False
        self.pixels = pixels
        self.path = path

    def __repr__(self):
        return f'PixelBuffer({self.path or "<memory>"}, {self.width}x{self.height})'

    @property
    def width(self):
        return self.pixels.shape[1]

    @property
    def height(self):
        return self.pixels.shape[0]

    @property
    def size(self):
        return (self.width, self.height)

    @property
    def rect(self):
        return Rect(0, 0, self.width, self.height)

    def pixel(self, x, y):
        if not (0 <= x < self.width and 0 <= y < self.height):
            raise IndexError(f'pixel {x},{y} is outside of {self.width}x{self.height}')
        return tuple(int(c) for c in self.pixels[y, x])

    def region(self, rect):
        return self.pixels[rect.y:rect.bottom, rect.x:rect.right]

    def chunk(self, rect):
        return Chunk(self, rect)


def color_distance(a, b):
    """
    Distance between RGBA colors: euclidean over RGB, with alpha as its own
    axis. Works on single colors as well as on whole arrays of them.
    """
    delta = np.asarray(a, dtype=np.int32) - np.asarray(b, dtype=np.int32)
    rgb = np.sqrt(np.sum(delta[..., :3] ** 2, axis=-1))
    alpha = np.abs(delta[..., 3])
    return np.maximum(rgb, alpha)


def colors_equal(a, b, threshold=0):
    return bool(color_distance(a, b) <= threshold)


class Chunk:
    def __init__(self, buffer, rect, all_transparent=None):
        rect = Rect(*rect)
        if rect.is_empty() or not buffer.rect.contains(rect):
            raise ValueError(f'{rect} does not fit in {buffer}')
        self.buffer = buffer
        self.rect = rect
        if all_transparent is None:
            # any pixel with a non-zero alpha clears the flag
            all_transparent = not buffer.region(rect)[..., 3].any()
        self.all_transparent = all_transparent

    def __repr__(self):
        flag = ', transparent' if self.all_transparent else ''
        return f'Chunk({self.buffer.path or "<memory>"}, {tuple(self.rect)}{flag})'

    @property
    def x(self):
        return self.rect.x

    @property
    def y(self):
        return self.rect.y

    @property
    def width(self):
        return self.rect.w

    @property
    def height(self):
        return self.rect.h

    @property
    def size(self):
        return self.rect.size

    @property
    def pixels(self):
        return self.buffer.region(self.rect)

    def equals(self, other, threshold=0):
        if self.all_transparent and other.all_transparent:
            return True
        if self.size != other.size:
            raise ValueError(f'cannot compare {self} with differently sized {other}')

        a = self.pixels
        b = other.pixels
        if threshold == 0:
            return bool(np.array_equal(a, b))

        # compare row by row so that an early mismatch stops the scan
        for y in range(self.height):
            if not np.all(color_distance(a[y], b[y]) <= threshold):
                return False
        return True

    def alignment(self, other):
        """
        Which side of this chunk the other chunk sits on, if they share a full
        edge. Returns RIGHT, LEFT, BOTTOM, TOP or None.
        """
        a = self.rect
        b = other.rect
        if a.h == b.h and a.y == b.y:
            if a.right == b.x:
                return RIGHT
            if b.right == a.x:
                return LEFT
        if a.w == b.w and a.x == b.x:
            if a.bottom == b.y:
                return BOTTOM
            if b.bottom == a.y:
                return TOP
        return None

    def joined(self, other):
        if self.alignment(other) is None:
            raise ValueError(f'{self} and {other} do not share an edge')
        return Chunk(self.buffer, self.rect.united(other.rect), self.all_transparent)


class Grid:
    """
    A count x count mesh over a buffer. The last column and row absorb the
    pixels that do not divide evenly. Chunks are created on first access.
    """

    def __init__(self, buffer, count):
        if count < 1:
            raise ValueError(f'grid count must be at least 1, got {count}')
        self.buffer = buffer
        self.count = count
        self.cell_width = buffer.width // count
        self.cell_height = buffer.height // count
        self.extra_width = buffer.width - self.cell_width * count
        self.extra_height = buffer.height - self.cell_height * count
        self._chunks = {}

    def __len__(self):
        return self.count * self.count

    def __getitem__(self, index):
        chunk = self._chunks.get(index)
        if chunk is None:
            chunk = self.buffer.chunk(self.rect(index))
            self._chunks[index] = chunk
        return chunk

    def fits(self, min_size):
        return self.cell_width >= min_size and self.cell_height >= min_size

    def rect(self, index):
        if not 0 <= index < len(self):
            raise IndexError(f'cell {index} is outside of a {self.count}x{self.count} grid')
        cy, cx = divmod(index, self.count)
        last = self.count - 1
        return Rect(
            cx * self.cell_width,
            cy * self.cell_height,
            self.cell_width + (self.extra_width if cx == last else 0),
            self.cell_height + (self.extra_height if cy == last else 0),
        )


def generate_grid(buffer, count, min_size, mask=None):
    """
    Cut a buffer into count x count chunks.

    Returns a list of count * count slots, indexed cy * count + cx, where cells
    touching the mask are None. An empty list means the cells would be smaller
    than min_size, which is how the level driver knows to stop.
    """
    if count == 1:
        if mask is not None and not mask.is_empty():
            raise ValueError('a single cell grid cannot be masked')
        return [buffer.chunk(buffer.rect)]

    grid = Grid(buffer, count)
    if not grid.fits(min_size):
        return []

    cells = []
    for index in range(len(grid)):
        rect = grid.rect(index)
        if mask is not None and mask.intersects(rect):
            cells.append(None)
        else:
            cells.append(grid[index])
    return cells
