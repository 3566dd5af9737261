"""
Block matching between an old and a new image.

The new image is cut into ever finer grids. Every cell that has not been
matched yet is looked up in a small neighborhood of the same grid over the old
image; whatever is found gets recorded and masked out of all later levels.
Once cells would get smaller than the minimum size we stop, and glue matches
that moved by the same amount back together into bigger rects.
"""

import math
from dataclasses import dataclass

from chunks import Grid, generate_grid
from region import UsedRegion
from utils import check_same_size, format_rect, log_info


@dataclass
class DiffOptions:
    """
    Tuning knobs for a diff run.
    """

    search_range: int = 2
    min_size: int = 10
    threshold: float = 0.0
    join: bool = True

    def __post_init__(self):
        if self.search_range < 0:
            raise ValueError(f'search range must not be negative, got {self.search_range}')
        if self.min_size < 1:
            raise ValueError(f'min size must be positive, got {self.min_size}')
        if not math.isfinite(self.threshold) or self.threshold < 0:
            raise ValueError(f'threshold must be a non-negative number, got {self.threshold}')


class MatchPair:
    """
    A chunk of the new image, and where its content was found in the old one.
    """

    __slots__ = ('new', 'old')

    def __init__(self, new, old):
        if new.size != old.size:
            raise ValueError(f'cannot pair {new} with differently sized {old}')
        self.new = new
        self.old = old

    def __repr__(self):
        return f'MatchPair(new={tuple(self.new.rect)}, old={tuple(self.old.rect)})'

    def __eq__(self, other):
        if not isinstance(other, MatchPair):
            return NotImplemented
        return self.new.rect == other.new.rect and self.old.rect == other.old.rect

    __hash__ = None

    @property
    def in_place(self):
        return self.new.rect == self.old.rect

    @property
    def offset(self):
        return (self.old.x - self.new.x, self.old.y - self.new.y)


class DiffResult:
    def __init__(self, old, new, matches, used):
        self.old = old
        self.new = new
        self.matches = matches
        self.used = used

    @property
    def moved(self):
        return [match for match in self.matches if not match.in_place]

    @property
    def in_place(self):
        return [match for match in self.matches if match.in_place]

    @property
    def unmatched(self):
        return self.used.complement()


def candidate_indexes(count, index, search_range):
    """
    Grid indexes to probe for the cell at index: the cell itself first, then
    every other cell within search_range, row by row.
    """
    cy, cx = divmod(index, count)
    indexes = [index]
    for dy in range(-search_range, search_range + 1):
        y = cy + dy
        if y < 0 or y >= count:
            continue
        for dx in range(-search_range, search_range + 1):
            x = cx + dx
            if (dx == 0 and dy == 0) or x < 0 or x >= count:
                continue
            indexes.append(y * count + x)
    return indexes


def find_match(new_chunk, index, old_grid, options):
    for candidate in candidate_indexes(old_grid.count, index, options.search_range):
        old_chunk = old_grid[candidate]
        log_info('comparing chunks', new_chunk, old_chunk, level=2)
        if old_chunk.size == new_chunk.size and new_chunk.equals(old_chunk, options.threshold):
            return old_chunk
    return None


def find_matches(old, new, options):
    """
    Run the grid levels until cells no longer fit, returning the matches in
    the order they were found and the region of the new image they cover.
    """
    matches = []
    used = UsedRegion(new.width, new.height)
    count = 1

    while True:
        new_cells = generate_grid(new, count, options.min_size, used)
        if not new_cells:
            break

        pending = [(i, chunk) for (i, chunk) in enumerate(new_cells) if chunk is not None]
        found = 0
        if pending:
            old_grid = Grid(old, count)
            for (i, new_chunk) in pending:
                old_chunk = find_match(new_chunk, i, old_grid, options)
                if old_chunk is not None:
                    used.add(new_chunk.rect)
                    matches.append(MatchPair(new_chunk, old_chunk))
                    found += 1

        log_info(f'level {count}: {len(pending)} open chunks, {found} matched')
        if used.area == new.width * new.height:
            # nothing left to subdivide
            break
        count += 1

    return matches, used


def join_matches(matches):
    """
    Merge match pairs that sit next to each other in the new image and were
    found next to each other, on the same side, in the old image. Matches that
    did not move are left alone. Works in place, and returns the list.
    """
    modified = True
    while modified:
        modified = False
        i = 0
        while i < len(matches):
            match = matches[i]
            if match.in_place:
                i += 1
                continue

            for j in range(i + 1, len(matches)):
                other = matches[j]
                if match.new.all_transparent != other.new.all_transparent:
                    continue
                aligned = match.new.alignment(other.new)
                if aligned is None:
                    continue
                old_aligned = match.old.alignment(other.old)
                log_info('comparing', match, other, aligned, old_aligned, level=2)
                if old_aligned == aligned:
                    matches[i] = MatchPair(match.new.joined(other.new), match.old.joined(other.old))
                    del matches[j]
                    modified = True
                    log_info(f'chunk {i} {format_rect(matches[i].new.rect)} was joined with chunk {j} {format_rect(other.new.rect)}')
                    break
            i += 1

    return matches


def diff_images(old, new, options=None):
    """
    Find the blocks of new that can also be found in old.
    """
    options = options or DiffOptions()
    check_same_size(old, new)

    matches, used = find_matches(old, new, options)
    if options.join and matches:
        join_matches(matches)

    for (i, match) in enumerate(matches):
        flag = ' transparent' if match.new.all_transparent else ''
        if match.in_place:
            where = 'SAME'
        else:
            where = f'FOUND AT {format_rect(match.old.rect)}'
        log_info(f'Match {i} {format_rect(match.new.rect)}{flag} {where}')

    return DiffResult(old, new, matches, used)
