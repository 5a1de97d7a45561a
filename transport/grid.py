"""
Sparse spatial grid for the collision search.

Particles are bucketed by ``floor(x / cell_length)`` per axis in a
dict-backed grid, so negative and unbounded coordinates need no special
care. Each occupied cell is searched against itself and against its 13
"forward" neighbours; together with the mirrored 13 this covers every
adjacent pair exactly once.
"""

from __future__ import annotations

import math
from typing import Callable, Dict, Iterator, List, Sequence, Tuple

from .particle_data import ParticleData

CellKey = Tuple[int, int, int]

# Half of the 26 neighbour offsets: the ones lexicographically after (0, 0, 0)
FORWARD_OFFSETS: Tuple[CellKey, ...] = tuple(
    (dx, dy, dz)
    for dx in (-1, 0, 1)
    for dy in (-1, 0, 1)
    for dz in (-1, 0, 1)
    if (dx, dy, dz) > (0, 0, 0)
)


def min_cell_length(max_transverse_distance: float, dt: float) -> float:
    """Smallest cell that still contains every partner reachable within ``dt``.

    Two particles approach each other at most with relative speed 2.
    """
    return math.sqrt(max_transverse_distance ** 2 + (2.0 * dt) ** 2)


class Grid:
    def __init__(self, particles: Sequence[ParticleData], cell_length: float):
        if cell_length <= 0.0:
            raise ValueError(f"cell_length must be positive, got {cell_length}")
        self.cell_length = cell_length
        self.cells: Dict[CellKey, List[ParticleData]] = {}
        inv = 1.0 / cell_length
        floor = math.floor
        for p in particles:
            key = (int(floor(p.position.x1 * inv)),
                   int(floor(p.position.x2 * inv)),
                   int(floor(p.position.x3 * inv)))
            bucket = self.cells.get(key)
            if bucket is None:
                self.cells[key] = [p]
            else:
                bucket.append(p)

    def __len__(self) -> int:
        return len(self.cells)

    def forward_neighbors(self, key: CellKey) -> List[ParticleData]:
        cx, cy, cz = key
        neighbors: List[ParticleData] = []
        for dx, dy, dz in FORWARD_OFFSETS:
            bucket = self.cells.get((cx + dx, cy + dy, cz + dz))
            if bucket:
                neighbors.extend(bucket)
        return neighbors

    def iterate_cells(self) -> Iterator[Tuple[List[ParticleData], List[ParticleData]]]:
        """(search cell, forward neighbours) for every occupied cell, in key order."""
        for key in sorted(self.cells):
            yield self.cells[key], self.forward_neighbors(key)

    def map_cells(self, search: Callable[[List[ParticleData], List[ParticleData]], list],
                  executor=None) -> list:
        """
        Apply ``search(cell, neighbors)`` to every cell and concatenate the results.

        With an ``executor`` (anything with a ``map`` method, e.g. a
        ``concurrent.futures`` pool) the cells are searched concurrently; the
        result order is the cell order either way.
        """
        work = list(self.iterate_cells())
        if executor is None:
            chunks = [search(cell, neighbors) for cell, neighbors in work]
        else:
            chunks = list(executor.map(lambda item: search(*item), work))
        found = []
        for chunk in chunks:
            found.extend(chunk)
        return found
