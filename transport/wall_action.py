"""Cubic box boundary: particles either re-enter on the opposite face or leave for good."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import List, Sequence, Tuple

import numpy as np

from .action import Action, ProcessType
from .kinematics import FourVector
from .particle_data import ParticleData


@dataclass
class BoxBoundary:
    """The box [0, length)^3 in fm."""

    length: float
    periodic: bool = True

    def __post_init__(self):
        if self.length <= 0.0:
            raise ValueError(f"Box length must be positive, got {self.length}")

    def contains(self, position: FourVector) -> bool:
        return all(0.0 <= x < self.length for x in (position.x1, position.x2, position.x3))

    def time_to_exit(self, particle: ParticleData) -> Tuple[float, int, int]:
        """
        Time until ``particle`` reaches a face, which axis, and the direction.

        Returns ``(inf, -1, 0)`` for a particle at rest.
        """
        v = particle.velocity()
        x = particle.position.threevec
        best = (math.inf, -1, 0)
        for axis in range(3):
            if v[axis] > 0.0:
                t = (self.length - x[axis]) / v[axis]
                candidate = (max(t, 0.0), axis, 1)
            elif v[axis] < 0.0:
                t = -x[axis] / v[axis]
                candidate = (max(t, 0.0), axis, -1)
            else:
                continue
            if candidate[0] < best[0]:
                best = candidate
        return best


class WallCrossingAction(Action):
    """A particle reaching the box face ``axis`` moving in ``direction`` (+1 / -1)."""

    def __init__(self, particle: ParticleData, time_until: float, boundary: BoxBoundary,
                 axis: int, direction: int):
        super().__init__([particle], time_until, ProcessType.WALL)
        self.boundary = boundary
        self.axis = axis
        self.direction = direction
        # an absorbing wall removes the particle without replacement
        self.conserves_four_momentum = boundary.periodic

    def weight(self) -> float:
        return 0.0

    def _replaces_incoming(self) -> bool:
        return not self.boundary.periodic

    def record_extra(self) -> dict:
        return {"axis": int(self.axis), "direction": int(self.direction), "periodic": bool(self.boundary.periodic)}

    def _sample_final_state(self, rng: np.random.Generator) -> Tuple[ProcessType, List[ParticleData]]:
        if not self.boundary.periodic:
            return ProcessType.WALL, []
        crossed = self.incoming_particles[0].copy()
        crossed.propagate_to(self.time_of_execution)
        coords = crossed.position.as_array()
        coords[self.axis + 1] = 0.0 if self.direction > 0 else self.boundary.length
        crossed.position = FourVector.from_array(coords)
        return ProcessType.WALL, [crossed]


class WallCrossingFinder:
    def __init__(self, boundary: BoxBoundary):
        self.boundary = boundary

    def find_actions_in_cell(self, search_list: Sequence[ParticleData], dt: float) -> List[WallCrossingAction]:
        actions = []
        for p in search_list:
            time_until, axis, direction = self.boundary.time_to_exit(p)
            if time_until < dt:
                actions.append(WallCrossingAction(p, time_until, self.boundary, axis, direction))
        return actions

    def find_actions_with_neighbors(self, search_list, neighbors_list, dt) -> List[WallCrossingAction]:
        return []
