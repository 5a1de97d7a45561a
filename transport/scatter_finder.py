"""
Collision finder: which pairs collide within the current time window, and when.

All particles handed to the finder must sit at a common time (the
simulation propagates everybody to the time of the last action before
searching again). Pairs are tested in this order, cheapest first:

1. produced by the same action, or both already scattered this step;
2. time of closest approach in the computational frame, must lie in [0, dt);
3. invariant transverse distance against the largest possible cross section;
4. total cross section of the pair from the provider;
5. geometric acceptance ``b^2 < sigma_eff / pi`` with ``sigma_eff`` scaled by
   the formation factors of both particles at the collision time.
"""

from __future__ import annotations

import logging
import math
from typing import AbstractSet, List, Optional, Sequence

import numpy as np

from .cross_sections import CrossSectionProvider
from .grid import Grid, min_cell_length
from .particle_data import ParticleData
from .scatter_action import ScatterAction
from .strings import HadronizationOracle

logger = logging.getLogger(__name__)

FM2_PER_MB = 0.1
# |v_a - v_b|^2 E_a^2 E_b^2 below this counts as parallel
PARALLEL_CUTOFF = 1.0e-10


class ScatterActionsFinder:
    """
    Parameters
    ----------
    provider : CrossSectionProvider
        ``(type_a, type_b, sqrt_s) -> list[CollisionBranch]``.
    string_oracle : HadronizationOracle, optional
        Passed on to every ScatterAction; needed only if the provider
        returns string channels.
    maximum_cross_section : float
        Upper bound (mb) of any total cross section. Sets the search radius.
    has_interacted : set of int, optional
        Ids of particles that already took part in an action this step. The
        set is read, never modified; the owner clears it between steps.
    """

    def __init__(self, provider: CrossSectionProvider, string_oracle: Optional[HadronizationOracle] = None,
                 maximum_cross_section: float = 200.0, has_interacted: Optional[AbstractSet[int]] = None):
        if maximum_cross_section <= 0.0:
            raise ValueError(f"maximum_cross_section must be positive, got {maximum_cross_section}")
        self.provider = provider
        self.string_oracle = string_oracle
        self.maximum_cross_section = maximum_cross_section
        self.has_interacted = has_interacted if has_interacted is not None else set()

    @property
    def max_transverse_distance_sqr(self) -> float:
        """Largest impact parameter squared (fm^2) that can still lead to a collision."""
        return self.maximum_cross_section * FM2_PER_MB / math.pi

    @staticmethod
    def collision_time(p1: ParticleData, p2: ParticleData) -> float:
        """
        Time until the two straight trajectories are closest, in the frame of
        computation.

        Returns -1 for (nearly) parallel velocities, which never approach.
        """
        e1 = p1.momentum.E
        e2 = p2.momentum.E
        dv_times_e1e2 = p1.momentum.threevec * e2 - p2.momentum.threevec * e1
        dv_sqr = float(np.dot(dv_times_e1e2, dv_times_e1e2))
        if dv_sqr < PARALLEL_CUTOFF:
            return -1.0
        dr = p1.position.threevec - p2.position.threevec
        return -float(np.dot(dr, dv_times_e1e2)) * (e1 * e2 / dv_sqr)

    def _skip_pair(self, a: ParticleData, b: ParticleData) -> bool:
        # Products of the same action would otherwise collide right away
        if a.id_process > 0 and a.id_process == b.id_process:
            return True
        return a.id in self.has_interacted and b.id in self.has_interacted

    def check_collision(self, a: ParticleData, b: ParticleData, dt: float) -> Optional[ScatterAction]:
        """The candidate ScatterAction of ``a`` and ``b``, or None if they do not collide."""
        if self._skip_pair(a, b):
            return None

        time_until = self.collision_time(a, b)
        if time_until < 0.0 or time_until >= dt:
            return None

        action = ScatterAction(a, b, time_until, string_oracle=self.string_oracle)
        distance_sqr = action.transverse_distance_sqr()
        if distance_sqr >= self.max_transverse_distance_sqr:
            return None

        cross_section = action.add_all_scatterings(self.provider)
        if cross_section <= 0.0:
            return None

        scaling = a.xsec_scaling_factor(time_until) * b.xsec_scaling_factor(time_until)
        if distance_sqr >= cross_section * scaling * FM2_PER_MB / math.pi:
            return None
        return action

    # -------------------- Search --------------------

    def find_actions_in_cell(self, search_list: Sequence[ParticleData], dt: float) -> List[ScatterAction]:
        """Every colliding pair within ``search_list``."""
        actions = []
        for i, a in enumerate(search_list):
            for b in search_list[i + 1:]:
                action = self.check_collision(a, b, dt)
                if action is not None:
                    actions.append(action)
        return actions

    def find_actions_with_neighbors(self, search_list: Sequence[ParticleData],
                                    neighbors_list: Sequence[ParticleData], dt: float) -> List[ScatterAction]:
        """Every colliding pair with one partner from each list."""
        actions = []
        for a in search_list:
            for b in neighbors_list:
                if a.id == b.id:
                    continue
                action = self.check_collision(a, b, dt)
                if action is not None:
                    actions.append(action)
        return actions

    def find_actions(self, particles: Sequence[ParticleData], dt: float, executor=None) -> List[ScatterAction]:
        """
        All collisions among ``particles`` within ``dt``, in execution order.

        The pairs are searched cell by cell on a Grid; ``executor`` (e.g. a
        ``concurrent.futures.ThreadPoolExecutor``) parallelises over cells.
        """
        particles = list(particles)
        if len(particles) < 2:
            return []
        cell_length = min_cell_length(math.sqrt(self.max_transverse_distance_sqr), dt)
        grid = Grid(particles, cell_length)

        def search(cell, neighbors):
            return self.find_actions_in_cell(cell, dt) + self.find_actions_with_neighbors(cell, neighbors, dt)

        actions = grid.map_cells(search, executor)
        actions.sort(key=lambda action: action.sort_key())
        logger.debug("Found %d collisions among %d particles in %d cells (dt=%.3f fm)",
                     len(actions), len(particles), len(grid), dt)
        return actions
