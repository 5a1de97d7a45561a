"""
Time stepping: search, resolve, perform.

Each time step of length ``dt`` runs in two phases:

* **search** - every finder looks at a snapshot of the registry (cell by
  cell on a Grid, optionally in parallel) and returns candidate actions;
* **commit** - a single coordinator pops the candidates in
  ``(time, incoming ids)`` order, propagates all particles to the action
  time, samples the final state and performs it. Queued actions sharing a
  particle with a performed one are invalidated, and the outgoing particles
  are searched again against everybody for the rest of the step.

Stale actions are dropped silently; an InvariantViolation aborts the run.
"""

from __future__ import annotations

import heapq
import itertools
import logging
import math
from collections import Counter
from typing import Callable, Dict, Iterable, List, Optional, Protocol, Sequence, Set

import numpy as np

from .action import Action, ActionRecord, ActionState, ProcessType
from .conservation import four_momentum_balance
from .cross_sections import CrossSectionProvider, ToyCrossSections
from .decay_action import DecayActionsFinder
from .errors import InvariantViolation
from .grid import Grid, min_cell_length
from .kinematics import FourVector, sum_four_vectors
from .particle_data import ParticleData
from .particles import Particles
from .scatter_finder import ScatterActionsFinder
from .strings import HadronizationOracle, PhaseSpaceStrings
from .wall_action import BoxBoundary, WallCrossingFinder

logger = logging.getLogger(__name__)


class ActionFinder(Protocol):
    def find_actions_in_cell(self, search_list: Sequence[ParticleData], dt: float) -> List[Action]:
        ...

    def find_actions_with_neighbors(self, search_list: Sequence[ParticleData],
                                    neighbors_list: Sequence[ParticleData], dt: float) -> List[Action]:
        ...


class ActionQueue:
    """
    Candidate actions of one time step, smallest ``sort_key`` first.

    Keeps an index from particle id to the queued actions that use it, so
    that committing an action can invalidate its competitors directly.
    """

    def __init__(self, actions: Iterable[Action] = ()):
        self._heap = []
        self._counter = itertools.count()
        self._by_particle: Dict[int, List[Action]] = {}
        self.extend(actions)

    def __len__(self) -> int:
        return len(self._heap)

    def __bool__(self) -> bool:
        return bool(self._heap)

    def push(self, action: Action) -> None:
        heapq.heappush(self._heap, (action.sort_key(), next(self._counter), action))
        for pid in action.incoming_ids():
            self._by_particle.setdefault(pid, []).append(action)

    def extend(self, actions: Iterable[Action]) -> None:
        for action in actions:
            self.push(action)

    def pop(self) -> Optional[Action]:
        """Next action that has not been invalidated, or None when empty."""
        while self._heap:
            _, _, action = heapq.heappop(self._heap)
            for pid in action.incoming_ids():
                queued = self._by_particle.get(pid)
                if queued is not None:
                    queued.remove(action)
                    if not queued:
                        del self._by_particle[pid]
            if action.state is not ActionState.INVALIDATED:
                return action
        return None

    def invalidate_touching(self, particle_ids: Iterable[int]) -> int:
        """Invalidate every queued action using any of ``particle_ids``; returns how many."""
        count = 0
        for pid in particle_ids:
            for action in self._by_particle.get(pid, ()):
                if action.state is not ActionState.INVALIDATED:
                    action.invalidate()
                    count += 1
        return count


class Experiment:
    """
    One simulation run over a fixed particle registry.

    Parameters
    ----------
    particles : Particles
        Initial state; all particles must share the same time.
    finders : list of ActionFinder
        Searched every step, in this order.
    dt : float
        Time step (fm).
    end_time : float
        Run stops when the registry time reaches this value.
    rng : numpy.random.Generator, optional
        Used for every final state; seed it for reproducible runs.
    has_interacted : set, optional
        Shared with the scatter finder; cleared at the start of each step.
    executor : optional
        ``concurrent.futures`` executor for the per-cell search.
    """

    def __init__(self, particles: Particles, finders: Sequence[ActionFinder], dt: float, end_time: float,
                 rng: Optional[np.random.Generator] = None, has_interacted: Optional[Set[int]] = None,
                 cell_length: Optional[float] = None, executor=None):
        if dt <= 0.0:
            raise ValueError(f"dt must be positive, got {dt}")
        self.particles = particles
        self.finders = list(finders)
        self.dt = dt
        self.end_time = end_time
        self.rng = rng or np.random.default_rng()
        self.has_interacted: Set[int] = has_interacted if has_interacted is not None else set()
        self._cell_length = cell_length
        self.executor = executor

        self.observers: List[Callable[[ActionRecord], None]] = []
        self.stats: Counter = Counter()
        self.step_count = 0
        self._next_id_process = max((p.id_process for p in particles), default=0) + 1
        self._initial_momentum = self.total_momentum()

    # -------------------- Construction --------------------

    @classmethod
    def from_config(cls, config, particles: Particles, provider: Optional[CrossSectionProvider] = None,
                    string_oracle: Optional[HadronizationOracle] = None, executor=None) -> "Experiment":
        """Wire up the standard finders (scatterings, decays, box walls) from a TransportConfig."""
        rng = np.random.default_rng(config.seed)
        if provider is None:
            provider = ToyCrossSections(elastic=config.elastic_cross_section,
                                        resonance_peak=config.resonance_cross_section,
                                        string=config.string_cross_section,
                                        string_threshold=config.string_threshold)
        if string_oracle is None:
            string_oracle = PhaseSpaceStrings(formation_time=config.string_formation_time,
                                              suppression_factor=config.leading_suppression)
        has_interacted: Set[int] = set()
        finders: List[ActionFinder] = [
            ScatterActionsFinder(provider, string_oracle, config.maximum_cross_section, has_interacted),
            DecayActionsFinder(rng),
        ]
        if config.box_length > 0.0:
            finders.append(WallCrossingFinder(BoxBoundary(config.box_length, config.periodic)))
        return cls(particles, finders, config.dt, config.end_time, rng=rng,
                   has_interacted=has_interacted, executor=executor)

    def add_observer(self, observer: Callable[[ActionRecord], None]) -> None:
        """``observer(record)`` is called for every performed action."""
        self.observers.append(observer)

    # -------------------- Search --------------------

    def _cell_length_for(self, dt: float) -> float:
        if self._cell_length is not None:
            return self._cell_length
        b_max = 0.0
        for finder in self.finders:
            if isinstance(finder, ScatterActionsFinder):
                b_max = max(b_max, math.sqrt(finder.max_transverse_distance_sqr))
        return max(min_cell_length(b_max, dt), 1.0)

    def find_candidates(self, snapshot: Sequence[ParticleData], dt: float) -> List[Action]:
        """All candidate actions of ``snapshot`` within ``dt``, sorted by execution order."""
        if not snapshot:
            return []
        grid = Grid(snapshot, self._cell_length_for(dt))

        def search(cell, neighbors):
            found: List[Action] = []
            for finder in self.finders:
                found.extend(finder.find_actions_in_cell(cell, dt))
                found.extend(finder.find_actions_with_neighbors(cell, neighbors, dt))
            return found

        actions = grid.map_cells(search, self.executor)
        actions.sort(key=lambda action: action.sort_key())
        return actions

    def _find_for_outgoing(self, outgoing: List[ParticleData], dt: float) -> List[Action]:
        """Actions of freshly produced particles, among themselves and with everybody else."""
        if not outgoing or dt <= 0.0:
            return []
        new_ids = {p.id for p in outgoing}
        others = [p.copy() for p in self.particles if p.id not in new_ids]
        found: List[Action] = []
        for finder in self.finders:
            found.extend(finder.find_actions_in_cell(outgoing, dt))
            found.extend(finder.find_actions_with_neighbors(outgoing, others, dt))
        return found

    # -------------------- Commit --------------------

    def propagate_all_to(self, time: float) -> None:
        for p in self.particles:
            p.propagate_to(time)

    def _notify(self, record: ActionRecord) -> None:
        for observer in self.observers:
            observer(record)

    def perform_action(self, action: Action) -> bool:
        """
        Propagate to the action time, sample its final state and commit it.

        Returns False (and drops the action) if it went stale.
        """
        if not action.is_valid(self.particles):
            action.invalidate()
            self.stats["stale"] += 1
            return False

        self.propagate_all_to(action.time_of_execution)
        action.update_incoming(self.particles)
        action.generate_final_state(self.rng)
        if not action.perform(self.particles, self._next_id_process):
            self.stats["stale"] += 1
            return False
        self._next_id_process += 1

        if action.process_type is not ProcessType.WALL:
            self.has_interacted.update(p.id for p in action.incoming_particles)
            self.has_interacted.update(p.id for p in action.outgoing_particles)
        self.stats[action.process_type.value] += 1
        self.stats["performed"] += 1
        self._notify(action.record())
        return True

    def run_time_step(self, dt: Optional[float] = None) -> List[Action]:
        """Advance the registry by ``dt``; returns the performed actions in order."""
        dt = self.dt if dt is None else dt
        if self.particles.is_empty():
            return []
        t_start = self.particles.time()
        t_end = t_start + dt
        self.has_interacted.clear()

        queue = ActionQueue(self.find_candidates(self.particles.copy_to_list(), dt))
        self.stats["candidates"] += len(queue)
        performed: List[Action] = []

        while True:
            action = queue.pop()
            if action is None:
                break
            try:
                done = self.perform_action(action)
            except InvariantViolation:
                logger.error("Invariant violated while performing %r, aborting", action)
                raise
            if not done:
                continue
            performed.append(action)
            self.stats["invalidated"] += queue.invalidate_touching(action.incoming_ids())
            if self.particles.is_empty():
                break
            followups = self._find_for_outgoing(action.outgoing_particles, t_end - action.time_of_execution)
            self.stats["candidates"] += len(followups)
            queue.extend(followups)

        self.propagate_all_to(t_end)
        self.step_count += 1
        logger.debug(f"Step {self.step_count}: t={t_end:.3f} fm, {len(performed)} actions, "
                     f"{len(self.particles)} particles")
        return performed

    def run(self) -> Dict[str, int]:
        """Step until ``end_time``; returns the action statistics."""
        if self.particles.is_empty():
            logger.warning("No particles, nothing to simulate")
            return dict(self.stats)
        logger.info(f"Running {len(self.particles)} particles from t={self.particles.time():.3f} "
                    f"to t={self.end_time:.3f} fm with dt={self.dt:.3f} fm")
        while not self.particles.is_empty() and self.particles.time() < self.end_time - 1e-12:
            dt = min(self.dt, self.end_time - self.particles.time())
            self.run_time_step(dt)
        logger.info(f"Finished after {self.step_count} steps: {self.stats['performed']} actions, "
                    f"{len(self.particles)} particles left")
        return dict(self.stats)

    # -------------------- Diagnostics --------------------

    def total_momentum(self) -> FourVector:
        return sum_four_vectors(p.momentum for p in self.particles)

    def momentum_balance(self) -> Dict[str, float]:
        """Difference between the current and the initial total four-momentum."""
        return four_momentum_balance([self._initial_momentum], [self.total_momentum()])

    def counts_by_process(self) -> Dict[str, int]:
        return {ptype.value: self.stats[ptype.value] for ptype in ProcessType if self.stats[ptype.value]}
