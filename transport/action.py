"""
Actions: time-stamped transitions from incoming to outgoing particles.

Life cycle::

    CANDIDATE --generate_final_state()--> FINALIZED --perform()--> PERFORMED
        \\                                   |
         `------------- invalidate() / stale copies ------------> INVALIDATED

An action only ever holds *copies* of its incoming particles. Right before
committing, :meth:`Action.perform` re-checks every copy against the registry,
so an action computed for one configuration is never applied to another.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Sequence, Tuple

import numpy as np

from .conservation import check_energy_momentum
from .errors import ActionAlreadyPerformed, InvariantViolation, TransportError
from .kinematics import FourVector, sum_four_vectors
from .particle_data import ParticleData
from .particles import Particles

logger = logging.getLogger(__name__)


class ProcessType(Enum):
    """Closed set of interaction kinds."""

    NONE = "none"
    ELASTIC = "elastic"
    TWO_TO_ONE = "2->1"
    TWO_TO_TWO = "2->2"
    STRING = "string"
    DECAY = "decay"
    WALL = "wall"


class ActionState(Enum):
    CANDIDATE = "candidate"
    FINALIZED = "finalized"
    PERFORMED = "performed"
    INVALIDATED = "invalidated"


# Kinds that keep the identity of the incoming particles
IN_PLACE_PROCESSES = frozenset({ProcessType.ELASTIC})


@dataclass
class ActionRecord:
    """What an output collaborator needs to know about a performed action."""

    id_process: int
    process_type: ProcessType
    time: float
    incoming: List[ParticleData]
    outgoing: List[ParticleData]
    sqrt_s: float
    cross_section: float = 0.0
    extra: dict = field(default_factory=dict)


class Action(ABC):
    """Common validity/commit protocol of every interaction kind."""

    # Absorbing walls remove particles without replacement
    conserves_four_momentum = True

    def __init__(self, incoming: Sequence[ParticleData], time_until: float,
                 process_type: ProcessType = ProcessType.NONE):
        if not incoming:
            raise ValueError("An action needs at least one incoming particle")
        self.incoming_particles: List[ParticleData] = [p.copy() for p in incoming]
        self.time_of_execution = self.incoming_particles[0].position.t + time_until
        self.process_type = process_type
        self.outgoing_particles: List[ParticleData] = []
        self.state = ActionState.CANDIDATE
        self.id_process: Optional[int] = None

    # -------------------- Ordering --------------------

    def incoming_ids(self) -> Tuple[int, ...]:
        return tuple(sorted(p.id for p in self.incoming_particles))

    def sort_key(self) -> Tuple[float, Tuple[int, ...]]:
        """Execution order: time first, then the incoming ids."""
        return (self.time_of_execution, self.incoming_ids())

    def __lt__(self, other: "Action") -> bool:
        return self.sort_key() < other.sort_key()

    # -------------------- Validity --------------------

    def is_valid(self, particles: Particles) -> bool:
        return all(particles.is_valid(p) for p in self.incoming_particles)

    def update_incoming(self, particles: Particles) -> None:
        """Refresh the incoming copies (e.g. positions after propagation)."""
        self.incoming_particles = [particles.lookup(p).copy() for p in self.incoming_particles]

    def invalidate(self) -> None:
        if self.state is ActionState.PERFORMED:
            raise ActionAlreadyPerformed("A performed action cannot be invalidated")
        self.state = ActionState.INVALIDATED

    # -------------------- Kinematics --------------------

    def total_momentum(self) -> FourVector:
        return sum_four_vectors(p.momentum for p in self.incoming_particles)

    def sqrt_s(self) -> float:
        return self.total_momentum().mass

    def get_interaction_point(self) -> FourVector:
        """Mean of the incoming four-positions."""
        total = sum_four_vectors(p.position for p in self.incoming_particles)
        return total / len(self.incoming_particles)

    # -------------------- Final state --------------------

    @abstractmethod
    def weight(self) -> float:
        """Total cross section (mb) for scatterings, total width (GeV) for decays."""

    @abstractmethod
    def _sample_final_state(self, rng: np.random.Generator) -> Tuple[ProcessType, List[ParticleData]]:
        """Chosen process type and the outgoing particles (not yet in the registry)."""

    def generate_final_state(self, rng: Optional[np.random.Generator] = None) -> List[ParticleData]:
        """
        Sample the outgoing particles (CANDIDATE -> FINALIZED).

        Raises:
            InvariantViolation: if the sampled state does not conserve
                the total four-momentum.
        """
        if self.state is not ActionState.CANDIDATE:
            raise TransportError(f"Cannot generate a final state in state {self.state.value}")
        rng = rng or np.random.default_rng()
        process_type, outgoing = self._sample_final_state(rng)

        if self.conserves_four_momentum:
            balance = check_energy_momentum([p.momentum for p in self.incoming_particles],
                                            [p.momentum for p in outgoing])
            if not balance["conserved"]:
                raise InvariantViolation(
                    f"{process_type.value} final state violates four-momentum conservation: "
                    f"dE={balance['deltaE']:.3e}, dp=({balance['deltaPx']:.3e}, "
                    f"{balance['deltaPy']:.3e}, {balance['deltaPz']:.3e})"
                )

        self.process_type = process_type
        self.outgoing_particles = outgoing
        self.state = ActionState.FINALIZED
        return outgoing

    # -------------------- Commit --------------------

    def _replaces_incoming(self) -> bool:
        return self.process_type not in IN_PLACE_PROCESSES

    def _commit(self, particles: Particles) -> List[ParticleData]:
        return particles.update(self.incoming_particles, self.outgoing_particles,
                                do_replace=self._replaces_incoming())

    def perform(self, particles: Particles, id_process: int) -> bool:
        """
        Commit the finalized action to ``particles``.

        Returns:
            True if the action was applied; False if it turned out to be stale
            (or had been invalidated) and was dropped instead.

        Raises:
            ActionAlreadyPerformed: on a second call after a successful one.
            TransportError: if no final state has been generated yet.
        """
        if self.state is ActionState.PERFORMED:
            raise ActionAlreadyPerformed(f"Action {self.id_process} was already performed")
        if self.state is ActionState.INVALIDATED:
            return False
        if not self.is_valid(particles):
            logger.debug("Stale %s action at t=%.4f, not applied (incoming ids %s)",
                         self.process_type.value, self.time_of_execution, self.incoming_ids())
            self.state = ActionState.INVALIDATED
            return False
        if self.state is not ActionState.FINALIZED:
            raise TransportError("perform() requires generate_final_state() first")

        for p in self.outgoing_particles:
            p.id_process = id_process
        self.outgoing_particles = self._commit(particles)
        self.id_process = id_process
        self.state = ActionState.PERFORMED
        return True

    def record(self) -> ActionRecord:
        if self.state is not ActionState.PERFORMED:
            raise TransportError("Only performed actions can be recorded")
        return ActionRecord(
            id_process=self.id_process,
            process_type=self.process_type,
            time=self.time_of_execution,
            incoming=list(self.incoming_particles),
            outgoing=list(self.outgoing_particles),
            sqrt_s=self.sqrt_s(),
            cross_section=self.weight(),
            extra=self.record_extra(),
        )

    def record_extra(self) -> dict:
        """Kind-specific details for the history: chosen channel, decay mode, wall."""
        return {}

    def __repr__(self):
        return (f"{type(self).__name__}({self.process_type.value}, t={self.time_of_execution:.4f}, "
                f"in={list(self.incoming_ids())}, state={self.state.value})")
