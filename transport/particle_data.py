from __future__ import annotations

import copy
from dataclasses import dataclass, field
from typing import Optional, Sequence

import numpy as np

from . import species
from .kinematics import FourVector
from .species import ParticleType


@dataclass(eq=False)
class ParticleData:
    """
    One particle at one point of its history.

    Instances handed out by :class:`transport.particles.Particles` are
    *copies*: they remember the slot index, ``id`` and ``id_process`` of the
    stored particle at the moment they were taken, which is what
    ``Particles.is_valid`` compares against.
    """

    type: ParticleType
    momentum: FourVector = field(default_factory=FourVector.zero)
    position: FourVector = field(default_factory=FourVector.zero)
    id: int = -1
    id_process: int = 0

    # String fragments interact with a reduced cross section until formed
    formation_time: float = 0.0
    begin_formation_time: float = 0.0
    initial_xsec_scaling_factor: float = 1.0

    # Registry bookkeeping, meaningless outside Particles
    _index: int = field(default=-1, init=False, repr=False)

    def __post_init__(self):
        if self.momentum.x0 == 0.0 and self.momentum.abs3 == 0.0:
            self.momentum = FourVector(self.type.mass, 0.0, 0.0, 0.0)

    # -------------------- Construction --------------------

    @classmethod
    def from_pdg(cls, pdg: int, momentum: Optional[Sequence[float]] = None,
                 position: Optional[Sequence[float]] = None) -> "ParticleData":
        """Particle of species ``pdg`` with on-shell three-momentum and a four-position."""
        ptype = species.find(pdg)
        p = cls(ptype)
        if momentum is not None:
            p.set_3momentum(momentum)
        if position is not None:
            p.position = FourVector(*(float(x) for x in position))
        return p

    def copy(self) -> "ParticleData":
        return copy.copy(self)

    # -------------------- Physics Methods --------------------

    @property
    def pdg(self) -> int:
        return self.type.pdg

    @property
    def pole_mass(self) -> float:
        return self.type.mass

    @property
    def effective_mass(self) -> float:
        """Invariant mass of the four-momentum (differs from pole_mass off shell)."""
        return self.momentum.mass

    def set_3momentum(self, p3, mass: Optional[float] = None) -> None:
        m = self.pole_mass if mass is None else mass
        self.momentum = FourVector.from_mass_and_momentum(m, p3)

    def velocity(self) -> np.ndarray:
        return self.momentum.velocity()

    def gamma(self) -> float:
        m = self.effective_mass
        if m <= 0.0:
            return float("inf")
        return self.momentum.E / m

    def xsec_scaling_factor(self, delta_time: float = 0.0) -> float:
        """Cross-section scaling at ``delta_time`` after the particle's current time."""
        if self.position.t + delta_time >= self.formation_time:
            return 1.0
        return self.initial_xsec_scaling_factor

    def set_formation(self, begin: float, end: float, scaling_factor: float) -> None:
        self.begin_formation_time = begin
        self.formation_time = end
        self.initial_xsec_scaling_factor = scaling_factor

    def propagate_to(self, time: float) -> None:
        """Free streaming along a straight line up to ``time``."""
        dt = time - self.position.t
        if dt == 0.0:
            return
        v = self.velocity()
        self.position = FourVector(time,
                                   self.position.x1 + v[0] * dt,
                                   self.position.x2 + v[1] * dt,
                                   self.position.x3 + v[2] * dt)

    # -------------------- Representation --------------------

    def __repr__(self):
        return (
            f"ParticleData(id={self.id}, {self.type.name}, id_process={self.id_process}, "
            f"p={self.momentum}, x={self.position})"
        )
