"""Resonance decays (1 -> N) and the finder that schedules them."""

from __future__ import annotations

import logging
from typing import List, Optional, Sequence, Tuple

import numpy as np

from . import decays, species
from .action import Action, ProcessType
from .errors import TransportError
from .kinematics import HBARC
from .particle_data import ParticleData
from .phase_space import sample_n_body_unweighted

logger = logging.getLogger(__name__)


class DecayAction(Action):
    """Decay of one particle ``time_until`` after its current time."""

    def __init__(self, particle: ParticleData, time_until: float):
        super().__init__([particle], time_until, ProcessType.DECAY)
        self.chosen_mode: Optional[decays.DecayMode] = None

    def weight(self) -> float:
        return self.incoming_particles[0].type.width

    def record_extra(self) -> dict:
        if self.chosen_mode is None:
            return {}
        names = " ".join(species.find(pdg).name for pdg in self.chosen_mode.daughters)
        return {"decay_mode": f"{self.incoming_particles[0].type.name} -> {names}",
                "branching_ratio": self.chosen_mode.branching_ratio}

    def _sample_final_state(self, rng: np.random.Generator) -> Tuple[ProcessType, List[ParticleData]]:
        parent = self.incoming_particles[0]
        mode = decays.choose_decay_mode(parent.pdg, parent.effective_mass, rng)
        if mode is None:
            raise TransportError(f"{parent.type.name} with m={parent.effective_mass:.4f} GeV has no open decay mode")
        self.chosen_mode = mode

        daughter_types = [species.find(pdg) for pdg in mode.daughters]
        momenta = sample_n_body_unweighted(parent.momentum, [t.mass for t in daughter_types], rng)
        point = self.get_interaction_point()
        outgoing = [ParticleData(t, momentum=p, position=point) for t, p in zip(daughter_types, momenta)]
        return ProcessType.DECAY, outgoing


def has_open_mode(particle: ParticleData) -> bool:
    mass = particle.effective_mass
    return any(mode.is_open(mass) and mode.branching_ratio > 0.0
               for mode in decays.get_decay_modes(particle.pdg))


class DecayActionsFinder:
    """
    Schedule decays of unstable particles.

    The decay time is drawn from an exponential distribution with the
    lab-frame lifetime gamma * hbar c / width.
    """

    def __init__(self, rng: np.random.Generator):
        self.rng = rng

    def find_actions_in_cell(self, search_list: Sequence[ParticleData], dt: float) -> List[DecayAction]:
        actions = []
        for p in search_list:
            if p.type.is_stable or not has_open_mode(p):
                continue
            lifetime = HBARC / p.type.width * p.gamma()
            time_until = float(self.rng.exponential(lifetime))
            if time_until < dt:
                actions.append(DecayAction(p, time_until))
        return actions

    def find_actions_with_neighbors(self, search_list, neighbors_list, dt) -> List[DecayAction]:
        # decays do not involve neighbours
        return []
