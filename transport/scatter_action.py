"""
Two-body scatterings.

A ScatterAction collects every open channel of its pair in a
CrossSectionAggregator, and only when it is about to be performed samples
one of them and builds the corresponding final state.
"""

from __future__ import annotations

import logging
from typing import Callable, Dict, Iterable, List, Optional, Tuple

import numpy as np

from .action import Action, ProcessType
from .cross_sections import CollisionBranch, CrossSectionAggregator, CrossSectionProvider
from .errors import InvariantViolation, TransportError
from .kinematics import FourVector, REALLY_SMALL, isotropic_direction, pcm
from .particle_data import ParticleData
from .phase_space import two_body_final_state
from .strings import HadronizationOracle, StringContext

logger = logging.getLogger(__name__)


class ScatterAction(Action):
    """Collision of two particles at ``time_until`` after their current time."""

    def __init__(self, in_part_a: ParticleData, in_part_b: ParticleData, time_until: float,
                 string_oracle: Optional[HadronizationOracle] = None):
        super().__init__([in_part_a, in_part_b], time_until)
        self.aggregator = CrossSectionAggregator()
        self.string_oracle = string_oracle
        self.chosen_branch: Optional[CollisionBranch] = None

    # -------------------- Channels --------------------

    def add_collision(self, branch: CollisionBranch) -> None:
        self.aggregator.add_channel(branch.cross_section, branch)

    def add_collisions(self, branches: Iterable[CollisionBranch]) -> None:
        self.aggregator.add_channels(branches)

    def add_all_scatterings(self, provider: CrossSectionProvider) -> float:
        """Ask ``provider`` for every channel of this pair; returns the total cross section."""
        a, b = self.incoming_particles
        self.add_collisions(provider(a.type, b.type, self.sqrt_s()))
        return self.cross_section()

    def cross_section(self) -> float:
        """Total cross section in mb."""
        return self.aggregator.total()

    def weight(self) -> float:
        return self.cross_section()

    # -------------------- Geometry --------------------

    def transverse_distance_sqr(self) -> float:
        """
        Squared distance of closest approach in the pair's centre-of-mass frame (fm^2).

        Lorentz invariant; for equal three-momenta the (negative) Minkowski
        square of the separation is returned instead.
        """
        a, b = self.incoming_particles
        delta_x = a.position - b.position
        x_sqr = delta_x.sqr()
        mom_diff = a.momentum.threevec - b.momentum.threevec
        if float(np.dot(mom_diff, mom_diff)) < REALLY_SMALL:
            return -x_sqr

        pa, pb = a.momentum, b.momentum
        pa_sqr = pa.sqr()
        pb_sqr = pb.sqr()
        pa_dot_x = pa.dot(delta_x)
        pb_dot_x = pb.dot(delta_x)
        pa_dot_pb = pa.dot(pb)
        denominator = pa_dot_pb * pa_dot_pb - pa_sqr * pb_sqr
        if abs(denominator) < REALLY_SMALL * REALLY_SMALL:
            return -x_sqr
        return -x_sqr - (pa_sqr * pb_dot_x * pb_dot_x + pb_sqr * pa_dot_x * pa_dot_x
                         - 2.0 * pa_dot_pb * pa_dot_x * pb_dot_x) / denominator

    def cm_momentum(self) -> float:
        a, b = self.incoming_particles
        return pcm(self.sqrt_s(), a.effective_mass, b.effective_mass)

    def beta_cm(self) -> np.ndarray:
        return self.total_momentum().velocity()

    def record_extra(self) -> dict:
        if self.chosen_branch is None:
            return {}
        return {"channel": self.chosen_branch.describe()}

    # -------------------- Final states --------------------

    def _sample_final_state(self, rng: np.random.Generator) -> Tuple[ProcessType, List[ParticleData]]:
        branch = self.aggregator.sample_channel(self.cross_section(), rng.random())
        if branch is None:
            raise TransportError(f"No open channel for {self!r}")
        self.chosen_branch = branch
        builders: Dict[ProcessType, Callable] = {
            ProcessType.ELASTIC: self._elastic_final_state,
            ProcessType.TWO_TO_ONE: self._resonance_final_state,
            ProcessType.TWO_TO_TWO: self._two_to_two_final_state,
            ProcessType.STRING: self._string_final_state,
        }
        try:
            build = builders[branch.process_type]
        except KeyError:
            raise TransportError(f"{branch.process_type.value} is not a scattering channel") from None
        return branch.process_type, build(branch, rng)

    def _elastic_final_state(self, branch: CollisionBranch, rng: np.random.Generator) -> List[ParticleData]:
        """Isotropic scattering in the centre-of-mass frame; identities and positions stay."""
        a, b = self.incoming_particles
        beta = self.beta_cm()
        p_cm = self.cm_momentum()
        direction = isotropic_direction(rng)

        out_a, out_b = a.copy(), b.copy()
        out_a.momentum = FourVector.from_mass_and_momentum(a.effective_mass, p_cm * direction).boost(beta)
        out_b.momentum = FourVector.from_mass_and_momentum(b.effective_mass, -p_cm * direction).boost(beta)
        return [out_a, out_b]

    def _resonance_final_state(self, branch: CollisionBranch, rng: np.random.Generator) -> List[ParticleData]:
        """The pair fuses into one resonance carrying the whole four-momentum."""
        if len(branch.particle_types) != 1:
            raise InvariantViolation(f"2->1 channel with {len(branch.particle_types)} outgoing species")
        resonance = ParticleData(branch.particle_types[0], momentum=self.total_momentum(),
                                 position=self.get_interaction_point())
        return [resonance]

    def _two_to_two_final_state(self, branch: CollisionBranch, rng: np.random.Generator) -> List[ParticleData]:
        if len(branch.particle_types) != 2:
            raise InvariantViolation(f"2->2 channel with {len(branch.particle_types)} outgoing species")
        type_c, type_d = branch.particle_types
        if self.sqrt_s() <= type_c.mass + type_d.mass:
            raise InvariantViolation(f"Closed channel sampled: {branch.describe()} at sqrt(s)={self.sqrt_s():.4f}")
        p_c, p_d = two_body_final_state(self.total_momentum(), type_c.mass, type_d.mass, rng)
        point = self.get_interaction_point()
        return [ParticleData(type_c, momentum=p_c, position=point),
                ParticleData(type_d, momentum=p_d, position=point)]

    def _string_final_state(self, branch: CollisionBranch, rng: np.random.Generator) -> List[ParticleData]:
        if self.string_oracle is None:
            raise TransportError("String channel chosen but no hadronization oracle is set")
        context = StringContext(self.get_interaction_point(), rng, self.transverse_distance_sqr())
        outgoing = self.string_oracle(self.incoming_particles, self.sqrt_s(), context)
        if not outgoing:
            raise InvariantViolation("Hadronization oracle returned no particles")
        return outgoing
