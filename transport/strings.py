"""
String fragmentation seen from the engine: an oracle that turns two
incoming hadrons into a list of outgoing hadrons with the same total
four-momentum.

:class:`PhaseSpaceStrings` is the toy oracle shipped with the package. It
keeps the two incoming species as leading hadrons, adds a Poisson number of
pions and splits the total four-momentum with weighted Raubold–Lynch
sampling. The points keep the sampling density; they are not unweighted
to flat N-body phase space. The
outgoing hadrons are not formed yet: until their formation time they
interact with the reduced cross sections set by
:func:`assign_all_scaling_factors`.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional, Protocol, Sequence, Tuple

import numpy as np

from . import species
from .errors import InvariantViolation
from .kinematics import FourVector, REALLY_SMALL, sum_four_vectors
from .particle_data import ParticleData
from .phase_space import sample_n_body

logger = logging.getLogger(__name__)


@dataclass
class StringContext:
    """What the oracle may know about the collision besides the particles."""

    interaction_point: FourVector
    rng: np.random.Generator
    transverse_distance_sqr: float = 0.0


class HadronizationOracle(Protocol):
    def __call__(self, incoming: Sequence[ParticleData], sqrt_s: float,
                 context: StringContext) -> List[ParticleData]:
        ...


# -----------------------------
# Leading-hadron cross-section scaling
# -----------------------------
def _string_end_quarks(baryon_string: int) -> Tuple[Optional[int], Optional[int]]:
    """Valence quarks needed at the (forward, backward) string ends.

    None means "any (anti)quark" for the ends of a mesonic string, which can
    be oriented either way.
    """
    if baryon_string > 0:
        return 2, 1
    if baryon_string < 0:
        return -2, -1
    return None, None


def _can_carry(ptype: species.ParticleType, nquark: Optional[int]) -> bool:
    if nquark is None:
        return ptype.contains_valence_quarks(1) or ptype.contains_valence_quarks(-1)
    return ptype.contains_valence_quarks(nquark)


def _scaling_factor(ptype: species.ParticleType, nquark: Optional[int], suppression: float) -> float:
    if ptype.is_meson:
        # a meson at a string end always holds exactly one of its two quarks
        return 0.5 * suppression
    carried = 1 if nquark is None else abs(nquark)
    return suppression * carried / 3.0


def assign_all_scaling_factors(baryon_string: int, outgoing: List[ParticleData],
                               evec_coll: np.ndarray, suppression_factor: float) -> List[ParticleData]:
    """
    Give the leading hadrons at both string ends a reduced cross section.

    ``outgoing`` is sorted in place by velocity along ``evec_coll`` (most
    forward first). All particles start with a scaling factor of 0. The most
    forward hadron able to hold the forward string end (a diquark for a
    baryonic string) and the most backward hadron able to hold the other end
    get ``suppression_factor`` times the fraction of their valence quarks that
    come from the string ends: 1/2 for mesons, n/3 for (anti)baryons.
    """
    evec = np.asarray(evec_coll, dtype=float)
    outgoing.sort(key=lambda p: float(np.dot(p.velocity(), evec)), reverse=True)
    for p in outgoing:
        p.initial_xsec_scaling_factor = 0.0

    n_forward, n_backward = _string_end_quarks(baryon_string)
    forward = next((p for p in outgoing if _can_carry(p.type, n_forward)), None)
    backward = next((p for p in reversed(outgoing) if _can_carry(p.type, n_backward)), None)

    if forward is not None:
        forward.initial_xsec_scaling_factor = _scaling_factor(forward.type, n_forward, suppression_factor)
    if backward is not None and backward is not forward:
        backward.initial_xsec_scaling_factor = _scaling_factor(backward.type, n_backward, suppression_factor)
    return outgoing


def collision_axis(incoming: Sequence[ParticleData]) -> np.ndarray:
    """Unit vector along the first incoming momentum in the centre-of-mass frame."""
    total = sum_four_vectors(p.momentum for p in incoming)
    p_cm = incoming[0].momentum.boost(-total.velocity()).threevec
    norm = float(np.linalg.norm(p_cm))
    if norm < REALLY_SMALL:
        return np.array([0.0, 0.0, 1.0])
    return p_cm / norm


# -----------------------------
# Toy fragmentation oracle
# -----------------------------
@dataclass
class PhaseSpaceStrings:
    """
    Leading hadrons + pions, with weighted Raubold–Lynch momenta.

    Parameters
    ----------
    formation_time : float
        Proper formation time (fm); the lab value is gamma times this.
    suppression_factor : float
        Cross-section scaling of leading hadrons before formation.
    pions_per_gev : float
        Mean number of produced pions per GeV of available energy.
    """

    formation_time: float = 1.0
    suppression_factor: float = 0.7
    pions_per_gev: float = 1.5

    def _sample_pions(self, available: float, rng: np.random.Generator) -> List[species.ParticleType]:
        m_pi = species.find(species.PI_ZERO).mass
        n_max = int(available / m_pi) - 1
        if n_max < 1:
            return []
        n = int(min(n_max, max(1, rng.poisson(self.pions_per_gev * available))))
        n_pairs = int(rng.integers(0, n // 2 + 1))
        pdgs = [species.PI_PLUS] * n_pairs + [species.PI_MINUS] * n_pairs + [species.PI_ZERO] * (n - 2 * n_pairs)
        return [species.find(pdg) for pdg in pdgs]

    def __call__(self, incoming: Sequence[ParticleData], sqrt_s: float,
                 context: StringContext) -> List[ParticleData]:
        rng = context.rng
        leading = [p.type for p in incoming]
        available = sqrt_s - sum(t.mass for t in leading)
        if available <= 0.0:
            raise InvariantViolation(f"String at sqrt(s)={sqrt_s:.3f} GeV below the leading-hadron threshold")
        types = leading + self._sample_pions(available, rng)
        if len(types) < 2:
            raise InvariantViolation("String fragmentation needs at least two hadrons")

        total = sum_four_vectors(p.momentum for p in incoming)
        momenta, _ = sample_n_body(total, [t.mass for t in types], rng)

        point = context.interaction_point
        outgoing = []
        for ptype, momentum in zip(types, momenta):
            p = ParticleData(ptype, momentum=momentum, position=point)
            gamma = momentum.E / ptype.mass if ptype.mass > 0 else 1.0
            p.set_formation(point.t, point.t + self.formation_time * gamma, 0.0)
            outgoing.append(p)

        baryon_string = incoming[int(rng.integers(0, len(incoming)))].type.baryon_number
        assign_all_scaling_factors(int(np.sign(baryon_string)), outgoing,
                                   collision_axis(incoming), self.suppression_factor)
        logger.debug("String at sqrt(s)=%.3f GeV fragmented into %d hadrons", sqrt_s, len(outgoing))
        return outgoing
