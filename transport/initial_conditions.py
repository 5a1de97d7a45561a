"""
Initial particle configurations.

* :func:`fill_box` - thermal gas in a cube, zero total three-momentum.
* :func:`colliding_bunches` - two spheres flying into each other along z,
  each pair of partners with the requested sqrt(s).

Both insert into an existing :class:`transport.particles.Particles` at a
common start time and return the valid copies.
"""
from __future__ import annotations

import logging
import math
from typing import Dict, List, Optional

import numpy as np

from . import species
from .kinematics import FourVector, isotropic_direction, pcm
from .particle_data import ParticleData
from .particles import Particles

logger = logging.getLogger(__name__)


def sample_thermal_momentum(mass: float, temperature: float, rng: np.random.Generator) -> float:
    """
    Momentum magnitude from the relativistic Boltzmann distribution
    p^2 exp(-E/T).

    Rejection sampling against the massless envelope p^2 exp(-p/T), which is
    a Gamma(3, T) distribution and always lies above the target.
    """
    if temperature <= 0.0:
        raise ValueError(f"Temperature must be positive, got {temperature}")
    while True:
        p = rng.gamma(3.0, temperature)
        energy = math.sqrt(p * p + mass * mass)
        if rng.random() < math.exp(-(energy - p) / temperature):
            return float(p)


def _uniform_sphere_point(radius: float, rng: np.random.Generator) -> np.ndarray:
    r = radius * rng.random() ** (1.0 / 3.0)
    return r * isotropic_direction(rng)


def fill_box(particles: Particles, counts: Dict[int, int], length: float, temperature: float,
             rng: Optional[np.random.Generator] = None, start_time: float = 0.0) -> List[ParticleData]:
    """
    Thermal gas in the box [0, length)^3.

    Args:
        particles: registry to insert into.
        counts: number of particles per PDG code.
        length: box edge (fm).
        temperature: GeV.

    The mean three-momentum is subtracted afterwards, so the gas is at rest
    as a whole; energies are recomputed on shell.
    """
    rng = rng or np.random.default_rng()
    sampled = []
    for pdg, n in counts.items():
        ptype = species.find(pdg)
        for _ in range(n):
            p_abs = sample_thermal_momentum(ptype.mass, temperature, rng)
            p3 = p_abs * isotropic_direction(rng)
            x3 = rng.uniform(0.0, length, size=3)
            sampled.append((ptype, p3, x3))
    if not sampled:
        return []

    mean_p = np.mean([p3 for _, p3, _ in sampled], axis=0)
    inserted = []
    for ptype, p3, x3 in sampled:
        p = ParticleData(ptype, momentum=FourVector.from_mass_and_momentum(ptype.mass, p3 - mean_p),
                         position=FourVector(start_time, *x3))
        inserted.append(particles.insert(p))
    logger.info(f"Filled box of {length:.2f} fm with {len(inserted)} particles at T={temperature:.3f} GeV")
    return inserted


def colliding_bunches(particles: Particles, pdg_a: int, pdg_b: int, n_per_bunch: int, sqrt_s: float,
                      radius: float = 1.0, separation: float = 4.0,
                      rng: Optional[np.random.Generator] = None, start_time: float = 0.0) -> List[ParticleData]:
    """
    Two spherical bunches in their centre-of-mass frame.

    Bunch A (species ``pdg_a``) sits at z = -separation/2 and moves along +z,
    bunch B at +separation/2 moves along -z. Every particle carries the
    centre-of-mass momentum of an (a, b) pair at ``sqrt_s``.
    """
    type_a = species.find(pdg_a)
    type_b = species.find(pdg_b)
    if sqrt_s <= type_a.mass + type_b.mass:
        raise ValueError(f"sqrt_s={sqrt_s:.4f} GeV is below the {type_a.name}+{type_b.name} threshold")
    rng = rng or np.random.default_rng()
    p_cm = pcm(sqrt_s, type_a.mass, type_b.mass)
    half = 0.5 * separation

    inserted = []
    for ptype, z_center, direction in ((type_a, -half, 1.0), (type_b, half, -1.0)):
        for _ in range(n_per_bunch):
            x3 = _uniform_sphere_point(radius, rng) + np.array([0.0, 0.0, z_center])
            p = ParticleData(ptype,
                             momentum=FourVector.from_mass_and_momentum(ptype.mass, [0.0, 0.0, direction * p_cm]),
                             position=FourVector(start_time, *x3))
            inserted.append(particles.insert(p))
    logger.info(f"Colliding bunches {type_a.name} + {type_b.name}: {n_per_bunch} each, "
                f"sqrt(s)={sqrt_s:.3f} GeV, p_cm={p_cm:.3f} GeV")
    return inserted
