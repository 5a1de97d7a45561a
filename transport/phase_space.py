"""
Lorentz-invariant phase space sampling (Raubold–Lynch).

``sample_n_body`` returns weighted points; ``sample_n_body_unweighted``
turns them into phase-space distributed final states by accept/reject
against an upper bound of the weight. Resonance decays use the unweighted
form. The toy string fragmentation keeps the weighted points (see
``strings.PhaseSpaceStrings``).

Units: GeV, c = 1.
"""

from __future__ import annotations
import math
import numpy as np
from typing import List, Optional, Sequence, Tuple
from .errors import InvariantViolation
from .kinematics import FourVector, isotropic_direction, pcm


def sample_n_body(
    total_p4: FourVector,
    masses: Sequence[float],
    rng: Optional[np.random.Generator] = None,
) -> Tuple[List[FourVector], float]:
    """
    Split ``total_p4`` into len(masses) on-shell four-momenta.

    Parameters
    ----------
    total_p4 : FourVector
        Total four-momentum to distribute, in any frame.
    masses : sequence of float
        Final-state masses (GeV).
    rng : numpy Generator, optional

    Returns
    -------
    (momenta, weight)
        momenta: list of FourVector in the frame of ``total_p4``,
        ordered like ``masses``.
        weight: Raubold–Lynch phase-space weight of the sampled point.

    Raises
    ------
    ValueError
        If fewer than two masses are given or the split is kinematically
        forbidden.
    """
    rng = rng or np.random.default_rng()
    n = len(masses)
    if n < 2:
        raise ValueError("Need at least two final-state particles.")
    if any(m < 0 for m in masses):
        raise ValueError("All masses must be non-negative.")

    beta_total = total_p4.velocity()
    sqrt_s = total_p4.mass
    if sqrt_s <= 0:
        raise ValueError("Total invariant mass must be positive.")
    if sum(masses) > sqrt_s * (1.0 + 1e-12):
        raise ValueError(f"Kinematically forbidden: sum(m)={sum(masses):.4f} > sqrt(s)={sqrt_s:.4f}")

    # Ordered invariant masses of the remaining subsystems
    subsystem_masses = [sqrt_s]
    remaining = float(sum(masses))
    for i in range(n - 2):
        remaining -= masses[i]
        m_max = subsystem_masses[-1] - masses[i]
        m_min = remaining
        s = m_min ** 2 + rng.random() * (m_max ** 2 - m_min ** 2)
        subsystem_masses.append(math.sqrt(s))
    subsystem_masses.append(masses[-1])

    momenta: List[FourVector] = []
    weight = 1.0
    current = FourVector(sqrt_s, 0.0, 0.0, 0.0)
    for i in range(n - 1):
        m_parent = subsystem_masses[i]
        m1 = masses[i]
        m2 = subsystem_masses[i + 1]
        p_mag = pcm(m_parent, m1, m2)
        weight *= p_mag / m_parent

        p_vec = p_mag * isotropic_direction(rng)
        first = FourVector.from_mass_and_momentum(m1, p_vec)
        rest = FourVector.from_mass_and_momentum(m2, -p_vec)

        frame = current.velocity()
        momenta.append(first.boost(frame))
        current = rest.boost(frame)
    momenta.append(current)

    return [p.boost(beta_total) for p in momenta], weight


def two_body_final_state(
    total_p4: FourVector,
    m1: float,
    m2: float,
    rng: Optional[np.random.Generator] = None,
) -> Tuple[FourVector, FourVector]:
    """Isotropic two-body split of ``total_p4`` in its rest frame."""
    (p1, p2), _ = sample_n_body(total_p4, [m1, m2], rng)
    return p1, p2


class UnweightingController:
    """Accept/reject against a fixed maximum weight, with running counts."""

    def __init__(self, w_max: float, safety_factor: float = 1.0):
        self.w_max = w_max * safety_factor
        self.accepted = 0
        self.rejected = 0

    def accept(self, weight: float, rng: np.random.Generator) -> bool:
        if rng.uniform(0.0, self.w_max) < weight:
            self.accepted += 1
            return True
        self.rejected += 1
        return False

    @property
    def efficiency(self) -> float:
        total = self.accepted + self.rejected
        return self.accepted / total if total > 0 else 0.0


def max_weight(sqrt_s: float, masses: Sequence[float]) -> float:
    """
    Upper bound of the ``sample_n_body`` weight for this split.

    Each factor p/M grows with the parent mass and shrinks with the
    daughter masses, so it is largest at the heaviest parent and lightest
    remainder the sampling allows.
    """
    bound = 1.0
    used = 0.0
    for i in range(len(masses) - 1):
        m_parent = sqrt_s - used
        rest = float(sum(masses[i + 1:]))
        bound *= 0.5 * math.sqrt(max(0.0, 1.0 - ((masses[i] + rest) / m_parent) ** 2))
        used += masses[i]
    return bound


def sample_n_body_unweighted(
    total_p4: FourVector,
    masses: Sequence[float],
    rng: Optional[np.random.Generator] = None,
    max_attempts: int = 100_000,
) -> List[FourVector]:
    """
    Final state distributed according to N-body phase space.

    Two-body splits have a constant weight and need no rejection. Raises
    InvariantViolation if nothing is accepted within ``max_attempts``.
    """
    rng = rng or np.random.default_rng()
    momenta, weight = sample_n_body(total_p4, masses, rng)
    if len(masses) == 2:
        return momenta
    w_max = max_weight(total_p4.mass, masses)
    if w_max <= 0.0:
        # at threshold every point has zero weight
        return momenta
    controller = UnweightingController(w_max)
    for _ in range(max_attempts):
        if controller.accept(weight, rng):
            return momenta
        momenta, weight = sample_n_body(total_p4, masses, rng)
    raise InvariantViolation(
        f"No {len(masses)}-body final state accepted in {max_attempts} attempts "
        f"(efficiency {controller.efficiency:.2e})"
    )
