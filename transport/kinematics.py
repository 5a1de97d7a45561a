"""
Kinematics helpers for the transport engine.

Units: GeV for energies and momenta, fm for times and lengths (c = 1).
The same FourVector type carries four-momenta (E, px, py, pz) and
four-positions (t, x, y, z).
"""

from __future__ import annotations
import math
from dataclasses import dataclass
from typing import Optional
import numpy as np

# Below this everything is treated as zero
REALLY_SMALL = 1.0e-6

HBARC = 0.197327  # GeV fm


# -----------------------------
# FourVector
# -----------------------------
@dataclass
class FourVector:
    x0: float
    x1: float
    x2: float
    x3: float

    # momentum-style aliases
    @property
    def E(self) -> float:
        return self.x0

    @property
    def px(self) -> float:
        return self.x1

    @property
    def py(self) -> float:
        return self.x2

    @property
    def pz(self) -> float:
        return self.x3

    # position-style alias
    @property
    def t(self) -> float:
        return self.x0

    @property
    def threevec(self) -> np.ndarray:
        return np.array([self.x1, self.x2, self.x3], dtype=float)

    @property
    def abs3(self) -> float:
        return float(np.linalg.norm(self.threevec))

    def sqr(self) -> float:
        """Minkowski square x0^2 - |x|^2 (metric +,-,-,-)."""
        return self.x0 * self.x0 - (self.x1 * self.x1 + self.x2 * self.x2 + self.x3 * self.x3)

    def dot(self, other: "FourVector") -> float:
        return self.x0 * other.x0 - (self.x1 * other.x1 + self.x2 * other.x2 + self.x3 * other.x3)

    @property
    def mass(self) -> float:
        return math.sqrt(max(self.sqr(), 0.0))

    def velocity(self) -> np.ndarray:
        """Three-velocity p/E of a four-momentum."""
        if self.x0 == 0.0:
            return np.zeros(3, dtype=float)
        return self.threevec / self.x0

    def boost(self, beta: np.ndarray) -> "FourVector":
        """Return this vector as seen from a frame moving with velocity -beta."""
        boosted = lorentz_boost_array(self.as_array(), np.asarray(beta, dtype=float))
        return FourVector.from_array(boosted)

    def as_array(self) -> np.ndarray:
        return np.array([self.x0, self.x1, self.x2, self.x3], dtype=float)

    @classmethod
    def from_array(cls, values) -> "FourVector":
        return cls(float(values[0]), float(values[1]), float(values[2]), float(values[3]))

    @classmethod
    def from_mass_and_momentum(cls, mass: float, momentum) -> "FourVector":
        """On-shell four-momentum for a three-momentum."""
        px, py, pz = (float(c) for c in momentum)
        energy = math.sqrt(mass * mass + px * px + py * py + pz * pz)
        return cls(energy, px, py, pz)

    @classmethod
    def zero(cls) -> "FourVector":
        return cls(0.0, 0.0, 0.0, 0.0)

    def is_close(self, other: "FourVector", tol: float = 1e-9) -> bool:
        return all(abs(a - b) <= tol for a, b in zip(self.as_array(), other.as_array()))

    def __add__(self, other: "FourVector") -> "FourVector":
        return FourVector(self.x0 + other.x0, self.x1 + other.x1, self.x2 + other.x2, self.x3 + other.x3)

    def __sub__(self, other: "FourVector") -> "FourVector":
        return FourVector(self.x0 - other.x0, self.x1 - other.x1, self.x2 - other.x2, self.x3 - other.x3)

    def __mul__(self, factor: float) -> "FourVector":
        return FourVector(self.x0 * factor, self.x1 * factor, self.x2 * factor, self.x3 * factor)

    __rmul__ = __mul__

    def __truediv__(self, divisor: float) -> "FourVector":
        return FourVector(self.x0 / divisor, self.x1 / divisor, self.x2 / divisor, self.x3 / divisor)

    def __neg__(self) -> "FourVector":
        return FourVector(-self.x0, -self.x1, -self.x2, -self.x3)

    def __repr__(self) -> str:
        return f"FourVector({self.x0:.6f}, {self.x1:.6f}, {self.x2:.6f}, {self.x3:.6f})"


def sum_four_vectors(vectors) -> FourVector:
    total = FourVector.zero()
    for v in vectors:
        total = total + v
    return total


# -----------------------------
# Lorentz boost
# -----------------------------
def lorentz_boost_array(p4: np.ndarray, beta: np.ndarray) -> np.ndarray:
    """Give ``p4`` the extra velocity ``beta`` (the frame moves with ``-beta``)."""
    p4 = np.asarray(p4, dtype=float)
    beta = np.asarray(beta, dtype=float)
    b_sq = float(beta @ beta)
    if b_sq >= 1.0:
        raise ValueError(f"boost velocity must be below c, got |beta|^2 = {b_sq}")
    if b_sq <= 1e-18:
        return p4.copy()
    energy, p3 = p4[0], p4[1:]
    g = 1.0 / math.sqrt(1.0 - b_sq)
    b_dot_p = float(beta @ p3)
    out = np.empty(4, dtype=float)
    out[0] = g * (energy + b_dot_p)
    out[1:] = p3 + (g * energy + (g - 1.0) * b_dot_p / b_sq) * beta
    return out


# -----------------------------
# Directions and two-body helpers
# -----------------------------
def isotropic_direction(rng: Optional[np.random.Generator] = None) -> np.ndarray:
    """Unit vector drawn uniformly on the sphere."""
    rng = rng or np.random.default_rng()
    cos_theta = rng.uniform(-1.0, 1.0)
    azimuth = rng.uniform(0.0, 2.0 * math.pi)
    sin_theta = math.sqrt(max(0.0, 1.0 - cos_theta ** 2))
    return np.array([sin_theta * math.cos(azimuth), sin_theta * math.sin(azimuth), cos_theta])


def pcm_from_s(s: float, m1: float, m2: float) -> float:
    """Centre-of-mass momentum of two particles with invariant mass squared s."""
    term1 = s - (m1 + m2) ** 2
    term2 = s - (m1 - m2) ** 2
    if s <= 0.0:
        return 0.0
    return math.sqrt(max(term1 * term2, 0.0) / (4.0 * s))


def pcm(sqrt_s: float, m1: float, m2: float) -> float:
    return pcm_from_s(sqrt_s * sqrt_s, m1, m2)


def plab_from_s(s: float, m_projectile: float, m_target: float) -> float:
    """Momentum of a projectile hitting a target at rest, for invariant s."""
    m_sum = m_projectile + m_target
    if s < m_sum * m_sum * (1.0 - 1e-12):
        raise ValueError(f"s={s:.6f} is below the threshold {m_sum * m_sum:.6f}")
    return pcm_from_s(s, m_projectile, m_target) * math.sqrt(s) / m_target
