"""
Decay-mode registry: maps a species to its hadronic decay channels.

Key format: parent PDG code -> list of DecayMode.
Example: 2224 -> [DecayMode((2212, 211), 1.0)] for Delta++ -> p pi+
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

import numpy as np

from . import species


@dataclass(frozen=True)
class DecayMode:
    daughters: Tuple[int, ...]
    branching_ratio: float

    def threshold(self) -> float:
        """Sum of the daughter pole masses (GeV)."""
        return sum(species.find(pdg).mass for pdg in self.daughters)

    def is_open(self, mass: float) -> bool:
        return mass > self.threshold()


# Global registry: parent pdg -> decay modes
_REGISTRY: Dict[int, List[DecayMode]] = {}


def register(parent_pdg: int, daughters: tuple, branching_ratio: float) -> DecayMode:
    """
    Register a decay channel.

    Example:
        register(2224, (2212, 211), 1.0)   # Delta++ -> p pi+
    """
    if branching_ratio < 0.0:
        raise ValueError(f"Negative branching ratio {branching_ratio} for {parent_pdg}")
    mode = DecayMode(tuple(daughters), float(branching_ratio))
    _REGISTRY.setdefault(parent_pdg, []).append(mode)
    return mode


def get_decay_modes(parent_pdg: int) -> List[DecayMode]:
    """Decay modes of a species; empty for stable species."""
    return list(_REGISTRY.get(parent_pdg, ()))


def modes_producing(pdg_a: int, pdg_b: int) -> List[Tuple[int, DecayMode]]:
    """All (parent, mode) pairs whose two-body final state is {a, b}."""
    wanted = sorted((pdg_a, pdg_b))
    found = []
    for parent, modes in _REGISTRY.items():
        for mode in modes:
            if len(mode.daughters) == 2 and sorted(mode.daughters) == wanted:
                found.append((parent, mode))
    return sorted(found, key=lambda item: item[0])


def choose_decay_mode(parent_pdg: int, mass: float, rng: Optional[np.random.Generator] = None) -> Optional[DecayMode]:
    """
    Choose a decay mode using branching ratios as probabilities.

    Only modes that are kinematically open at ``mass`` take part.
    Returns None if no usable mode exists.
    """
    rng = rng or np.random.default_rng()
    modes = [m for m in get_decay_modes(parent_pdg) if m.is_open(mass) and m.branching_ratio > 0.0]
    if not modes:
        return None
    weights = np.array([m.branching_ratio for m in modes], dtype=float)
    index = rng.choice(len(modes), p=weights / weights.sum())
    return modes[int(index)]


def clear() -> None:
    _REGISTRY.clear()


# ========== AUTO-REGISTER KNOWN CHANNELS ==========
# Delta(1232) isospin multiplet -> N pi
register(species.DELTA_PP, (species.PROTON, species.PI_PLUS), 1.0)
register(species.DELTA_P, (species.PROTON, species.PI_ZERO), 2.0 / 3.0)
register(species.DELTA_P, (species.NEUTRON, species.PI_PLUS), 1.0 / 3.0)
register(species.DELTA_Z, (species.NEUTRON, species.PI_ZERO), 2.0 / 3.0)
register(species.DELTA_Z, (species.PROTON, species.PI_MINUS), 1.0 / 3.0)
register(species.DELTA_M, (species.NEUTRON, species.PI_MINUS), 1.0)

# rho(770) -> pi pi
register(species.RHO_ZERO, (species.PI_PLUS, species.PI_MINUS), 1.0)
register(species.RHO_PLUS, (species.PI_PLUS, species.PI_ZERO), 1.0)
register(species.RHO_MINUS, (species.PI_MINUS, species.PI_ZERO), 1.0)
