"""
Cross-section channels and their aggregation.

A provider is any callable ``(type_a, type_b, sqrt_s) -> list[CollisionBranch]``.
The engine only depends on that signature; :class:`ToyCrossSections` is a
small stand-in so the engine runs end to end, it makes no claim of physical
accuracy.
"""
from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Protocol, Tuple

from . import decays, species
from .action import ProcessType
from .errors import InvariantViolation, NegativeCrossSectionError
from .species import ParticleType


@dataclass(frozen=True)
class CollisionBranch:
    """One outgoing channel with its partial cross section (mb).

    ``particle_types`` lists the outgoing species; it is empty for string
    channels, whose final state comes from the hadronization oracle, and
    for elastic channels, which keep the incoming particles.
    """

    process_type: ProcessType
    cross_section: float
    particle_types: Tuple[ParticleType, ...] = field(default_factory=tuple)

    def describe(self) -> str:
        if not self.particle_types:
            return self.process_type.value
        names = " ".join(t.name for t in self.particle_types)
        return f"{self.process_type.value} -> {names}"


class CrossSectionProvider(Protocol):
    def __call__(self, type_a: ParticleType, type_b: ParticleType, sqrt_s: float) -> List[CollisionBranch]:
        ...


class CrossSectionAggregator:
    """Running list of channels; picks one with probability sigma_i / sigma_total."""

    def __init__(self):
        self._channels: List[CollisionBranch] = []

    def __len__(self) -> int:
        return len(self._channels)

    @property
    def channels(self) -> List[CollisionBranch]:
        return list(self._channels)

    def add_channel(self, cross_section: float, branch: CollisionBranch) -> None:
        """Add a channel. Zero cross sections are skipped; negative ones are an error."""
        if cross_section < 0.0 or math.isnan(cross_section):
            raise NegativeCrossSectionError(
                f"Negative partial cross section {cross_section} for {branch.describe()}"
            )
        if cross_section == 0.0:
            return
        if cross_section != branch.cross_section:
            branch = CollisionBranch(branch.process_type, cross_section, branch.particle_types)
        self._channels.append(branch)

    def add_channels(self, branches: Iterable[CollisionBranch]) -> None:
        for branch in branches:
            self.add_channel(branch.cross_section, branch)

    def total(self) -> float:
        # fsum does not depend on the order channels were added in
        return math.fsum(c.cross_section for c in self._channels)

    def sample_channel(self, total_cross_section: float, r: float) -> Optional[CollisionBranch]:
        """
        Pick the channel whose cumulative range contains ``r * total``.

        Args:
            total_cross_section: normalisation, normally ``total()``.
            r: uniform random number in [0, 1).

        Returns:
            The chosen branch, or None if ``total_cross_section`` is zero
            (no interaction possible).

        Raises:
            InvariantViolation: if an interaction is requested from an empty
                channel list.
        """
        if total_cross_section <= 0.0:
            return None
        if not self._channels:
            raise InvariantViolation(
                f"Interaction with total cross section {total_cross_section} requested but no channel is open"
            )
        target = r * total_cross_section
        cumulative = 0.0
        for branch in self._channels:
            cumulative += branch.cross_section
            if target < cumulative:
                return branch
        # round-off at the upper edge
        return self._channels[-1]


# -----------------------------
# Toy provider
# -----------------------------
def breit_wigner(sqrt_s: float, mass: float, width: float) -> float:
    """Non-relativistic Breit-Wigner normalised to 1 at the pole."""
    half = 0.5 * width
    return half * half / ((sqrt_s - mass) ** 2 + half * half)


@dataclass
class ToyCrossSections:
    """
    Constant elastic + Breit-Wigner resonance formation + constant strings.

    Resonance channels are read off the decay table: a pair (a, b) can form
    every resonance R that has a two-body mode R -> a b, with peak cross
    section ``resonance_peak`` times that mode's branching ratio.
    """

    elastic: float = 10.0
    resonance_peak: float = 40.0
    string: float = 25.0
    string_threshold: float = 4.0

    def __call__(self, type_a: ParticleType, type_b: ParticleType, sqrt_s: float) -> List[CollisionBranch]:
        branches: List[CollisionBranch] = []
        if self.elastic > 0.0:
            branches.append(CollisionBranch(ProcessType.ELASTIC, self.elastic))

        for parent_pdg, mode in decays.modes_producing(type_a.pdg, type_b.pdg):
            resonance = species.find(parent_pdg)
            sigma = self.resonance_peak * mode.branching_ratio * breit_wigner(sqrt_s, resonance.mass, resonance.width)
            if sigma > 0.0:
                branches.append(CollisionBranch(ProcessType.TWO_TO_ONE, sigma, (resonance,)))

        if self.string > 0.0 and sqrt_s >= self.string_threshold:
            branches.append(CollisionBranch(ProcessType.STRING, self.string))
        return branches

    @property
    def maximum(self) -> float:
        """Upper bound of the total cross section of any pair."""
        return self.elastic + self.resonance_peak + self.string
