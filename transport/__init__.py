"""
Time-ordered collision engine for relativistic particle transport.

Particles live in a :class:`Particles` registry and are referred to by
copies whose validity is checked before every commit. Each time step the
finders propose actions (scatterings, decays, wall crossings), and the
:class:`Experiment` performs them in ``(time, ids)`` order.
"""

from .action import Action, ActionRecord, ActionState, ProcessType
from .config import TransportConfig
from .cross_sections import CollisionBranch, CrossSectionAggregator, ToyCrossSections
from .decay_action import DecayAction, DecayActionsFinder
from .errors import (
    ActionAlreadyPerformed,
    InvalidHandleError,
    InvariantViolation,
    NegativeCrossSectionError,
    TransportError,
)
from .kinematics import FourVector
from .particle_data import ParticleData
from .particles import Particles
from .scatter_action import ScatterAction
from .scatter_finder import ScatterActionsFinder
from .simulation import ActionQueue, Experiment
from .strings import PhaseSpaceStrings, assign_all_scaling_factors
from .wall_action import BoxBoundary, WallCrossingAction, WallCrossingFinder

__all__ = [
    "Action",
    "ActionAlreadyPerformed",
    "ActionQueue",
    "ActionRecord",
    "ActionState",
    "BoxBoundary",
    "CollisionBranch",
    "CrossSectionAggregator",
    "DecayAction",
    "DecayActionsFinder",
    "Experiment",
    "FourVector",
    "InvalidHandleError",
    "InvariantViolation",
    "NegativeCrossSectionError",
    "ParticleData",
    "Particles",
    "PhaseSpaceStrings",
    "ProcessType",
    "ScatterAction",
    "ScatterActionsFinder",
    "ToyCrossSections",
    "TransportConfig",
    "TransportError",
    "WallCrossingAction",
    "WallCrossingFinder",
    "assign_all_scaling_factors",
]
