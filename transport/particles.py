"""
Particle registry: slot storage with stable identities.

Every particle lives in a slot of an internal list. Removing a particle
leaves a hole (``None``) whose index is reused by the next insertion, so
memory stays bounded while particles are constantly replaced.

Code outside the registry never holds the stored objects across a
mutation. It holds *copies* (:class:`ParticleData` values carrying the slot
index, ``id`` and ``id_process``) and asks :meth:`Particles.is_valid`
whether the particle is still the one it observed.
"""

from __future__ import annotations

import logging
from typing import Iterable, Iterator, List, Optional

from . import species
from .errors import InvalidHandleError, InvariantViolation
from .particle_data import ParticleData

logger = logging.getLogger(__name__)


class Particles:
    """All particles of one simulation run.

    The id counter belongs to the instance, so independent runs can coexist
    in one process. :meth:`reset` is the only way to restart it.
    """

    def __init__(self):
        self._data: List[Optional[ParticleData]] = []
        self._dirty: List[int] = []  # hole indices, reused last-in first-out
        self._id_max = -1
        self._modifications = 0

    # -------------------- Size & State --------------------

    def __len__(self) -> int:
        return len(self._data) - len(self._dirty)

    def is_empty(self) -> bool:
        return len(self) == 0

    @property
    def id_max(self) -> int:
        """Highest id issued so far (-1 before the first insertion)."""
        return self._id_max

    def time(self) -> float:
        """Time of the computational frame (time of the first particle)."""
        if self.is_empty():
            raise ValueError("time() requires at least one particle")
        return self.front().position.t

    def reset(self) -> None:
        """Empty the registry and restart the id counter."""
        self._data.clear()
        self._dirty.clear()
        self._id_max = -1
        self._modifications += 1

    # -------------------- Insertion & Removal --------------------

    def _copy_in(self, index: int, source: ParticleData) -> ParticleData:
        stored = source.copy()
        self._id_max += 1
        stored.id = self._id_max
        stored._index = index
        self._data[index] = stored
        return stored

    def _next_slot(self) -> int:
        if self._dirty:
            return self._dirty.pop()
        self._data.append(None)
        return len(self._data) - 1

    def insert(self, particle: ParticleData) -> ParticleData:
        """
        Store a new particle and return a valid copy of it.

        The id of ``particle`` is ignored: a fresh, strictly increasing id is
        issued. ``particle`` itself does not become a valid copy.
        """
        stored = self._copy_in(self._next_slot(), particle)
        self._modifications += 1
        return stored.copy()

    @staticmethod
    def _check_update(stored: ParticleData, new_state: ParticleData) -> None:
        if stored.type != new_state.type:
            raise ValueError(f"update_particle cannot change species ({stored.type.name} -> {new_state.type.name})")
        if new_state.id_process == stored.id_process:
            raise ValueError(f"update_particle of particle {stored.id} needs a new id_process")

    def create(self, pdg: int) -> ParticleData:
        """Insert one particle of species ``pdg`` at rest at the origin."""
        return self.insert(ParticleData(species.find(pdg)))

    def create_many(self, n: int, pdg: int) -> List[ParticleData]:
        return [self.create(pdg) for _ in range(n)]

    def is_valid(self, copy: ParticleData) -> bool:
        """Whether ``copy`` still describes the stored particle.

        False if the particle never was in this registry, has been removed
        (decay, inelastic scattering) or has been updated in place
        (elastic scattering changes ``id_process``).
        """
        index = copy._index
        if index < 0 or index >= len(self._data):
            return False
        stored = self._data[index]
        if stored is None:
            return False
        return stored.id == copy.id and stored.id_process == copy.id_process

    def _require_valid(self, copy: ParticleData) -> None:
        if not self.is_valid(copy):
            raise InvalidHandleError(f"Stale particle copy: {copy!r}")

    def lookup(self, copy: ParticleData) -> ParticleData:
        """The live stored particle for a valid copy."""
        self._require_valid(copy)
        return self._data[copy._index]

    def remove(self, copy: ParticleData) -> None:
        self._require_valid(copy)
        self._remove_unchecked(copy._index)
        self._modifications += 1

    def _remove_unchecked(self, index: int) -> None:
        self._data[index] = None
        self._dirty.append(index)

    def replace(self, to_remove: Iterable[ParticleData], to_add: Iterable[ParticleData]) -> List[ParticleData]:
        """
        Remove ``to_remove`` and insert ``to_add`` as one step.

        Every copy in ``to_remove`` is validated before anything changes, so
        a stale copy leaves the registry untouched.

        Returns:
            Valid copies of the inserted particles, in the order of ``to_add``.

        Raises:
            InvalidHandleError: if any copy in ``to_remove`` is stale.
            InvariantViolation: if ``to_remove`` names the same particle twice.
        """
        to_remove = list(to_remove)
        to_add = list(to_add)
        for copy in to_remove:
            self._require_valid(copy)
        ids = [p.id for p in to_remove]
        if len(set(ids)) != len(ids):
            raise InvariantViolation(f"Duplicate particle ids in replace(): {ids}")

        for copy in to_remove:
            self._remove_unchecked(copy._index)
        added = [self._copy_in(self._next_slot(), p).copy() for p in to_add]
        self._modifications += 1
        return added

    def update_particle(self, copy: ParticleData, new_state: ParticleData) -> ParticleData:
        """
        Overwrite the state of a particle without changing its identity.

        ``id_process``, momentum, position and formation data are taken from
        ``new_state``; ``id`` and the slot stay. The new ``id_process`` must
        differ from the stored one so that older copies become invalid.
        """
        stored = self.lookup(copy)
        self._check_update(stored, new_state)
        stored.id_process = new_state.id_process
        stored.momentum = new_state.momentum
        stored.position = new_state.position
        stored.set_formation(new_state.begin_formation_time, new_state.formation_time,
                             new_state.initial_xsec_scaling_factor)
        self._modifications += 1
        return stored.copy()

    def update(self, old_state: List[ParticleData], new_state: List[ParticleData], do_replace: bool) -> List[ParticleData]:
        """
        Either replace ``old_state`` by ``new_state`` or update it in place, pairwise.

        Both branches check every particle before the first write, so a
        failing call leaves the registry as it was.
        """
        if do_replace:
            return self.replace(old_state, new_state)
        if len(old_state) != len(new_state):
            raise ValueError("In-place update needs as many new states as old ones")
        stored = [self.lookup(copy) for copy in old_state]
        ids = [p.id for p in stored]
        if len(set(ids)) != len(ids):
            raise InvariantViolation(f"Duplicate particle ids in update(): {ids}")
        for old, new in zip(stored, new_state):
            self._check_update(old, new)
        return [self.update_particle(old, new) for old, new in zip(old_state, new_state)]

    # -------------------- Iteration --------------------

    def _iterate(self, indices: Iterable[int]) -> Iterator[ParticleData]:
        expected = self._modifications
        for index in indices:
            if self._modifications != expected:
                raise RuntimeError("Particles changed during iteration")
            particle = self._data[index] if index < len(self._data) else None
            if particle is not None:
                yield particle

    def __iter__(self) -> Iterator[ParticleData]:
        """Live particles in slot order, skipping holes."""
        return self._iterate(range(len(self._data)))

    def __reversed__(self) -> Iterator[ParticleData]:
        return self._iterate(range(len(self._data) - 1, -1, -1))

    def front(self) -> ParticleData:
        return next(iter(self))

    def back(self) -> ParticleData:
        return next(reversed(self))

    def copy_to_list(self) -> List[ParticleData]:
        """Valid copies of all live particles."""
        return [p.copy() for p in self]

    def __repr__(self):
        return f"Particles(n={len(self)}, holes={len(self._dirty)}, id_max={self._id_max})"
