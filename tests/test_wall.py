import math
import sys
from pathlib import Path

import numpy as np
import pytest

sys.path.append(str(Path(__file__).resolve().parents[1]))

from transport import species
from transport.action import ProcessType
from transport.particle_data import ParticleData
from transport.particles import Particles
from transport.wall_action import BoxBoundary, WallCrossingFinder

ENERGY = math.sqrt(1.0 + 0.138 ** 2)


def _pion(x, p):
    return ParticleData.from_pdg(species.PI_PLUS, momentum=p, position=[0.0, *x])


def test_box_length_must_be_positive():
    with pytest.raises(ValueError):
        BoxBoundary(0.0)


def test_contains():
    box = BoxBoundary(10.0)
    assert box.contains(_pion([0.0, 5.0, 9.9], [0, 0, 0]).position)
    assert not box.contains(_pion([10.0, 5.0, 5.0], [0, 0, 0]).position)
    assert not box.contains(_pion([-0.1, 5.0, 5.0], [0, 0, 0]).position)


def test_time_to_exit():
    box = BoxBoundary(10.0)
    assert box.time_to_exit(_pion([2.0, 5.0, 5.0], [-1.0, 0.0, 0.0])) == pytest.approx((2.0 * ENERGY, 0, -1))
    time, axis, direction = box.time_to_exit(_pion([5.0, 5.0, 9.0], [0.0, 0.0, 1.0]))
    assert (axis, direction) == (2, 1)
    assert time == pytest.approx(ENERGY)
    assert box.time_to_exit(_pion([5.0, 5.0, 5.0], [0.0, 0.0, 0.0])) == (math.inf, -1, 0)


def test_finder_window():
    finder = WallCrossingFinder(BoxBoundary(10.0))
    p = _pion([9.0, 5.0, 5.0], [1.0, 0.0, 0.0])
    assert finder.find_actions_in_cell([p], dt=0.5) == []
    assert len(finder.find_actions_in_cell([p], dt=2.0)) == 1
    assert finder.find_actions_with_neighbors([p], [p], dt=2.0) == []


def test_periodic_wall_wraps_particle():
    particles = Particles()
    p = particles.insert(_pion([9.0, 5.0, 5.0], [1.0, 0.0, 0.0]))
    (action,) = WallCrossingFinder(BoxBoundary(10.0)).find_actions_in_cell([p], dt=2.0)
    assert action.time_of_execution == pytest.approx(ENERGY)

    (wrapped,) = action.generate_final_state(np.random.default_rng(0))
    assert wrapped.position.x1 == 0.0
    assert wrapped.position.x2 == 5.0
    assert wrapped.position.t == pytest.approx(ENERGY)
    assert action.process_type is ProcessType.WALL

    assert action.perform(particles, 3)
    assert len(particles) == 1
    stored = particles.front()
    assert stored.id == p.id
    assert stored.id_process == 3
    assert stored.momentum.is_close(p.momentum)
    assert not particles.is_valid(p)


def test_negative_direction_wraps_to_far_face():
    particles = Particles()
    p = particles.insert(_pion([5.0, 0.5, 5.0], [0.0, -1.0, 0.0]))
    (action,) = WallCrossingFinder(BoxBoundary(10.0)).find_actions_in_cell([p], dt=2.0)
    (wrapped,) = action.generate_final_state(np.random.default_rng(0))
    assert wrapped.position.x2 == 10.0


def test_absorbing_wall_removes_particle():
    particles = Particles()
    p = particles.insert(_pion([9.0, 5.0, 5.0], [1.0, 0.0, 0.0]))
    other = particles.insert(_pion([5.0, 5.0, 5.0], [0.0, 0.0, 0.0]))
    (action,) = WallCrossingFinder(BoxBoundary(10.0, periodic=False)).find_actions_in_cell([p], dt=2.0)
    assert action.generate_final_state(np.random.default_rng(0)) == []
    assert action.perform(particles, 1)
    assert len(particles) == 1
    assert particles.is_valid(other)
