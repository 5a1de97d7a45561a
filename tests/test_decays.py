import sys
from pathlib import Path

import numpy as np
import pytest

sys.path.append(str(Path(__file__).resolve().parents[1]))

from transport import decays, species
from transport.action import ActionState, ProcessType
from transport.conservation import check_conservation
from transport.decay_action import DecayAction, DecayActionsFinder, has_open_mode
from transport.errors import TransportError
from transport.kinematics import FourVector
from transport.particle_data import ParticleData
from transport.particles import Particles


def test_rho_decay_conserves_and_replaces():
    particles = Particles()
    particles.insert(ParticleData.from_pdg(species.PI_ZERO, position=[1.0, 0.0, 0.0, 0.0]))
    rho = particles.insert(ParticleData.from_pdg(species.RHO_ZERO, momentum=[0.2, -0.1, 0.5],
                                                 position=[1.0, 2.0, 3.0, 4.0]))
    action = DecayAction(rho, 0.0)
    out = action.generate_final_state(np.random.default_rng(6))

    assert action.process_type is ProcessType.DECAY
    assert sorted(p.pdg for p in out) == [species.PI_MINUS, species.PI_PLUS]
    assert check_conservation([rho.momentum], [p.momentum for p in out])
    assert all(p.position.is_close(rho.position) for p in out)

    assert action.perform(particles, 1)
    assert len(particles) == 3
    assert not particles.is_valid(rho)
    assert all(p.id > rho.id for p in action.outgoing_particles)
    assert all(p.id_process == 1 for p in action.outgoing_particles)
    extra = action.record().extra
    assert extra["decay_mode"].startswith(rho.type.name + " -> ")
    assert extra["branching_ratio"] > 0.0


def test_decay_time_is_added_to_particle_time():
    rho = ParticleData.from_pdg(species.RHO_PLUS, position=[2.5, 0.0, 0.0, 0.0])
    assert DecayAction(rho, 0.75).time_of_execution == pytest.approx(3.25)
    assert DecayAction(rho, 0.75).weight() == rho.type.width


def test_delta_branching_ratios():
    rng = np.random.default_rng(17)
    draws = [decays.choose_decay_mode(species.DELTA_P, 1.232, rng) for _ in range(3000)]
    to_proton = sum(1 for mode in draws if species.PROTON in mode.daughters)
    assert 0.6 < to_proton / len(draws) < 0.73


def test_no_mode_below_threshold():
    assert decays.choose_decay_mode(species.RHO_ZERO, 0.2) is None
    assert decays.choose_decay_mode(species.PROTON, 0.938) is None
    light_rho = ParticleData(species.find(species.RHO_ZERO), momentum=FourVector(0.2, 0.0, 0.0, 0.0))
    assert not has_open_mode(light_rho)
    with pytest.raises(TransportError):
        DecayAction(light_rho, 0.0).generate_final_state(np.random.default_rng(0))


def test_modes_producing_pairs():
    found = decays.modes_producing(species.PI_MINUS, species.PI_PLUS)
    assert [parent for parent, _ in found] == [species.RHO_ZERO]
    parents = [parent for parent, _ in decays.modes_producing(species.NEUTRON, species.PI_PLUS)]
    assert parents == [species.DELTA_P]
    assert decays.modes_producing(species.PROTON, species.PROTON) == []


def test_mode_threshold():
    mode = decays.get_decay_modes(species.DELTA_PP)[0]
    assert mode.threshold() == pytest.approx(0.938 + 0.138)
    assert mode.is_open(1.232)
    assert not mode.is_open(1.0)


def test_negative_branching_ratio_rejected():
    with pytest.raises(ValueError):
        decays.register(species.RHO_ZERO, (species.PI_ZERO, species.PI_ZERO), -0.1)
    assert len(decays.get_decay_modes(species.RHO_ZERO)) == 1


def test_finder_skips_stable_particles():
    finder = DecayActionsFinder(np.random.default_rng(0))
    pions = [ParticleData.from_pdg(species.PI_PLUS), ParticleData.from_pdg(species.PROTON)]
    assert finder.find_actions_in_cell(pions, dt=1e6) == []


def test_finder_schedules_resonances():
    particles = Particles()
    rho = particles.insert(ParticleData.from_pdg(species.RHO_ZERO))
    pion = particles.insert(ParticleData.from_pdg(species.PI_ZERO))
    finder = DecayActionsFinder(np.random.default_rng(1))
    actions = finder.find_actions_in_cell([rho, pion], dt=1e6)
    assert len(actions) == 1
    assert actions[0].incoming_ids() == (rho.id,)
    assert actions[0].state is ActionState.CANDIDATE
    assert 0.0 <= actions[0].time_of_execution < 1e6
    assert finder.find_actions_with_neighbors([rho], [pion], dt=1e6) == []


def test_finder_respects_window():
    rho = ParticleData.from_pdg(species.RHO_ZERO)
    finder = DecayActionsFinder(np.random.default_rng(2))
    # mean lifetime ~1.3 fm: essentially nothing decays within 1e-9 fm
    hits = sum(len(finder.find_actions_in_cell([rho], dt=1e-9)) for _ in range(100))
    assert hits == 0
