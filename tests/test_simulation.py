"""
Time stepping.

Tests:
    1. Action queue order and invalidation of competitors
    2. A single head-on pair scatters exactly once
    3. Periodic thermal box conserves four-momentum and keeps ids unique
    4. Absorbing box empties through its walls
    5. Errors from providers and oracles abort the run
"""
import math
import sys
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

import numpy as np
import pytest

sys.path.append(str(Path(__file__).resolve().parents[1]))

from transport import species
from transport.action import ActionState, ProcessType
from transport.config import TransportConfig
from transport.cross_sections import CollisionBranch
from transport.decay_action import DecayActionsFinder
from transport.errors import InvariantViolation, NegativeCrossSectionError
from transport.initial_conditions import fill_box
from transport.particle_data import ParticleData
from transport.particles import Particles
from transport.scatter_action import ScatterAction
from transport.scatter_finder import ScatterActionsFinder
from transport.simulation import ActionQueue, Experiment
from transport.wall_action import BoxBoundary, WallCrossingFinder

ENERGY = math.sqrt(1.0 + 0.138 ** 2)


def elastic_only(sigma):
    def provider(type_a, type_b, sqrt_s):
        return [CollisionBranch(ProcessType.ELASTIC, sigma)]
    return provider


def _head_on(pdg=species.PI_PLUS, p=1.0):
    particles = Particles()
    particles.insert(ParticleData.from_pdg(pdg, momentum=[p, 0.0, 0.0], position=[0.0, -1.0, 0.0, 0.0]))
    particles.insert(ParticleData.from_pdg(pdg, momentum=[-p, 0.0, 0.0], position=[0.0, 1.0, 0.0, 0.0]))
    return particles


# ------------------------- Queue ----------------------------
def test_queue_pops_in_execution_order():
    particles = Particles()
    copies = [particles.insert(ParticleData.from_pdg(species.PI_ZERO)) for _ in range(4)]
    late = ScatterAction(copies[0], copies[1], 0.9)
    early = ScatterAction(copies[2], copies[3], 0.1)
    tie = ScatterAction(copies[1], copies[2], 0.1)
    queue = ActionQueue([late, tie, early])
    assert len(queue) == 3
    assert [queue.pop(), queue.pop(), queue.pop()] == [tie, early, late]
    assert queue.pop() is None
    assert not queue


def test_queue_invalidates_competitors():
    particles = Particles()
    a, b, c, d = (particles.insert(ParticleData.from_pdg(species.PI_ZERO)) for _ in range(4))
    first = ScatterAction(a, b, 0.1)
    shares_b = ScatterAction(b, c, 0.2)
    independent = ScatterAction(c, d, 0.3)
    queue = ActionQueue([first, shares_b, independent])

    assert queue.pop() is first
    assert queue.invalidate_touching(first.incoming_ids()) == 1
    assert shares_b.state is ActionState.INVALIDATED
    # invalidated entries are skipped
    assert queue.pop() is independent
    assert queue.pop() is None
    assert queue.invalidate_touching([a.id, b.id]) == 0


# ------------------------- Runs -----------------------------
def test_head_on_pair_scatters_once():
    particles = _head_on()
    seen = []
    experiment = Experiment(particles, [ScatterActionsFinder(elastic_only(10.0))], dt=2.0, end_time=2.0,
                            rng=np.random.default_rng(4))
    experiment.add_observer(seen.append)
    stats = experiment.run()

    assert stats["elastic"] == 1
    assert stats["performed"] == 1
    assert len(seen) == 1
    assert seen[0].process_type is ProcessType.ELASTIC
    assert seen[0].time == pytest.approx(ENERGY)
    assert seen[0].id_process == 1
    assert [p.id for p in particles] == [0, 1]
    assert particles.time() == pytest.approx(2.0)
    assert experiment.step_count == 1
    assert experiment.counts_by_process() == {"elastic": 1}
    balance = experiment.momentum_balance()
    assert abs(balance["deltaE"]) < 1e-9
    assert abs(balance["deltaPx"]) < 1e-9


def test_pair_out_of_reach_does_not_scatter():
    particles = _head_on()
    experiment = Experiment(particles, [ScatterActionsFinder(elastic_only(10.0))], dt=0.5, end_time=0.5)
    assert experiment.run().get("performed", 0) == 0
    assert all(p.id_process == 0 for p in particles)


def test_later_steps_continue_the_clock():
    particles = _head_on()
    experiment = Experiment(particles, [ScatterActionsFinder(elastic_only(10.0))], dt=0.25, end_time=2.0,
                            rng=np.random.default_rng(0))
    stats = experiment.run()
    assert experiment.step_count == 8
    assert stats["elastic"] == 1
    assert particles.time() == pytest.approx(2.0)


def test_resonance_formation_then_decay():
    particles = Particles()
    for pdg, sign in ((species.PI_PLUS, 1.0), (species.PI_MINUS, -1.0)):
        particles.insert(ParticleData.from_pdg(pdg, momentum=[sign * 0.35, 0.0, 0.0],
                                               position=[0.0, -sign * 0.2, 0.0, 0.0]))

    def form_rho(type_a, type_b, sqrt_s):
        if {type_a.pdg, type_b.pdg} == {species.PI_PLUS, species.PI_MINUS}:
            return [CollisionBranch(ProcessType.TWO_TO_ONE, 30.0, (species.find(species.RHO_ZERO),))]
        return []

    rng = np.random.default_rng(5)
    experiment = Experiment(particles, [ScatterActionsFinder(form_rho), DecayActionsFinder(rng)],
                            dt=1000.0, end_time=1000.0, rng=rng)
    stats = experiment.run()
    assert stats["2->1"] == 1
    assert stats["decay"] == 1
    assert sorted(p.pdg for p in particles) == [species.PI_MINUS, species.PI_PLUS]
    # two new generations of ids
    assert sorted(p.id for p in particles) == [3, 4]
    assert abs(experiment.momentum_balance()["deltaE"]) < 1e-8


def test_periodic_thermal_box():
    config = TransportConfig(dt=0.5, end_time=3.0, box_length=4.0, species={211: 15, -211: 15, 111: 10},
                             temperature=0.2, seed=11)
    particles = Particles()
    fill_box(particles, config.species, config.box_length, config.temperature, np.random.default_rng(1))
    experiment = Experiment.from_config(config, particles)
    stats = experiment.run()

    assert stats.get("performed", 0) > 0
    assert stats.get("wall", 0) > 0
    balance = experiment.momentum_balance()
    for key in ("deltaE", "deltaPx", "deltaPy", "deltaPz"):
        assert abs(balance[key]) < 1e-6, balance
    ids = [p.id for p in particles]
    assert len(ids) == len(set(ids))
    assert sum(p.type.charge for p in particles) == 0
    for p in particles:
        assert p.position.t == pytest.approx(3.0)
        for x in (p.position.x1, p.position.x2, p.position.x3):
            assert -1e-9 <= x <= config.box_length + 1e-9


def test_threaded_search_same_history():
    def run(executor):
        particles = Particles()
        fill_box(particles, {211: 10, -211: 10}, 4.0, 0.15, np.random.default_rng(8))
        finders = [ScatterActionsFinder(elastic_only(20.0), maximum_cross_section=20.0),
                   WallCrossingFinder(BoxBoundary(4.0))]
        experiment = Experiment(particles, finders, dt=0.5, end_time=2.0, rng=np.random.default_rng(3),
                                executor=executor)
        records = []
        experiment.add_observer(records.append)
        experiment.run()
        return [(r.process_type, round(r.time, 9), tuple(p.id for p in r.incoming)) for r in records]

    serial = run(None)
    with ThreadPoolExecutor(max_workers=4) as pool:
        assert run(pool) == serial


def test_absorbing_box_empties():
    particles = Particles()
    particles.insert(ParticleData.from_pdg(species.PI_PLUS, momentum=[-1.0, 0.0, 0.0], position=[0.0, 2.0, 5.0, 5.0]))
    particles.insert(ParticleData.from_pdg(species.PI_PLUS, momentum=[1.0, 0.0, 0.0], position=[0.0, 8.0, 5.0, 5.0]))
    config = TransportConfig(dt=5.0, end_time=10.0, box_length=10.0, periodic=False, seed=0)
    experiment = Experiment.from_config(config, particles)
    stats = experiment.run()
    assert stats["wall"] == 2
    assert particles.is_empty()
    assert experiment.step_count == 1


def test_from_config_finders():
    particles = _head_on()
    with_box = Experiment.from_config(TransportConfig(box_length=10.0, seed=1), particles)
    assert len(with_box.finders) == 3
    assert isinstance(with_box.finders[0], ScatterActionsFinder)
    assert isinstance(with_box.finders[-1], WallCrossingFinder)
    # the scatter finder reads the experiment's has_interacted set
    assert with_box.finders[0].has_interacted is with_box.has_interacted

    no_box = Experiment.from_config(TransportConfig(box_length=0.0), particles)
    assert len(no_box.finders) == 2
    assert no_box.dt == 0.1


def test_dt_must_be_positive():
    with pytest.raises(ValueError):
        Experiment(Particles(), [], dt=0.0, end_time=1.0)


def test_empty_registry_runs_nothing():
    experiment = Experiment(Particles(), [ScatterActionsFinder(elastic_only(1.0))], dt=1.0, end_time=5.0)
    assert experiment.run() == {}
    assert experiment.run_time_step() == []


# ------------------------- Errors ---------------------------
def test_negative_cross_section_aborts():
    experiment = Experiment(_head_on(), [ScatterActionsFinder(elastic_only(-3.0))], dt=2.0, end_time=2.0)
    with pytest.raises(NegativeCrossSectionError):
        experiment.run()


def test_bad_hadronization_aborts():
    def strings_only(type_a, type_b, sqrt_s):
        return [CollisionBranch(ProcessType.STRING, 20.0)]

    def lossy_oracle(incoming, sqrt_s, context):
        return [ParticleData(species.find(species.PI_ZERO), position=context.interaction_point)]

    particles = _head_on(species.PROTON, p=3.0)
    experiment = Experiment(particles, [ScatterActionsFinder(strings_only, string_oracle=lossy_oracle)],
                            dt=2.0, end_time=2.0)
    with pytest.raises(InvariantViolation):
        experiment.run()
    # nothing was committed
    assert sorted(p.id for p in particles) == [0, 1]
    assert all(p.id_process == 0 for p in particles)
