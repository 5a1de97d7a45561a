import sys
from pathlib import Path

import numpy as np
import pytest

sys.path.append(str(Path(__file__).resolve().parents[1]))

from transport import species
from transport.conservation import check_conservation
from transport.errors import InvariantViolation
from transport.kinematics import FourVector
from transport.particle_data import ParticleData
from transport.strings import PhaseSpaceStrings, StringContext, assign_all_scaling_factors, collision_axis

COHERENCE = 0.7
EVEC = np.array([0.0, 0.0, 1.0])


def _hadron(pdg, mass, pz, pid):
    p = ParticleData(species.find(pdg), momentum=FourVector.from_mass_and_momentum(mass, [0.0, 0.0, pz]))
    p.id = pid
    return p


def test_baryonic_string_scaling():
    c = _hadron(species.ANTIPROTON, 0.938, 1.0, 0)
    d = _hadron(species.PROTON, 0.938, 0.5, 1)
    e = _hadron(species.PI_ZERO, 0.138, -0.5, 2)
    f = _hadron(species.PI_ZERO, 0.138, -1.0, 3)
    outgoing = [e, d, c, f]
    assign_all_scaling_factors(1, outgoing, EVEC, COHERENCE)

    # sorted by velocity along the collision axis
    assert [p.id for p in outgoing] == [0, 1, 2, 3]
    # the most forward proton holds the diquark, the most backward pion the quark
    assert outgoing[0].initial_xsec_scaling_factor == 0.0
    assert outgoing[1].initial_xsec_scaling_factor == pytest.approx(COHERENCE * 2.0 / 3.0)
    assert outgoing[2].initial_xsec_scaling_factor == 0.0
    assert outgoing[3].initial_xsec_scaling_factor == pytest.approx(COHERENCE / 2.0)


def test_mesonic_string_scaling():
    e = _hadron(species.PI_ZERO, 0.138, 1.0, 2)
    f = _hadron(species.PI_ZERO, 0.138, 0.5, 3)
    c = _hadron(species.ANTIPROTON, 0.938, -0.5, 0)
    d = _hadron(species.PROTON, 0.938, -1.0, 1)
    outgoing = [f, c, d, e]
    assign_all_scaling_factors(0, outgoing, EVEC, COHERENCE)

    assert outgoing[0].initial_xsec_scaling_factor == pytest.approx(0.5 * COHERENCE)
    assert outgoing[1].initial_xsec_scaling_factor == 0.0
    assert outgoing[2].initial_xsec_scaling_factor == 0.0
    assert outgoing[3].initial_xsec_scaling_factor == pytest.approx(COHERENCE / 3.0)
    assert outgoing[3] is d


def test_mesonic_string_antibaryon_can_hold_the_end():
    e = _hadron(species.PI_ZERO, 0.138, 1.0, 2)
    f = _hadron(species.PI_ZERO, 0.138, 0.5, 3)
    c = _hadron(species.ANTIPROTON, 0.938, -1.0, 0)
    d = _hadron(species.PROTON, 0.938, -0.5, 1)
    outgoing = [c, d, e, f]
    assign_all_scaling_factors(0, outgoing, EVEC, COHERENCE)

    assert outgoing[0].initial_xsec_scaling_factor == pytest.approx(0.5 * COHERENCE)
    assert outgoing[1].initial_xsec_scaling_factor == 0.0
    assert outgoing[2].initial_xsec_scaling_factor == 0.0
    assert outgoing[3].initial_xsec_scaling_factor == pytest.approx(COHERENCE / 3.0)
    assert outgoing[3] is c


def test_antibaryonic_string_scaling():
    pbar_front = _hadron(species.ANTIPROTON, 0.938, 1.0, 0)
    proton = _hadron(species.PROTON, 0.938, 0.5, 1)
    pion_back = _hadron(species.PI_MINUS, 0.138, -1.0, 2)
    outgoing = [proton, pion_back, pbar_front]
    assign_all_scaling_factors(-1, outgoing, EVEC, COHERENCE)
    assert pbar_front.initial_xsec_scaling_factor == pytest.approx(COHERENCE * 2.0 / 3.0)
    assert proton.initial_xsec_scaling_factor == 0.0
    assert pion_back.initial_xsec_scaling_factor == pytest.approx(COHERENCE / 2.0)


def test_collision_axis_in_cm_frame():
    a = ParticleData.from_pdg(species.PROTON, momentum=[0.0, 0.0, 3.0])
    b = ParticleData.from_pdg(species.PROTON, momentum=[0.0, 0.0, -1.0])
    assert collision_axis([a, b]) == pytest.approx([0.0, 0.0, 1.0])
    at_rest = ParticleData.from_pdg(species.PROTON)
    assert collision_axis([at_rest, at_rest.copy()]) == pytest.approx([0.0, 0.0, 1.0])


def test_toy_fragmentation():
    a = ParticleData.from_pdg(species.PROTON, momentum=[0.0, 0.0, 4.0], position=[1.0, 0.0, 0.0, -0.1])
    b = ParticleData.from_pdg(species.PROTON, momentum=[0.0, 0.0, -4.0], position=[1.0, 0.0, 0.0, 0.1])
    point = FourVector(1.0, 0.0, 0.0, 0.0)
    sqrt_s = (a.momentum + b.momentum).mass
    oracle = PhaseSpaceStrings(formation_time=1.0, suppression_factor=COHERENCE)
    outgoing = oracle([a, b], sqrt_s, StringContext(point, np.random.default_rng(21)))

    assert len(outgoing) >= 2
    assert check_conservation([a.momentum, b.momentum], [p.momentum for p in outgoing])
    assert sum(p.type.charge for p in outgoing) == 2
    for p in outgoing:
        assert p.position.is_close(point)
        assert p.formation_time > point.t
        assert p.begin_formation_time == point.t
        # not formed yet: reduced cross section
        assert p.xsec_scaling_factor() < 1.0
        assert p.xsec_scaling_factor(p.formation_time - point.t + 1e-9) == 1.0


def test_toy_fragmentation_below_threshold_raises():
    a = ParticleData.from_pdg(species.PROTON)
    b = ParticleData.from_pdg(species.PROTON)
    with pytest.raises(InvariantViolation):
        PhaseSpaceStrings()([a, b], 1.8, StringContext(FourVector.zero(), np.random.default_rng(0)))
