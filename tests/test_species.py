import sqlite3
import sys
from pathlib import Path

import pytest

sys.path.append(str(Path(__file__).resolve().parents[1]))

from transport import species


def _make_db(path, rows, with_width=True):
    conn = sqlite3.connect(path)
    width_col = ', "Width (MeV)" REAL' if with_width else ""
    conn.execute(
        'CREATE TABLE particles ("Name" TEXT, "PDG ID" INTEGER, "Mass (MeV/c^2)" REAL, '
        f'"Charge (e)" REAL, "Baryon Number" INTEGER, "Strangeness" INTEGER{width_col})'
    )
    placeholders = ", ".join("?" * (7 if with_width else 6))
    conn.executemany(f"INSERT INTO particles VALUES ({placeholders})", rows)
    conn.commit()
    conn.close()


def test_builtin_table():
    proton = species.find(species.PROTON)
    assert proton.name == "p"
    assert proton.is_baryon and proton.is_stable
    assert species.find(species.ANTIPROTON).is_antibaryon
    assert species.find(species.DELTA_PP).charge == 2
    assert not species.find(species.RHO_ZERO).is_stable
    assert species.find_by_name("DELTA++") is species.find(species.DELTA_PP)


def test_unknown_species():
    assert not species.exists(123456789)
    with pytest.raises(ValueError):
        species.find(123456789)
    with pytest.raises(ValueError):
        species.find_by_name("graviton")


def test_valence_quarks():
    pion = species.find(species.PI_PLUS)
    proton = species.find(species.PROTON)
    pbar = species.find(species.ANTIPROTON)
    assert pion.contains_valence_quarks(1) and pion.contains_valence_quarks(-1)
    assert not pion.contains_valence_quarks(2)
    assert proton.contains_valence_quarks(2) and not proton.contains_valence_quarks(-1)
    assert pbar.contains_valence_quarks(-2) and not pbar.contains_valence_quarks(1)
    assert proton.contains_valence_quarks(0)


def test_list_all_sorted_by_mass():
    masses = [t.mass for t in species.list_all()]
    assert masses == sorted(masses)


def test_load_from_db(tmp_path):
    path = tmp_path / "pdg.db"
    _make_db(path, [
        ("a0(980)+", 9000211, 980.0, 1.0, 0, 0, 75.0),
        ("skipped", None, 1.0, 0.0, 0, 0, 0.0),
        ("Sigma+", 3222, 1189.37, 1.0, 1, -1, 0.0),
    ])
    loaded = species.load_types_from_db(path)
    assert [t.pdg for t in loaded] == [9000211, 3222]

    a0 = species.find(9000211)
    assert a0.mass == pytest.approx(0.98)
    assert a0.width == pytest.approx(0.075)
    assert a0.charge == 1
    assert not a0.is_stable
    sigma = species.find(3222)
    assert sigma.is_baryon and sigma.strangeness == -1 and sigma.is_stable


def test_load_without_width_column(tmp_path):
    path = tmp_path / "pdg.db"
    _make_db(path, [("X(3872)", 9920443, 3871.65, 0.0, 0, 0)], with_width=False)
    (x,) = species.load_types_from_db(path)
    assert x.width == 0.0
    assert x.mass == pytest.approx(3.87165)
