import sqlite3
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List


@dataclass(frozen=True)
class ParticleType:
    """
    Static properties of one hadron species.

    Masses and widths are in GeV. ``width == 0`` marks a stable species.
    """

    name: str
    pdg: int
    mass: float
    width: float = 0.0
    charge: int = 0
    baryon_number: int = 0
    strangeness: int = 0

    @property
    def is_stable(self) -> bool:
        return self.width <= 0.0

    @property
    def is_baryon(self) -> bool:
        return self.baryon_number > 0

    @property
    def is_antibaryon(self) -> bool:
        return self.baryon_number < 0

    @property
    def is_meson(self) -> bool:
        return self.baryon_number == 0

    def contains_valence_quarks(self, n: int) -> bool:
        """Whether the species can supply ``n`` valence quarks (n < 0: antiquarks).

        Mesons hold one quark and one antiquark, baryons three quarks and
        antibaryons three antiquarks.
        """
        if n == 0:
            return True
        if self.is_meson:
            return abs(n) == 1
        if self.is_baryon:
            return 0 < n <= 3
        return -3 <= n < 0

    def __repr__(self):
        return f"ParticleType({self.name}, pdg={self.pdg}, m={self.mass:.3f} GeV)"


# pdg -> ParticleType
_TYPES: Dict[int, ParticleType] = {}


def register_type(particle_type: ParticleType) -> ParticleType:
    """Add (or overwrite) a species in the global table."""
    _TYPES[particle_type.pdg] = particle_type
    return particle_type


def find(pdg: int) -> ParticleType:
    try:
        return _TYPES[pdg]
    except KeyError:
        raise ValueError(f"Unknown particle species with PDG code {pdg}") from None


def find_by_name(name: str) -> ParticleType:
    """Case-insensitive lookup by name."""
    key = name.lower()
    for ptype in _TYPES.values():
        if ptype.name.lower() == key:
            return ptype
    raise ValueError(f"Unknown particle species '{name}'")


def exists(pdg: int) -> bool:
    return pdg in _TYPES


def list_all() -> List[ParticleType]:
    return sorted(_TYPES.values(), key=lambda t: (t.mass, t.pdg))


# -------------------- Database Import --------------------

def load_types_from_db(db_path: Path) -> List[ParticleType]:
    """
    Register species from a PDG-style sqlite ``particles`` table.

    The table uses the quoted column names "Name", "PDG ID",
    "Mass (MeV/c^2)", "Charge (e)", "Baryon Number" and "Strangeness";
    an optional "Width (MeV)" column is read when present. Masses and widths
    are converted from MeV to GeV.
    """
    conn = sqlite3.connect(db_path)
    conn.row_factory = sqlite3.Row
    try:
        rows = conn.execute("SELECT * FROM particles").fetchall()
    finally:
        conn.close()

    loaded = []
    for row in rows:
        data = dict(row)
        if data.get("PDG ID") is None:
            continue
        ptype = ParticleType(
            name=data["Name"],
            pdg=int(data["PDG ID"]),
            mass=float(data.get("Mass (MeV/c^2)") or 0.0) / 1000.0,
            width=float(data.get("Width (MeV)") or 0.0) / 1000.0,
            charge=int(round(float(data.get("Charge (e)") or 0))),
            baryon_number=int(data.get("Baryon Number") or 0),
            strangeness=int(data.get("Strangeness") or 0),
        )
        loaded.append(register_type(ptype))
    return loaded


# ========== BUILT-IN HADRON TABLE ==========
PI_PLUS, PI_ZERO, PI_MINUS = 211, 111, -211
K_PLUS, K_MINUS = 321, -321
PROTON, NEUTRON, ANTIPROTON = 2212, 2112, -2212
LAMBDA = 3122
RHO_PLUS, RHO_ZERO, RHO_MINUS = 213, 113, -213
DELTA_PP, DELTA_P, DELTA_Z, DELTA_M = 2224, 2214, 2114, 1114

for _t in (
    ParticleType("pi+", PI_PLUS, 0.138, charge=1),
    ParticleType("pi0", PI_ZERO, 0.138),
    ParticleType("pi-", PI_MINUS, 0.138, charge=-1),
    ParticleType("K+", K_PLUS, 0.494, charge=1, strangeness=1),
    ParticleType("K-", K_MINUS, 0.494, charge=-1, strangeness=-1),
    ParticleType("p", PROTON, 0.938, charge=1, baryon_number=1),
    ParticleType("n", NEUTRON, 0.938, baryon_number=1),
    ParticleType("pbar", ANTIPROTON, 0.938, charge=-1, baryon_number=-1),
    ParticleType("Lambda", LAMBDA, 1.116, baryon_number=1, strangeness=-1),
    ParticleType("rho+", RHO_PLUS, 0.776, width=0.149, charge=1),
    ParticleType("rho0", RHO_ZERO, 0.776, width=0.149),
    ParticleType("rho-", RHO_MINUS, 0.776, width=0.149, charge=-1),
    ParticleType("Delta++", DELTA_PP, 1.232, width=0.117, charge=2, baryon_number=1),
    ParticleType("Delta+", DELTA_P, 1.232, width=0.117, charge=1, baryon_number=1),
    ParticleType("Delta0", DELTA_Z, 1.232, width=0.117, baryon_number=1),
    ParticleType("Delta-", DELTA_M, 1.232, width=0.117, charge=-1, baryon_number=1),
):
    register_type(_t)
