# conservation.py
# Four-momentum bookkeeping for performed actions.
#
# Tolerances are relative to the total energy involved so that the same check
# works for a pion pair at threshold and for a string at 20 GeV.
from __future__ import annotations

from typing import Dict, Iterable

from .kinematics import FourVector, sum_four_vectors

DEFAULT_TOLERANCE = 1e-8


def four_momentum_balance(initial: Iterable[FourVector], final: Iterable[FourVector]) -> Dict[str, float]:
    """
    Difference between the summed initial and final four-momenta.

    Returns
    -------
    dict
        deltaE, deltaPx, deltaPy, deltaPz (initial - final) and the totals
        E_initial, E_final.

    Examples
    --------
    >>> from transport.kinematics import FourVector
    >>> d = four_momentum_balance([FourVector(10, 0, 0, 0)],
    ...                           [FourVector(5, 3, 0, 0), FourVector(5, -3, 0, 0)])
    >>> d["deltaE"], d["deltaPx"]
    (0.0, 0.0)
    """
    total_in = sum_four_vectors(initial)
    total_out = sum_four_vectors(final)
    delta = total_in - total_out
    return {
        "deltaE": delta.x0,
        "deltaPx": delta.x1,
        "deltaPy": delta.x2,
        "deltaPz": delta.x3,
        "E_initial": total_in.x0,
        "E_final": total_out.x0,
    }


def check_energy_momentum(initial, final, tol: float = DEFAULT_TOLERANCE) -> Dict[str, object]:
    """Diagnostic dict with a boolean 'conserved' summary.

    A component is conserved when |delta| <= tol * max(1, E_initial).
    """
    balance = four_momentum_balance(initial, final)
    scale = max(1.0, abs(balance["E_initial"]))
    deltas = (balance["deltaE"], balance["deltaPx"], balance["deltaPy"], balance["deltaPz"])
    result: Dict[str, object] = dict(balance)
    result["conserved"] = all(abs(d) <= tol * scale for d in deltas)
    return result


def check_conservation(initial, final, tol: float = DEFAULT_TOLERANCE) -> bool:
    return bool(check_energy_momentum(initial, final, tol)["conserved"])
