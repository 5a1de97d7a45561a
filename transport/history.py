import sqlite3
import json
from pathlib import Path
from datetime import datetime
from typing import List, Optional, Dict, Any
from contextlib import contextmanager

from .action import ActionRecord
from .conservation import check_energy_momentum
from .kinematics import FourVector

DB_PATH = Path(__file__).resolve().parents[1] / "transport_history.db"


def _particles_json(particles) -> str:
    return json.dumps([
        {
            "id": p.id,
            "pdg": p.pdg,
            "name": p.type.name,
            "p": [p.momentum.E, p.momentum.px, p.momentum.py, p.momentum.pz],
            "x": [p.position.t, p.position.x1, p.position.x2, p.position.x3],
        }
        for p in particles
    ])


class CollisionHistoryDB:
    """
    Stores performed actions of a transport run in an sqlite file.

    One row per action: process type, time, sqrt(s), cross section, the
    incoming and outgoing particles as JSON, and whether the total
    four-momentum was conserved. Use :meth:`store_action` directly as an
    ``Experiment`` observer.
    """

    def __init__(self, db_path: Path = DB_PATH, run_label: Optional[str] = None):
        self.db_path = db_path
        self.run_label = run_label or datetime.now().isoformat(timespec="seconds")
        self.create_table()

    @contextmanager
    def get_connection(self):
        """Context manager for safe DB access."""
        conn = sqlite3.connect(self.db_path)
        try:
            yield conn
            conn.commit()
        finally:
            conn.close()

    def create_table(self):
        with self.get_connection() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS actions (
                    row_id INTEGER PRIMARY KEY AUTOINCREMENT,
                    run_label TEXT,
                    id_process INTEGER,
                    process_type TEXT,
                    time REAL,
                    sqrt_s REAL,
                    cross_section REAL,
                    n_in INTEGER,
                    n_out INTEGER,
                    incoming TEXT,
                    outgoing TEXT,
                    extra TEXT,
                    conserved INTEGER,
                    timestamp TEXT
                )
            """)

    def store_action(self, record: ActionRecord, tolerance: float = 1e-6) -> None:
        """Insert one performed action."""
        # Absorbed particles leave no outgoing momentum behind
        if record.outgoing:
            balance = check_energy_momentum([p.momentum for p in record.incoming],
                                            [p.momentum for p in record.outgoing], tol=tolerance)
            conserved = bool(balance["conserved"])
        else:
            conserved = False

        with self.get_connection() as conn:
            conn.execute("""
                INSERT INTO actions (
                    run_label, id_process, process_type, time, sqrt_s, cross_section,
                    n_in, n_out, incoming, outgoing, extra, conserved, timestamp
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """, (
                self.run_label, record.id_process, record.process_type.value, record.time,
                record.sqrt_s, record.cross_section, len(record.incoming), len(record.outgoing),
                _particles_json(record.incoming), _particles_json(record.outgoing),
                json.dumps(record.extra),
                int(conserved), datetime.now().isoformat(timespec="seconds")
            ))

    def __call__(self, record: ActionRecord) -> None:
        self.store_action(record)

    def fetch_action(self, id_process: int, run_label: Optional[str] = None) -> Optional[Dict[str, Any]]:
        """
        One stored action with its particles decoded.
        Returns None if no action with this id_process exists in the run.
        """
        with self.get_connection() as conn:
            conn.row_factory = sqlite3.Row
            cur = conn.cursor()
            cur.execute("SELECT * FROM actions WHERE id_process = ? AND run_label = ?",
                        (id_process, run_label or self.run_label))
            row = cur.fetchone()

        if not row:
            return None
        result = dict(row)
        for key in ("incoming", "outgoing"):
            result[key] = [
                {**entry, "p": FourVector(*entry["p"]), "x": FourVector(*entry["x"])}
                for entry in json.loads(row[key])
            ]
        result["extra"] = json.loads(row["extra"]) if row["extra"] else {}
        result["conserved"] = bool(row["conserved"])
        return result

    def list_actions(
        self,
        limit: int = 10,
        process_type: Optional[str] = None,
        run_label: Optional[str] = None
    ) -> List[Dict[str, Any]]:
        """
        Most recent actions first, optionally filtered.

        Args:
            limit: Max number of rows to return
            process_type: e.g. "elastic", "2->1", "decay"
            run_label: restrict to one run (all runs if None)
        """
        with self.get_connection() as conn:
            conn.row_factory = sqlite3.Row
            cur = conn.cursor()

            query = "SELECT * FROM actions WHERE 1=1"
            params = []

            if process_type:
                query += " AND process_type = ?"
                params.append(process_type)

            if run_label:
                query += " AND run_label = ?"
                params.append(run_label)

            query += " ORDER BY row_id DESC LIMIT ?"
            params.append(limit)

            cur.execute(query, params)
            return [dict(row) for row in cur.fetchall()]

    def column(self, name: str, process_type: Optional[str] = None) -> List[float]:
        """All values of a numeric column (time, sqrt_s, cross_section), for plotting."""
        if name not in ("time", "sqrt_s", "cross_section", "n_in", "n_out"):
            raise ValueError(f"Unknown column: {name}")
        query = f"SELECT {name} FROM actions"
        params = []
        if process_type:
            query += " WHERE process_type = ?"
            params.append(process_type)
        with self.get_connection() as conn:
            return [row[0] for row in conn.execute(query, params).fetchall()]

    def stats(self) -> Dict[str, Any]:
        """Get summary statistics."""
        with self.get_connection() as conn:
            cur = conn.cursor()

            cur.execute("SELECT COUNT(*) FROM actions")
            total = cur.fetchone()[0]

            cur.execute("SELECT COUNT(*) FROM actions WHERE conserved = 1")
            conserved = cur.fetchone()[0]

            cur.execute("SELECT COUNT(*) FROM actions WHERE n_out > 0")
            with_products = cur.fetchone()[0]

            cur.execute("SELECT process_type, COUNT(*) FROM actions GROUP BY process_type ORDER BY COUNT(*) DESC")
            by_type = {ptype: count for ptype, count in cur.fetchall()}

            cur.execute("SELECT AVG(sqrt_s) FROM actions WHERE n_in = 2")
            avg_sqrt_s = cur.fetchone()[0] or 0.0

        return {
            "total_actions": total,
            "conserved": conserved,
            "by_process_type": by_type,
            "average_sqrt_s": avg_sqrt_s,
            "conservation_rate": conserved / with_products if with_products > 0 else 0.0
        }

    def clear(self):
        """Delete all stored actions."""
        with self.get_connection() as conn:
            conn.execute("DELETE FROM actions")
