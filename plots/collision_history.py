import sys
from pathlib import Path

import numpy as np
import matplotlib.pyplot as plt

sys.path.append(str(Path(__file__).resolve().parents[1]))

from transport.history import CollisionHistoryDB, DB_PATH


def load_history(db_path=DB_PATH):
    db = CollisionHistoryDB(db_path)
    times = np.array(db.column("time"), dtype=float)
    sqrt_s = np.array(db.column("sqrt_s", process_type="elastic") + db.column("sqrt_s", process_type="2->1")
                      + db.column("sqrt_s", process_type="2->2") + db.column("sqrt_s", process_type="string"),
                      dtype=float)
    return db.stats(), times, sqrt_s


def main():
    db_path = Path(sys.argv[1]) if len(sys.argv) > 1 else DB_PATH
    stats, times, sqrt_s = load_history(db_path)
    if stats["total_actions"] == 0:
        print(f"[WARN] No actions stored in {db_path}")
        return

    fig, axes = plt.subplots(1, 3, figsize=(15, 4.5))

    axes[0].hist(times, bins=50, alpha=0.8)
    axes[0].set_xlabel('t [fm]')
    axes[0].set_ylabel('Actions')
    axes[0].set_title('Action times')

    if sqrt_s.size:
        axes[1].hist(sqrt_s, bins=50, alpha=0.8, color='tab:orange')
    axes[1].set_xlabel(r'$\sqrt{s}$ [GeV]')
    axes[1].set_title('Two-body collisions')

    labels = list(stats["by_process_type"].keys())
    counts = [stats["by_process_type"][k] for k in labels]
    axes[2].bar(labels, counts, color='tab:green', alpha=0.8)
    axes[2].set_title('Actions by process type')

    for ax in axes:
        ax.grid(alpha=0.3)
    plt.tight_layout()
    plt.show()


if __name__ == "__main__":
    main()
