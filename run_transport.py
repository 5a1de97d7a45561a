#!/usr/bin/env python3
"""
Transport driver script

Examples:
    python run_transport.py --species 211:20,-211:20 --end-time 20
    python run_transport.py --config box.txt --seed 42 --history run.db
    python run_transport.py --collider 2212 2212 --sqrt-s 10 --bunch-size 30
"""

import argparse
import csv
import concurrent.futures
from pathlib import Path

import numpy as np

from transport import species
from transport.config import TransportConfig, parse_species
from transport.errors import InvariantViolation
from transport.history import CollisionHistoryDB
from transport.initial_conditions import colliding_bunches, fill_box
from transport.logging_config import configure_logging
from transport.particles import Particles
from transport.simulation import Experiment


def build_parser():
    return argparse.ArgumentParser(
        description="Relativistic transport: time-ordered collisions, decays and strings",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""Examples:
  python run_transport.py --species 211:20,-211:20 --end-time 20
  python run_transport.py --config box.txt --seed 42 --history run.db
  python run_transport.py --collider 2212 2212 --sqrt-s 10 --bunch-size 30
  python run_transport.py --seed 1 --output final.csv"""
    )


def apply_overrides(config, args):
    overrides = {
        "dt": args.dt,
        "end_time": args.end_time,
        "box_length": args.box_length,
        "temperature": args.temperature,
        "seed": args.seed,
        "history_path": args.history,
    }
    for key, value in overrides.items():
        if value is not None:
            setattr(config, key, value)
    if args.species:
        config.species = parse_species(args.species)
    if args.absorbing:
        config.periodic = False
    config.validate()
    return config


def print_stats(stats, particles):
    print("\n📊 Run Statistics")
    print("=" * 60)
    print(f"Actions performed      : {stats.get('performed', 0)}")
    print(f"Candidates found       : {stats.get('candidates', 0)}")
    print(f"Invalidated (conflict) : {stats.get('invalidated', 0)}")
    print(f"Dropped (stale)        : {stats.get('stale', 0)}")
    print("\nActions by process type:")
    for key in ("elastic", "2->1", "2->2", "string", "decay", "wall"):
        if stats.get(key):
            print(f"  • {key:10s}: {stats[key]:6d}")
    counts = {}
    for p in particles:
        counts[p.type.name] = counts.get(p.type.name, 0) + 1
    print("\nFinal particles:")
    for name, n in sorted(counts.items(), key=lambda item: -item[1]):
        print(f"  • {name:10s}: {n:6d}")
    print("=" * 60 + "\n")


def export_particles_to_csv(particles, filename):
    """Export the final particle list to CSV."""
    rows_written = 0
    with open(filename, "w", newline="") as f:
        writer = csv.writer(f)
        writer.writerow(["id", "pdg", "name", "id_process", "t", "x", "y", "z", "E", "px", "py", "pz"])
        for p in particles:
            writer.writerow([p.id, p.pdg, p.type.name, p.id_process,
                             p.position.t, p.position.x1, p.position.x2, p.position.x3,
                             p.momentum.E, p.momentum.px, p.momentum.py, p.momentum.pz])
            rows_written += 1
    print(f"📄 Exported {rows_written} particles to {filename}")
    return rows_written


def main():
    parser = build_parser()
    parser.add_argument("--config", type=str, help="Config file (key value lines, JSON or TOML)")
    parser.add_argument("--species", type=str, help='Box content, e.g. "211:20,-211:20"')
    parser.add_argument("--dt", type=float, default=None, help="Time step in fm")
    parser.add_argument("--end-time", type=float, default=None, help="End time in fm")
    parser.add_argument("--box-length", type=float, default=None, help="Box edge in fm (0: no box)")
    parser.add_argument("--absorbing", action="store_true", help="Particles leaving the box are removed")
    parser.add_argument("--temperature", type=float, default=None, help="Box temperature in GeV")
    parser.add_argument("--collider", type=int, nargs=2, metavar=("PDG_A", "PDG_B"),
                        help="Collide two bunches instead of filling a box")
    parser.add_argument("--sqrt-s", type=float, default=10.0, help="Collider sqrt(s) in GeV (default 10)")
    parser.add_argument("--bunch-size", type=int, default=20, help="Particles per bunch (default 20)")
    parser.add_argument("--seed", type=int, default=None, help="Random seed (optional)")
    parser.add_argument("--history", type=str, default=None, help="Store performed actions in this sqlite file")
    parser.add_argument("--species-db", type=str, default=None, help="Load extra particle types from sqlite")
    parser.add_argument("--workers", type=int, default=0, help="Threads for the collision search (default 0)")
    parser.add_argument("--stats", action="store_true", help="Print history DB statistics afterwards")
    parser.add_argument("--output", type=str, default=None, help="Write the final particles to this CSV file")
    args = parser.parse_args()

    configure_logging()
    config = TransportConfig.from_file(args.config) if args.config else TransportConfig()
    config = apply_overrides(config, args)
    if args.collider:
        config.box_length = 0.0
    if args.species_db:
        loaded = species.load_types_from_db(Path(args.species_db))
        print(f"[INFO] Loaded {len(loaded)} particle types from {args.species_db}")

    print("\n" + "=" * 60)
    print("🔥 Transport Run")
    print("=" * 60)
    if args.collider:
        print(f"Collider         : {args.collider[0]} + {args.collider[1]} at sqrt(s) = {args.sqrt_s} GeV")
    else:
        print(f"Box              : {config.box_length} fm, {'periodic' if config.periodic else 'absorbing'}")
        print(f"Species          : {config.species}")
    print(f"Time             : {config.start_time} -> {config.end_time} fm (dt = {config.dt})")
    print(f"Random Seed      : {config.seed if config.seed is not None else 'None'}")
    if config.history_path:
        print(f"History DB       : {config.history_path}")
    print("=" * 60 + "\n")

    particles = Particles()
    init_rng = np.random.default_rng(config.seed)
    if args.collider:
        colliding_bunches(particles, args.collider[0], args.collider[1], args.bunch_size, args.sqrt_s,
                          rng=init_rng, start_time=config.start_time)
    else:
        fill_box(particles, config.species, config.box_length, config.temperature,
                 rng=init_rng, start_time=config.start_time)

    executor = concurrent.futures.ThreadPoolExecutor(max_workers=args.workers) if args.workers > 0 else None
    experiment = Experiment.from_config(config, particles, executor=executor)
    history = None
    if config.history_path:
        history = CollisionHistoryDB(Path(config.history_path))
        experiment.add_observer(history.store_action)

    try:
        stats = experiment.run()
    except InvariantViolation as exc:
        print(f"[ERROR] Run aborted: {exc}")
        raise SystemExit(1)
    finally:
        if executor is not None:
            executor.shutdown()

    balance = experiment.momentum_balance()
    print("\n" + "=" * 60)
    print("✅ Run Complete")
    print("=" * 60)
    print(f"Steps             : {experiment.step_count}")
    print(f"Particles left    : {len(particles)}")
    print(f"Energy change     : {-balance['deltaE']:+.3e} GeV")
    if not config.periodic and config.box_length > 0.0:
        print("[WARN] Absorbing walls: energy leaves with the removed particles")
    print("=" * 60 + "\n")

    print_stats(stats, particles)
    if args.stats and history is not None:
        db_stats = history.stats()
        print(f"[INFO] History: {db_stats['total_actions']} actions, "
              f"conservation rate {db_stats['conservation_rate']:.2%}")
    if args.output:
        export_particles_to_csv(particles, args.output)


if __name__ == "__main__":
    main()
