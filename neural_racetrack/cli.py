"""
Command line entry point.

    python main.py                      # pygame window
    python main.py --headless -n 50     # train 50 generations without a window
"""

import argparse
import logging

from .config import SAVE_FILE, SimConfig
from .persistence import AsyncStateSaver
from .simulation import Simulation


def build_parser():
    parser = argparse.ArgumentParser(description="Neural Racetrack - evolve cars around a procedural track")
    parser.add_argument("--headless", action="store_true",
                        help="Run without a window")
    parser.add_argument("--generations", "-n", type=int, default=0,
                        help="Stop after N generations (headless; 0 = run forever)")
    parser.add_argument("--population", "-p", type=int, default=None,
                        help="Agents per generation")
    parser.add_argument("--obstacles", type=int, default=None,
                        help="Number of obstacles on the track")
    parser.add_argument("--dynamic", action="store_true",
                        help="Let obstacles drift across the track")
    parser.add_argument("--speed", type=int, default=1,
                        help="Logic ticks per rendered frame (1-10)")
    parser.add_argument("--state-file", default=SAVE_FILE,
                        help="Where the best brain and counters are saved")
    parser.add_argument("--fresh", action="store_true",
                        help="Ignore any saved state")
    parser.add_argument("--seed", type=int, default=None)
    parser.add_argument("--verbose", "-v", action="store_true")
    return parser


def config_from_args(args):
    overrides = {}
    if args.population is not None:
        overrides["population_size"] = args.population
    if args.obstacles is not None:
        overrides["obstacle_count"] = args.obstacles
    return SimConfig(**overrides)


def print_report(report):
    print(f"Gen {report.generation_index} | {report.outcome.value} | "
          f"Best: {report.best_checkpoints} | Mean: {report.mean_checkpoints:.2f} | "
          f"Laps: {report.best_laps}")


def run_headless(sim, generations):
    while generations <= 0 or sim.generation < generations:
        for report in sim.tick():
            print_report(report)


def main(argv=None):
    args = build_parser().parse_args(argv)
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO,
                        format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    config = config_from_args(args)
    saver = AsyncStateSaver(args.state_file)
    sim = Simulation(config, saver=saver, state_path=args.state_file, seed=args.seed)
    sim.start(fresh=args.fresh)
    if args.dynamic:
        sim.toggle_dynamic_obstacles()

    try:
        if args.headless:
            run_headless(sim, args.generations)
        else:
            from .viewer import Viewer
            Viewer(sim, cycles=args.speed).run(on_generation=print_report)
    except KeyboardInterrupt:
        print("Interrupted")
    finally:
        sim.close()


if __name__ == "__main__":
    main()
