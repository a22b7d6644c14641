"""
Neural Racetrack - cars evolved by a genetic algorithm.

    python main.py --help
"""

from neural_racetrack.cli import main

if __name__ == "__main__":
    main()
