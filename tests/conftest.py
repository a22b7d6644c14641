import math

import pytest
import torch

from neural_racetrack.brain import Brain
from neural_racetrack.config import SimConfig
from neural_racetrack.geometry import Segment
from neural_racetrack.track import Pose, Track


@pytest.fixture(autouse=True)
def seeded():
    torch.manual_seed(0)


@pytest.fixture
def config():
    return SimConfig(
        population_size=5,
        elitism_count=1,
        mutation_rate=0.2,
        obstacle_count=2,
        track_resolution=20,
    )


@pytest.fixture
def start():
    return Pose(100.0, 100.0, 0.0)


@pytest.fixture
def open_track(start):
    """No walls or obstacles; one checkpoint far away from the start."""
    return Track(
        walls=[],
        checkpoints=[Segment((900.0, 0.0), (900.0, 10.0)), Segment((950.0, 0.0), (950.0, 10.0))],
        obstacles=[],
        start=start,
        width=1000.0,
        height=1000.0,
    )


STOP = 1e-9
FULL_SPEED = 1.0 - 1e-6


def constant_brain_state(config, angle=0.5, speed=STOP):
    """State dict for a brain whose outputs ignore the inputs.

    angle and speed are the desired sigmoid outputs, in (0, 1).
    """
    def logit(p):
        return math.log(p / (1.0 - p))

    return {
        "w1": torch.zeros(config.input_size, config.hidden_size),
        "b1": torch.zeros(config.hidden_size),
        "w2": torch.zeros(config.hidden_size, config.output_size),
        "b2": torch.tensor([logit(angle), logit(speed)], dtype=torch.float32),
    }


@pytest.fixture
def constant_brain():
    return constant_brain_state


@pytest.fixture
def brain_leak_check():
    before = Brain.live_count()
    yield lambda: Brain.live_count() - before
