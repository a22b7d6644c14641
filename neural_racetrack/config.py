"""
Configuration for the Neural Racetrack simulation.

Defaults live as module constants; SimConfig bundles them for one run.
"""

import math
import os
from dataclasses import dataclass, field, replace, fields

# ---------------- CONFIG ----------------
WIDTH, HEIGHT = 1000, 800       # Simulation area (world bounds)
VIEW_WIDTH = 350                # Perspective strip drawn right of the track
TOTAL = 100                     # Agents per generation
MUTATION_RATE = 0.2             # Probability of mutating each weight
LIFESPAN = 30                   # Ticks an agent may go without progress
SIGHT = 80                      # Sensor range
ELITISM_COUNT = 1               # Top agents carried over unmutated
FITNESS_THRESHOLD = 500         # Checkpoints that force a new generation
OBSTACLE_COUNT = 20
TRACK_RESOLUTION = 80           # Checkpoints around the track

MAX_SPEED = 5.0
MAX_FORCE = 0.2
CAPTURE_RADIUS = 5.0            # Distance to a checkpoint that counts as reached
LETHAL_PROXIMITY = 10.0         # Any sensor reading below this kills the agent

# Sensor fan fed to the network: -65deg..65deg in 10deg steps
SENSOR_FAN_START = -65
SENSOR_FAN_STOP = 65
SENSOR_FAN_STEP = 10
SENSOR_TOLERANCE = 1.0

# Perspective fan, only used for drawing
VIEW_FAN_STEP = 1
VIEW_RANGE = 1000.0
VIEW_TOLERANCE = 0.07

OUTPUT_SIZE = 2                 # steering angle, target speed

SAVE_FILE = os.path.join(os.getcwd(), "best_car_model.pt")

# (noise_max, path_width)
TRACK_PRESETS = (
    (2.0, 70.0),    # moderately curvy, standard width
    (3.0, 60.0),    # more curvy, slightly narrower
    (1.5, 80.0),    # less curvy, wider
    (2.5, 50.0),    # moderately curvy, narrow
)
# ---------------------------------------


class ConfigError(ValueError):
    """Raised when a configuration value is out of range."""


def fan_angles(start, stop, step):
    """Ray offsets in radians for a half-open degree range, like range()."""
    return tuple(math.radians(a) for a in range(start, stop, step))


@dataclass(frozen=True)
class SimConfig:
    population_size: int = TOTAL
    mutation_rate: float = MUTATION_RATE
    lifespan: int = LIFESPAN
    elitism_count: int = ELITISM_COUNT
    fitness_threshold: int = FITNESS_THRESHOLD

    sensor_angles: tuple = field(
        default_factory=lambda: fan_angles(SENSOR_FAN_START, SENSOR_FAN_STOP, SENSOR_FAN_STEP))
    sensor_range: float = SIGHT
    sensor_tolerance: float = SENSOR_TOLERANCE
    lethal_proximity: float = LETHAL_PROXIMITY

    view_angles: tuple = field(
        default_factory=lambda: fan_angles(SENSOR_FAN_START, SENSOR_FAN_STOP, VIEW_FAN_STEP))
    view_range: float = VIEW_RANGE
    view_tolerance: float = VIEW_TOLERANCE

    max_speed: float = MAX_SPEED
    max_force: float = MAX_FORCE
    capture_radius: float = CAPTURE_RADIUS

    # None means "derive from the sensor fan": inputs = rays, hidden = 2 * rays
    input_size: int = None
    hidden_size: int = None
    output_size: int = OUTPUT_SIZE

    width: float = WIDTH
    height: float = HEIGHT
    obstacle_count: int = OBSTACLE_COUNT
    track_resolution: int = TRACK_RESOLUTION
    track_presets: tuple = TRACK_PRESETS

    def __post_init__(self):
        rays = len(self.sensor_angles)
        if self.input_size is None:
            object.__setattr__(self, "input_size", rays)
        if self.hidden_size is None:
            object.__setattr__(self, "hidden_size", rays * 2)
        self.validate()

    def validate(self):
        if self.population_size < 1:
            raise ConfigError(f"population_size must be >= 1, got {self.population_size}")
        if not 0.0 <= self.mutation_rate <= 1.0:
            raise ConfigError(f"mutation_rate must be in [0, 1], got {self.mutation_rate}")
        if self.elitism_count < 0 or self.elitism_count > self.population_size:
            raise ConfigError(
                f"elitism_count must be in [0, {self.population_size}], got {self.elitism_count}")
        if self.lifespan < 1:
            raise ConfigError(f"lifespan must be >= 1, got {self.lifespan}")
        if not self.sensor_angles:
            raise ConfigError("sensor fan needs at least one ray")
        if self.input_size != len(self.sensor_angles):
            raise ConfigError(
                f"input_size ({self.input_size}) must match the sensor ray count "
                f"({len(self.sensor_angles)})")
        if self.hidden_size < 1:
            raise ConfigError(f"hidden_size must be >= 1, got {self.hidden_size}")
        if self.output_size != OUTPUT_SIZE:
            raise ConfigError(f"output_size must be {OUTPUT_SIZE} (angle, speed)")
        if self.sensor_range <= 0 or self.view_range <= 0:
            raise ConfigError("sensor and view ranges must be positive")
        if self.max_speed <= 0 or self.max_force <= 0:
            raise ConfigError("max_speed and max_force must be positive")
        if self.fitness_threshold < 1:
            raise ConfigError(f"fitness_threshold must be >= 1, got {self.fitness_threshold}")
        if self.obstacle_count < 0:
            raise ConfigError(f"obstacle_count must be >= 0, got {self.obstacle_count}")
        if self.track_resolution < 3:
            raise ConfigError("a track needs at least 3 checkpoints")
        if not self.track_presets:
            raise ConfigError("at least one track preset is required")

    def replace(self, **overrides):
        """Copy with overrides. Network sizes are re-derived unless given."""
        if "sensor_angles" in overrides:
            overrides.setdefault("input_size", None)
            overrides.setdefault("hidden_size", None)
        return replace(self, **overrides)

    def describe(self):
        lines = ["=" * 60, "CONFIGURATION SUMMARY", "=" * 60]
        for f in fields(self):
            value = getattr(self, f.name)
            if f.name in ("sensor_angles", "view_angles"):
                value = f"{len(value)} rays, {math.degrees(value[0]):.0f}..{math.degrees(value[-1]):.0f} deg"
            lines.append(f"  {f.name}: {value}")
        lines.append("=" * 60)
        return "\n".join(lines)


def print_config(config=None):
    """Print current configuration."""
    print((config or SimConfig()).describe())
