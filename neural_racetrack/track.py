"""
Track model: walls, checkpoints, obstacles and the start pose.

build_track() generates a closed track by sampling gradient noise around a
circle, so every preset gives a different, smooth loop.
"""

import math
import random
from dataclasses import dataclass, field

import numpy as np

from .geometry import Segment, remap


class Obstacle:
    """A point obstacle, optionally drifting along a track cross-section."""

    def __init__(self, x, y, bounds=None):
        self.pos = (x, y)
        self.bounds = bounds

    def distance_to(self, pt):
        return math.hypot(self.pos[0] - pt[0], self.pos[1] - pt[1])

    def drift(self, rng):
        """Jitter along the bounds line, staying inside its bounding box."""
        if self.bounds is None:
            return
        (p1x, p1y), (p2x, p2y) = self.bounds
        if p2x == p1x:
            return
        x = self.pos[0] + rng.uniform(-2, 2)
        m = (p2y - p1y) / (p2x - p1x)
        y = m * (x - p1x) + p1y

        if rng.random() < 0.2:
            nx, ny = self.pos
            if min(p1x, p2x) < x < max(p1x, p2x):
                nx = x
            if min(p1y, p2y) < y < max(p1y, p2y):
                ny = y
            self.pos = (nx, ny)

    def __repr__(self):
        return f"Obstacle(x={self.pos[0]:.1f}, y={self.pos[1]:.1f})"


@dataclass(frozen=True)
class Pose:
    x: float
    y: float
    heading: float = 0.0

    @property
    def position(self):
        return (self.x, self.y)


@dataclass
class Track:
    walls: list
    checkpoints: list
    obstacles: list = field(default_factory=list)
    start: Pose = Pose(0.0, 0.0)
    width: float = 1000.0
    height: float = 800.0
    preset_index: int = 0

    def contains(self, pos):
        return 0 <= pos[0] <= self.width and 0 <= pos[1] <= self.height

    def update_obstacles(self, rng):
        for obstacle in self.obstacles:
            obstacle.drift(rng)


class GradientNoise:
    """2D Perlin-style gradient noise in [0, 1] with octave falloff."""

    def __init__(self, rng, octaves=4, falloff=0.5):
        perm = list(range(256))
        rng.shuffle(perm)
        self.perm = perm * 2
        self.octaves = octaves
        self.falloff = falloff

    @staticmethod
    def _fade(t):
        return t * t * t * (t * (t * 6 - 15) + 10)

    @staticmethod
    def _grad(h, x, y):
        h &= 7
        u = x if h < 4 else y
        v = y if h < 4 else x
        return (u if h & 1 == 0 else -u) + (v if h & 2 == 0 else -v)

    def _single(self, x, y):
        xi, yi = int(math.floor(x)) & 255, int(math.floor(y)) & 255
        xf, yf = x - math.floor(x), y - math.floor(y)
        u, v = self._fade(xf), self._fade(yf)
        p = self.perm
        aa = p[p[xi] + yi]
        ab = p[p[xi] + yi + 1]
        ba = p[p[xi + 1] + yi]
        bb = p[p[xi + 1] + yi + 1]
        x1 = self._grad(aa, xf, yf) + u * (self._grad(ba, xf - 1, yf) - self._grad(aa, xf, yf))
        x2 = self._grad(ab, xf, yf - 1) + u * (self._grad(bb, xf - 1, yf - 1) - self._grad(ab, xf, yf - 1))
        return x1 + v * (x2 - x1)  # roughly [-1, 1]

    def __call__(self, x, y):
        total, amp, freq, norm = 0.0, 0.5, 1.0, 0.0
        for _ in range(self.octaves):
            total += amp * self._single(x * freq, y * freq)
            norm += amp
            amp *= self.falloff
            freq *= 2.0
        return min(1.0, max(0.0, (total / norm + 1.0) * 0.5))


def build_track(preset, rng=None, obstacle_count=20, width=1000.0, height=800.0,
                resolution=80, preset_index=0):
    """Generate a closed track for a (noise_max, path_width) preset."""
    rng = rng or random.Random()
    noise_max, path_width = preset
    noise = GradientNoise(rng)

    start_x = rng.uniform(0, 10)
    start_y = rng.uniform(0, 10)
    angles = np.linspace(0.0, 2 * math.pi, resolution, endpoint=False)

    inside, outside, checkpoints = [], [], []
    for a in angles:
        xoff = remap(math.cos(a), -1, 1, 0, noise_max) + start_x
        yoff = remap(math.sin(a), -1, 1, 0, noise_max) + start_y
        n = noise(xoff, yoff)
        xr = remap(n, 0, 1, 100, width * 0.5)
        yr = remap(n, 0, 1, 100, height * 0.5)
        p1 = (width / 2 + (xr - path_width) * math.cos(a), height / 2 + (yr - path_width) * math.sin(a))
        p2 = (width / 2 + (xr + path_width) * math.cos(a), height / 2 + (yr + path_width) * math.sin(a))
        inside.append(p1)
        outside.append(p2)
        checkpoints.append(Segment(p1, p2))

    walls = []
    for i in range(resolution):
        ni = (i + 1) % resolution
        walls.append(Segment(inside[i], inside[ni]))
        walls.append(Segment(outside[i], outside[ni]))

    obstacles = []
    for _ in range(obstacle_count):
        idx = rng.randrange(min(5, resolution - 2), resolution - 1)
        p1, p2 = inside[idx], outside[idx]
        s = rng.random()
        obstacles.append(Obstacle(p1[0] + s * (p2[0] - p1[0]),
                                  p1[1] + s * (p2[1] - p1[1]),
                                  bounds=(p1, p2)))

    sx, sy = checkpoints[0].midpoint()
    nx, ny = checkpoints[1].midpoint()
    start = Pose(sx, sy, math.atan2(ny - sy, nx - sx))

    return Track(walls=walls, checkpoints=checkpoints, obstacles=obstacles,
                 start=start, width=width, height=height, preset_index=preset_index)
