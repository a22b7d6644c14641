"""
Raycasting sensors.

SensorEngine.sense() builds the observation vector fed to a brain.
SensorEngine.render_view() casts the denser perspective fan for drawing only.
"""

import enum
import math
from dataclasses import dataclass

import numpy as np

from .geometry import closest_obstacle_on_ray, distance, from_angle, intersect_segments, remap


class HitType(enum.IntEnum):
    WALL = 0
    OBSTACLE = 1
    NONE = 2


@dataclass(frozen=True)
class RayFan:
    """Ray offsets (radians, relative to heading), range and obstacle tolerance."""
    angles: tuple
    range: float
    tolerance: float

    def __len__(self):
        return len(self.angles)

    def directions(self, heading):
        return [from_angle(heading + a) for a in self.angles]


@dataclass
class SensorReading:
    inputs: np.ndarray
    min_distance: float
    closest_obstacle_distance: float
    lethal: bool
    hits: list          # nearest hit point per ray, or None


@dataclass
class RenderView:
    distances: np.ndarray
    hit_types: list


class SensorEngine:
    def __init__(self, fan, view_fan=None, lethal_proximity=10.0):
        self.fan = fan
        self.view_fan = view_fan
        self.lethal_proximity = lethal_proximity

    @classmethod
    def from_config(cls, config):
        fan = RayFan(tuple(config.sensor_angles), config.sensor_range, config.sensor_tolerance)
        view = RayFan(tuple(config.view_angles), config.view_range, config.view_tolerance)
        return cls(fan, view, config.lethal_proximity)

    def _cast(self, origin, direction, fan, track, record):
        """Nearest hit along one ray: (distance, point, hit type)."""
        closest, kind = None, HitType.NONE

        obstacle = closest_obstacle_on_ray(origin, direction, fan.range, track.obstacles, fan.tolerance)
        if obstacle is not None:
            d = distance(origin, obstacle.pos)
            if d < record:
                record, closest, kind = d, obstacle.pos, HitType.OBSTACLE

        for wall in track.walls:
            pt = intersect_segments(origin, direction, fan.range, wall.a, wall.b)
            if pt is not None:
                d = distance(origin, pt)
                if d < record:
                    record, closest, kind = d, pt, HitType.WALL
        return record, closest, kind

    def sense(self, position, heading, track):
        fan = self.fan
        readings = np.empty(len(fan), dtype=np.float32)
        hits = []
        min_distance = fan.range
        obstacle_distance = math.inf

        for i, direction in enumerate(fan.directions(heading)):
            record, closest, kind = self._cast(position, direction, fan, track, fan.range)
            if kind == HitType.OBSTACLE:
                obstacle_distance = min(obstacle_distance, record)
            min_distance = min(min_distance, record)
            readings[i] = remap(record, 0, fan.range, 1, 0)
            hits.append(closest)

        return SensorReading(
            inputs=readings,
            min_distance=min_distance,
            closest_obstacle_distance=obstacle_distance,
            lethal=min_distance < self.lethal_proximity,
            hits=hits,
        )

    def render_view(self, position, heading, track):
        """Unclipped distances and hit types for the perspective strip."""
        if self.view_fan is None:
            raise ValueError("SensorEngine was built without a view fan")
        fan = self.view_fan
        distances = np.empty(len(fan), dtype=np.float64)
        kinds = []
        for i, direction in enumerate(fan.directions(heading)):
            record, _, kind = self._cast(position, direction, fan, track, math.inf)
            distances[i] = record
            kinds.append(kind)
        return RenderView(distances=distances, hit_types=kinds)
