"""
A single car: pose, brain and lifecycle counters.
"""

import enum
import math
from typing import NamedTuple

from .brain import brain_from_existing, new_random_brain
from .geometry import distance_point_to_segment, from_angle, limit, remap


class AgentState(enum.Enum):
    ALIVE = "alive"
    DEAD = "dead"
    FINISHED = "finished"


class AgentView(NamedTuple):
    x: float
    y: float
    heading: float
    speed: float
    state: AgentState
    fitness: int
    laps: int
    checkpoint_index: int


class Agent:
    def __init__(self, config, start, brain=None):
        """Create an agent at the start pose.

        With a donor brain the agent gets its own clone; the donor stays owned
        by the caller. Without one it gets a freshly initialized brain.
        """
        self.config = config
        self.x, self.y = start.x, start.y
        self.heading = start.heading
        self.vx = self.vy = 0.0
        self.ax = self.ay = 0.0
        self.state = AgentState.ALIVE

        # Raw checkpoint count while alive; the GA fills in the other two.
        self.checkpoints = 0
        self.shaped_fitness = 0.0
        self.normalized_fitness = 0.0

        self.checkpoint_index = 0
        self.laps = 0
        self.frames_since_progress = 0
        self.closest_obstacle_distance = math.inf
        self.last_reading = None

        sizes = (config.input_size, config.hidden_size, config.output_size)
        if brain is None:
            self.brain = new_random_brain(*sizes)
        else:
            self.brain = brain_from_existing(brain, *sizes)

    @property
    def alive(self):
        return self.state is AgentState.ALIVE

    @property
    def position(self):
        return (self.x, self.y)

    @property
    def speed(self):
        return math.hypot(self.vx, self.vy)

    @property
    def fitness(self):
        return self.checkpoints

    def mutate(self, rate=None):
        self.brain.mutate(self.config.mutation_rate if rate is None else rate)

    def dispose(self):
        self.brain.dispose()

    def apply_force(self, fx, fy):
        self.ax += fx
        self.ay += fy

    def finish(self):
        if self.alive:
            self.state = AgentState.FINISHED

    def kill(self):
        if self.alive:
            self.state = AgentState.DEAD

    def decide(self, inputs):
        """Brain output -> steering force toward the desired velocity."""
        cfg = self.config
        output = self.brain.predict(inputs)
        angle = remap(float(output[0]), 0, 1, -math.pi, math.pi) + self.heading
        target_speed = remap(float(output[1]), 0, 1, 0, cfg.max_speed)
        dx, dy = from_angle(angle, target_speed)
        fx, fy = limit(dx - self.vx, dy - self.vy, cfg.max_force)
        self.apply_force(fx, fy)

    def integrate(self):
        self.vx += self.ax
        self.vy += self.ay
        self.vx, self.vy = limit(self.vx, self.vy, self.config.max_speed)
        self.x += self.vx
        self.y += self.vy
        self.ax = self.ay = 0.0
        if self.vx or self.vy:
            self.heading = math.atan2(self.vy, self.vx)
        self.frames_since_progress += 1

    def check(self, track, lethal):
        """Lifecycle checks, in order; returns the resulting state."""
        if lethal:
            self.state = AgentState.DEAD
        elif not track.contains(self.position):
            self.state = AgentState.DEAD
        elif self.frames_since_progress > self.config.lifespan:
            self.state = AgentState.DEAD
        else:
            goal = track.checkpoints[self.checkpoint_index]
            if distance_point_to_segment(self.position, goal.a, goal.b) < self.config.capture_radius:
                self.checkpoint_index = (self.checkpoint_index + 1) % len(track.checkpoints)
                self.checkpoints += 1
                self.frames_since_progress = 0
                if self.checkpoint_index == 0:
                    self.laps += 1
        return self.state

    def step(self, track, sensors):
        """One control step: sense, decide, steer, integrate, check."""
        if not self.alive:
            return self.state
        reading = sensors.sense(self.position, self.heading, track)
        self.last_reading = reading
        self.closest_obstacle_distance = reading.closest_obstacle_distance
        self.decide(reading.inputs)
        self.integrate()
        return self.check(track, reading.lethal)

    def snapshot(self):
        """Read-only view for rendering and analytics."""
        return AgentView(self.x, self.y, self.heading, self.speed, self.state,
                         self.checkpoints, self.laps, self.checkpoint_index)

    def __repr__(self):
        return (f"Agent({self.state.value}, pos=({self.x:.1f}, {self.y:.1f}), "
                f"checkpoints={self.checkpoints}, laps={self.laps})")

