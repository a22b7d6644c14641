"""
Top-level driver. Owns the track, the population and the run counters.

Tick order is fixed: obstacles move once, then every live agent steps in
turn, then the generation is advanced if nobody is left alive.
"""

import logging
import random
from collections import deque
from dataclasses import dataclass, field
from typing import Optional

import torch

from .persistence import load_state
from .population import Population
from .sensors import SensorEngine
from .track import Track, build_track

log = logging.getLogger(__name__)

HISTORY_WINDOW = 1000
DEFAULT_OBSTACLES = 20


@dataclass
class TickStats:
    generation: int
    best_fitness: int
    avg_fitness: float
    best_laps: int
    alive_count: int
    avg_speed: float


@dataclass
class SimulationState:
    config: object
    population: Population
    track: Optional[Track] = None
    preset_index: int = 0
    all_time_best_laps: int = 0
    dynamic_obstacles: bool = False
    best: object = None
    history: deque = field(default_factory=lambda: deque(maxlen=HISTORY_WINDOW))


class Simulation:
    def __init__(self, config, saver=None, state_path=None, seed=None):
        self.config = config
        self.saver = saver
        self.state_path = state_path
        self.rng = random.Random(seed)
        if seed is not None:
            torch.manual_seed(seed)
        self.sensors = SensorEngine.from_config(config)
        self.state = SimulationState(config=config, population=Population(config, self.rng))

    @property
    def population(self):
        return self.state.population

    @property
    def track(self):
        return self.state.track

    @property
    def generation(self):
        return self.population.generation_index

    def start(self, fresh=False):
        """Restore saved counters (if any), build the track, seed agents."""
        brain_state = None
        if self.state_path and not fresh:
            saved = load_state(self.state_path)
            self.population.generation_index = saved.generation_index
            self.state.preset_index = saved.track_preset_index % len(self.config.track_presets)
            self.state.all_time_best_laps = saved.all_time_best_laps
            brain_state = saved.brain_state
        self.rebuild_track()
        self.population.seed(self.track.start, brain_state)
        self._update_best()

    def rebuild_track(self):
        """Build the current preset's track and move on to the next preset."""
        cfg = self.config
        idx = self.state.preset_index
        self.state.track = build_track(
            cfg.track_presets[idx], self.rng,
            obstacle_count=cfg.obstacle_count, width=cfg.width, height=cfg.height,
            resolution=cfg.track_resolution, preset_index=idx,
        )
        self.state.preset_index = (idx + 1) % len(cfg.track_presets)
        return self.state.track

    def tick(self, cycles=1):
        """Run logic ticks; returns the reports of any generations advanced."""
        reports = []
        pop = self.population
        for _ in range(cycles):
            if self.state.dynamic_obstacles:
                self.track.update_obstacles(self.rng)
            pop.step(self.track, self.sensors)

            if pop.live and self._threshold_reached():
                log.info("Fitness threshold %d reached, ending generation %d",
                         self.config.fitness_threshold, pop.generation_index)
                pop.finish_all()

            if not pop.live:
                reports.append(self.next_generation())
        self._update_best()
        return reports

    def _threshold_reached(self):
        limit = self.config.fitness_threshold
        pop = self.population
        return any(a.checkpoints > limit for a in pop.live) or \
            any(a.checkpoints > limit for a in pop.terminated)

    def next_generation(self):
        pop = self.population
        pop.finish_all()
        self.rebuild_track()
        report = pop.advance_generation(self.track.start, listener=self._persist)
        self.state.all_time_best_laps = max(self.state.all_time_best_laps, report.best_laps)
        self.state.history.append(report)
        log.info("Generation %d (%s): best %d checkpoints, mean %.2f, best laps %d",
                 report.generation_index, report.outcome.value, report.best_checkpoints,
                 report.mean_checkpoints, self.state.all_time_best_laps)
        return report

    def _persist(self, event):
        self.state.all_time_best_laps = max(self.state.all_time_best_laps, event.best_laps)
        if self.saver is None:
            return
        try:
            self.saver.save(event.brain, event.generation_index,
                            self.state.preset_index, self.state.all_time_best_laps)
        except Exception as e:
            log.error("Failed to queue save for generation %d: %s", event.generation_index, e)

    def _update_best(self):
        best = self.population.best()
        self.state.best = best
        if best is not None and best.laps > self.state.all_time_best_laps:
            self.state.all_time_best_laps = best.laps

    def best_agent(self):
        return self.state.best

    def agents(self):
        """Snapshots of every agent in the current generation."""
        pop = self.population
        return [a.snapshot() for a in pop.live + pop.terminated]

    def render_view(self):
        """High-resolution view fan of the best live agent, or None."""
        best = self.state.best
        if best is None or not best.alive:
            return None
        return self.sensors.render_view(best.position, best.heading, self.track)

    def stats(self):
        live = self.population.live
        n = len(live)
        return TickStats(
            generation=self.generation,
            best_fitness=max((a.checkpoints for a in live), default=0),
            avg_fitness=sum(a.checkpoints for a in live) / n if n else 0.0,
            best_laps=max((a.laps for a in live), default=0),
            alive_count=n,
            avg_speed=sum(a.speed for a in live) / n if n else 0.0,
        )

    def toggle_dynamic_obstacles(self):
        self.state.dynamic_obstacles = not self.state.dynamic_obstacles
        return self.state.dynamic_obstacles

    def set_obstacle_count(self, count):
        """Change the obstacle count, rebuild the track and restart the generation."""
        try:
            count = int(count)
        except (TypeError, ValueError):
            count = -1
        if count < 0:
            log.warning("Invalid obstacle count, using default value of %d", DEFAULT_OBSTACLES)
            count = DEFAULT_OBSTACLES
        self.config = self.config.replace(obstacle_count=count)
        self.state.config = self.config
        report = self.next_generation()
        self._update_best()
        return report

    def save_now(self):
        """Queue a save of the current best brain. Returns the save Future or None."""
        best = self.state.best
        if self.saver is None or best is None:
            log.warning("Nothing to save yet")
            return None
        with best.brain.clone() as snapshot:
            return self.saver.save(snapshot, self.generation, self.state.preset_index,
                                   self.state.all_time_best_laps)

    def close(self):
        self.population.dispose()
        if self.saver is not None:
            self.saver.flush()
            self.saver.shutdown()
