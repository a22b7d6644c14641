"""
Genetic algorithm over a population of agents.

Fitness goes through two stages once an agent has terminated:
  shaped     = 2 ** checkpoints (later checkpoints are worth exponentially more)
  normalized = shaped / sum(shaped) over the terminated pool
The normalized values are the roulette-wheel probabilities.
"""

import enum
import logging
import math
import random
from dataclasses import dataclass

from .agent import Agent

log = logging.getLogger(__name__)


class GenerationOutcome(enum.Enum):
    ADVANCED = "advanced"
    FELL_BACK_TO_RANDOM = "fell_back_to_random"


@dataclass
class GenerationEvent:
    """Emitted at each generation boundary. brain is only valid during the callback."""
    brain: object
    generation_index: int
    best_laps: int = 0


@dataclass
class GenerationReport:
    outcome: GenerationOutcome
    generation_index: int
    evaluated: int = 0
    elites: int = 0
    offspring: int = 0
    random: int = 0
    best_checkpoints: int = 0
    best_laps: int = 0
    mean_checkpoints: float = 0.0


def calculate_fitness(pool):
    """Shape and normalize fitness over a terminated pool, in place.

    Ratios are computed relative to the best agent so that large checkpoint
    counts never overflow. A pool whose weights do not sum to a positive,
    finite number falls back to uniform probabilities.
    """
    if not pool:
        return
    top = max(agent.checkpoints for agent in pool)
    weights = []
    for agent in pool:
        agent.shaped_fitness = 2.0 ** agent.checkpoints if agent.checkpoints < 1024 else math.inf
        weights.append(2.0 ** (agent.checkpoints - top))

    total = math.fsum(weights)
    if total > 0 and math.isfinite(total):
        for agent, w in zip(pool, weights):
            agent.normalized_fitness = w / total
    else:
        log.warning("Fitness sum is %r over %d agents, using uniform selection", total, len(pool))
        for agent in pool:
            agent.normalized_fitness = 1.0 / len(pool)


def pick_one(pool, rng=random):
    """Roulette-wheel selection over a pool sorted by normalized fitness."""
    index = 0
    r = rng.random()
    while r > 0 and index < len(pool):
        r -= pool[index].normalized_fitness
        index += 1
    return pool[max(index - 1, 0)]


class Population:
    def __init__(self, config, rng=None):
        self.config = config
        self.rng = rng or random.Random()
        self.live = []
        self.terminated = []
        self.generation_index = 0

    def seed(self, start, brain_state=None):
        """Fill the live set with fresh agents.

        brain_state (a saved Brain.state_dict()) seeds the first agent; a state
        that does not fit the configured network is ignored.
        """
        self.live = []
        if brain_state is not None:
            try:
                self.live.append(Agent(self.config, start, brain_state))
                log.info("Seeded first agent from saved brain")
            except ValueError as e:
                log.warning("Saved brain does not fit this network, starting fresh: %s", e)
        while len(self.live) < self.config.population_size:
            self.live.append(Agent(self.config, start))

    def __len__(self):
        return len(self.live) + len(self.terminated)

    @property
    def alive_count(self):
        return len(self.live)

    def best(self):
        """Live agent with the most checkpoints, or None."""
        if not self.live:
            return None
        return max(self.live, key=lambda a: a.checkpoints)

    def step(self, track, sensors):
        """Advance every live agent by one control step, in list order.

        Each agent finishes its step before the next begins; agents that reach
        a terminal state move to the terminated pool afterwards.
        """
        for agent in self.live:
            agent.step(track, sensors)
        self._collect()

    def _collect(self):
        still_alive = []
        for agent in self.live:
            if agent.alive:
                still_alive.append(agent)
            else:
                self.terminated.append(agent)
        self.live = still_alive

    def finish_all(self):
        for agent in self.live:
            agent.finish()
        self._collect()

    def advance_generation(self, start, listener=None):
        """Build the next generation from the terminated pool.

        listener, if given, receives a GenerationEvent holding a clone of the
        best brain; the clone is disposed as soon as the listener returns.
        """
        if self.live:
            raise RuntimeError(f"{len(self.live)} agents are still live; finish them first")

        cfg = self.config
        pool = self.terminated
        report = GenerationReport(GenerationOutcome.ADVANCED, self.generation_index, evaluated=len(pool))
        new_agents = []
        snapshot = None
        try:
            if pool:
                calculate_fitness(pool)
                pool.sort(key=lambda a: a.normalized_fitness, reverse=True)
                report.best_checkpoints = pool[0].checkpoints
                report.best_laps = max(a.laps for a in pool)
                report.mean_checkpoints = sum(a.checkpoints for a in pool) / len(pool)

                report.elites = min(cfg.elitism_count, len(pool))
                for elite in pool[:report.elites]:
                    new_agents.append(Agent(cfg, start, elite.brain))

                while len(new_agents) < cfg.population_size:
                    child = Agent(cfg, start, pick_one(pool, self.rng).brain)
                    new_agents.append(child)
                    child.mutate()
                    report.offspring += 1

                snapshot = pool[0].brain.clone()
            else:
                log.warning("No terminated agents to evolve from, creating a random population")
                report.outcome = GenerationOutcome.FELL_BACK_TO_RANDOM
                while len(new_agents) < cfg.population_size:
                    new_agents.append(Agent(cfg, start))
                    report.random += 1
        except BaseException:
            for agent in new_agents:
                agent.dispose()
            raise

        try:
            for agent in pool:
                agent.dispose()
            self.terminated = []
            self.live = new_agents
            self.generation_index += 1
            report.generation_index = self.generation_index
            if snapshot is not None and listener is not None:
                listener(GenerationEvent(snapshot, self.generation_index, report.best_laps))
        finally:
            if snapshot is not None:
                snapshot.dispose()
        return report

    def dispose(self):
        for agent in self.live + self.terminated:
            agent.dispose()
        self.live = []
        self.terminated = []
