import random

import numpy as np
import pytest

from neural_racetrack.agent import Agent, AgentState
from neural_racetrack.geometry import Segment
from neural_racetrack.population import (
    GenerationOutcome,
    Population,
    calculate_fitness,
    pick_one,
)
from neural_racetrack.sensors import SensorEngine
from neural_racetrack.track import Track


class FixedRandom:
    def __init__(self, *values):
        self.values = list(values)

    def random(self):
        return self.values.pop(0)


def dead_agents(config, start, counts):
    agents = []
    for n in counts:
        agent = Agent(config, start)
        agent.checkpoints = n
        agent.state = AgentState.DEAD
        agents.append(agent)
    return agents


def test_shaping_and_normalization(config, start):
    pool = dead_agents(config, start, [1, 2, 0])
    calculate_fitness(pool)
    assert [a.shaped_fitness for a in pool] == [2.0, 4.0, 1.0]
    assert [a.normalized_fitness for a in pool] == pytest.approx([2 / 7, 4 / 7, 1 / 7])
    assert [a.checkpoints for a in pool] == [1, 2, 0]
    for a in pool:
        a.dispose()


def test_all_zero_checkpoints_is_uniform(config, start):
    pool = dead_agents(config, start, [0, 0, 0, 0])
    calculate_fitness(pool)
    assert [a.normalized_fitness for a in pool] == pytest.approx([0.25] * 4)
    for a in pool:
        a.dispose()


@pytest.mark.parametrize("counts", [[0], [3, 7, 7, 1], [600, 2, 599], [1500, 1499]])
def test_normalized_fitness_sums_to_one(config, start, counts):
    pool = dead_agents(config, start, counts)
    calculate_fitness(pool)
    assert sum(a.normalized_fitness for a in pool) == pytest.approx(1.0)
    assert all(np.isfinite(a.normalized_fitness) for a in pool)
    for a in pool:
        a.dispose()


def test_pick_one_walks_the_wheel(config, start):
    pool = dead_agents(config, start, [2, 1, 0])
    calculate_fitness(pool)    # [4/7, 2/7, 1/7]
    assert pick_one(pool, FixedRandom(0.0)) is pool[0]
    assert pick_one(pool, FixedRandom(0.5)) is pool[0]
    assert pick_one(pool, FixedRandom(0.6)) is pool[1]
    assert pick_one(pool, FixedRandom(0.9)) is pool[2]
    assert pick_one(pool, FixedRandom(0.9999999999)) is pool[2]
    for a in pool:
        a.dispose()


def test_pick_one_is_fitness_proportionate(config, start):
    pool = dead_agents(config, start, [2, 1, 0])
    calculate_fitness(pool)
    rng = random.Random(1)
    picks = [pick_one(pool, rng) for _ in range(7000)]
    assert picks.count(pool[0]) == pytest.approx(4000, rel=0.1)
    assert picks.count(pool[2]) == pytest.approx(1000, rel=0.2)
    for a in pool:
        a.dispose()


def test_generation_advance_scenario(config, start, brain_leak_check):
    pop = Population(config, random.Random(3))
    pop.terminated = dead_agents(config, start, [1, 2, 0])
    best_weights = pop.terminated[1].brain.flat_weights().copy()
    old_brains = [a.brain for a in pop.terminated]
    events = []

    report = pop.advance_generation(start, listener=lambda e: events.append(
        (e.brain, e.generation_index, e.brain.flat_weights().copy())))

    assert report.outcome is GenerationOutcome.ADVANCED
    assert (report.elites, report.offspring, report.random) == (1, 4, 0)
    assert report.best_checkpoints == 2
    assert pop.generation_index == 1 == report.generation_index
    assert len(pop.live) == 5
    assert pop.terminated == []

    # the elite is an unmutated clone of the rawCount=2 brain
    np.testing.assert_array_equal(pop.live[0].brain.flat_weights(), best_weights)
    assert all(b.disposed for b in old_brains)
    assert all(a.alive and a.checkpoints == 0 for a in pop.live)
    assert (pop.live[0].x, pop.live[0].y) == (start.x, start.y)

    # persistence event carried a clone of the best brain, released afterwards
    (snapshot, gen, weights), = events
    assert gen == 1
    np.testing.assert_array_equal(weights, best_weights)
    assert snapshot.disposed

    # the 3 pool brains are gone, the 5 new ones remain
    assert brain_leak_check() == 5
    pop.dispose()


def test_offspring_are_mutated_elites_are_not(config, start):
    cfg = config.replace(mutation_rate=1.0, elitism_count=2)
    pop = Population(cfg, random.Random(0))
    pop.terminated = dead_agents(cfg, start, [4, 3, 1])
    parents = [a.brain.flat_weights().copy() for a in pop.terminated]

    pop.advance_generation(start)

    np.testing.assert_array_equal(pop.live[0].brain.flat_weights(), parents[0])
    np.testing.assert_array_equal(pop.live[1].brain.flat_weights(), parents[1])
    for child in pop.live[2:]:
        w = child.brain.flat_weights()
        assert all(np.all(w != p) for p in parents)
    pop.dispose()


def test_elites_capped_by_pool_size(config, start):
    cfg = config.replace(elitism_count=3)
    pop = Population(cfg, random.Random(0))
    pop.terminated = dead_agents(cfg, start, [1])
    report = pop.advance_generation(start)
    assert report.elites == 1
    assert report.offspring == 4
    assert len(pop.live) == cfg.population_size
    pop.dispose()


def test_empty_pool_falls_back_to_random(config, start, brain_leak_check):
    pop = Population(config)
    pop.generation_index = 4
    calls = []
    report = pop.advance_generation(start, listener=calls.append)
    assert report.outcome is GenerationOutcome.FELL_BACK_TO_RANDOM
    assert report.random == config.population_size
    assert pop.generation_index == 5
    assert len(pop.live) == config.population_size
    assert calls == []
    assert brain_leak_check() == config.population_size
    pop.dispose()
    assert brain_leak_check() == 0


def test_advance_with_live_agents_is_an_error(config, start):
    pop = Population(config)
    pop.seed(start)
    with pytest.raises(RuntimeError):
        pop.advance_generation(start)
    pop.dispose()


def test_listener_error_still_releases_snapshot(config, start, brain_leak_check):
    pop = Population(config, random.Random(0))
    pop.terminated = dead_agents(config, start, [1, 0])
    seen = []

    def failing(event):
        seen.append(event.brain)
        raise OSError("disk full")

    with pytest.raises(OSError):
        pop.advance_generation(start, listener=failing)
    assert seen[0].disposed
    pop.dispose()
    assert brain_leak_check() == 0


def test_step_moves_terminal_agents_to_pool(config, start):
    track = Track(walls=[], checkpoints=[Segment((900.0, 0.0), (900.0, 1.0))], obstacles=[],
                  start=start, width=1000.0, height=1000.0)
    sensors = SensorEngine.from_config(config)
    pop = Population(config)
    pop.seed(start)
    pop.live[0].kill()
    pop.live[1].x = -50.0

    pop.step(track, sensors)

    assert len(pop.live) == 3
    assert len(pop.terminated) == 2
    assert not set(map(id, pop.live)) & set(map(id, pop.terminated))
    assert all(not a.alive for a in pop.terminated)

    pop.finish_all()
    assert pop.live == []
    assert len(pop.terminated) == 5
    assert sum(a.state is AgentState.FINISHED for a in pop.terminated) == 3
    pop.dispose()


def test_seed_uses_saved_brain_for_first_agent(config, start, constant_brain):
    state = constant_brain(config, angle=0.3, speed=0.7)
    pop = Population(config)
    pop.seed(start, state)
    assert len(pop.live) == config.population_size
    out = pop.live[0].brain.predict(np.zeros(config.input_size))
    assert out == pytest.approx([0.3, 0.7], abs=1e-5)
    pop.dispose()


def test_seed_ignores_mismatched_brain(config, start):
    pop = Population(config)
    pop.seed(start, {"w1": np.zeros((2, 2)), "b1": np.zeros(2), "w2": np.zeros((2, 2)), "b2": np.zeros(2)})
    assert len(pop.live) == config.population_size
    pop.dispose()
