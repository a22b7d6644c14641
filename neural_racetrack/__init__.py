"""
Neural Racetrack: cars driven by small neural networks, evolved by a
genetic algorithm to get around a procedurally generated track.
"""

from .agent import Agent, AgentState
from .brain import Brain, BrainDisposedError, brain_from_existing, new_random_brain
from .config import ConfigError, SimConfig
from .population import GenerationOutcome, GenerationReport, Population
from .simulation import Simulation

__version__ = "0.1.0"

__all__ = [
    "Agent",
    "AgentState",
    "Brain",
    "BrainDisposedError",
    "ConfigError",
    "GenerationOutcome",
    "GenerationReport",
    "Population",
    "SimConfig",
    "Simulation",
    "brain_from_existing",
    "new_random_brain",
]
