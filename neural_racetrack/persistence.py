"""
Saving and loading the best brain and the run counters.

Writes happen on a background thread so a generation boundary never stalls
the tick loop. Failures are logged, never raised into the simulation.
"""

import logging
import os
import queue
import threading
from concurrent.futures import Future
from dataclasses import dataclass

import torch

log = logging.getLogger(__name__)


@dataclass
class SavedState:
    generation_index: int = 0
    track_preset_index: int = 0
    all_time_best_laps: int = 0
    brain_state: dict = None


def _as_count(checkpoint, key):
    value = checkpoint.get(key, 0)
    if isinstance(value, torch.Tensor):
        value = value.item()
    value = int(value)
    if value < 0:
        raise ValueError(f"{key} is negative: {value}")
    return value


def load_state(path):
    """Load a saved run. Missing or unreadable files give a fresh SavedState."""
    if not path or not os.path.exists(path):
        log.info("No saved state at %s, starting fresh", path)
        return SavedState()
    try:
        checkpoint = torch.load(path, map_location="cpu", weights_only=True)
        if not isinstance(checkpoint, dict):
            raise ValueError(f"expected a dict, got {type(checkpoint).__name__}")
        brain_state = checkpoint.get("brain")
        if brain_state is not None and not isinstance(brain_state, dict):
            raise ValueError("brain entry is not a state dict")
        state = SavedState(
            generation_index=_as_count(checkpoint, "generation_index"),
            track_preset_index=_as_count(checkpoint, "track_preset_index"),
            all_time_best_laps=_as_count(checkpoint, "all_time_best_laps"),
            brain_state=brain_state,
        )
    except Exception as e:
        log.warning("Could not load saved state from %s, starting fresh: %s", path, e)
        return SavedState()
    log.info("Loaded generation %d, preset %d, best laps %d from %s",
             state.generation_index, state.track_preset_index, state.all_time_best_laps, path)
    return state


def write_state(path, checkpoint):
    """Write atomically: a crash mid-write leaves the previous file intact."""
    tmp = f"{path}.tmp"
    torch.save(checkpoint, tmp)
    os.replace(tmp, path)


class AsyncStateSaver:
    """Asynchronous saver so torch.save() never blocks the tick loop."""

    def __init__(self, path, max_pending=2):
        self.path = path
        self.save_queue = queue.Queue(maxsize=max_pending)
        self.worker_thread = threading.Thread(target=self._save_worker, daemon=True)
        self.worker_thread.start()

    def _save_worker(self):
        while True:
            checkpoint, future = self.save_queue.get()
            if checkpoint is None:
                self.save_queue.task_done()
                break
            try:
                write_state(self.path, checkpoint)
                log.info("Saved generation %d to %s", checkpoint["generation_index"], self.path)
                future.set_result(True)
            except Exception as e:
                log.error("Failed to save state to %s: %s", self.path, e)
                future.set_result(False)
            finally:
                self.save_queue.task_done()

    def save(self, brain, generation_index, track_preset_index, all_time_best_laps):
        """Queue a save and return a Future resolving to True/False.

        The brain's weights are copied before returning, so the caller may
        dispose it right away.
        """
        future = Future()
        checkpoint = {
            "generation_index": int(generation_index),
            "track_preset_index": int(track_preset_index),
            "all_time_best_laps": int(all_time_best_laps),
            "brain": brain.state_dict() if brain is not None else None,
        }
        try:
            self.save_queue.put_nowait((checkpoint, future))
        except queue.Full:
            log.warning("Save queue full, skipping save of generation %d", generation_index)
            future.set_result(False)
        return future

    def flush(self):
        """Block until every queued save has been written."""
        self.save_queue.join()

    def shutdown(self):
        self.save_queue.put((None, None))
        self.worker_thread.join(timeout=5.0)
