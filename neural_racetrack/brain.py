"""
Feed-forward controller built on PyTorch tensors.

A Brain has exactly one owner. clone() hands back a new, independent owner;
dispose() releases the tensors. A Brain is also a context manager so the
function that creates or clones one can guarantee its release:

    with population.best().brain.clone() as snapshot:
        saver.save(snapshot, ...)
"""

import functools
import logging

import numpy as np
import torch

log = logging.getLogger(__name__)

PARAM_NAMES = ("w1", "b1", "w2", "b2")


@functools.lru_cache(maxsize=None)
def setup_device(use_cuda=False):
    """CPU unless use_cuda is set; one small net per agent gains nothing on a GPU."""
    if not use_cuda:
        return torch.device("cpu")
    if torch.cuda.is_available():
        log.info("Using CUDA device %s", torch.cuda.get_device_name(0))
        return torch.device("cuda")
    log.info("CUDA not available, using CPU")
    return torch.device("cpu")


class BrainDisposedError(RuntimeError):
    """A disposed Brain was used. The caller broke the ownership rules."""


class Brain:
    """Two dense layers, sigmoid on both: inputs -> hidden -> outputs."""

    _live = 0

    def __init__(self, w1, b1, w2, b2):
        self.w1, self.b1, self.w2, self.b2 = w1, b1, w2, b2
        self.input_size, self.hidden_size = w1.shape
        self.output_size = w2.shape[1]
        self.disposed = False
        Brain._live += 1

    @classmethod
    def live_count(cls):
        """Number of brains created and not yet disposed."""
        return cls._live

    def _check(self):
        if self.disposed:
            raise BrainDisposedError("brain was used after dispose()")

    def parameters(self):
        self._check()
        return [self.w1, self.b1, self.w2, self.b2]

    @torch.no_grad()
    def predict(self, inputs):
        self._check()
        x = torch.as_tensor(np.asarray(inputs, dtype=np.float32), device=self.w1.device)
        if x.shape != (self.input_size,):
            raise ValueError(f"expected {self.input_size} inputs, got {tuple(x.shape)}")
        h = torch.sigmoid(x @ self.w1 + self.b1)
        out = torch.sigmoid(h @ self.w2 + self.b2)
        return out.cpu().numpy()

    def clone(self):
        self._check()
        return Brain(*(p.clone() for p in self.parameters()))

    @torch.no_grad()
    def mutate(self, rate):
        """Add N(0, 1) to each weight independently with probability rate."""
        for w in self.parameters():
            mask = torch.rand_like(w) < rate
            w.add_(torch.randn_like(w) * mask)

    def dispose(self):
        if self.disposed:
            return
        self.w1 = self.b1 = self.w2 = self.b2 = None
        self.disposed = True
        Brain._live -= 1

    def state_dict(self):
        """CPU copies of the weights plus layer sizes, for persistence."""
        self._check()
        state = {name: p.detach().cpu().clone() for name, p in zip(PARAM_NAMES, self.parameters())}
        state["sizes"] = [self.input_size, self.hidden_size, self.output_size]
        return state

    def flat_weights(self):
        self._check()
        return torch.cat([p.detach().flatten().cpu() for p in self.parameters()]).numpy()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.dispose()
        return False

    def __repr__(self):
        if self.disposed:
            return "Brain(disposed)"
        return f"Brain({self.input_size}, {self.hidden_size}, {self.output_size})"


def _glorot(fan_in, fan_out, device):
    w = torch.empty(fan_in, fan_out, device=device)
    torch.nn.init.xavier_uniform_(w)
    return w


def new_random_brain(input_size, hidden_size, output_size, device=None):
    device = device or setup_device()
    return Brain(
        _glorot(input_size, hidden_size, device),
        torch.zeros(hidden_size, device=device),
        _glorot(hidden_size, output_size, device),
        torch.zeros(output_size, device=device),
    )


def brain_from_existing(source, input_size, hidden_size, output_size, device=None):
    """Independent Brain copied from another Brain or from a state_dict().

    Raises ValueError when the source does not have the requested shape.
    """
    device = device or setup_device()
    expected = {
        "w1": (input_size, hidden_size),
        "b1": (hidden_size,),
        "w2": (hidden_size, output_size),
        "b2": (output_size,),
    }
    if isinstance(source, Brain):
        tensors = dict(zip(PARAM_NAMES, source.parameters()))
    else:
        missing = [name for name in PARAM_NAMES if name not in source]
        if missing:
            raise ValueError(f"brain state is missing {missing}")
        try:
            tensors = {name: torch.as_tensor(source[name]) for name in PARAM_NAMES}
        except (TypeError, RuntimeError) as e:
            raise ValueError(f"brain state holds non-numeric weights: {e}") from e

    for name, shape in expected.items():
        if tuple(tensors[name].shape) != shape:
            raise ValueError(f"{name} has shape {tuple(tensors[name].shape)}, expected {shape}")
    return Brain(*(tensors[name].detach().to(device=device, dtype=torch.float32).clone()
                   for name in PARAM_NAMES))
