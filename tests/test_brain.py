import numpy as np
import pytest
import torch

from neural_racetrack.brain import (
    Brain,
    BrainDisposedError,
    brain_from_existing,
    new_random_brain,
    setup_device,
)


def test_predict_outputs_are_probabilities():
    brain = new_random_brain(13, 26, 2)
    out = brain.predict(np.random.rand(13))
    assert out.shape == (2,)
    assert np.all((out >= 0.0) & (out <= 1.0))
    brain.dispose()


def test_predict_rejects_wrong_input_size():
    with new_random_brain(4, 3, 2) as brain:
        with pytest.raises(ValueError):
            brain.predict([0.0, 1.0])


def test_clone_is_independent():
    with new_random_brain(4, 3, 2) as brain, brain.clone() as twin:
        before = brain.flat_weights().copy()
        np.testing.assert_array_equal(before, twin.flat_weights())
        twin.mutate(1.0)
        np.testing.assert_array_equal(before, brain.flat_weights())
        assert not np.allclose(before, twin.flat_weights())


def test_mutate_rate_one_changes_every_weight():
    with new_random_brain(6, 5, 2) as brain, brain.clone() as child:
        child.mutate(1.0)
        assert np.all(child.flat_weights() != brain.flat_weights())


def test_mutate_rate_zero_changes_nothing():
    with new_random_brain(6, 5, 2) as brain, brain.clone() as child:
        child.mutate(0.0)
        np.testing.assert_array_equal(child.flat_weights(), brain.flat_weights())


def test_disposed_brain_fails_loudly():
    brain = new_random_brain(4, 3, 2)
    brain.dispose()
    brain.dispose()
    with pytest.raises(BrainDisposedError):
        brain.predict(np.zeros(4))
    with pytest.raises(BrainDisposedError):
        brain.clone()
    with pytest.raises(BrainDisposedError):
        brain.mutate(0.5)


def test_context_manager_releases_on_error(brain_leak_check):
    with pytest.raises(RuntimeError):
        with new_random_brain(4, 3, 2) as brain:
            assert brain_leak_check() == 1
            raise RuntimeError("boom")
    assert brain.disposed
    assert brain_leak_check() == 0


def test_brain_from_state_dict_copies_weights():
    with new_random_brain(4, 3, 2) as brain:
        state = brain.state_dict()
        with brain_from_existing(state, 4, 3, 2) as restored:
            np.testing.assert_array_equal(restored.flat_weights(), brain.flat_weights())
            x = np.linspace(0, 1, 4)
            np.testing.assert_allclose(restored.predict(x), brain.predict(x))
    assert state["sizes"] == [4, 3, 2]


def test_brain_from_existing_rejects_wrong_shape():
    with new_random_brain(4, 3, 2) as brain:
        with pytest.raises(ValueError):
            brain_from_existing(brain, 5, 3, 2)
    with pytest.raises(ValueError):
        brain_from_existing({"w1": torch.zeros(4, 3)}, 4, 3, 2)


def test_brain_from_existing_rejects_non_numeric_weights():
    with pytest.raises(ValueError):
        brain_from_existing({"w1": "x", "b1": "x", "w2": "x", "b2": "x"}, 4, 3, 2)


def test_brain_from_existing_leaves_donor_alone():
    with new_random_brain(4, 3, 2) as donor:
        copy = brain_from_existing(donor, 4, 3, 2)
        copy.dispose()
        assert not donor.disposed
        assert donor.predict(np.zeros(4)).shape == (2,)


def test_live_count_tracks_create_and_dispose():
    before = Brain.live_count()
    brains = [new_random_brain(2, 2, 2) for _ in range(3)]
    assert Brain.live_count() == before + 3
    for b in brains:
        b.dispose()
    assert Brain.live_count() == before


def test_default_device_is_cpu():
    assert setup_device().type == "cpu"
    with new_random_brain(4, 3, 2) as brain:
        assert brain.w1.device.type == "cpu"
