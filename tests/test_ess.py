# Copyright 2026 Michael Ellis
# SPDX-License-Identifier: Apache-2.0
"""Tests for ecosmc.ess: cross-validated against blackjax.smc.ess."""

import jax.numpy as jnp
import jax.random as jr
import pytest
from blackjax.smc.ess import ess as blackjax_ess

from ecosmc.ess import ess, ess_from_weights, log_ess, should_resample


class TestESS:
    """ESS from unnormalized log weights."""

    def test_uniform_is_num_particles(self):
        """Uniform weights -> ESS = N."""
        lw = jnp.zeros(50)
        assert jnp.allclose(ess(lw), 50.0)
        assert jnp.allclose(ess(lw), blackjax_ess(lw))

    def test_one_hot_is_one(self):
        """One particle has all weight -> ESS = 1."""
        lw = jnp.array([-jnp.inf, 0.0, -jnp.inf, -jnp.inf])
        assert jnp.allclose(ess(lw), 1.0)

    def test_shift_invariant(self):
        """Adding a constant to every log weight leaves ESS unchanged."""
        lw = jnp.array([0.3, -1.2, 2.0, 0.0])
        assert jnp.allclose(ess(lw), ess(lw + 750.0))
        assert jnp.allclose(ess(lw), ess(lw - 750.0))

    @pytest.mark.parametrize('seed', range(4))
    def test_bounds_and_blackjax(self, seed):
        """1 <= ESS <= N for random weights, matching Blackjax."""
        lw = 3.0 * jr.normal(jr.PRNGKey(seed), (40,))
        value = ess(lw)
        assert 1.0 - 1e-9 <= value <= 40.0 + 1e-9
        assert jnp.allclose(value, blackjax_ess(lw))

    def test_log_ess_is_log_of_ess(self):
        """log_ess should be log of ess."""
        lw = jnp.array([-2.0, 0.5, 1.0])
        assert jnp.allclose(jnp.exp(log_ess(lw)), ess(lw))


class TestESSFromWeights:
    """ESS of linear-scale weights."""

    def test_matches_log_space(self):
        """Linear and log-space ESS agree."""
        w = jnp.array([0.1, 0.4, 0.2, 0.3])
        assert jnp.allclose(ess_from_weights(w), ess(jnp.log(w)))

    def test_unnormalized_input(self):
        assert jnp.allclose(ess_from_weights(jnp.full(8, 3.0)), 8.0)

    def test_hand_computed(self):
        """w = (0.5, 0.5, 0, 0) -> 1 / (0.25 + 0.25) = 2."""
        w = jnp.array([0.5, 0.5, 0.0, 0.0])
        assert jnp.allclose(ess_from_weights(w), 2.0)


class TestShouldResample:
    """Resampling trigger at ESS < threshold * N."""

    def test_uniform_never_triggers(self):
        """ESS = N is never below N/2."""
        assert not should_resample(jnp.zeros(10))

    def test_degenerate_triggers(self):
        """ESS = 1 triggers for N=4."""
        lw = jnp.array([0.0, -jnp.inf, -jnp.inf, -jnp.inf])
        assert should_resample(lw)

    def test_threshold_scales_with_n(self):
        """ESS of 2 out of 4 resamples only above a threshold of 0.5."""
        lw = jnp.array([0.0, 0.0, -jnp.inf, -jnp.inf])
        assert not should_resample(lw, threshold=0.4)
        assert should_resample(lw, threshold=0.75)

    def test_single_particle_never_triggers(self):
        assert not should_resample(jnp.array([-123.0]))
