# Copyright 2026 Michael Ellis
# SPDX-License-Identifier: Apache-2.0
"""Tests for ecosmc.diagnostics.

Checks the weighted summaries against hand-computed values and the run
checks against constructed posteriors.
"""

import logging

import jax
import jax.numpy as jnp
import pytest

from ecosmc.assimilation import assimilate
from ecosmc.config import AssimilationConfig
from ecosmc.containers import Observations
from ecosmc.diagnostics import (
    check_posterior,
    particle_diversity,
    resample_history,
    weighted_mean,
    weighted_quantile,
)
from ecosmc.drivers import align_drivers
from ecosmc.simulate import diurnal_drivers


@pytest.fixture
def posterior(key, prior_ensemble):
    """One day at interval 8 with sharp LAI observations."""
    temp, par = diurnal_drivers(1)
    drivers = align_drivers(temp, par, 200)
    obs = Observations(mean=jnp.full(6, 2.25), sd=jnp.full(6, 0.01))
    config = AssimilationConfig(history_timing='pre_resample')
    return assimilate(key, prior_ensemble, drivers, obs, config)


class TestWeightedMean:
    """Weighted ensemble mean."""

    def test_hand_computed(self):
        """Weights (0.25, 0.75) on (1, 3) give 2.5."""
        values = jnp.array([[[1.0, 10.0], [3.0, 30.0]]])
        lw = jnp.log(jnp.array([[0.25, 0.75]]))
        mean = weighted_mean(values, lw)
        assert mean.shape == (1, 2)
        assert jnp.allclose(mean, jnp.array([[2.5, 25.0]]))

    def test_uniform_weights_give_plain_mean(self, key):
        """Zero log weights reduce to the arithmetic mean."""
        values = jax.random.normal(key, (5, 20, 3))
        mean = weighted_mean(values, jnp.zeros((5, 20)))
        assert jnp.allclose(mean, jnp.mean(values, axis=1))


class TestWeightedQuantile:
    """Weighted quantiles for credible intervals."""

    def test_interpolates_cumulative_weights(self):
        """Uniform weights on (3, 1, 2): cumulative 1/3, 2/3, 1."""
        values = jnp.array([[[3.0], [1.0], [2.0]]])
        lw = jnp.zeros((1, 3))
        q = weighted_quantile(values, lw, jnp.array([0.1, 0.5, 1.0]))
        assert q.shape == (1, 3, 1)
        assert jnp.allclose(q[0, :, 0], jnp.array([1.0, 1.5, 3.0]))

    def test_monotone_in_level(self, key):
        """Higher levels never give lower quantiles."""
        values = jax.random.normal(key, (4, 100, 2))
        q = weighted_quantile(
            values, jnp.zeros((4, 100)), jnp.array([0.05, 0.5, 0.95])
        )
        assert jnp.all(q[:, 1] >= q[:, 0])
        assert jnp.all(q[:, 2] >= q[:, 1])


class TestParticleDiversity:
    """Fraction of distinct ancestors."""

    def test_identity_is_one(self):
        """No resampling means full diversity."""
        anc = jnp.tile(jnp.arange(8), (3, 1))
        assert jnp.allclose(particle_diversity(anc), 1.0)

    def test_collapse(self):
        """Hand-computed distinct-ancestor fractions."""
        anc = jnp.array([[0, 0, 0, 0], [1, 1, 2, 2]])
        assert jnp.allclose(particle_diversity(anc), jnp.array([0.25, 0.5]))

    def test_bounded_for_a_run(self, posterior):
        div = particle_diversity(posterior.ancestors)
        assert div.shape == (6,)
        assert jnp.all(div > 0.0)
        assert jnp.all(div <= 1.0)


class TestResampleHistory:
    """Parameter snapshots at resample events."""

    def test_one_entry_per_resample(self, posterior):
        """History length equals the number of resample events."""
        history = resample_history(posterior)
        assert len(history) == int(jnp.sum(posterior.resampled))
        assert history[0].sla.shape == (200,)

    def test_entries_follow_window_order(self, posterior, prior_ensemble):
        """With pre-resample timing the first event records the prior."""
        assert bool(posterior.resampled[0])
        first = resample_history(posterior)[0]
        assert jnp.array_equal(first.sla, prior_ensemble.params.sla)

    def test_empty_when_never_resampled(self, posterior):
        """No resample events give an empty history."""
        quiet = posterior._replace(
            resampled=jnp.zeros_like(posterior.resampled)
        )
        assert resample_history(quiet) == []


class TestCheckPosterior:
    """Validation of a finished run."""

    def test_healthy_run_passes(self, posterior, caplog):
        """A finite run passes and logs its resample count."""
        with caplog.at_level(logging.INFO, logger='ecosmc'):
            check_posterior(posterior)
        assert any('Resampled at' in r.getMessage() for r in caplog.records)

    def test_non_finite_params_raise(self, posterior):
        """NaN parameters raise FloatingPointError."""
        bad_sla = posterior.ensemble.params.sla.at[3].set(jnp.nan)
        bad = posterior._replace(
            ensemble=posterior.ensemble._replace(
                params=posterior.ensemble.params._replace(sla=bad_sla)
            )
        )
        with pytest.raises(FloatingPointError, match='non-finite'):
            check_posterior(bad)

    def test_collapse_warns(self, posterior, caplog):
        """ESS of 1 is logged as a warning."""
        collapsed = posterior._replace(ess=jnp.ones_like(posterior.ess))
        with caplog.at_level(logging.WARNING, logger='ecosmc'):
            check_posterior(collapsed)
        warnings = [r for r in caplog.records if r.levelno == logging.WARNING]
        assert len(warnings) == 1
        assert 'collapsed' in warnings[0].getMessage()
