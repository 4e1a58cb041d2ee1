# Copyright 2026 Michael Ellis
# SPDX-License-Identifier: Apache-2.0
"""Tests for ecosmc.forecast.

Includes the night-time scenario: with no light and no process error
the pools follow turnover and respiration only, which is checked
against the closed-form update step by step.
"""

import jax
import jax.numpy as jnp
import jax.random as jr
import pytest

from ecosmc.containers import Drivers
from ecosmc.drivers import align_drivers
from ecosmc.forecast import clamp_non_finite, ensemble_forecast
from ecosmc.process import NUM_OUTPUTS, output_index, process_step
from ecosmc.simulate import diurnal_drivers


class TestNightScenario:
    """N=4, two night steps, zero process error."""

    def test_closed_form_pools(self, key, deterministic_ensemble):
        """Pools follow turnover and respiration exactly."""
        ens = deterministic_ensemble
        temp = 10.0
        drivers = align_drivers(
            jnp.full(2, temp), jnp.zeros(2), num_particles=4
        )
        out = ensemble_forecast(key, ens.state, ens.params, drivers)
        assert out.shape == (2, 4, NUM_OUTPUTS)

        # GPP is exactly zero at both steps
        assert jnp.all(out[:, :, output_index('gpp')] == 0.0)

        p = ens.params
        leaf, wood, soil = ens.state[:, 0], ens.state[:, 1], ens.state[:, 2]
        for t in range(2):
            litter = leaf * p.litterfall
            mort = wood * p.mortality
            rh = p.r_basal * soil * p.q10 ** (temp / 10.0)
            new_leaf = jnp.maximum(leaf - litter, 0.0)
            new_wood = jnp.maximum(wood - mort, 0.0)
            new_soil = soil + litter + mort - rh

            assert jnp.all(out[t, :, 0] < leaf)
            assert jnp.all(out[t, :, 1] < wood)
            assert jnp.allclose(out[t, :, 0], new_leaf, rtol=0, atol=1e-12)
            assert jnp.allclose(out[t, :, 1], new_wood, rtol=0, atol=1e-12)
            assert jnp.allclose(out[t, :, 2], new_soil, rtol=0, atol=1e-12)
            assert jnp.allclose(out[t, :, output_index('rh')], rh)
            leaf, wood, soil = new_leaf, new_wood, new_soil

    def test_soil_gains_turnover(self, key, deterministic_ensemble):
        """With zero respiration, soil gains exactly litterfall + mortality."""
        ens = deterministic_ensemble
        params = ens.params._replace(r_basal=jnp.zeros(4))
        drivers = align_drivers(jnp.full(2, 10.0), jnp.zeros(2), 4)
        out = ensemble_forecast(key, ens.state, params, drivers)
        gain = out[0, :, output_index('litterfall')] + out[
            0, :, output_index('mortality')
        ]
        assert jnp.allclose(out[0, :, 2], ens.state[:, 2] + gain)
        assert jnp.all(out[1, :, 2] > out[0, :, 2])

    def test_pools_stop_at_zero(self, key, deterministic_ensemble):
        """Turnover larger than the pool truncates at zero."""
        ens = deterministic_ensemble
        params = ens.params._replace(
            litterfall=jnp.full(4, 1.5), mortality=jnp.full(4, 3.0)
        )
        drivers = align_drivers(jnp.full(2, 10.0), jnp.zeros(2), 4)
        out = ensemble_forecast(key, ens.state, params, drivers)
        assert jnp.all(out[:, :, 0] == 0.0)
        assert jnp.all(out[:, :, 1] == 0.0)


class TestForecastEngine:
    """Sequential propagation and post-processing."""

    def test_state_threads_through_time(self, key, deterministic_ensemble):
        """Step t starts from the pools output at step t-1."""
        ens = deterministic_ensemble
        temp, par = diurnal_drivers(1)
        drivers = align_drivers(temp, par, 4)
        out = ensemble_forecast(key, ens.state, ens.params, drivers)
        litter = out[1:, :, output_index('litterfall')]
        assert jnp.allclose(litter, out[:-1, :, 0] * ens.params.litterfall)

    def test_non_negative_pools_with_noise(self, key, prior_ensemble):
        """Large process error never gives negative pools."""
        ens = prior_ensemble
        params = ens.params._replace(
            sigma_leaf=jnp.full(200, 0.5), mortality=jnp.full(200, 0.2)
        )
        temp, par = diurnal_drivers(2)
        drivers = align_drivers(temp, par, 200)
        out = ensemble_forecast(key, ens.state, params, drivers)
        assert jnp.all(out[:, :, :3] >= 0.0)

    def test_degenerate_draws_zeroed(self, key, deterministic_ensemble):
        """A negative sd yields zeros, not NaN, and the run continues."""
        ens = deterministic_ensemble
        sigma = jnp.array([0.0, -1.0, 0.0, 0.0])
        params = ens.params._replace(sigma_soil=sigma)
        drivers = align_drivers(jnp.full(3, 10.0), jnp.zeros(3), 4)
        out = ensemble_forecast(key, ens.state, params, drivers)
        assert jnp.all(jnp.isfinite(out))
        assert jnp.all(out[:, 1, 2] == 0.0)
        assert jnp.all(out[:, 0, 2] > 0.0)

    def test_nan_propagates_before_final_clamp(
        self, key, deterministic_ensemble
    ):
        """Raw pools are carried; only the finished tensor is clamped."""
        ens = deterministic_ensemble
        params = ens.params._replace(
            sigma_leaf=jnp.array([-1.0, 0.0, 0.0, 0.0]),
            r_basal=jnp.zeros(4),
        )
        drivers = align_drivers(jnp.full(3, 10.0), jnp.zeros(3), 4)
        out = ensemble_forecast(key, ens.state, params, drivers)

        state, rows = ens.state, []
        for t, step_key in enumerate(jr.split(key, 3)):
            step_drivers = Drivers(drivers.temp[t], drivers.par[t])
            row = process_step(step_key, state, params, step_drivers)
            rows.append(row)
            state = row[:, :3]
        expected = clamp_non_finite(jnp.stack(rows))
        assert jnp.allclose(out, expected)

        # NaN leaf carbon poisons litterfall and soil from the next step.
        assert out[0, 0, 2] > ens.state[0, 2]
        assert jnp.all(out[1:, 0, 2] == 0.0)
        assert jnp.all(out[:, 1:, 2] > ens.state[1:, 2])

    def test_reproducible_with_same_key(self, prior_ensemble):
        """The same key gives the same forecast."""
        ens = prior_ensemble
        temp, par = diurnal_drivers(1)
        drivers = align_drivers(temp, par, 200)
        a = ensemble_forecast(jr.PRNGKey(3), ens.state, ens.params, drivers)
        b = ensemble_forecast(jr.PRNGKey(3), ens.state, ens.params, drivers)
        assert jnp.array_equal(a, b)

    def test_per_particle_drivers(self, key, deterministic_ensemble):
        """Particles see their own forcing."""
        ens = deterministic_ensemble
        par = jnp.array([[0.0, 0.0, 1000.0, 1000.0]])
        drivers = Drivers(temp=jnp.full((1, 4), 10.0), par=par)
        out = ensemble_forecast(key, ens.state, ens.params, drivers)
        gpp = out[0, :, output_index('gpp')]
        assert jnp.all(gpp[:2] == 0.0)
        assert jnp.all(gpp[2:] > 0.0)

    def test_jit_compiles(self, key, prior_ensemble):
        """ensemble_forecast compiles under jax.jit."""
        ens = prior_ensemble
        temp, par = diurnal_drivers(1)
        drivers = align_drivers(temp, par, 200)
        out = jax.jit(ensemble_forecast)(key, ens.state, ens.params, drivers)
        assert out.shape == (48, 200, NUM_OUTPUTS)


class TestClampNonFinite:
    """NaN / inf replacement."""

    @pytest.mark.parametrize('bad', [jnp.nan, jnp.inf, -jnp.inf])
    def test_replaced_with_zero(self, bad):
        values = jnp.array([1.0, bad, 3.0])
        assert jnp.array_equal(
            clamp_non_finite(values), jnp.array([1.0, 0.0, 3.0])
        )
