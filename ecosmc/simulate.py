# Copyright 2026 Michael Ellis
# SPDX-License-Identifier: Apache-2.0
r"""Synthetic data for twin experiments.

:func:`diurnal_drivers` builds idealised half-hourly forcing and
:func:`simulate` runs a single "true" particle through the process
model, then observes it with Gaussian noise at the observation cadence.
Running the filter on these observations and comparing with the known
truth is the standard check of an assimilation system.
"""

import jax.numpy as jnp
import jax.random as jr
from jaxtyping import Array, ArrayLike, Float

from ecosmc.containers import Drivers, EcosystemParams, Observations
from ecosmc.drivers import align_drivers, observation_timesteps
from ecosmc.forecast import ensemble_forecast
from ecosmc.process import FLUX_TO_POOL
from ecosmc.types import PRNGKeyT


def diurnal_drivers(
    num_days: int,
    steps_per_day: int = 48,
    mean_temp: float = 15.0,
    temp_amplitude: float = 5.0,
    max_par: float = 1500.0,
) -> tuple[Float[Array, ' ntime'], Float[Array, ' ntime']]:
    """Idealised temperature and PAR with a sinusoidal daily cycle.

    PAR follows the positive half of a sine wave peaking at midday and
    is exactly zero at night; temperature peaks mid-afternoon.

    Returns:
        A tuple ``(temp, par)``, each of shape
        ``(num_days * steps_per_day,)``.
    """
    hour = jnp.arange(num_days * steps_per_day) % steps_per_day
    phase = 2.0 * jnp.pi * hour / steps_per_day
    par = jnp.maximum(0.0, max_par * -jnp.cos(phase))
    temp = mean_temp - temp_amplitude * jnp.cos(phase - jnp.pi / 4.0)
    return temp, par


def simulate(
    key: PRNGKeyT,
    initial_state: ArrayLike,
    params: EcosystemParams,
    temp: ArrayLike,
    par: ArrayLike,
    *,
    observed_index: int,
    interval: int,
    obs_sd: float,
    missing_fraction: float = 0.0,
    flux_to_pool: float = FLUX_TO_POOL,
) -> tuple[Float[Array, 'ntime num_outputs'], Observations]:
    r"""Simulate a true trajectory and noisy observations of it.

    Args:
        key: JAX PRNG key.
        initial_state: True initial pools, shape ``(3,)``.
        params: True parameters, each scalar field of shape ``()`` and
            ``falloc`` of shape ``(3,)``.
        temp: Temperature series, shape ``(ntime,)``.
        par: PAR series, shape ``(ntime,)``.
        observed_index: Output column that is observed.
        interval: Forecast steps per observation slot.
        obs_sd: Observation noise standard deviation.
        missing_fraction: Probability that a slot is missing (NaN).
        flux_to_pool: Unit multiplier passed to the process model.

    Returns:
        A tuple ``(trajectory, observations)`` where *trajectory* has
        shape ``(ntime, 12)`` and *observations* has
        ``ntime // interval`` slots.
    """
    k_traj, k_obs, k_missing = jr.split(key, 3)
    state = jnp.asarray(initial_state, dtype=float)[None, :]
    single = EcosystemParams(
        *(jnp.asarray(field, dtype=float)[None] for field in params)
    )
    drivers: Drivers = align_drivers(temp, par, num_particles=1)
    trajectory = ensemble_forecast(
        k_traj, state, single, drivers, flux_to_pool
    )[:, 0, :]

    num_obs = trajectory.shape[0] // interval
    steps = observation_timesteps(num_obs, interval)
    truth = trajectory[steps, observed_index]
    noisy = truth + obs_sd * jr.normal(k_obs, (num_obs,))
    missing = jr.uniform(k_missing, (num_obs,)) < missing_fraction
    return trajectory, Observations(
        mean=jnp.where(missing, jnp.nan, noisy),
        sd=jnp.full((num_obs,), obs_sd),
    )
