# Copyright 2026 Michael Ellis
# SPDX-License-Identifier: Apache-2.0
r"""Sequential forecast-analysis loop.

The horizon is cut into windows of ``observation_interval`` forecast
steps.  For every window the loop

1. **Forecasts** the ensemble through the window with
   :func:`~ecosmc.forecast.ensemble_forecast` (parameters fixed);
2. **Analyses** the last step of the window against the window's
   observation slot with :func:`~ecosmc.analysis.analysis_step`;
3. **Records** a snapshot of the parameter ensemble.

Forecast steps past the last full window are run without analysis.
The implementation uses :func:`jax.lax.scan` over windows so the full
loop is compiled into a single XLA program.

The snapshot timing is fixed by
:attr:`~ecosmc.config.AssimilationConfig.history_timing`:
``'post_resample'`` records the parameters leaving the analysis (the
posterior of that window), ``'pre_resample'`` the parameters entering
it (the prior).  Snapshots of windows that resampled form the
resample-event history (:func:`~ecosmc.diagnostics.resample_history`).
"""

import logging
from typing import Optional

import jax.numpy as jnp
import jax.random as jr
from jax import lax
from jaxtyping import Array

from ecosmc.analysis import analysis_step
from ecosmc.config import AssimilationConfig
from ecosmc.containers import (
    AssimilationPosterior,
    Drivers,
    Ensemble,
    Observations,
)
from ecosmc.forecast import ensemble_forecast
from ecosmc.process import NUM_OUTPUTS, NUM_POOLS
from ecosmc.types import PRNGKeyT

logger = logging.getLogger(__name__)

# Carry type: the ensemble itself
_Carry = Ensemble


def _check_inputs(
    ensemble: Ensemble,
    drivers: Drivers,
    observations: Observations,
    interval: int,
) -> tuple[int, int, int]:
    """Validate shapes; return (num_particles, num_timesteps, num_windows)."""
    num_particles = ensemble.log_weights.shape[0]
    if ensemble.state.shape != (num_particles, NUM_POOLS):
        raise ValueError(
            f'state must have shape ({num_particles}, {NUM_POOLS}), '
            f'got {ensemble.state.shape}'
        )
    if drivers.temp.ndim != 2 or drivers.temp.shape[1] != num_particles:
        raise ValueError(
            'drivers must be aligned to (ntime, num_particles); '
            'see ecosmc.drivers.align_drivers'
        )
    num_timesteps = drivers.temp.shape[0]
    num_windows = num_timesteps // interval
    if observations.mean.shape[0] < num_windows:
        raise ValueError(
            f'{num_timesteps} steps at interval {interval} need '
            f'{num_windows} observation slots, got '
            f'{observations.mean.shape[0]}'
        )
    return num_particles, num_timesteps, num_windows


def assimilate(
    key: PRNGKeyT,
    ensemble: Ensemble,
    drivers: Drivers,
    observations: Observations,
    config: Optional[AssimilationConfig] = None,
) -> AssimilationPosterior:
    r"""Run the sequential particle filter over the driver horizon.

    Args:
        key: JAX PRNG key.
        ensemble: Prior ensemble (see :func:`~ecosmc.priors.init_ensemble`).
        drivers: Forcing aligned to ``(ntime, num_particles)``.
        observations: One slot per window; extra trailing slots are
            ignored.  NaN marks a missing observation.
        config: Run settings.  Defaults to
            :class:`~ecosmc.config.AssimilationConfig` defaults.

    Returns:
        :class:`~ecosmc.containers.AssimilationPosterior` with the full
        forecast tensor, the final ensemble, per-window weights, ESS,
        resampling flags, ancestors and parameter snapshots.

    Raises:
        ValueError: If the ensemble, drivers and observations do not
            line up.
    """
    config = config or AssimilationConfig()
    interval = config.observation_interval
    num_particles, num_timesteps, num_windows = _check_inputs(
        ensemble, drivers, observations, interval
    )
    flux_to_pool = config.flux_to_pool
    observed_index = config.observed_index
    pre_resample = config.history_timing == 'pre_resample'
    logger.info(
        'Assimilating %d particles over %d steps (%d analysis windows, '
        'interval %d, observing %s)',
        num_particles,
        num_timesteps,
        num_windows,
        interval,
        config.observed_variable,
    )

    windowed = num_windows * interval
    window_drivers = Drivers(
        temp=drivers.temp[:windowed].reshape(
            num_windows, interval, num_particles
        ),
        par=drivers.par[:windowed].reshape(
            num_windows, interval, num_particles
        ),
    )

    # --- Scan body over analysis windows -----------------------------------
    def _window(
        carry: _Carry,
        args: tuple[PRNGKeyT, Drivers, Array, Array],
    ) -> tuple[_Carry, tuple]:
        ens, (window_key, drivers_w, obs_mean, obs_sd) = carry, args
        k_forecast, k_analysis = jr.split(window_key)

        # 1. Forecast through the window
        outputs = ensemble_forecast(
            k_forecast, ens.state, ens.params, drivers_w, flux_to_pool
        )

        # 2. Analysis at the last step of the window
        analysed, info = analysis_step(
            k_analysis,
            outputs[-1],
            ens,
            obs_mean,
            obs_sd,
            observed_index=observed_index,
            resampling_fn=config.resampling_fn,
            resampling_threshold=config.resampling_threshold,
            smoothing=config.smoothing,
        )

        # 3. Parameter snapshot
        snapshot = ens.params if pre_resample else analysed.params
        return analysed, (
            outputs,
            analysed.log_weights,
            info.ess,
            info.resampled,
            info.ancestors,
            snapshot,
        )

    k_windows, k_tail = jr.split(key)
    window_keys = jr.split(k_windows, num_windows)
    (
        final_ensemble,
        (
            window_outputs,
            log_weights,
            ess_trace,
            resampled,
            ancestors,
            params_history,
        ),
    ) = lax.scan(
        _window,
        ensemble,
        (
            window_keys,
            window_drivers,
            observations.mean[:num_windows],
            observations.sd[:num_windows],
        ),
    )
    forecast = window_outputs.reshape(windowed, num_particles, NUM_OUTPUTS)

    # --- Forecast-only tail after the last full window ---------------------
    if num_timesteps > windowed:
        tail = ensemble_forecast(
            k_tail,
            final_ensemble.state,
            final_ensemble.params,
            Drivers(drivers.temp[windowed:], drivers.par[windowed:]),
            flux_to_pool,
        )
        final_ensemble = final_ensemble._replace(
            state=tail[-1, :, :NUM_POOLS].astype(final_ensemble.state.dtype)
        )
        forecast = jnp.concatenate([forecast, tail], axis=0)

    return AssimilationPosterior(
        forecast=forecast,
        ensemble=final_ensemble,
        log_weights=log_weights,
        ess=ess_trace,
        resampled=resampled,
        ancestors=ancestors,
        params_history=params_history,
    )
