# Copyright 2026 Michael Ellis
# SPDX-License-Identifier: Apache-2.0
r"""Ensemble forecast through the process model.

The forecast is strictly sequential in time (step :math:`t` starts from
the pools produced at step :math:`t-1`) and vectorised over particles
within a step.  The implementation uses :func:`jax.lax.scan` so the
full time-loop is compiled into a single XLA program.

The raw pools are carried from step to step; non-finite values are
replaced with zero only in the finished output tensor.  A pathological
parameter draw (e.g. a negative process-error standard deviation)
therefore propagates NaN through the affected particle, which then
reads as zero, instead of aborting the run; the rest of the ensemble
continues.
"""

import jax.numpy as jnp
import jax.random as jr
from jax import lax
from jaxtyping import Array, Float

from ecosmc.containers import Drivers, EcosystemParams
from ecosmc.process import FLUX_TO_POOL, NUM_POOLS, process_step
from ecosmc.types import PRNGKeyT, StateArray


def clamp_non_finite(values: Array) -> Array:
    """Replace NaN and +/-inf with zero."""
    return jnp.where(jnp.isfinite(values), values, 0.0)


def ensemble_forecast(
    key: PRNGKeyT,
    initial_state: StateArray,
    params: EcosystemParams,
    drivers: Drivers,
    flux_to_pool: float = FLUX_TO_POOL,
) -> Float[Array, 'ntime num_particles num_outputs']:
    r"""Propagate the ensemble over the horizon of *drivers*.

    Args:
        key: JAX PRNG key.
        initial_state: Carbon pools, shape ``(num_particles, 3)``.
        params: Per-particle parameters (held fixed over the horizon).
        drivers: Aligned forcing, each field of shape
            ``(ntime, num_particles)``.
        flux_to_pool: Unit multiplier passed to the process model.

    Returns:
        Output tensor of shape ``(ntime, num_particles, 12)`` with
        non-finite entries set to zero.  Row ``t`` holds the pools
        *after* step ``t`` and the fluxes of step ``t``.
    """
    num_timesteps = drivers.temp.shape[0]
    initial_state = jnp.asarray(initial_state, dtype=float)

    def _step(
        state: Array,
        args: tuple[PRNGKeyT, Array, Array],
    ) -> tuple[Array, Array]:
        step_key, temp_t, par_t = args
        output = process_step(
            step_key, state, params, Drivers(temp_t, par_t), flux_to_pool
        )
        return output[:, :NUM_POOLS].astype(state.dtype), output

    step_keys = jr.split(key, num_timesteps)
    _, outputs = lax.scan(
        _step, initial_state, (step_keys, drivers.temp, drivers.par)
    )
    return clamp_non_finite(outputs)
