# Copyright 2026 Michael Ellis
# SPDX-License-Identifier: Apache-2.0
r"""Particle filter analysis step.

At an observation slot the analysis:

1. **Weights** every particle by the likelihood of the observation
   given its forecast of the observed quantity, which may be a
   diagnostic flux (e.g. LAI) rather than a pool.
2. **Monitors** the effective sample size of the updated weights.
3. **Resample-moves** the ensemble when
   :math:`\mathrm{ESS} < \tau N`, resetting the weights to uniform.

A missing observation is a passthrough: weights, state and parameters
leave unchanged and no resampling is attempted.  The returned ensemble
always has :math:`N` index-aligned particles.
"""

from collections.abc import Callable

import jax.numpy as jnp
from blackjax.smc.resampling import multinomial
from jax import lax
from jaxtyping import Array, Float

from ecosmc.containers import AnalysisInfo, Ensemble
from ecosmc.ess import ess as compute_ess
from ecosmc.ess import should_resample
from ecosmc.process import NUM_POOLS
from ecosmc.resample_move import resample_move
from ecosmc.types import PRNGKeyT, Scalar
from ecosmc.weights import update_log_weights


def analysis_step(
    key: PRNGKeyT,
    forecast_row: Float[Array, 'num_particles num_outputs'],
    ensemble: Ensemble,
    obs_mean: Scalar,
    obs_sd: Scalar,
    *,
    observed_index: int,
    resampling_fn: Callable = multinomial,
    resampling_threshold: float = 0.5,
    smoothing: float = 0.95,
) -> tuple[Ensemble, AnalysisInfo]:
    r"""Assimilate one observation into the ensemble.

    Args:
        key: JAX PRNG key.
        forecast_row: Latest process-model output of every particle,
            shape ``(num_particles, 12)``.  Its pools replace
            ``ensemble.state``.
        ensemble: Ensemble whose parameters and log weights are carried
            into this step.
        obs_mean: Observed value, NaN when missing.
        obs_sd: Observation standard deviation, NaN when missing.
        observed_index: Column of *forecast_row* that is observed.
        resampling_fn: Resampling algorithm matching the Blackjax
            signature ``(key, weights, num_samples) -> indices``.
        resampling_threshold: Fraction of ``num_particles`` below which
            resample-move is triggered (e.g. 0.5 means resample when
            ``ESS < 0.5 * N``).
        smoothing: Kernel factor :math:`h` of the parameter smoother.

    Returns:
        A tuple ``(ensemble, info)`` with the analysed ensemble and an
        :class:`~ecosmc.containers.AnalysisInfo` record.
    """
    num_particles = ensemble.log_weights.shape[0]
    identity_ancestors = jnp.arange(num_particles, dtype=jnp.int32)
    has_obs = ~(jnp.isnan(obs_mean) | jnp.isnan(obs_sd))

    # 1. Weight by the observation likelihood
    predicted = forecast_row[:, observed_index]
    weighted = Ensemble(
        state=forecast_row[:, :NUM_POOLS].astype(ensemble.state.dtype),
        params=ensemble.params,
        log_weights=update_log_weights(
            ensemble.log_weights, predicted, obs_mean, obs_sd
        ),
    )

    # 2. ESS of the updated weights
    cur_ess = compute_ess(weighted.log_weights)
    do_resample = has_obs & should_resample(
        weighted.log_weights, resampling_threshold
    )

    # 3. Conditionally resample-move
    analysed, ancestors = lax.cond(
        do_resample,
        lambda: resample_move(
            key,
            weighted,
            resampling_fn=resampling_fn,
            smoothing=smoothing,
        ),
        lambda: (weighted, identity_ancestors),
    )
    info = AnalysisInfo(
        ess=jnp.asarray(cur_ess),
        resampled=do_resample,
        ancestors=ancestors,
    )
    return analysed, info
