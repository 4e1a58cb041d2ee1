# Copyright 2026 Michael Ellis
# SPDX-License-Identifier: Apache-2.0
r"""Importance weights and observation likelihoods.

Weights are carried as *unnormalized* log weights.  They are normalized
only where a normalized quantity is needed (ESS, resampling
probabilities, weighted summaries).

Two weighting schemes are provided:

- **Cumulative** (no resampling): the log weight of a particle after
  observation :math:`k` is :math:`\sum_{j \le k} \log p(y_j \mid x_j)`,
  i.e. the running product of likelihoods over the whole record.
- **Incremental** (resampling filters): the log-likelihood of the
  current observation is added to the carried log weight, which is
  reset to zero whenever the ensemble is resampled.

A missing observation (NaN mean or sd) has log-likelihood zero: it
leaves every weight unchanged.
"""

import jax.numpy as jnp
import jax.scipy.stats as jstats
from jax import vmap
from jaxtyping import Array, Float

from ecosmc.containers import LikelihoodWeights, Observations
from ecosmc.drivers import observation_timesteps
from ecosmc.ess import ess as compute_ess
from ecosmc.types import Scalar


def log_normalize(
    log_weights: Float[Array, ' num_particles'],
) -> tuple[Float[Array, ' num_particles'], Scalar]:
    """Normalize log weights and return the log normalizing constant.

    Args:
        log_weights: Unnormalized log importance weights.

    Returns:
        A tuple ``(log_normalized, log_normalizer)`` where
        *log_normalized* has ``logsumexp == 0`` and
        *log_normalizer* is ``logsumexp(log_weights)``.
    """
    log_normalizer = jnp.logaddexp.reduce(log_weights)  # type: ignore[union-attr]
    return log_weights - log_normalizer, log_normalizer


def normalize(
    log_weights: Float[Array, ' num_particles'],
) -> Float[Array, ' num_particles']:
    """Exponentiate and normalize log weights so they sum to one."""
    log_norm, _ = log_normalize(log_weights)
    return jnp.exp(log_norm)


def normal_log_likelihood(
    predicted: Float[Array, ' num_particles'],
    obs_mean: Scalar,
    obs_sd: Scalar,
) -> Float[Array, ' num_particles']:
    r"""Normal log-density of one observation under each particle.

    Args:
        predicted: Model-predicted value of the observed quantity for
            every particle.
        obs_mean: Observed value.
        obs_sd: Observation standard deviation.

    Returns:
        :math:`\log \mathcal{N}(y \mid \hat{y}_i, \sigma_y^2)` per
        particle, or zeros when the observation is missing.
    """
    missing = jnp.isnan(obs_mean) | jnp.isnan(obs_sd)
    # Substitute a valid density argument so the unused branch stays finite.
    sd = jnp.where(missing, 1.0, obs_sd)
    mean = jnp.where(missing, 0.0, obs_mean)
    loglik = jstats.norm.logpdf(mean, loc=predicted, scale=sd)
    return jnp.where(missing, 0.0, loglik)


def update_log_weights(
    log_weights: Float[Array, ' num_particles'],
    predicted: Float[Array, ' num_particles'],
    obs_mean: Scalar,
    obs_sd: Scalar,
) -> Float[Array, ' num_particles']:
    """Multiply one observation's likelihood into the carried weights."""
    return log_weights + normal_log_likelihood(predicted, obs_mean, obs_sd)


def cumulative_log_weights(
    predicted: Float[Array, 'num_obs num_particles'],
    observations: Observations,
) -> Float[Array, 'num_obs num_particles']:
    """Running log-likelihood of every particle over the observation record.

    Args:
        predicted: Model-predicted observable at each observation slot,
            shape ``(num_obs, num_particles)``.
        observations: Observation means and sds, shape ``(num_obs,)``.

    Returns:
        Cumulative log weights, shape ``(num_obs, num_particles)``.
        Row ``k`` is the log of the product of likelihoods of slots
        ``0..k``.
    """
    logliks = vmap(normal_log_likelihood)(
        predicted, observations.mean, observations.sd
    )
    return jnp.cumsum(logliks, axis=0)


def likelihood_weights(
    forecast: Float[Array, 'ntime num_particles num_outputs'],
    observations: Observations,
    *,
    observed_index: int,
    interval: int,
) -> LikelihoodWeights:
    """Weight a free-running ensemble forecast by the observation record.

    This is the non-resampling particle filter: particles are never
    resampled, so their weights accumulate over the whole record.

    Args:
        forecast: Output of :func:`~ecosmc.forecast.ensemble_forecast`.
        observations: Observations aligned with
            :func:`~ecosmc.drivers.align_observations`.
        observed_index: Output column compared with the observations.
        interval: Forecast steps per observation slot.

    Returns:
        :class:`~ecosmc.containers.LikelihoodWeights` with the
        cumulative log weights and the ESS at every slot.
    """
    steps = observation_timesteps(observations.mean.shape[0], interval)
    predicted = forecast[steps, :, observed_index]
    log_weights = cumulative_log_weights(predicted, observations)
    return LikelihoodWeights(
        log_weights=log_weights,
        ess=vmap(compute_ess)(log_weights),
    )


def timestep_log_weights(
    log_weights: Float[Array, 'num_obs num_particles'],
    num_timesteps: int,
    interval: int,
) -> Float[Array, 'ntime num_particles']:
    """Cumulative log weights in force at every forecast step.

    Step ``t`` uses the weights of the latest observation slot at or
    before ``t``; steps before the first observation get zero (uniform)
    weights.

    Args:
        log_weights: Cumulative log weights per observation slot.
        num_timesteps: Forecast horizon :math:`T`.
        interval: Forecast steps per observation slot.

    Returns:
        Log weights of shape ``(ntime, num_particles)``.
    """
    padded = jnp.concatenate(
        [jnp.zeros_like(log_weights[:1]), log_weights], axis=0
    )
    slot = (jnp.arange(num_timesteps) + 1) // interval
    slot = jnp.clip(slot, 0, log_weights.shape[0])
    return padded[slot]
