# Copyright 2026 Michael Ellis
# SPDX-License-Identifier: Apache-2.0
r"""Resample-move: multinomial resampling plus kernel-smoothed parameters.

After resampling, many particles share a parent and therefore identical
parameters.  The regularized (kernel) particle filter restores
diversity by moving every parameter vector towards the ensemble mean
and adding Gaussian noise with the ensemble's own covariance
(Liu & West, 2001):

.. math::

    \theta^i \leftarrow h \, \theta^{a_i}
        + (1 - h) \, \bar{\theta}
        + \sqrt{1 - h^2} \, \varepsilon^i, \quad
    \varepsilon^i \sim \mathcal{N}(0, V)

where :math:`\bar{\theta}` and :math:`V` are the mean and covariance of
the resampled parameters.  The rule preserves the first two moments:
:math:`h = 1` keeps the resampled values, :math:`h = 0` redraws every
particle from the Gaussian approximation.

Smoothed parameters are then projected back onto their domain:
negative values are truncated to zero and the allocation fractions are
renormalized to sum to one.
"""

from collections.abc import Callable

import jax
import jax.numpy as jnp
import jax.random as jr
from blackjax.smc.resampling import multinomial
from jaxtyping import Array, Float, Int, PyTree

from ecosmc.containers import EcosystemParams, Ensemble
from ecosmc.types import PRNGKeyT
from ecosmc.weights import normalize

# Regularizes the correlation matrix, whose rank is deficient whenever
# the allocation fractions vary (they sum to one).
_JITTER = 1e-8


def _field_widths(params: EcosystemParams) -> list[int]:
    return [1 if field.ndim == 1 else field.shape[1] for field in params]


def params_to_matrix(
    params: EcosystemParams,
) -> Float[Array, 'num_particles param_dim']:
    """Stack every parameter field into one matrix, in field order."""
    return jnp.concatenate(
        [field[:, None] if field.ndim == 1 else field for field in params],
        axis=1,
    )


def params_from_matrix(
    matrix: Float[Array, 'num_particles param_dim'],
    like: EcosystemParams,
) -> EcosystemParams:
    """Inverse of :func:`params_to_matrix`, using *like* for field shapes."""
    fields = []
    start = 0
    for width, template in zip(_field_widths(like), like):
        block = matrix[:, start : start + width]
        fields.append(block[:, 0] if template.ndim == 1 else block)
        start += width
    return EcosystemParams(*fields)


def reindex(
    tree: PyTree, ancestors: Int[Array, ' num_particles']
) -> PyTree:
    """Copy every leaf of *tree* along the particle axis by *ancestors*."""
    return jax.tree_util.tree_map(lambda leaf: leaf[ancestors], tree)


def kernel_smooth(
    key: PRNGKeyT,
    params: EcosystemParams,
    smoothing: float,
) -> EcosystemParams:
    r"""Apply the kernel smoother to an (equally weighted) parameter set.

    Args:
        key: JAX PRNG key.
        params: Resampled parameters.
        smoothing: Kernel factor :math:`h \in [0, 1]`.

    Returns:
        Smoothed parameters (not yet constrained to their domain).
    """
    theta = params_to_matrix(params)
    num_particles, param_dim = theta.shape
    h = jnp.asarray(smoothing, dtype=theta.dtype)

    mean = jnp.mean(theta, axis=0)
    dev = theta - mean[None, :]
    cov = dev.T @ dev / num_particles

    # Factor the correlation matrix so the jitter is scale-free, then
    # restore the column scales.  Constant columns get no noise.
    scale = jnp.sqrt(jnp.diag(cov))
    safe = jnp.where(scale > 0, scale, 1.0)
    corr = cov / jnp.outer(safe, safe)
    eps_dtype = float(jnp.finfo(theta.dtype).eps)
    jitter = max(_JITTER, 100 * param_dim * eps_dtype)
    chol = jnp.linalg.cholesky(corr + jitter * jnp.eye(param_dim))
    eps = jr.normal(key, (num_particles, param_dim), dtype=theta.dtype)
    noise = (eps @ chol.T) * scale[None, :]

    smoothed = h * theta + (1.0 - h) * mean[None, :]
    smoothed = smoothed + jnp.sqrt(1.0 - h**2) * noise
    return params_from_matrix(smoothed, params)


def constrain_params(params: EcosystemParams) -> EcosystemParams:
    """Truncate negatives at zero and renormalize allocation fractions."""
    params = jax.tree_util.tree_map(lambda x: jnp.maximum(x, 0.0), params)
    falloc = params.falloc / jnp.sum(params.falloc, axis=1, keepdims=True)
    return params._replace(falloc=falloc)


def resample_move(
    key: PRNGKeyT,
    ensemble: Ensemble,
    *,
    resampling_fn: Callable = multinomial,
    smoothing: float = 0.95,
) -> tuple[Ensemble, Int[Array, ' num_particles']]:
    r"""Resample the ensemble by weight and jitter its parameters.

    Args:
        key: JAX PRNG key.
        ensemble: Weighted ensemble.
        resampling_fn: Resampling algorithm matching the Blackjax
            signature ``(key, weights, num_samples) -> indices``.
            Defaults to :func:`~blackjax.smc.resampling.multinomial`.
        smoothing: Kernel factor :math:`h \in [0, 1]`.

    Returns:
        A tuple ``(ensemble, ancestors)``.  The new ensemble holds value
        copies of the selected particles' state, smoothed and
        constrained parameters, and uniform (zero) log weights.
        ``ancestors[i]`` is the source index of particle ``i``.
    """
    k_resample, k_smooth = jr.split(key)
    num_particles = ensemble.log_weights.shape[0]

    weights = normalize(ensemble.log_weights)
    ancestors = resampling_fn(k_resample, weights, num_particles).astype(
        jnp.int32
    )
    state, params = reindex((ensemble.state, ensemble.params), ancestors)

    params = constrain_params(kernel_smooth(k_smooth, params, smoothing))
    resampled = Ensemble(
        state=state,
        params=params,
        log_weights=jnp.zeros_like(ensemble.log_weights),
    )
    return resampled, ancestors
