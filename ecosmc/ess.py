# Copyright 2026 Michael Ellis
# SPDX-License-Identifier: Apache-2.0
"""Effective sample size (ESS) monitoring.

The ESS formula used here matches Blackjax
(``blackjax.smc.ess``) so that cross-validation tests can compare
outputs directly.
"""

import jax.numpy as jnp
from jax.scipy.special import logsumexp
from jaxtyping import Array, Float

from ecosmc.types import BoolScalar, Scalar


def ess(log_weights: Float[Array, ' num_particles']) -> Scalar:
    r"""Compute the effective sample size from unnormalized log weights.

    .. math::

        \mathrm{ESS} = \frac{1}{\sum_i \tilde{w}_i^2}
            = \exp\!\bigl(2\,\mathrm{LSE}(\mathbf{lw})
                         - \mathrm{LSE}(2\,\mathbf{lw})\bigr)

    where :math:`\tilde{w}_i` are the normalized weights.  The result
    lies in :math:`[1, N]`: it equals :math:`N` for uniform weights and
    1 when all mass sits on one particle.

    Args:
        log_weights: Unnormalized log importance weights.

    Returns:
        The effective sample size (scalar).
    """
    return jnp.exp(log_ess(log_weights))


def log_ess(log_weights: Float[Array, ' num_particles']) -> Scalar:
    """Compute the *log* effective sample size."""
    return 2 * logsumexp(log_weights) - logsumexp(2 * log_weights)


def ess_from_weights(weights: Float[Array, ' num_particles']) -> Scalar:
    """Effective sample size of non-negative linear-scale weights.

    Args:
        weights: Unnormalized, non-negative importance weights.

    Returns:
        ``1 / sum((w / sum(w)) ** 2)``.
    """
    w = weights / jnp.sum(weights)
    return 1.0 / jnp.sum(w**2)


def should_resample(
    log_weights: Float[Array, ' num_particles'],
    threshold: float = 0.5,
) -> BoolScalar:
    """Whether the ESS has fallen below ``threshold * num_particles``."""
    num_particles = log_weights.shape[0]
    return ess(log_weights) < threshold * num_particles
