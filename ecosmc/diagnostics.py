# Copyright 2026 Michael Ellis
# SPDX-License-Identifier: Apache-2.0
r"""Diagnostic utilities for ensemble forecasts and assimilation runs.

Posterior summaries:

- :func:`weighted_mean`: weighted ensemble mean at each time step
- :func:`weighted_quantile`: weighted quantiles for credible
  intervals

Computational faithfulness:

- :func:`particle_diversity`: fraction of unique ancestors per
  analysis
- :func:`resample_history`: parameter ensembles at resample events
- :func:`check_posterior`: fail on non-finite parameters, warn on
  weight degeneracy

:func:`weighted_mean`, :func:`weighted_quantile` and
:func:`particle_diversity` are pure and JIT-compatible; the other two
inspect concrete values and must be called outside of ``jax.jit``.
"""

import logging

import jax
import jax.numpy as jnp
from jax import vmap
from jaxtyping import Array, Float, Int

from ecosmc.containers import AssimilationPosterior, EcosystemParams
from ecosmc.weights import normalize

logger = logging.getLogger(__name__)


def weighted_mean(
    values: Float[Array, 'ntime num_particles num_outputs'],
    log_weights: Float[Array, 'ntime num_particles'],
) -> Float[Array, 'ntime num_outputs']:
    r"""Compute the weighted ensemble mean at each time step.

    Args:
        values: Ensemble values, e.g. a forecast tensor.
        log_weights: Unnormalized log weights in force at each step,
            e.g. from :func:`~ecosmc.weights.timestep_log_weights`.

    Returns:
        Weighted means, shape ``(ntime, num_outputs)``.
    """
    weights = vmap(normalize)(log_weights)
    return jnp.einsum('tn,tnd->td', weights, values)


def weighted_quantile(
    values: Float[Array, 'ntime num_particles num_outputs'],
    log_weights: Float[Array, 'ntime num_particles'],
    q: Float[Array, ' num_quantiles'],
) -> Float[Array, 'ntime num_quantiles num_outputs']:
    r"""Compute weighted quantiles of the ensemble at each time step.

    Sorts the particles, accumulates their normalized weights and
    interpolates the requested levels.

    Args:
        values: Ensemble values, e.g. a forecast tensor.
        log_weights: Unnormalized log weights in force at each step.
        q: Quantile levels in [0, 1], e.g. ``jnp.array([0.025, 0.975])``
            for a 95% credible interval.

    Returns:
        Weighted quantiles, shape ``(ntime, num_quantiles, num_outputs)``.
    """
    weights = vmap(normalize)(log_weights)

    def _quantile_one_time_dim(
        v: Float[Array, ' num_particles'],
        w: Float[Array, ' num_particles'],
    ) -> Float[Array, ' num_quantiles']:
        sort_idx = jnp.argsort(v)
        cum_w = jnp.cumsum(w[sort_idx])
        return jnp.interp(q, cum_w, v[sort_idx])

    def _quantile_one_time(
        values_t: Float[Array, 'num_particles num_outputs'],
        weights_t: Float[Array, ' num_particles'],
    ) -> Float[Array, 'num_quantiles num_outputs']:
        return vmap(_quantile_one_time_dim, in_axes=(1, None))(
            values_t, weights_t
        ).T

    return vmap(_quantile_one_time)(values, weights)


def particle_diversity(
    ancestors: Int[Array, 'num_windows num_particles'],
) -> Float[Array, ' num_windows']:
    r"""Compute the fraction of distinct ancestors at each analysis.

    A value of 1 means no particle was duplicated (always the case when
    no resampling occurred); values near :math:`1/N` indicate collapse
    onto a few parents.

    Args:
        ancestors: Ancestor indices, e.g.
            :attr:`~ecosmc.containers.AssimilationPosterior.ancestors`.

    Returns:
        Diversity fraction in (0, 1] per analysis.
    """
    num_particles = ancestors.shape[1]

    def _diversity_one_step(anc: Int[Array, ' num_particles']) -> Array:
        sorted_anc = jnp.sort(anc)
        is_unique = jnp.concatenate(
            [jnp.array([True]), sorted_anc[1:] != sorted_anc[:-1]]
        )
        return jnp.sum(is_unique) / num_particles

    return vmap(_diversity_one_step)(ancestors)


def resample_history(
    posterior: AssimilationPosterior,
) -> list[EcosystemParams]:
    """Parameter ensembles recorded at resample events, in order.

    Whether each entry precedes or follows the resample is set by
    :attr:`~ecosmc.config.AssimilationConfig.history_timing`.
    """
    windows = jnp.flatnonzero(posterior.resampled).tolist()
    return [
        jax.tree_util.tree_map(lambda x: x[k], posterior.params_history)
        for k in windows
    ]


def check_posterior(
    posterior: AssimilationPosterior,
    degeneracy_tol: float = 1.0 + 1e-6,
) -> None:
    """Validate a finished run.

    Args:
        posterior: Output of :func:`~ecosmc.assimilation.assimilate`.
        degeneracy_tol: ESS at or below this value counts as complete
            weight degeneracy.

    Raises:
        FloatingPointError: If any recorded or final parameter is not
            finite, typically after a degenerate kernel covariance.
    """
    leaves = jax.tree_util.tree_leaves(
        (posterior.params_history, posterior.ensemble.params)
    )
    if not all(bool(jnp.all(jnp.isfinite(leaf))) for leaf in leaves):
        raise FloatingPointError(
            'Parameter ensemble contains non-finite values; the kernel '
            'smoother covariance was degenerate'
        )

    num_particles = posterior.log_weights.shape[1]
    collapsed = int(jnp.sum(posterior.ess <= degeneracy_tol))
    if num_particles > 1 and collapsed:
        logger.warning(
            'Effective sample size collapsed to 1 at %d of %d analyses',
            collapsed,
            posterior.ess.shape[0],
        )
    logger.info(
        'Resampled at %d of %d analyses',
        int(jnp.sum(posterior.resampled)),
        posterior.ess.shape[0],
    )
