# Copyright 2026 Michael Ellis
# SPDX-License-Identifier: Apache-2.0
"""Containers for ensemble state, parameters and assimilation output.

All containers are :class:`~typing.NamedTuple` subclasses so they are
registered as JAX PyTrees by default.  Every per-particle field has the
particle axis first, so reindexing a whole container after resampling
is a single :func:`jax.tree_util.tree_map`.
"""

from typing import NamedTuple

from jaxtyping import Array, Bool, Float, Int

from ecosmc.types import BoolScalar, Scalar


class EcosystemParams(NamedTuple):
    r"""Per-particle parameters of the ecosystem process model.

    Attributes:
        sla: Specific leaf area, m\ :sup:`2` kg\ :sup:`-1`.
        alpha: Canopy light-use efficiency.
        q10: Temperature sensitivity of heterotrophic respiration.
        r_basal: Basal heterotrophic respiration rate per step.
        litterfall: Fraction of leaf carbon lost per step.
        mortality: Fraction of wood carbon lost per step.
        sigma_leaf: Process-error standard deviation of leaf carbon.
        sigma_wood: Process-error standard deviation of wood carbon.
        sigma_soil: Process-error standard deviation of soil carbon.
        falloc: Allocation of GPP to autotrophic respiration, wood
            growth and leaf growth, shape ``(num_particles, 3)``.
            Rows sum to one.
    """

    sla: Float[Array, ' num_particles']
    alpha: Float[Array, ' num_particles']
    q10: Float[Array, ' num_particles']
    r_basal: Float[Array, ' num_particles']
    litterfall: Float[Array, ' num_particles']
    mortality: Float[Array, ' num_particles']
    sigma_leaf: Float[Array, ' num_particles']
    sigma_wood: Float[Array, ' num_particles']
    sigma_soil: Float[Array, ' num_particles']
    falloc: Float[Array, 'num_particles 3']


class Drivers(NamedTuple):
    r"""Meteorological forcing.

    Aligned drivers have shape ``(ntime, num_particles)``; the slice
    for a single step, shape ``(num_particles,)``, uses the same type.

    Attributes:
        temp: Air temperature, degrees C.
        par: Photosynthetically active radiation,
            :math:`\mu` mol m\ :sup:`-2` s\ :sup:`-1`.
    """

    temp: Float[Array, '...']
    par: Float[Array, '...']


class Observations(NamedTuple):
    r"""Observations at the analysis cadence.

    A NaN in either field marks a missing observation.

    Attributes:
        mean: Observed values, shape ``(num_obs,)``.
        sd: Observation standard deviations, shape ``(num_obs,)``.
    """

    mean: Float[Array, ' num_obs']
    sd: Float[Array, ' num_obs']


class Ensemble(NamedTuple):
    r"""The particle ensemble.

    Index ``i`` of every field refers to the same particle.

    Attributes:
        state: Leaf, wood and soil carbon, shape ``(num_particles, 3)``.
        params: Per-particle parameters.
        log_weights: Unnormalized log importance weights,
            shape ``(num_particles,)``.  Zero everywhere is the uniform
            weight.
    """

    state: Float[Array, 'num_particles 3']
    params: EcosystemParams
    log_weights: Float[Array, ' num_particles']


class AnalysisInfo(NamedTuple):
    r"""What happened during one analysis step.

    Attributes:
        ess: Effective sample size after weighting by the observation
            and before any resampling.
        resampled: Whether resample-move ran.
        ancestors: Source index of every particle, the identity when
            no resampling occurred.
    """

    ess: Scalar
    resampled: BoolScalar
    ancestors: Int[Array, ' num_particles']


class LikelihoodWeights(NamedTuple):
    r"""Output of the non-resampling particle filter.

    Attributes:
        log_weights: Cumulative log-likelihood of every particle up to
            and including each observation, shape
            ``(num_obs, num_particles)``.
        ess: Effective sample size at each observation,
            shape ``(num_obs,)``.
    """

    log_weights: Float[Array, 'num_obs num_particles']
    ess: Float[Array, ' num_obs']


class AssimilationPosterior(NamedTuple):
    r"""Full output of a sequential assimilation run.

    Attributes:
        forecast: Pools and fluxes of every particle at every step,
            shape ``(ntime, num_particles, num_outputs)``.
        ensemble: Ensemble after the final step.
        log_weights: Log weights leaving each analysis,
            shape ``(num_windows, num_particles)``.
        ess: Effective sample size at each analysis (before
            resampling), shape ``(num_windows,)``.
        resampled: Whether each analysis resampled,
            shape ``(num_windows,)``.
        ancestors: Ancestor indices of each analysis,
            shape ``(num_windows, num_particles)``.
        params_history: Parameter snapshot of each analysis, every
            field with a leading ``num_windows`` axis.
    """

    forecast: Float[Array, 'ntime num_particles num_outputs']
    ensemble: Ensemble
    log_weights: Float[Array, 'num_windows num_particles']
    ess: Float[Array, ' num_windows']
    resampled: Bool[Array, ' num_windows']
    ancestors: Int[Array, 'num_windows num_particles']
    params_history: EcosystemParams
