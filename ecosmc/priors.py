# Copyright 2026 Michael Ellis
# SPDX-License-Identifier: Apache-2.0
"""Construction of the initial (prior) ensemble.

Site-specific priors are built elsewhere (expert elicitation, trait
databases, inventory data) and handed over as per-particle arrays;
:func:`init_ensemble` checks them and attaches uniform weights.

:func:`sample_prior_ensemble` draws a generic temperate-forest prior
for a half-hourly step, useful for twin experiments and tests.
Positive scalars are log-normal around their median; allocation
fractions are Dirichlet.
"""

import jax.numpy as jnp
import jax.random as jr
from jaxtyping import ArrayLike

from ecosmc.containers import EcosystemParams, Ensemble
from ecosmc.process import NUM_POOLS
from ecosmc.types import PRNGKeyT

PRIOR_MEDIANS = EcosystemParams(
    sla=15.0,
    alpha=0.02,
    q10=2.1,
    r_basal=1e-6,
    litterfall=5.7e-5,
    mortality=1.1e-6,
    sigma_leaf=0.005,
    sigma_wood=0.01,
    sigma_soil=0.01,
    falloc=(52.0, 30.0, 18.0),
)
"""Median of each scalar prior; ``falloc`` holds Dirichlet concentrations."""

PRIOR_LOG_SD = 0.1
"""Log-scale spread of the scalar priors."""

INITIAL_POOLS = (1.5, 80.0, 120.0)
"""Median leaf, wood and soil carbon, Mg C/ha."""


def init_ensemble(state: ArrayLike, params: EcosystemParams) -> Ensemble:
    """Wrap prior draws in an equally weighted ensemble.

    Args:
        state: Carbon pools, shape ``(num_particles, 3)``.
        params: Per-particle parameters, each field of leading length
            ``num_particles`` (``falloc`` of shape
            ``(num_particles, 3)``).

    Returns:
        :class:`~ecosmc.containers.Ensemble` with zero log weights.

    Raises:
        ValueError: If any field has the wrong shape.
    """
    state = jnp.asarray(state, dtype=float)
    if state.ndim != 2 or state.shape[1] != NUM_POOLS:
        raise ValueError(
            f'state must have shape (num_particles, {NUM_POOLS}), '
            f'got {state.shape}'
        )
    num_particles = state.shape[0]
    fields = {}
    for name, value in zip(EcosystemParams._fields, params):
        value = jnp.asarray(value, dtype=float)
        expected = (num_particles, 3) if name == 'falloc' else (num_particles,)
        if value.shape != expected:
            raise ValueError(
                f'{name} must have shape {expected}, got {value.shape}'
            )
        fields[name] = value
    return Ensemble(
        state=state,
        params=EcosystemParams(**fields),
        log_weights=jnp.zeros(num_particles),
    )


def sample_prior_ensemble(
    key: PRNGKeyT,
    num_particles: int,
    medians: EcosystemParams = PRIOR_MEDIANS,
    log_sd: float = PRIOR_LOG_SD,
    initial_pools: tuple[float, float, float] = INITIAL_POOLS,
) -> Ensemble:
    """Draw a prior ensemble.

    Args:
        key: JAX PRNG key.
        num_particles: Ensemble size :math:`N`.
        medians: Scalar medians and allocation concentrations.
        log_sd: Log-scale standard deviation of every scalar prior and
            of the initial pools.
        initial_pools: Median initial leaf, wood and soil carbon.

    Returns:
        Equally weighted :class:`~ecosmc.containers.Ensemble`.
    """
    k_state, k_scalar, k_alloc = jr.split(key, 3)
    scalar_names = EcosystemParams._fields[:-1]

    pools = jnp.asarray(initial_pools, dtype=float)
    state = pools * jnp.exp(
        log_sd * jr.normal(k_state, (num_particles, NUM_POOLS))
    )

    scalar_medians = jnp.asarray(
        [getattr(medians, name) for name in scalar_names], dtype=float
    )
    scalars = scalar_medians * jnp.exp(
        log_sd * jr.normal(k_scalar, (num_particles, len(scalar_names)))
    )
    falloc = jr.dirichlet(
        k_alloc, jnp.asarray(medians.falloc, dtype=float), (num_particles,)
    )
    params = EcosystemParams(*scalars.T, falloc=falloc)
    return init_ensemble(state, params)
