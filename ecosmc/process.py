# Copyright 2026 Michael Ellis
# SPDX-License-Identifier: Apache-2.0
r"""Stochastic ecosystem carbon process model.

A three-pool (leaf, wood, soil) light-use-efficiency model.  For every
particle one step computes

.. math::

    \mathrm{LAI} &= C_{leaf} \cdot \mathrm{SLA} \cdot 0.1 \\
    \mathrm{GPP} &= \max\bigl(0, \alpha (1 - e^{-0.5\,\mathrm{LAI}})
                     \,\mathrm{PAR}\bigr) \\
    R_h &= \max(0, r_b \, C_{soil} \, Q_{10}^{T/10})

splits GPP between autotrophic respiration, wood growth and leaf growth
with the particle's allocation fractions, removes litterfall and
mortality, and draws the new pools from Normal distributions centred on
the deterministic update, truncated at zero.

Growth fluxes are in :math:`\mu` mol C m\ :sup:`-2` s\ :sup:`-1`; pools
and turnover fluxes are in Mg C ha\ :sup:`-1`.  :data:`FLUX_TO_POOL`
converts the former to the latter for one model step.
"""

import jax.numpy as jnp
import jax.random as jr
from jax import vmap
from jaxtyping import Array, Float

from ecosmc.containers import Drivers, EcosystemParams
from ecosmc.types import OutputRow, PRNGKeyT, StateArray

SECONDS_PER_STEP = 1800.0
"""Length of one model step (half-hourly forcing)."""

CARBON_MOLAR_MASS = 12.0
"""Grams of carbon per mole."""

UMOL_PER_MOL = 1e6

G_M2_TO_MG_HA = 0.01
"""1 g m-2 is 0.01 Mg ha-1."""

LEAF_C_TO_KG_M2 = 0.1
"""Leaf carbon in Mg ha-1 to kg m-2, so that LAI = C_leaf * SLA * 0.1."""

NIGHT_PAR_THRESHOLD = 1e-20
"""PAR at or below this value is night and GPP is exactly zero."""

OUTPUT_VARIABLES = (
    'leaf_carbon',
    'wood_carbon',
    'soil_carbon',
    'lai',
    'gpp',
    'nep',
    'ra',
    'npp_wood',
    'npp_leaf',
    'rh',
    'litterfall',
    'mortality',
)
"""Columns of a process-model output row."""

NUM_POOLS = 3
NUM_OUTPUTS = len(OUTPUT_VARIABLES)


def flux_conversion(seconds_per_step: float = SECONDS_PER_STEP) -> float:
    r"""Multiplier from :math:`\mu` mol C m-2 s-1 to Mg C ha-1 per step.

    Args:
        seconds_per_step: Length of one model step in seconds.

    Returns:
        ``seconds_per_step * 12 g/mol * 1e-6 mol/umol * 0.01``.
    """
    return (
        seconds_per_step * CARBON_MOLAR_MASS / UMOL_PER_MOL * G_M2_TO_MG_HA
    )


FLUX_TO_POOL = flux_conversion()
"""Unit multiplier for the default half-hourly step (2.16e-4)."""


def output_index(name: str) -> int:
    """Return the column of output variable *name*.

    Raises:
        ValueError: If *name* is not one of :data:`OUTPUT_VARIABLES`.
    """
    try:
        return OUTPUT_VARIABLES.index(name)
    except ValueError:
        raise ValueError(
            f'Unknown output variable {name!r}; expected one of '
            f'{", ".join(OUTPUT_VARIABLES)}'
        ) from None


def _particle_step(
    key: PRNGKeyT,
    state: Float[Array, ' 3'],
    params: EcosystemParams,
    temp: Float[Array, ''],
    par: Float[Array, ''],
    ktc: float,
) -> Float[Array, ' num_outputs']:
    """Advance a single particle by one step."""
    leaf, wood, soil = state[0], state[1], state[2]

    # Photosynthesis
    lai = leaf * params.sla * LEAF_C_TO_KG_M2
    gpp = jnp.where(
        par > NIGHT_PAR_THRESHOLD,
        jnp.maximum(0.0, params.alpha * (1.0 - jnp.exp(-0.5 * lai)) * par),
        0.0,
    )

    # Allocation and respiration
    ra, npp_wood, npp_leaf = gpp * params.falloc
    rh = jnp.maximum(params.r_basal * soil * params.q10 ** (temp / 10.0), 0.0)

    # Turnover
    litterfall = leaf * params.litterfall
    mortality = wood * params.mortality

    mean = jnp.stack(
        [
            leaf + npp_leaf * ktc - litterfall,
            wood + npp_wood * ktc - mortality,
            soil + litterfall + mortality - rh,
        ]
    )
    sigma = jnp.stack(
        [params.sigma_leaf, params.sigma_wood, params.sigma_soil]
    )
    draw = mean + sigma * jr.normal(key, (NUM_POOLS,), dtype=mean.dtype)
    # A negative standard deviation is not a distribution.
    draw = jnp.where(sigma >= 0.0, draw, jnp.nan)
    new_state = jnp.maximum(draw, 0.0)

    nep = gpp - ra - rh / ktc
    fluxes = jnp.stack(
        [lai, gpp, nep, ra, npp_wood, npp_leaf, rh, litterfall, mortality]
    )
    return jnp.concatenate([new_state, fluxes])


def process_step(
    key: PRNGKeyT,
    state: StateArray,
    params: EcosystemParams,
    drivers: Drivers,
    flux_to_pool: float = FLUX_TO_POOL,
) -> OutputRow:
    r"""Advance every particle of the ensemble by one step.

    Args:
        key: JAX PRNG key.  Split into one key per particle.
        state: Carbon pools, shape ``(num_particles, 3)``.
        params: Per-particle parameters.
        drivers: Temperature and PAR for this step, each of shape
            ``(num_particles,)``.
        flux_to_pool: Unit multiplier applied to growth fluxes before
            they are added to the pools.

    Returns:
        Output row of shape ``(num_particles, 12)``: the new pools
        followed by LAI, GPP, NEP, Ra, NPP wood, NPP leaf, Rh,
        litterfall and mortality (see :data:`OUTPUT_VARIABLES`).
        Values may be NaN when a parameter draw is invalid; the
        forecast engine clamps them.
    """
    num_particles = state.shape[0]
    keys = jr.split(key, num_particles)
    return vmap(_particle_step, in_axes=(0, 0, 0, 0, 0, None))(
        keys, state, params, drivers.temp, drivers.par, flux_to_pool
    )
