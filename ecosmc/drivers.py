# Copyright 2026 Michael Ellis
# SPDX-License-Identifier: Apache-2.0
"""Alignment of forcing data and observations to the forecast grid.

The process model needs one temperature and one PAR value per particle
per step.  Forcing measured at a site is a single series shared by all
particles; forcing from a meteorological ensemble is already
per-particle.  :func:`align_drivers` accepts either.

Observations arrive at a lower cadence than the forecast step: slot
``j`` constrains the forecast at step ``(j + 1) * interval - 1``, the
last step of window ``j``.
"""

import jax.numpy as jnp
from jaxtyping import Array, ArrayLike, Float, Int

from ecosmc.containers import Drivers, Observations


def _per_particle(
    name: str,
    values: ArrayLike,
    num_timesteps: int,
    num_particles: int,
) -> Float[Array, 'ntime num_particles']:
    values = jnp.asarray(values, dtype=float)
    if values.ndim == 1:
        values = jnp.broadcast_to(
            values[:, None], (values.shape[0], num_particles)
        )
    elif values.ndim != 2 or values.shape[1] != num_particles:
        raise ValueError(
            f'{name} must have shape (ntime,) or (ntime, {num_particles}), '
            f'got {values.shape}'
        )
    if values.shape[0] != num_timesteps:
        raise ValueError(
            f'{name} covers {values.shape[0]} steps, expected {num_timesteps}'
        )
    return values


def align_drivers(
    temp: ArrayLike,
    par: ArrayLike,
    num_particles: int,
) -> Drivers:
    """Broadcast forcing to shape ``(ntime, num_particles)``.

    Args:
        temp: Air temperature, shape ``(ntime,)`` (shared by all
            particles) or ``(ntime, num_particles)``.
        par: PAR, same shape conventions as *temp*.
        num_particles: Ensemble size :math:`N`.

    Returns:
        Aligned :class:`~ecosmc.containers.Drivers`.

    Raises:
        ValueError: If either series has an unsupported shape or the
            two cover a different number of steps.
    """
    num_timesteps = jnp.shape(temp)[0] if jnp.ndim(temp) else 0
    return Drivers(
        temp=_per_particle('temp', temp, num_timesteps, num_particles),
        par=_per_particle('par', par, num_timesteps, num_particles),
    )


def observation_timesteps(
    num_observations: int,
    interval: int,
) -> Int[Array, ' num_obs']:
    """Forecast step index constrained by each observation slot."""
    if interval < 1:
        raise ValueError(f'interval must be >= 1, got {interval}')
    return (jnp.arange(num_observations) + 1) * interval - 1


def align_observations(
    mean: ArrayLike,
    sd: ArrayLike,
    num_timesteps: int,
    interval: int,
) -> Observations:
    """Select the observation slots that fall inside the horizon.

    Args:
        mean: Observed values, one per slot.  NaN marks a missing slot.
        sd: Observation standard deviations, one per slot.
        num_timesteps: Forecast horizon :math:`T`.
        interval: Forecast steps per observation slot.

    Returns:
        :class:`~ecosmc.containers.Observations` with ``T // interval``
        slots.  A slot whose mean or sd is NaN keeps a NaN mean.

    Raises:
        ValueError: If *interval* is not positive, the two series differ
            in length, or fewer slots are given than the horizon needs.
    """
    if interval < 1:
        raise ValueError(f'interval must be >= 1, got {interval}')
    mean = jnp.atleast_1d(jnp.asarray(mean, dtype=float))
    sd = jnp.atleast_1d(jnp.asarray(sd, dtype=float))
    if mean.shape != sd.shape or mean.ndim != 1:
        raise ValueError(
            f'mean and sd must be 1-D of equal length, got {mean.shape} '
            f'and {sd.shape}'
        )
    num_slots = num_timesteps // interval
    if mean.shape[0] < num_slots:
        raise ValueError(
            f'{num_timesteps} steps at interval {interval} need {num_slots} '
            f'observation slots, got {mean.shape[0]}'
        )
    mean, sd = mean[:num_slots], sd[:num_slots]
    return Observations(
        mean=jnp.where(jnp.isnan(sd), jnp.nan, mean),
        sd=sd,
    )
