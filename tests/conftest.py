# Copyright 2026 Michael Ellis
# SPDX-License-Identifier: Apache-2.0
"""Shared test fixtures for ecosmc."""

import jax
import jax.numpy as jnp
import jax.random as jr
import pytest

import ecosmc
from ecosmc.containers import EcosystemParams
from ecosmc.priors import init_ensemble, sample_prior_ensemble


@pytest.fixture
def package():
    """Return the top-level package module for introspection."""
    return ecosmc


@pytest.fixture
def key():
    """Fixed JAX PRNG key for reproducibility."""
    return jr.PRNGKey(42)


def _make_params(num_particles, **overrides):
    """Identical parameters for every particle, with optional overrides.

    Scalar overrides are broadcast; array overrides are used as given.
    """
    values = dict(
        sla=15.0,
        alpha=0.02,
        q10=2.0,
        r_basal=1e-4,
        litterfall=0.01,
        mortality=0.002,
        sigma_leaf=0.0,
        sigma_wood=0.0,
        sigma_soil=0.0,
    )
    values.update(overrides)
    falloc = values.pop('falloc', jnp.array([0.5, 0.3, 0.2]))
    fields = {
        name: jnp.broadcast_to(jnp.asarray(v, dtype=float), (num_particles,))
        for name, v in values.items()
    }
    fields['falloc'] = jnp.broadcast_to(
        jnp.asarray(falloc, dtype=float), (num_particles, 3)
    )
    return EcosystemParams(**fields)


@pytest.fixture
def deterministic_ensemble():
    """Four identical particles with zero process noise."""
    state = jnp.tile(jnp.array([[2.0, 50.0, 100.0]]), (4, 1))
    return init_ensemble(state, _make_params(4))


@pytest.fixture
def prior_ensemble(key):
    """A 200-particle draw from the reference prior."""
    return sample_prior_ensemble(key, 200)


@pytest.fixture
def make_params():
    """Factory for identical per-particle parameters (zero process noise)."""
    return _make_params


# Configure JAX to use 64-bit floats for higher precision in tests.
jax.config.update('jax_enable_x64', True)
