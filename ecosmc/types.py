# Copyright 2026 Michael Ellis
# SPDX-License-Identifier: Apache-2.0
"""Type aliases for ecosmc."""

from typing import Union

from jaxtyping import Array, Bool, Float, PRNGKeyArray

PRNGKeyT = PRNGKeyArray
"""JAX PRNG key (handles both old and new JAX key formats)."""

Scalar = Union[float, Float[Array, '']]
"""Python float or scalar JAX array with float dtype."""

BoolScalar = Union[bool, Bool[Array, '']]
"""Python bool or scalar JAX array with bool dtype."""

StateArray = Float[Array, 'num_particles 3']
"""Carbon pools (leaf, wood, soil) of every particle, in Mg C/ha."""

OutputRow = Float[Array, 'num_particles num_outputs']
"""One forecast step: the three pools followed by the diagnostic fluxes."""
