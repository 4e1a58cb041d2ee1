# Copyright 2026 Michael Ellis
# SPDX-License-Identifier: Apache-2.0
"""Configuration of a sequential assimilation run.

:class:`AssimilationConfig` is a frozen pydantic model.  Fields can be
given by name or by their upper-case alias, so a flat settings mapping
(``{'PF_SMOOTHING': 0.9, ...}``) validates directly with
:meth:`~pydantic.BaseModel.model_validate`.
"""

from collections.abc import Callable
from typing import Literal

from blackjax.smc import resampling
from pydantic import BaseModel, ConfigDict, Field, field_validator

from ecosmc.process import OUTPUT_VARIABLES, flux_conversion, output_index

RESAMPLING_SCHEMES: dict[str, Callable] = {
    'multinomial': resampling.multinomial,
    'systematic': resampling.systematic,
    'stratified': resampling.stratified,
    'residual': resampling.residual,
}


class AssimilationConfig(BaseModel):
    """Settings of the particle filter assimilation loop."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    observation_interval: int = Field(
        default=8,
        alias='PF_OBSERVATION_INTERVAL',
        ge=1,
        description='Forecast steps per observation slot',
    )
    observed_variable: str = Field(
        default='lai', alias='PF_OBSERVED_VARIABLE'
    )
    resampling_threshold: float = Field(
        default=0.5,
        alias='PF_RESAMPLING_THRESHOLD',
        gt=0.0,
        le=1.0,
        description='Resample when ESS < threshold * N',
    )
    smoothing: float = Field(
        default=0.95,
        alias='PF_SMOOTHING',
        ge=0.0,
        le=1.0,
        description='Kernel smoothing factor h (1 = no parameter jitter)',
    )
    resampling: str = Field(default='multinomial', alias='PF_RESAMPLING')
    history_timing: Literal['pre_resample', 'post_resample'] = Field(
        default='post_resample',
        alias='PF_HISTORY_TIMING',
        description='Record parameter snapshots entering or leaving analysis',
    )
    timestep_seconds: float = Field(
        default=1800.0, alias='PF_TIMESTEP_SECONDS', gt=0.0
    )

    @field_validator('observed_variable', 'resampling', mode='before')
    @classmethod
    def normalize_choice(cls, v):
        """Lower-case and strip string choices."""
        if isinstance(v, str):
            return v.lower().strip()
        return v

    @field_validator('observed_variable')
    @classmethod
    def validate_observed_variable(cls, v):
        """Ensure the observed variable is a process-model output."""
        if v not in OUTPUT_VARIABLES:
            raise ValueError(
                f'PF_OBSERVED_VARIABLE must be one of {OUTPUT_VARIABLES}, '
                f"got '{v}'"
            )
        return v

    @field_validator('resampling')
    @classmethod
    def validate_resampling(cls, v):
        """Ensure the resampling scheme is known."""
        if v not in RESAMPLING_SCHEMES:
            raise ValueError(
                f'PF_RESAMPLING must be one of {set(RESAMPLING_SCHEMES)}, '
                f"got '{v}'"
            )
        return v

    @property
    def resampling_fn(self) -> Callable:
        """Blackjax resampling function for :attr:`resampling`."""
        return RESAMPLING_SCHEMES[self.resampling]

    @property
    def observed_index(self) -> int:
        """Output column of :attr:`observed_variable`."""
        return output_index(self.observed_variable)

    @property
    def flux_to_pool(self) -> float:
        """Unit multiplier for :attr:`timestep_seconds`."""
        return flux_conversion(self.timestep_seconds)
