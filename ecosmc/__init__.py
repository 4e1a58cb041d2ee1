# Copyright 2026 Michael Ellis
# SPDX-License-Identifier: Apache-2.0
"""Particle-filter data assimilation for an ecosystem carbon model."""

import logging as _logging
from importlib.metadata import PackageNotFoundError as _PackageNotFoundError
from importlib.metadata import version as _version

from ecosmc.analysis import analysis_step
from ecosmc.assimilation import assimilate
from ecosmc.config import AssimilationConfig
from ecosmc.containers import (
    AnalysisInfo,
    AssimilationPosterior,
    Drivers,
    EcosystemParams,
    Ensemble,
    LikelihoodWeights,
    Observations,
)
from ecosmc.drivers import align_drivers, align_observations
from ecosmc.ess import ess, log_ess
from ecosmc.forecast import ensemble_forecast
from ecosmc.priors import init_ensemble, sample_prior_ensemble
from ecosmc.process import OUTPUT_VARIABLES, process_step
from ecosmc.resample_move import resample_move
from ecosmc.weights import likelihood_weights, log_normalize, normalize

_logging.getLogger(__name__).addHandler(_logging.NullHandler())

try:
    __version__ = _version('ecosmc')
except _PackageNotFoundError:
    __version__ = '0.0.0'

__all__ = [
    'OUTPUT_VARIABLES',
    'AnalysisInfo',
    'AssimilationConfig',
    'AssimilationPosterior',
    'Drivers',
    'EcosystemParams',
    'Ensemble',
    'LikelihoodWeights',
    'Observations',
    '__version__',
    'align_drivers',
    'align_observations',
    'analysis_step',
    'assimilate',
    'ensemble_forecast',
    'ess',
    'init_ensemble',
    'likelihood_weights',
    'log_ess',
    'log_normalize',
    'normalize',
    'process_step',
    'resample_move',
    'sample_prior_ensemble',
]
