# Copyright 2026 Michael Ellis
# SPDX-License-Identifier: Apache-2.0
"""Command-line entry point: ``python -m ecosmc [demo]``.

Without arguments, prints the package version.  ``demo`` runs a twin
experiment: a synthetic truth is simulated and observed, a prior
ensemble is assimilated against the observations, and a summary of the
run is logged.
"""

import argparse
import logging
from typing import Optional, Sequence

import jax.numpy as jnp
import jax.random as jr

from ecosmc import __version__
from ecosmc.assimilation import assimilate
from ecosmc.config import AssimilationConfig
from ecosmc.diagnostics import check_posterior, particle_diversity
from ecosmc.drivers import align_drivers
from ecosmc.priors import INITIAL_POOLS, PRIOR_MEDIANS, sample_prior_ensemble
from ecosmc.simulate import diurnal_drivers, simulate

logger = logging.getLogger('ecosmc')


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog='ecosmc')
    subparsers = parser.add_subparsers(dest='command')
    demo = subparsers.add_parser('demo', help='run a twin experiment')
    demo.add_argument('--particles', type=int, default=500)
    demo.add_argument('--days', type=int, default=16)
    demo.add_argument('--seed', type=int, default=0)
    demo.add_argument(
        '--interval',
        type=int,
        default=48,
        help='forecast steps per observation (48 = daily)',
    )
    demo.add_argument('--smoothing', type=float, default=0.95)
    demo.add_argument('--obs-sd', type=float, default=0.1)
    return parser


def run_demo(args: argparse.Namespace) -> None:
    """Simulate a truth, assimilate LAI observations of it, log a summary."""
    config = AssimilationConfig(
        observation_interval=args.interval,
        smoothing=args.smoothing,
    )
    k_truth, k_prior, k_run = jr.split(jr.PRNGKey(args.seed), 3)

    truth_params = PRIOR_MEDIANS._replace(
        falloc=jnp.asarray(PRIOR_MEDIANS.falloc) / sum(PRIOR_MEDIANS.falloc)
    )
    temp, par = diurnal_drivers(args.days)
    truth, observations = simulate(
        k_truth,
        jnp.asarray(INITIAL_POOLS),
        truth_params,
        temp,
        par,
        observed_index=config.observed_index,
        interval=config.observation_interval,
        obs_sd=args.obs_sd,
    )

    ensemble = sample_prior_ensemble(k_prior, args.particles)
    drivers = align_drivers(temp, par, args.particles)
    posterior = assimilate(k_run, ensemble, drivers, observations, config)
    check_posterior(posterior)

    final_lai = posterior.forecast[-1, :, config.observed_index]
    logger.info(
        'Final LAI: truth %.3f, ensemble mean %.3f (sd %.3f)',
        float(truth[-1, config.observed_index]),
        float(jnp.mean(final_lai)),
        float(jnp.std(final_lai)),
    )
    logger.info(
        'Minimum ESS %.1f, mean ancestor diversity %.2f',
        float(jnp.min(posterior.ess)),
        float(jnp.mean(particle_diversity(posterior.ancestors))),
    )


def main(argv: Optional[Sequence[str]] = None) -> None:
    """Print package version, or run a subcommand."""
    args = _build_parser().parse_args(argv)
    if args.command == 'demo':
        logging.basicConfig(
            level=logging.INFO,
            format='%(asctime)s %(name)s %(levelname)s %(message)s',
        )
        run_demo(args)
        return
    print(f'ecosmc {__version__}')


if __name__ == '__main__':
    main()
