"""
MCMC Backend - Main Entry Point.

This module provides run_mcmc(), which runs several independent chains and
compares them. The implementation is split across several modules:

- types: Data structures (ParamArrays, PhaseParams, carries)
- config: Configuration and initialization
- sampling: Per-rung proposals and Metropolis updates
- tempering: Temperature ladder and swap protocol
- phases: Burn-in / sampling state machine
- scan: Iteration body
- compile: Chunk kernel compilation and caching
- diagnostics: Acceptance summaries and R-hat
- single_run: One chain (run_chain)
"""

import time
from datetime import timedelta
from typing import Any, Callable, Dict, Optional

import numpy as np

from ..error_handling import diagnose_chain_result, print_diagnostics, validate_mcmc_config
from .config import gen_rng_keys, split_chain_keys
from .diagnostics import compute_and_print_rhat
from .single_run import run_chain
from .utils import clean_config

import logging
logger = logging.getLogger('ladderjax')

# Public API for this module
__all__ = [
    'run_mcmc',
    'run_chain',
]


def run_mcmc(
    data: Any,
    params,
    loglike: Callable,
    logprior: Callable,
    misc: Any = None,
    mcmc_config: Optional[Dict[str, Any]] = None,
    abort_check: Optional[Callable[[], bool]] = None,
    calculate_rhat: bool = True,
    diagnose: bool = True,
) -> Dict[str, Any]:
    """
    Run mcmc_config['chains'] independent chains one after another.

    Each chain gets its own key split from PRNGKey(rng_seed), so the whole
    run is reproducible from the seed and chains share no state.

    Args:
        data, params, loglike, logprior, misc: As for run_chain
        mcmc_config: Configuration dict; 'chains' sets the number of chains
        abort_check: Polled between chunks of every chain
        calculate_rhat: Whether to compute R-hat over the cold-rung draws
        diagnose: Whether to log diagnose_chain_result for every chain

    Returns:
        Dict with:
            - chains: List of run_chain results, one per chain
            - rhat: (d,) R-hat values, or None with one chain / no samples
            - param_names: Parameter names
            - run_time: Total wall time in seconds

    Example:
        from ladderjax import run_mcmc

        out = run_mcmc(data, params, loglike, logprior,
                       mcmc_config={'burnin': 500, 'samples': 1000, 'rungs': 8, 'chains': 4})
        out['chains'][0]['draws']
    """
    user_config = clean_config(mcmc_config)
    validate_mcmc_config(user_config)
    n_chains = int(user_config['chains'])
    chain_keys = split_chain_keys(gen_rng_keys(user_config['rng_seed']), n_chains)

    logger.info(f"\n{'='*60}")
    logger.info(f"MULTI-CHAIN MCMC: {n_chains} chain(s)")
    logger.info(f"{'='*60}\n")

    start_time = time.perf_counter()
    results = []
    for chain in range(n_chains):
        result = run_chain(
            data, params, loglike, logprior,
            misc=misc,
            mcmc_config=user_config,
            key=chain_keys[chain],
            abort_check=abort_check,
            chain=chain,
        )
        if diagnose:
            print_diagnostics(diagnose_chain_result(result))
        results.append(result)

    rhat = None
    if calculate_rhat and results:
        # (n_samples, n_chains, d)
        history = np.stack([r['draws'] for r in results], axis=1)
        rhat = compute_and_print_rhat(history, results[0]['param_names'])

    run_time = time.perf_counter() - start_time
    logger.info(f"\nAll chains finished in {timedelta(seconds=int(run_time))} ({run_time:.2f}s)")

    return {
        'chains': results,
        'rhat': rhat,
        'param_names': results[0]['param_names'] if results else [],
        'run_time': run_time,
    }
