"""
MCMC Single Run - Single-chain Metropolis-coupled sampling engine.

This module provides run_chain() and its helper functions for executing one
chain: every phase (burn-in phases, then sampling) runs as a sequence of
compiled chunks. For several independent chains see backend.run_mcmc().

Helper functions:
- _run_phase: Execute one phase chunk by chunk
- _stack_records: Concatenate per-chunk records on the host
- _warn_degeneracy: Report new covariance factorization failures
- _final_adapter_summary: Final proposal scales and covariances on the host
- _build_results: Assemble final results dict
"""

import time
import warnings
from datetime import timedelta
from typing import Any, Callable, Dict, List, Optional, Tuple

import jax
import jax.numpy as jnp
import numpy as np

from ..error_handling import CallbackError, ChainAborted, NumericDegeneracy
from .compile import run_chunk
from .config import configure_chain, initialize_chain, gen_rng_keys
from .diagnostics import (
    summarize_phase,
    pooled_swap_acceptance,
    print_acceptance_summary,
    print_swap_acceptance_summary,
)
from .phases import PhaseController
from .tempering import beta_midpoints
from .types import ChainCarry, PhaseParams, init_phase_counters

import logging
logger = logging.getLogger('ladderjax')

# Public API for this module
__all__ = [
    'run_chain',
]


# =============================================================================
# RUN_CHAIN HELPER FUNCTIONS
# =============================================================================

def _run_phase(
    carry: ChainCarry,
    phase: PhaseParams,
    runtime_ctx: Dict[str, Any],
    loglike: Callable,
    logprior: Callable,
    chunk_size: int,
    abort_check: Optional[Callable[[], bool]],
) -> Tuple[ChainCarry, List[Any]]:
    """
    Execute one phase as a sequence of compiled chunks.

    Counters and the iteration index are reset at the start of the phase;
    ladder and adapter state carry over from the previous phase.

    Args:
        carry: Carry at the end of the previous phase
        phase: Static parameters of this phase
        runtime_ctx: Runtime context (betas, param_arrays, data, misc)
        loglike, logprior: User callbacks
        chunk_size: Iterations per chunk
        abort_check: Polled between chunks; True cancels the chain

    Returns:
        carry: Carry at the end of the phase (arrays on device)
        records: Host copies of per-chunk records (empty unless RECORD_DRAWS)

    Raises:
        CallbackError: A callback returned NaN/+inf during the chunk
        ChainAborted: abort_check() returned True
    """
    carry = carry._replace(
        counters=init_phase_counters(phase.N_RUNGS, phase.N_PARAMS),
        iteration=jnp.zeros_like(carry.iteration),
    )

    records = []
    remaining = phase.NUM_ITER
    num_chunks = (remaining + chunk_size - 1) // chunk_size
    chunk = 0
    while remaining > 0:
        n_iter = min(chunk_size, remaining)
        carry, recorded = run_chunk(
            carry, runtime_ctx['betas'], runtime_ctx['param_arrays'],
            runtime_ctx['data'], runtime_ctx['misc'],
            n_iter, loglike, logprior, phase
        )
        remaining -= n_iter
        chunk += 1

        n_errors = int(jax.device_get(carry.counters.callback_errors))
        if n_errors > 0:
            raise CallbackError(
                f"loglike/logprior returned NaN or +inf in {n_errors} iteration(s) "
                f"of phase '{phase.NAME}'"
            )

        if phase.RECORD_DRAWS:
            records.append(jax.device_get(recorded))

        logger.debug(f"  {phase.NAME}: chunk {chunk}/{num_chunks}")

        if abort_check is not None and abort_check():
            raise ChainAborted(f"Chain aborted during phase '{phase.NAME}'")

    return carry, records


def _stack_records(records: List[Any]) -> Optional[Tuple[np.ndarray, np.ndarray, np.ndarray]]:
    """Concatenate (draws, loglike, logprior) records along the iteration axis."""
    if not records:
        return None
    return tuple(np.concatenate([np.asarray(r[i]) for r in records], axis=0) for i in range(3))


def _warn_degeneracy(carry: ChainCarry, previous: int, phase: PhaseParams) -> int:
    """Warn about covariance factorizations that failed during this phase."""
    total = int(np.sum(jax.device_get(carry.adapter.degenerate)))
    if total > previous:
        message = (f"Covariance adaptation produced {total - previous} non-positive-definite "
                   f"matrix/matrices in phase '{phase.NAME}'; last valid factor kept")
        logger.warning(message)
        warnings.warn(message, NumericDegeneracy, stacklevel=3)
    return total


def _final_adapter_summary(carry: ChainCarry) -> Dict[str, np.ndarray]:
    """Final bandwidths, joint scales and covariance estimates per rung."""
    adapter = jax.device_get(carry.adapter)
    count = np.asarray(adapter.cov_count)
    m2 = np.asarray(adapter.cov_m2)
    denom = np.maximum(count - 1, 1)[:, None, None]
    covariance = np.where((count >= 2)[:, None, None], m2 / denom, np.nan)
    return {
        'bw': np.exp(np.asarray(adapter.log_bw)),
        'bw_multi': np.exp(np.asarray(adapter.log_bw_multi)),
        'covariance': covariance,
        'degeneracy_count': np.asarray(adapter.degenerate),
    }


def _build_results(
    user_config: Dict[str, Any],
    beta_raised: np.ndarray,
    sampling_record: Optional[Tuple[np.ndarray, np.ndarray, np.ndarray]],
    burnin_records: List[Optional[Tuple[np.ndarray, np.ndarray, np.ndarray]]],
    phase_summaries: List[Dict[str, Any]],
    adapter_summary: Dict[str, np.ndarray],
    run_time: float,
    chain: int,
) -> Dict[str, Any]:
    """
    Build final results dict from sampling outputs.

    Args:
        user_config: Clean configuration
        beta_raised: Thermodynamic powers, cold first (R,)
        sampling_record: Stacked sampling records, or None if samples = 0
        burnin_records: Stacked records per burn-in phase (None where not recorded)
        phase_summaries: summarize_phase output for every phase that ran
        adapter_summary: Output of _final_adapter_summary
        run_time: Wall time of the chain in seconds
        chain: Chain index

    Returns:
        Results dict with draws, per-rung traces and diagnostics
    """
    n_params = user_config['num_params']
    n_rungs = len(beta_raised)
    save_all_rungs = user_config['save_all_rungs']

    if sampling_record is not None:
        natural, loglike, logprior = sampling_record
        draws = natural[:, 0, :] if save_all_rungs else natural
        draws_all_rungs = natural if save_all_rungs else None
    else:
        draws = np.zeros((0, n_params))
        loglike = np.zeros((0, n_rungs))
        logprior = np.zeros((0, n_rungs))
        draws_all_rungs = np.zeros((0, n_rungs, n_params)) if save_all_rungs else None

    burnin_draws = burnin_loglike = burnin_logprior = None
    if user_config['save_burnin']:
        draw_shape = (0, n_rungs, n_params) if save_all_rungs else (0, n_params)
        burnin_draws, burnin_loglike, burnin_logprior = [], [], []
        for record in burnin_records:
            if record is None:
                record = (np.zeros(draw_shape), np.zeros((0, n_rungs)), np.zeros((0, n_rungs)))
            burnin_draws.append(record[0])
            burnin_loglike.append(record[1])
            burnin_logprior.append(record[2])

    burnin_summaries = [s for s in phase_summaries if s['name'] != 'sampling']
    sampling_summaries = [s for s in phase_summaries if s['name'] == 'sampling']

    diagnostics = {
        'beta_raised': beta_raised,
        'beta_raised_mid': beta_midpoints(beta_raised),
        'phases': phase_summaries,
        'mc_accept_burnin': pooled_swap_acceptance(burnin_summaries, n_rungs),
        'mc_accept_sampling': pooled_swap_acceptance(sampling_summaries, n_rungs),
        'run_time': run_time,
        **adapter_summary,
    }

    return {
        'chain': chain,
        'param_names': list(user_config['param_names']),
        'beta_raised': beta_raised,
        'draws': draws,
        'loglikelihood': loglike,
        'logprior': logprior,
        'draws_all_rungs': draws_all_rungs,
        'burnin_draws': burnin_draws,
        'burnin_loglikelihood': burnin_loglike,
        'burnin_logprior': burnin_logprior,
        'diagnostics': diagnostics,
        'mcmc_config': user_config,
    }


# =============================================================================
# SINGLE-CHAIN SAMPLING FUNCTION
# =============================================================================

def run_chain(
    data: Any,
    params,
    loglike: Callable,
    logprior: Callable,
    misc: Any = None,
    mcmc_config: Optional[Dict[str, Any]] = None,
    key=None,
    abort_check: Optional[Callable[[], bool]] = None,
    chain: int = 0,
) -> Dict[str, Any]:
    """
    Run one Metropolis-coupled chain through burn-in and sampling.

    Args:
        data: Read-only pytree passed to loglike
        params: Parameter specs (ParamSpec list, dicts, tuples or a dict of lists)
        loglike: loglike(theta, data, misc) -> scalar, JAX-traceable
        logprior: logprior(theta, misc) -> scalar, JAX-traceable
        misc: Read-only pytree passed to both callbacks
        mcmc_config: Configuration dict (see utils.clean_config for defaults)
        key: JAX PRNGKey; defaults to PRNGKey(mcmc_config['rng_seed'])
        abort_check: Optional zero-argument callable polled between chunks
        chain: Chain index recorded in the result

    Returns:
        results: Dict containing:
            - param_names: Parameter names
            - beta_raised: Thermodynamic powers, cold first (R,)
            - draws: Cold-rung natural draws (samples, d)
            - loglikelihood: Untempered log-likelihood per rung (samples, R)
            - logprior: Log-prior per rung (samples, R)
            - draws_all_rungs: (samples, R, d) if save_all_rungs, else None
            - burnin_draws: List per burn-in phase if save_burnin, else None;
              (n_k, R, d) with save_all_rungs, else cold-rung (n_k, d)
            - burnin_loglikelihood, burnin_logprior: Lists of (n_k, R) per
              burn-in phase if save_burnin, else None
            - diagnostics: Ladder, per-phase rates, final adapters, run time

    Raises:
        ConfigError: Invalid specs/config or initial values outside the support
        CallbackError: A callback raised or returned NaN/+inf
        ChainAborted: abort_check() returned True
    """
    # --- 1. CONFIGURE ---
    logger.info("Validating MCMC configuration...")
    user_config, runtime_ctx, model_ctx = configure_chain(mcmc_config, params, data, misc)
    beta_raised = model_ctx['beta_raised']
    param_names = user_config['param_names']
    chunk_size = int(user_config['chunk_size'])

    if key is None:
        key = gen_rng_keys(user_config['rng_seed'])

    # --- 2. INITIALIZE ---
    carry = initialize_chain(key, user_config, runtime_ctx, loglike, logprior)
    controller = PhaseController(model_ctx['phases'])

    logger.info(f"\n--- Chain {chain}: {len(param_names)} parameters, {len(beta_raised)} rungs ---")
    if len(beta_raised) > 1:
        logger.info(f"  Ladder: {', '.join(f'{b:.3f}' for b in beta_raised)}")
    logger.info(f"  Total iterations: {controller.total_iterations}")

    # --- 3. RUN PHASES ---
    start_time = time.perf_counter()
    phase_summaries = []
    sampling_record = None
    burnin_records = [None] * (len(model_ctx['phases']) - 1)
    degenerate_total = 0

    for phase in controller:
        phase_start = time.perf_counter()
        carry, records = _run_phase(carry, phase, runtime_ctx, loglike, logprior,
                                    chunk_size, abort_check)
        degenerate_total = _warn_degeneracy(carry, degenerate_total, phase)

        summary = summarize_phase(phase, carry.counters)
        phase_summaries.append(summary)
        logger.info(f"Phase '{phase.NAME}' finished in {time.perf_counter() - phase_start:.2f}s")
        print_acceptance_summary(param_names, summary)
        if phase.COUPLING_ON:
            print_swap_acceptance_summary(beta_raised, summary['swap_accepts'], summary['swap_attempts'])

        stacked = _stack_records(records)
        if phase.is_sampling:
            sampling_record = stacked
        else:
            burnin_records[model_ctx['phases'].index(phase)] = stacked

    run_time = time.perf_counter() - start_time
    logger.info(f"\n--- Chain {chain} Summary ---")
    logger.info(f"  Total Wall Time: {timedelta(seconds=int(run_time))} ({run_time:.2f}s)")

    # --- 4. ASSEMBLE RESULTS ---
    return _build_results(
        user_config,
        beta_raised,
        sampling_record,
        burnin_records,
        phase_summaries,
        _final_adapter_summary(carry),
        run_time,
        chain,
    )
