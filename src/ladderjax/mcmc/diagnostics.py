"""
MCMC Diagnostics.

Acceptance summaries and convergence diagnostics for chains:
- summarize_phase: Per-phase acceptance and swap rates from the phase counters
- swap_acceptance_rates: Per-pair coupling acceptance rates
- compute_rhat: Gelman-Rubin R-hat across independent chains
- autocorrelation: Sample autocorrelation per parameter
- print_acceptance_summary / print_swap_acceptance_summary / compute_and_print_rhat
"""

import time
from functools import partial
from typing import Any, Dict, List, Optional

import jax
import jax.numpy as jnp
import numpy as np

from .types import PhaseCounters, PhaseParams

import logging
logger = logging.getLogger('ladderjax')


def swap_acceptance_rates(swap_accepts: np.ndarray, swap_attempts: np.ndarray, n_rungs: int) -> np.ndarray:
    """
    Per-pair coupling acceptance rates (R-1,), 0 where no swap was attempted.

    Pair i is (rung i, rung i+1), cold to hot.
    """
    n_pairs = n_rungs - 1
    accepts = np.asarray(swap_accepts, dtype=np.float64)[:n_pairs]
    attempts = np.asarray(swap_attempts, dtype=np.float64)[:n_pairs]
    return np.divide(accepts, attempts, out=np.zeros(n_pairs), where=attempts > 0)


def summarize_phase(phase: PhaseParams, counters: PhaseCounters) -> Dict[str, Any]:
    """
    Turn the counters of a finished phase into host-side rates.

    The per-rung acceptance rate pools every univariate move and every
    attempted joint move of that rung.

    Returns:
        Dict with name, iterations, flags, acceptance_rate (R,),
        param_acceptance (R, d), joint_acceptance (R,), swap_acceptance (R-1,),
        swap_accepts and swap_attempts
    """
    counters = jax.device_get(counters)
    n_iter = phase.NUM_ITER
    univar = np.asarray(counters.univar_accepts, dtype=np.float64)
    joint_acc = np.asarray(counters.joint_accepts, dtype=np.float64)
    joint_att = np.asarray(counters.joint_attempts, dtype=np.float64)

    moves = n_iter * phase.N_PARAMS + joint_att
    accepted = univar.sum(axis=1) + joint_acc
    acceptance_rate = np.divide(accepted, moves, out=np.zeros_like(accepted), where=moves > 0)
    param_acceptance = univar / max(n_iter, 1)
    joint_acceptance = np.divide(joint_acc, joint_att, out=np.zeros_like(joint_acc), where=joint_att > 0)

    n_pairs = phase.N_RUNGS - 1
    return {
        'name': phase.NAME,
        'iterations': n_iter,
        'flags': {
            'bw_update': phase.BW_UPDATE,
            'cov_update': phase.COV_UPDATE,
            'coupling_on': phase.COUPLING_ON,
        },
        'acceptance_rate': acceptance_rate,
        'param_acceptance': param_acceptance,
        'joint_acceptance': joint_acceptance,
        'swap_acceptance': swap_acceptance_rates(
            counters.swap_accepts, counters.swap_attempts, phase.N_RUNGS),
        'swap_accepts': np.asarray(counters.swap_accepts)[:n_pairs],
        'swap_attempts': np.asarray(counters.swap_attempts)[:n_pairs],
    }


def pooled_swap_acceptance(phase_summaries: List[Dict[str, Any]], n_rungs: int) -> np.ndarray:
    """Swap acceptance per pair pooled over several phases (e.g. all of burn-in)."""
    n_pairs = n_rungs - 1
    accepts = np.zeros(n_pairs)
    attempts = np.zeros(n_pairs)
    for summary in phase_summaries:
        accepts += summary['swap_accepts']
        attempts += summary['swap_attempts']
    return swap_acceptance_rates(accepts, attempts, n_rungs)


@partial(jax.jit, static_argnums=(1,))
def compute_rhat(history: jnp.ndarray, n_chains: int) -> jnp.ndarray:
    """
    Gelman-Rubin R-hat Diagnostic.

    Compares between-chain and within-chain variance of independent chains.

    Args:
        history: Cold-rung draws (n_samples, n_chains, n_params)
        n_chains: Number of chains (static)

    Returns:
        rhat: (n_params,) array of R-hat values.
    """
    n_samples = history.shape[0]

    # 1. Per-chain means over time: (n_chains, n_params)
    chain_means = jnp.mean(history, axis=0)

    # 2. Between-chain variance (B)
    # B = n * var(chain_means) in Gelman-Rubin notation
    B = n_samples * jnp.var(chain_means, axis=0, ddof=1)

    # 3. Within-chain variance (W), averaged over chains
    W = jnp.mean(jnp.var(history, axis=0, ddof=1), axis=0)

    # 4. Pooled variance estimate
    # V_hat = (n-1)/n * W + B/n + B/(m*n)
    m = n_chains
    n = n_samples
    V_hat = ((n - 1) / n) * W + B / n + B / (m * n)

    # Stuck parameters (W = 0) show as NaN/inf
    return jnp.sqrt(V_hat / W)


def compute_and_print_rhat(history: np.ndarray, param_names: List[str],
                           threshold: float = 1.1) -> Optional[np.ndarray]:
    """
    Compute R-hat over chains and log summary statistics.

    Args:
        history: Cold-rung draws (n_samples, n_chains, n_params)
        param_names: Names for the parameter axis
        threshold: Convergence threshold on max R-hat

    Returns:
        R-hat values (numpy), or None with fewer than 2 chains or 2 samples
    """
    n_samples, n_chains = history.shape[:2]
    if n_chains <= 1 or n_samples <= 1:
        return None

    logger.info(f"\n--- Computing R-hat ({n_chains} chains) ---")
    rhat_start = time.perf_counter()
    rhat = np.asarray(jax.device_get(compute_rhat(jnp.asarray(history), n_chains)))
    logger.info(f"Diagnostics complete in {time.perf_counter() - rhat_start:.4f}s")

    logger.info(f"  Max: {np.nanmax(rhat):.4f}")
    logger.info(f"  Median: {np.nanmedian(rhat):.4f}")

    n_nan = np.sum(~np.isfinite(rhat))
    if n_nan > 0:
        logger.warning(f"  WARNING: {n_nan} params have NaN/Inf R-hat (stuck chains)")

    high = [name for name, r in zip(param_names, rhat) if r >= threshold]
    if np.nanmax(rhat) < threshold:
        logger.info(f"  Converged (max < {threshold:.2f})")
    else:
        logger.info(f"  Not Converged: {', '.join(high)}")

    return rhat


def autocorrelation(draws: np.ndarray, max_lag: int = 20) -> np.ndarray:
    """
    Sample autocorrelation of each parameter.

    Args:
        draws: (n_samples, n_params)
        max_lag: Largest lag, must be < n_samples

    Returns:
        (max_lag + 1, n_params) array; row 0 is 1 for non-constant parameters
    """
    draws = np.asarray(draws, dtype=np.float64)
    n = draws.shape[0]
    if not 0 <= max_lag < n:
        raise ValueError(f"max_lag must lie in [0, {n - 1}], got {max_lag}")

    centered = draws - draws.mean(axis=0)
    denom = np.sum(centered ** 2, axis=0)
    acf = np.empty((max_lag + 1, draws.shape[1]))
    for lag in range(max_lag + 1):
        acf[lag] = np.sum(centered[:n - lag] * centered[lag:], axis=0)
    return np.divide(acf, denom, out=np.full_like(acf, np.nan), where=denom > 0)


def print_acceptance_summary(param_names: List[str], summary: Dict[str, Any]) -> None:
    """
    Log cold-rung acceptance for one phase.

    Args:
        param_names: Parameter names
        summary: Output of summarize_phase
    """
    rates = summary['param_acceptance'][0]
    logger.info(f"\n--- Acceptance Rates: {summary['name']} ({summary['iterations']} iterations) ---")
    logger.info(f"  Cold rung overall: {summary['acceptance_rate'][0]:.1%}")
    logger.info(f"  Per parameter: Mean: {np.mean(rates):.1%}  Min: {np.min(rates):.1%}  "
                f"Max: {np.max(rates):.1%}")

    low_rate_mask = rates < 0.10
    if np.any(low_rate_mask):
        low_labels = [name for name, is_low in zip(param_names, low_rate_mask) if is_low]
        logger.warning(f"  WARNING: {len(low_labels)} parameter(s) have acceptance rate < 10%")
        if len(low_labels) <= 10:
            logger.warning(f"    Low parameters: {', '.join(low_labels)}")


def print_swap_acceptance_summary(
    beta_raised: np.ndarray,
    swap_accepts: np.ndarray,
    swap_attempts: np.ndarray
) -> None:
    """
    Log coupling acceptance per adjacent pair of rungs.

    Args:
        beta_raised: Thermodynamic powers, cold first (R,)
        swap_accepts: Number of accepted swaps per pair
        swap_attempts: Number of attempted swaps per pair
    """
    n_rungs = len(beta_raised)
    if n_rungs <= 1:
        return

    swap_rates = swap_acceptance_rates(swap_accepts, swap_attempts, n_rungs)

    logger.info(f"\n--- Metropolis Coupling Swap Rates ({n_rungs} rungs) ---")
    for i in range(n_rungs - 1):
        logger.info(f"  Pair ({beta_raised[i]:.3f} <-> {beta_raised[i + 1]:.3f}): "
                    f"{swap_rates[i]:.1%} ({swap_accepts[i]}/{swap_attempts[i]})")
    logger.info(f"  Mean swap rate: {np.mean(swap_rates):.1%}")

    low_swap_mask = (swap_rates < 0.10) & (np.asarray(swap_attempts) > 0)
    if np.any(low_swap_mask):
        logger.warning("  WARNING: Some swap rates are < 10% - consider more rungs or a larger gti_pow")
