"""
MCMC Scan Body.

This module contains the per-iteration body of the sampling loop:
- update_covariance: Welford update + Cholesky refresh for every rung
- record_state: Natural-domain values saved for one iteration
- mcmc_iteration: One iteration of the ladder (step -> swap -> adapt)

The two passes of an iteration are kept separate: every rung steps first,
and only once all rungs have stepped are swaps attempted.

Random draws are taken in a fixed order per iteration: one key per rung for
the step (proposal, then accept/reject, coordinate by coordinate), then one
key for the swap round. Adaptation consumes no random draws.

Temperature swap logic lives in mcmc.tempering.
"""

import jax
import jax.numpy as jnp
import jax.random as random
from functools import partial

from ..proposals import welford_update, refresh_cholesky
from .sampling import parallel_rung_step
from .tempering import attempt_swaps
from .transforms import to_natural
from .types import ParamArrays, PhaseParams, AdapterState, LadderState, ChainCarry


def update_covariance(adapter: AdapterState, ladder: LadderState, min_samples: int) -> AdapterState:
    """
    Add each rung's current working state to its running covariance and
    refresh the proposal Cholesky factor.
    """
    def update_one(count, mean, m2, chol, degenerate, x):
        count, mean, m2 = welford_update(count, mean, m2, x)
        chol, degenerate = refresh_cholesky(count, m2, chol, degenerate, min_samples)
        return count, mean, m2, chol, degenerate

    count, mean, m2, chol, degenerate = jax.vmap(update_one)(
        adapter.cov_count, adapter.cov_mean, adapter.cov_m2,
        adapter.cov_chol, adapter.degenerate, ladder.theta_work
    )
    return adapter._replace(cov_count=count, cov_mean=mean, cov_m2=m2,
                            cov_chol=chol, degenerate=degenerate)


def record_state(ladder: LadderState, param_arrays: ParamArrays, record_all_rungs: bool):
    """
    Values saved for one iteration.

    Returns:
        draws: (R, d) natural values if record_all_rungs else (d,) cold rung
        loglike: (R,) untempered log-likelihood per rung
        logprior: (R,) log-prior per rung
    """
    if record_all_rungs:
        natural, _ = jax.vmap(to_natural, in_axes=(0, None))(ladder.theta_work, param_arrays)
    else:
        natural, _ = to_natural(ladder.theta_work[0], param_arrays)
    return natural, ladder.loglike, ladder.logprior


def mcmc_iteration(carry: ChainCarry, _, betas, param_arrays: ParamArrays, data, misc,
                   loglike_fn, logprior_fn, phase_params: PhaseParams):
    """
    One iteration of the ladder.

    1. Every rung performs one step (per-parameter sweep + joint move).
    2. If coupling is on and the iteration is on the swap interval, one
       round of adjacent-pair swaps.
    3. If covariance adaptation is on, every rung's running covariance
       absorbs the state now held at its temperature.

    Args:
        carry: ChainCarry
        _: Unused scan input
        betas: Thermodynamic powers, cold first (R,)
        param_arrays: ParamArrays
        data, misc: Read-only callback contexts
        loglike_fn, logprior_fn: User callbacks (static)
        phase_params: Static phase configuration

    Returns:
        (new_carry, recorded) where recorded is None unless RECORD_DRAWS
    """
    n_rungs = phase_params.N_RUNGS
    counters = carry.counters

    key, step_key = random.split(carry.key)
    step_keys = random.split(step_key, n_rungs)

    ladder, adapter, univar_accepts, joint_accepts, joint_attempts, n_bad = parallel_rung_step(
        step_keys, carry.ladder, carry.adapter, betas, param_arrays, data, misc,
        loglike_fn, logprior_fn, phase_params
    )

    counters = counters._replace(
        univar_accepts=counters.univar_accepts + univar_accepts,
        joint_accepts=counters.joint_accepts + joint_accepts,
        joint_attempts=counters.joint_attempts + joint_attempts,
        callback_errors=counters.callback_errors + (jnp.sum(n_bad) > 0).astype(jnp.int32),
    )

    swap_parity = carry.swap_parity
    if phase_params.COUPLING_ON and n_rungs > 1:
        do_swap = (carry.iteration % phase_params.SWAP_INTERVAL) == 0
        swap_fn = partial(attempt_swaps, use_deo=phase_params.USE_DEO)

        def no_swap(k, lad, b, acc, att, parity):
            return lad, k, acc, att, parity

        ladder, key, swap_accepts, swap_attempts, swap_parity = jax.lax.cond(
            do_swap, swap_fn, no_swap,
            key, ladder, betas, counters.swap_accepts, counters.swap_attempts, swap_parity
        )
        counters = counters._replace(swap_accepts=swap_accepts, swap_attempts=swap_attempts)

    if phase_params.COV_UPDATE:
        adapter = update_covariance(adapter, ladder, phase_params.COV_MIN_SAMPLES)

    new_carry = ChainCarry(
        key=key,
        ladder=ladder,
        adapter=adapter,
        counters=counters,
        swap_parity=swap_parity,
        iteration=carry.iteration + 1,
    )

    recorded = None
    if phase_params.RECORD_DRAWS:
        recorded = record_state(ladder, param_arrays, phase_params.RECORD_ALL_RUNGS)

    return new_carry, recorded
