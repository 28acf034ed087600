"""
MCMC Tempering - Temperature ladder and Metropolis-coupling swaps.

Rung 0 is the cold rung (beta = 1) whose draws form the posterior sample.
Rung R-1 is the hottest rung (beta = 0 when R > 1).

Unlike index-process tempering, accepted swaps exchange the chain STATES of
two adjacent rungs (theta_work, loglike, logprior, log_jacobian). Proposal
adapters stay bound to their rung, because their scales are tuned for that
rung's temperature.

Functions:
- build_beta_ladder: Thermodynamic powers from GTI_pow or a manual ladder
- beta_midpoints: Midpoint of each adjacent pair (for swap-rate plots)
- swap_log_ratio: Log acceptance ratio for swapping two rungs
- attempt_swaps: One round of adjacent-pair swaps (DEO or sequential)
"""

from typing import Optional, Sequence

import jax
import jax.numpy as jnp
import jax.random as random
import numpy as np

from .types import LadderState


def build_beta_ladder(n_rungs: int, gti_pow: float = 1.0,
                      beta_manual: Optional[Sequence[float]] = None) -> np.ndarray:
    """
    Build the thermodynamic powers for every rung, cold first.

    Counting k = 0..R-1 from the hot end, beta_k = (k / (R-1)) ** gti_pow, so
    gti_pow = 1 gives an even ladder on [0, 1] and larger values concentrate
    rungs near the hot (prior) end. The result is returned cold-first:

        beta[i] = ((R - 1 - i) / (R - 1)) ** gti_pow

    Args:
        n_rungs: Number of rungs R >= 1
        gti_pow: Ladder shape exponent >= 1
        beta_manual: Optional explicit ladder (either order, validated by
            validate_mcmc_config); overrides gti_pow

    Returns:
        beta_raised: (R,) float64 array, beta_raised[0] == 1
    """
    if beta_manual is not None:
        betas = np.asarray(beta_manual, dtype=np.float64).ravel()
        return np.sort(betas)[::-1].copy()

    if n_rungs == 1:
        return np.array([1.0])

    k = np.arange(n_rungs - 1, -1, -1, dtype=np.float64)
    return (k / (n_rungs - 1)) ** gti_pow


def beta_midpoints(beta_raised: np.ndarray) -> np.ndarray:
    """Midpoint of each adjacent pair (i, i+1); empty for a single rung."""
    beta_raised = np.asarray(beta_raised)
    return 0.5 * (beta_raised[:-1] + beta_raised[1:])


def swap_log_ratio(beta_i, beta_j, loglike_i, loglike_j):
    """
    Log acceptance ratio for exchanging the states of rungs i and j.

        delta = (beta_i - beta_j) * (loglike_j - loglike_i)

    Priors and Jacobians cancel. Equal betas give exactly 0 (always accept);
    NaN (e.g. both likelihoods -inf) is treated as a rejection.
    """
    beta_diff = beta_i - beta_j
    delta = jnp.where(beta_diff == 0, 0.0, beta_diff * (loglike_j - loglike_i))
    return jnp.nan_to_num(delta, nan=-jnp.inf, posinf=jnp.inf, neginf=-jnp.inf)


def _exchange_rows(x, i, should_swap):
    """Swap rows i and i+1 of x when should_swap."""
    row_i = x[i]
    row_j = x[i + 1]
    swapped = x.at[i].set(row_j).at[i + 1].set(row_i)
    return jnp.where(should_swap, swapped, x)


def attempt_swaps(key, ladder: LadderState, betas,
                  swap_accepts, swap_attempts, swap_parity,
                  use_deo=True):
    """
    One round of Metropolis-coupling swaps between adjacent rungs.

    Pairs (i, i+1) are visited in a fixed order, cold to hot, each pair
    seeing the states left by the previous pair.

    DEO (Deterministic Even-Odd) Scheme (when use_deo=True):
    - Even round (parity=0): attempt pairs (0,1), (2,3), (4,5), ...
    - Odd round (parity=1): attempt pairs (1,2), (3,4), (5,6), ...
    - No rung takes part in two swaps of the same round
    - Parity flips after every round

    When use_deo=False: all pairs are attempted every round.

    Args:
        key: JAX random key
        ladder: LadderState batched over rungs (R rows)
        betas: Thermodynamic powers, cold first (R,)
        swap_accepts: Running count of accepted swaps per pair (max(1, R-1),)
        swap_attempts: Running count of attempted swaps per pair
        swap_parity: DEO parity (0 = even pairs, 1 = odd pairs)
        use_deo: If True, use DEO scheme; if False, every pair every round

    Returns:
        (ladder, key, swap_accepts, swap_attempts, next_parity)
    """
    n_rungs = betas.shape[0]

    # If only one rung, no swaps needed
    if n_rungs <= 1:
        return ladder, key, swap_accepts, swap_attempts, swap_parity

    key, swap_key = random.split(key)
    accept_keys = random.split(swap_key, n_rungs - 1)

    def swap_pair(carry, pair):
        """Attempt the swap for pair (i, i+1)."""
        current, accepts, attempts = carry
        i, pair_key = pair

        if use_deo:
            is_active = (i % 2) == swap_parity
        else:
            is_active = jnp.array(True)

        log_alpha = swap_log_ratio(betas[i], betas[i + 1],
                                   current.loglike[i], current.loglike[i + 1])
        log_uniform = jnp.log(random.uniform(pair_key, dtype=current.loglike.dtype))
        should_swap = is_active & (log_uniform < log_alpha)

        exchanged = LadderState(*(_exchange_rows(x, i, should_swap) for x in current))
        accepts = accepts.at[i].add(should_swap.astype(accepts.dtype))
        attempts = attempts.at[i].add(is_active.astype(attempts.dtype))
        return (exchanged, accepts, attempts), None

    (new_ladder, new_accepts, new_attempts), _ = jax.lax.scan(
        swap_pair,
        (ladder, swap_accepts, swap_attempts),
        (jnp.arange(n_rungs - 1), accept_keys)
    )

    # Toggle parity for next round (DEO: E->O->E->O->...)
    next_parity = 1 - swap_parity

    return new_ladder, key, new_accepts, new_attempts, next_parity
