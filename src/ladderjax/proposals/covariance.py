"""
Joint (Covariance) Proposal for MCMC Sampling

Multivariate random-walk proposal using the covariance of the rung's own
history, estimated online during burn-in:

    w' ~ N(w, s^2 * Σ)

where Σ is the running covariance (Welford) and s is a scalar multiplier
adapted toward the multivariate optimal acceptance rate (0.234).

The proposal uses the Cholesky factor of Σ. When an updated Σ cannot be
factorized (non-positive-definite, e.g. a parameter that has not moved),
the last valid factor is kept and the failure is counted. This is the
NumericDegeneracy recovery path; it is never fatal.

Hastings ratio: 0 (symmetric proposal)
"""

import jax.numpy as jnp
import jax.random as random

from ..settings import TARGET_ACCEPT_MULTIVARIATE
from .common import robbins_monro_update, sample_diffusion, regularize_covariance


def multivariate_proposal(key, theta_work, log_bw_multi, chol):
    """
    Joint move: w' = w + exp(log_bw_multi) * L z.

    Args:
        key: JAX random key
        theta_work: Current working values (d,)
        log_bw_multi: Log scalar multiplier
        chol: Lower Cholesky factor of the proposal covariance (d, d)

    Returns:
        proposal: Proposed working values (d,)
        log_hastings_ratio: 0.0 (symmetric proposal)
        new_key: Updated random key
    """
    new_key, proposal_key = random.split(key)
    perturbation = sample_diffusion(proposal_key, chol, theta_work.shape,
                                    scale=jnp.exp(log_bw_multi))
    return theta_work + perturbation, 0.0, new_key


def adapt_joint_scale(log_bw_multi, accepted, bw_index):
    """Robbins-Monro update of the joint-move multiplier (target 0.234)."""
    return robbins_monro_update(log_bw_multi, accepted, bw_index,
                                TARGET_ACCEPT_MULTIVARIATE)


def welford_update(count, mean, m2, x):
    """
    Add one observation to a running mean / co-moment.

    After n observations the sample covariance is m2 / (n - 1).

    Args:
        count: Observations seen so far (scalar)
        mean: Running mean (d,)
        m2: Running co-moment sum((x - mean)(x - mean)^T) (d, d)
        x: New observation (d,)

    Returns:
        (count, mean, m2) updated
    """
    count = count + 1
    delta = x - mean
    mean = mean + delta / count
    m2 = m2 + jnp.outer(delta, x - mean)
    return count, mean, m2


def refresh_cholesky(count, m2, chol, degenerate, min_samples):
    """
    Recompute the proposal Cholesky factor from the running co-moment.

    Only refreshes once count >= min_samples. A non-finite factorization
    keeps the previous factor and increments the degeneracy counter.

    Args:
        count: Observations seen (scalar)
        m2: Running co-moment (d, d)
        chol: Last valid Cholesky factor (d, d)
        degenerate: Degeneracy counter (scalar)
        min_samples: Minimum observations before the covariance is used

    Returns:
        (chol, degenerate) updated
    """
    ready = count >= min_samples
    cov = m2 / jnp.maximum(count - 1, 1)
    # Symmetrize against accumulated rounding in the outer-product updates
    cov = 0.5 * (cov + cov.T)
    candidate = jnp.linalg.cholesky(regularize_covariance(cov))
    valid = jnp.all(jnp.isfinite(candidate))

    new_chol = jnp.where(ready & valid, candidate, chol)
    new_degenerate = degenerate + (ready & ~valid).astype(degenerate.dtype)
    return new_chol, new_degenerate
