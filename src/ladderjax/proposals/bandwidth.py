"""
Per-Parameter (Bandwidth) Proposal for MCMC Sampling

Univariate random-walk proposal that perturbs a single coordinate of the
working-domain state:

    w'_i ~ N(w_i, bw_i^2),   w'_j = w_j for j != i

Each parameter has its own bandwidth bw_i, adapted during burn-in with a
Robbins-Monro rule toward the univariate optimal acceptance rate (0.44).

Hastings ratio: 0 (symmetric proposal)
"""

import jax.numpy as jnp
import jax.random as random

from ..settings import TARGET_ACCEPT_UNIVARIATE
from .common import robbins_monro_update


def univariate_proposal(key, theta_work, param_idx, log_bw):
    """
    Perturb coordinate param_idx of theta_work.

    Args:
        key: JAX random key
        theta_work: Current working values (d,)
        param_idx: Coordinate to move (traced int)
        log_bw: Per-parameter log bandwidths (d,)

    Returns:
        proposal: Proposed working values (d,)
        log_hastings_ratio: 0.0 (symmetric proposal)
        new_key: Updated random key
    """
    new_key, proposal_key = random.split(key)
    step = jnp.exp(log_bw[param_idx]) * random.normal(proposal_key, dtype=theta_work.dtype)
    proposal = theta_work.at[param_idx].add(step)
    return proposal, 0.0, new_key


def adapt_bandwidth(log_bw, param_idx, accepted, bw_index):
    """Robbins-Monro update of one parameter's bandwidth (target 0.44)."""
    updated = robbins_monro_update(log_bw[param_idx], accepted, bw_index,
                                   TARGET_ACCEPT_UNIVARIATE)
    return log_bw.at[param_idx].set(updated)
