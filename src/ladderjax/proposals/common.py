"""
Common utilities for proposal distributions.

This module provides shared functions used by both the per-parameter
(bandwidth) and the joint (covariance) proposal adapters.

Functions:
    robbins_monro_update: Vanishing-step update of a log proposal scale
    sample_diffusion: Generate diffusion noise from a Cholesky factor
    regularize_covariance: Add nugget regularization to a covariance matrix
"""

import jax.numpy as jnp
import jax.random as random

from ..settings import COV_NUGGET


def robbins_monro_update(log_scale, accepted, index, target):
    """
    Robbins-Monro update of a log proposal scale toward a target acceptance.

        log_scale' = log_scale + (accepted - target) / sqrt(index)

    Accepting more often than the target widens the proposal, rejecting more
    often narrows it. The 1/sqrt(index) step makes the adaptation vanish.

    Args:
        log_scale: Current log proposal scale (scalar or array)
        accepted: Whether the move was accepted (bool or 0/1)
        index: Adaptation iteration counter, >= 1
        target: Target acceptance rate

    Returns:
        Updated log scale
    """
    dtype = jnp.result_type(log_scale)
    step = 1.0 / jnp.sqrt(jnp.asarray(index, dtype=dtype))
    return log_scale + (jnp.asarray(accepted, dtype=dtype) - target) * step


def sample_diffusion(proposal_key, L, shape, scale=1.0):
    """
    Generate diffusion noise: scale * (L @ z) where z ~ N(0, I).

    Args:
        proposal_key: JAX random key for sampling.
        L: Lower Cholesky factor (n, n).
        shape: Shape for normal samples (n,).
        scale: Scalar multiplier.

    Returns:
        Diffusion vector (n,).
    """
    noise = random.normal(proposal_key, shape=shape, dtype=L.dtype)
    return scale * (L @ noise)


def regularize_covariance(cov, nugget=COV_NUGGET):
    """
    Regularize a covariance matrix for numerical stability.

    Args:
        cov: Input covariance matrix (n, n)
        nugget: Small constant added to diagonal (default: COV_NUGGET)

    Returns:
        Regularized covariance matrix: cov + nugget * I
    """
    n = cov.shape[0]
    return cov + nugget * jnp.eye(n, dtype=cov.dtype)
