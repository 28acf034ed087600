"""
Parameter Transformations - natural <-> working domain.

The sampler proposes symmetric moves in an unconstrained working domain.
Each parameter is mapped back to its bounded natural domain before the user
callbacks are evaluated, and the log-Jacobian of that map is added to the
log-posterior so that the working-domain chain targets the natural-domain
posterior.

Functions:
- to_working: natural -> working
- to_natural: working -> (natural, summed log-Jacobian)
"""

import jax
import jax.numpy as jnp

from ..param_specs import TransType
from .types import ParamArrays


def _finite_bounds(param_arrays: ParamArrays):
    """Replace infinite bounds by 0 so unused jnp.where branches stay finite."""
    lo = jnp.where(jnp.isfinite(param_arrays.theta_min), param_arrays.theta_min, 0.0)
    hi = jnp.where(jnp.isfinite(param_arrays.theta_max), param_arrays.theta_max, 0.0)
    return lo, hi


def to_working(theta_natural: jnp.ndarray, param_arrays: ParamArrays) -> jnp.ndarray:
    """
    Map natural-domain values onto the unconstrained working domain.

    Args:
        theta_natural: Natural values (..., d), strictly inside the bounds
        param_arrays: ParamArrays with trans_types and bounds

    Returns:
        theta_work: Working-domain values, same shape
    """
    tt = param_arrays.trans_types
    lo, hi = _finite_bounds(param_arrays)

    w_lower = jnp.log(theta_natural - lo)
    w_upper = jnp.log(hi - theta_natural)
    p = (theta_natural - lo) / (hi - lo)
    w_logit = jnp.log(p) - jnp.log1p(-p)

    return jnp.where(
        tt == TransType.LOGIT, w_logit,
        jnp.where(
            tt == TransType.LOG_UPPER, w_upper,
            jnp.where(tt == TransType.LOG_LOWER, w_lower, theta_natural)
        )
    )


def to_natural(theta_work: jnp.ndarray, param_arrays: ParamArrays):
    """
    Map working-domain values back to the natural domain.

    Args:
        theta_work: Working values (d,)
        param_arrays: ParamArrays with trans_types and bounds

    Returns:
        theta_natural: Natural values (d,)
        log_jacobian: Scalar sum of per-parameter log-Jacobian terms
    """
    tt = param_arrays.trans_types
    lo, hi = _finite_bounds(param_arrays)

    exp_w = jnp.exp(theta_work)
    width = hi - lo
    # Logit branch: log sigmoid(w) + log(1 - sigmoid(w)) computed stably
    nat_logit = lo + width * jax.nn.sigmoid(theta_work)
    adj_logit = (jnp.log(jnp.where(tt == TransType.LOGIT, width, 1.0))
                 + jax.nn.log_sigmoid(theta_work) + jax.nn.log_sigmoid(-theta_work))

    theta_natural = jnp.where(
        tt == TransType.LOGIT, nat_logit,
        jnp.where(
            tt == TransType.LOG_UPPER, hi - exp_w,
            jnp.where(tt == TransType.LOG_LOWER, lo + exp_w, theta_work)
        )
    )
    adj = jnp.where(
        tt == TransType.LOGIT, adj_logit,
        jnp.where(tt == TransType.NONE, 0.0, theta_work)
    )
    return theta_natural, jnp.sum(adj, axis=-1)
