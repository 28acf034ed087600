"""
MCMC Data Structures and Type Definitions.

This module contains the core data structures used by the sampling engine:
- ParamArrays: Pre-parsed parameter specification arrays (pytree)
- PhaseParams: Immutable per-phase parameters for JAX static arguments
- LadderState: Per-rung chain state, batched over rungs
- AdapterState: Per-rung proposal adapter state, bound to the rung index
- PhaseCounters: Acceptance tallies reset at the start of every phase
- ChainCarry: Full scan carry
- build_param_arrays: Factory function for ParamArrays
"""

import jax
import jax.numpy as jnp
import numpy as np
from dataclasses import dataclass
from typing import List, NamedTuple

from ..param_specs import ParamSpec


@dataclass(frozen=True)
class ParamArrays:
    """
    Pre-parsed parameter specification arrays.

    Registered as a JAX pytree so the arrays are traced through JIT while the
    parameter count stays static.
    """
    trans_types: jnp.ndarray  # (d,) - TransType per parameter
    theta_min: jnp.ndarray    # (d,) - lower bounds (-inf allowed)
    theta_max: jnp.ndarray    # (d,) - upper bounds (+inf allowed)
    theta_init: jnp.ndarray   # (d,) - initial natural values
    num_params: int           # d


def _param_arrays_flatten(pa):
    """Flatten ParamArrays for JAX pytree."""
    children = (pa.trans_types, pa.theta_min, pa.theta_max, pa.theta_init)
    aux_data = (pa.num_params,)
    return children, aux_data


def _param_arrays_unflatten(aux_data, children):
    """Unflatten ParamArrays from JAX pytree."""
    trans_types, theta_min, theta_max, theta_init = children
    (num_params,) = aux_data
    return ParamArrays(
        trans_types=trans_types,
        theta_min=theta_min,
        theta_max=theta_max,
        theta_init=theta_init,
        num_params=num_params,
    )


# Register ParamArrays as a JAX pytree
jax.tree_util.register_pytree_node(
    ParamArrays,
    _param_arrays_flatten,
    _param_arrays_unflatten
)


@dataclass(frozen=True)
class PhaseParams:
    """
    Immutable phase parameters for JAX static argument compatibility.

    One instance per burn-in phase plus one for sampling. Hashable, so it can
    be passed as a static argument and used as part of the kernel cache key.
    """
    NAME: str
    NUM_ITER: int
    BW_UPDATE: bool
    COV_UPDATE: bool
    COUPLING_ON: bool
    RECORD_DRAWS: bool
    RECORD_ALL_RUNGS: bool
    N_RUNGS: int
    N_PARAMS: int
    SWAP_INTERVAL: int = 1
    USE_DEO: bool = True
    COV_MIN_SAMPLES: int = 50

    @property
    def is_sampling(self) -> bool:
        return self.NAME == 'sampling'


class LadderState(NamedTuple):
    """Chain state for every rung. Row r belongs to rung r (row 0 is cold)."""
    theta_work: jnp.ndarray    # (R, d) working-domain parameters
    loglike: jnp.ndarray       # (R,) untempered log-likelihood
    logprior: jnp.ndarray      # (R,) log-prior in the natural domain
    log_jacobian: jnp.ndarray  # (R,) log|d natural / d work|


class AdapterState(NamedTuple):
    """Proposal adapter per rung. Never exchanged by swaps."""
    log_bw: jnp.ndarray        # (R, d) per-parameter proposal scale (log)
    log_bw_multi: jnp.ndarray  # (R,) joint-move scale multiplier (log)
    bw_index: jnp.ndarray      # (R,) Robbins-Monro iteration counter (starts at 1)
    cov_count: jnp.ndarray     # (R,) samples seen by the covariance estimator
    cov_mean: jnp.ndarray      # (R, d) running mean of theta_work
    cov_m2: jnp.ndarray        # (R, d, d) running co-moment
    cov_chol: jnp.ndarray      # (R, d, d) last valid Cholesky factor
    degenerate: jnp.ndarray    # (R,) failed factorizations (NumericDegeneracy)


class PhaseCounters(NamedTuple):
    """Acceptance tallies for the current phase."""
    univar_accepts: jnp.ndarray   # (R, d)
    joint_accepts: jnp.ndarray    # (R,)
    joint_attempts: jnp.ndarray   # (R,)
    swap_accepts: jnp.ndarray     # (max(1, R-1),)
    swap_attempts: jnp.ndarray    # (max(1, R-1),)
    callback_errors: jnp.ndarray  # () iterations with NaN/+inf callback output


class ChainCarry(NamedTuple):
    """Scan carry for one chain."""
    key: jnp.ndarray
    ladder: LadderState
    adapter: AdapterState
    counters: PhaseCounters
    swap_parity: jnp.ndarray  # () DEO parity: 0 = even pairs, 1 = odd pairs
    iteration: jnp.ndarray    # () iteration index within the current phase


def build_param_arrays(specs: List[ParamSpec], dtype=jnp.float64) -> ParamArrays:
    """
    Build ParamArrays from a list of validated ParamSpec objects.

    Args:
        specs: List of ParamSpec objects
        dtype: Float dtype for bounds and initial values

    Returns:
        ParamArrays ready for the sampling loop
    """
    if not specs:
        raise ValueError("Empty parameter specifications")

    trans_types = np.array([int(s.trans_type) for s in specs], dtype=np.int32)
    theta_min = np.array([s.min for s in specs], dtype=np.float64)
    theta_max = np.array([s.max for s in specs], dtype=np.float64)
    theta_init = np.array([s.init for s in specs], dtype=np.float64)

    return ParamArrays(
        trans_types=jnp.asarray(trans_types),
        theta_min=jnp.asarray(theta_min, dtype=dtype),
        theta_max=jnp.asarray(theta_max, dtype=dtype),
        theta_init=jnp.asarray(theta_init, dtype=dtype),
        num_params=len(specs),
    )


def init_phase_counters(n_rungs: int, n_params: int) -> PhaseCounters:
    """Zeroed counters for a new phase."""
    n_pairs = max(1, n_rungs - 1)
    return PhaseCounters(
        univar_accepts=jnp.zeros((n_rungs, n_params), dtype=jnp.int32),
        joint_accepts=jnp.zeros(n_rungs, dtype=jnp.int32),
        joint_attempts=jnp.zeros(n_rungs, dtype=jnp.int32),
        swap_accepts=jnp.zeros(n_pairs, dtype=jnp.int32),
        swap_attempts=jnp.zeros(n_pairs, dtype=jnp.int32),
        callback_errors=jnp.array(0, dtype=jnp.int32),
    )
