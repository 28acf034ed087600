"""
MCMC Configuration and Initialization.

This module handles setting up and validating a chain:
- configure_chain: Main configuration entry point
- initialize_chain: Build the initial scan carry and check the initial values
- gen_rng_keys / split_chain_keys: JAX random keys

Configuration is split into three parts:
- user_config: Serializable config that can be saved without JAX
- runtime_ctx: JAX-dependent objects that exist only during execution
- model_ctx: Parameter specs, the temperature ladder and the phase list

All config keys use lowercase with underscores (e.g., 'burnin', 'gti_pow').
"""

import jax
import jax.numpy as jnp
import jax.random as random
import numpy as np
from typing import Any, Dict, Optional, Tuple

from ..error_handling import ConfigError, CallbackError, validate_mcmc_config
from ..param_specs import make_param_specs, validate_param_specs
from ..settings import JOINT_SCALE_CONSTANT
from .phases import build_phase_list
from .sampling import evaluate_state
from .tempering import build_beta_ladder
from .transforms import to_working
from .types import (
    AdapterState,
    ChainCarry,
    LadderState,
    build_param_arrays,
    init_phase_counters,
)
from .utils import clean_config

import logging
logger = logging.getLogger('ladderjax')


def gen_rng_keys(rng_seed: int):
    """Generate the master JAX PRNGKey from a seed."""
    return random.PRNGKey(rng_seed)


def split_chain_keys(master_key, n_chains: int):
    """One independent key per chain, split from the master key."""
    return random.split(master_key, n_chains)


def _to_device(tree, float_dtype, label: str):
    """
    Convert every leaf of a callback context to a JAX array.

    Floating leaves take the run's float dtype; other leaves keep theirs.
    """
    def convert(leaf):
        arr = np.asarray(leaf)
        if np.issubdtype(arr.dtype, np.floating):
            return jnp.asarray(arr, dtype=float_dtype)
        return jnp.asarray(arr)

    try:
        return jax.tree_util.tree_map(convert, tree)
    except (TypeError, ValueError) as e:
        raise ConfigError(f"'{label}' must be a pytree of numeric arrays: {e}") from e


def configure_chain(
    mcmc_config: Optional[Dict[str, Any]],
    params,
    data: Any,
    misc: Any = None,
) -> Tuple[Dict[str, Any], Dict[str, Any], Dict[str, Any]]:
    """
    Configure one chain from the config, parameter specs and callback contexts.

    Args:
        mcmc_config: Input configuration dict (missing keys take defaults)
        params: Parameter specs (see param_specs.make_param_specs)
        data: Read-only data pytree passed to loglike
        misc: Read-only pytree passed to loglike and logprior

    Returns:
        user_config: Clean config dict with user values + derived values
        runtime_ctx: Dict with dtypes, converted data/misc, ParamArrays, betas
        model_ctx: Dict with param_specs, beta_raised (numpy) and phases

    Raises:
        ConfigError: If the config or any parameter spec is invalid
    """
    user_config = clean_config(mcmc_config)
    validate_mcmc_config(user_config)

    specs = make_param_specs(params)
    validate_param_specs(specs)
    n_params = len(specs)

    # Configure JAX precision
    if user_config['use_double']:
        jax.config.update("jax_enable_x64", True)
        jnp_float_dtype = jnp.float64
    else:
        jax.config.update("jax_enable_x64", False)
        jnp_float_dtype = jnp.float32

    n_rungs = int(user_config['rungs'])
    beta_raised = build_beta_ladder(n_rungs, user_config['gti_pow'], user_config['beta_manual'])
    betas = jnp.asarray(beta_raised, dtype=jnp_float_dtype)

    # Hot-end powers can underflow to repeated zeros, in float32 much sooner
    if n_rungs > 1 and not np.all(np.diff(np.asarray(betas)) < 0):
        raise ConfigError(
            f"Non-monotonic ladder: {n_rungs} rungs with gti_pow = {user_config['gti_pow']} "
            f"give repeated thermodynamic powers in {np.dtype(jnp_float_dtype).name}; "
            f"lower gti_pow, use fewer rungs or pass beta_manual"
        )

    user_config['num_params'] = n_params
    user_config['param_names'] = [s.name for s in specs]

    runtime_ctx = {
        'jnp_float_dtype': jnp_float_dtype,
        'data': _to_device(data, jnp_float_dtype, 'data'),
        'misc': _to_device(misc, jnp_float_dtype, 'misc'),
        'param_arrays': build_param_arrays(specs, dtype=jnp_float_dtype),
        'betas': betas,
    }

    model_ctx = {
        'param_specs': specs,
        'beta_raised': beta_raised,
        'phases': build_phase_list(user_config, n_rungs, n_params),
    }

    return user_config, runtime_ctx, model_ctx


def initialize_chain(
    key,
    user_config: Dict[str, Any],
    runtime_ctx: Dict[str, Any],
    loglike_fn,
    logprior_fn,
) -> ChainCarry:
    """
    Build the initial carry: every rung starts at the parameter inits.

    The callbacks are evaluated once, eagerly, at the initial values so that
    a bad starting point is reported before anything is compiled.

    Raises:
        CallbackError: Callback raised or returned NaN/+inf at the initial values
        ConfigError: Initial values have -inf log-likelihood or log-prior
    """
    dtype = runtime_ctx['jnp_float_dtype']
    param_arrays = runtime_ctx['param_arrays']
    n_rungs = int(user_config['rungs'])
    n_params = param_arrays.num_params
    bw_init = float(user_config['bw_init'])

    theta_work = to_working(param_arrays.theta_init, param_arrays)
    ll, lp, lj, bad = evaluate_state(
        theta_work, param_arrays, loglike_fn, logprior_fn,
        runtime_ctx['data'], runtime_ctx['misc']
    )

    if bool(bad):
        raise CallbackError(
            f"Callbacks returned a non-finite value at the initial values "
            f"(loglike={float(ll)}, logprior={float(lp)})"
        )
    if not np.isfinite(float(ll)) or not np.isfinite(float(lp)):
        raise ConfigError(
            f"Initial values lie outside the support of the posterior "
            f"(loglike={float(ll)}, logprior={float(lp)})"
        )
    logger.debug(f"Initial loglike={float(ll):.4f}, logprior={float(lp):.4f}")

    def tile(x):
        return jnp.broadcast_to(x, (n_rungs,) + jnp.shape(x)).astype(dtype)

    ladder = LadderState(
        theta_work=tile(theta_work),
        loglike=tile(ll),
        logprior=tile(lp),
        log_jacobian=tile(lj),
    )

    eye = jnp.eye(n_params, dtype=dtype)
    adapter = AdapterState(
        log_bw=jnp.full((n_rungs, n_params), np.log(bw_init), dtype=dtype),
        log_bw_multi=jnp.full((n_rungs,), np.log(JOINT_SCALE_CONSTANT / np.sqrt(n_params)), dtype=dtype),
        bw_index=jnp.ones(n_rungs, dtype=jnp.int32),
        cov_count=jnp.zeros(n_rungs, dtype=jnp.int32),
        cov_mean=jnp.zeros((n_rungs, n_params), dtype=dtype),
        cov_m2=jnp.zeros((n_rungs, n_params, n_params), dtype=dtype),
        cov_chol=jnp.broadcast_to(bw_init * eye, (n_rungs, n_params, n_params)).astype(dtype),
        degenerate=jnp.zeros(n_rungs, dtype=jnp.int32),
    )

    return ChainCarry(
        key=key,
        ladder=ladder,
        adapter=adapter,
        counters=init_phase_counters(n_rungs, n_params),
        swap_parity=jnp.array(0, dtype=jnp.int32),
        iteration=jnp.array(0, dtype=jnp.int32),
    )
