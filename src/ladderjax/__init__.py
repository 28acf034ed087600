"""
ladderjax - Adaptive Metropolis-coupled MCMC in JAX

Public API:
    Sampling:
        run_chain - Run one chain through burn-in and sampling
        run_mcmc - Run several independent chains and compare them (R-hat)

    Parameter Specifications:
        ParamSpec - Dataclass for one parameter (name, bounds, init, transform)
        TransType - Enum for working-domain transforms (NONE, LOG_LOWER, LOG_UPPER, LOGIT)
        make_param_specs - Build specs from dicts, tuples or a dict of lists

    Ladder:
        build_beta_ladder - Thermodynamic powers from gti_pow or a manual ladder

    Diagnostics:
        compute_rhat - Gelman-Rubin R-hat over chains
        autocorrelation - Sample autocorrelation per parameter
        diagnose_chain_result / print_diagnostics - Post-run issue report

    Errors:
        ConfigError, CallbackError, NumericDegeneracy, ChainAborted

Example:
    import jax.numpy as jnp
    from ladderjax import run_chain, ParamSpec

    def loglike(theta, data, misc):
        return -0.5 * jnp.sum((data['x'] - theta[0]) ** 2)

    def logprior(theta, misc):
        return -jnp.log(20.0)

    out = run_chain({'x': x}, [ParamSpec('mu', -10, 10, 0.0)], loglike, logprior,
                    mcmc_config={'burnin': 1000, 'samples': 5000, 'rungs': 4})
    out['draws']
"""
# CRITICAL: Import jax_config FIRST to set environment variables before JAX loads
from . import jax_config  # noqa: F401

from .error_handling import (
    ConfigError,
    CallbackError,
    NumericDegeneracy,
    ChainAborted,
    validate_mcmc_config,
    diagnose_chain_result,
    print_diagnostics,
)
from .param_specs import (
    ParamSpec,
    TransType,
    make_param_specs,
    validate_param_specs,
)

# Main MCMC entry points
from .mcmc import (
    run_chain,
    run_mcmc,
    build_beta_ladder,
    compute_rhat,
    autocorrelation,
)
