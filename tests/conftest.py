"""
Pytest configuration and shared fixtures for ladderjax tests.

Model callbacks are module-level functions so that repeated runs hit the
compiled kernel cache.
"""

import jax

# Unit tests build float64 arrays directly
jax.config.update("jax_enable_x64", True)

import jax.numpy as jnp
import numpy as np
import pytest

from ladderjax import ParamSpec
from ladderjax.mcmc.config import configure_chain, initialize_chain, gen_rng_keys


# ============================================================================
# MODEL CALLBACKS
# ============================================================================

def normal_loglike(theta, data, misc):
    """Independent unit-variance normal observations, one column per parameter."""
    return -0.5 * jnp.sum((data['x'] - theta) ** 2)


def normal_logprior(theta, misc):
    """Independent normal priors N(m0, s0^2)."""
    return -0.5 * jnp.sum(((theta - misc['m0']) / misc['s0']) ** 2)


def flat_logprior(theta, misc):
    """Uniform prior on a bounded box (constant inside the bounds)."""
    return 0.0


def constant_loglike(theta, data, misc):
    """Flat likelihood: with a flat prior on unbounded parameters the target is improper."""
    return 0.0


def std_normal_loglike(theta, data, misc):
    """Standard normal target, data unused."""
    return -0.5 * jnp.sum(theta ** 2)


def bimodal_loglike(theta, data, misc):
    """Observations with mean alpha^2 * beta: symmetric modes in alpha."""
    alpha, beta = theta[0], theta[1]
    return -0.5 * jnp.sum((data['x'] - alpha ** 2 * beta) ** 2)


def nan_above_one_loglike(theta, data, misc):
    """Standard normal that returns NaN once theta[0] exceeds 1."""
    return jnp.where(theta[0] > 1.0, jnp.nan, -0.5 * jnp.sum(theta ** 2))


def support_below_half_logprior(theta, misc):
    """Flat prior supported on theta[0] < 0.5 only."""
    return jnp.where(theta[0] < 0.5, 0.0, -jnp.inf)


def raising_loglike(theta, data, misc):
    raise ValueError("boom")


def python_branch_loglike(theta, data, misc):
    """Not traceable: Python control flow on a parameter value."""
    if theta[0] > 0:
        return -theta[0]
    return theta[0]


# ============================================================================
# FIXTURES
# ============================================================================

@pytest.fixture
def quick_config():
    """Short run configuration for structural tests."""
    return {
        'burnin': 100,
        'samples': 100,
        'rungs': 3,
        'chunk_size': 50,
        'rng_seed': 42,
    }


@pytest.fixture
def normal_model():
    """Two independent Normal-Normal conjugate problems."""
    rng = np.random.default_rng(3)
    x = rng.normal(loc=[1.0, -2.0], scale=1.0, size=(20, 2))
    data = {'x': x}
    misc = {'m0': np.array([0.0, 0.0]), 's0': np.array([2.0, 2.0])}
    params = [ParamSpec('mu1', init=0.0), ParamSpec('mu2', init=0.0)]
    return data, misc, params


@pytest.fixture
def bimodal_model():
    """100 points with mean 10 = alpha^2 * beta: modes at alpha > 0 and alpha < 0."""
    rng = np.random.default_rng(11)
    data = {'x': rng.normal(loc=10.0, size=(100,))}
    params = [ParamSpec('alpha', min=-10, max=10, init=3.0),
              ParamSpec('beta', min=0, max=10, init=1.0)]
    return data, params


@pytest.fixture
def std_normal_params():
    return [ParamSpec('theta', init=0.5)]


@pytest.fixture
def single_precision():
    """For runs with use_double=False: restores x64 for the tests that follow."""
    yield
    jax.config.update("jax_enable_x64", True)


# ============================================================================
# HELPERS
# ============================================================================

def normal_normal_posterior(x, m0, s0):
    """Posterior mean and sd of mu for unit-variance data x and prior N(m0, s0^2)."""
    n = x.shape[0]
    precision = 1.0 / s0 ** 2 + n
    mean = (m0 / s0 ** 2 + x.sum(axis=0)) / precision
    return mean, 1.0 / np.sqrt(precision)


def setup_chain(params, loglike, logprior, data=None, misc=None, mcmc_config=None, seed=0):
    """Configure and initialize a chain; returns (carry, user_config, runtime_ctx, model_ctx)."""
    user_config, runtime_ctx, model_ctx = configure_chain(mcmc_config or {}, params, data, misc)
    carry = initialize_chain(gen_rng_keys(seed), user_config, runtime_ctx, loglike, logprior)
    return carry, user_config, runtime_ctx, model_ctx
