"""
MCMC Sampling Functions.

Core sampling functions for a single rung:
- call_user_callbacks: Evaluate loglike/logprior, surfacing exceptions as CallbackError
- evaluate_state: Working state -> (loglike, logprior, log_jacobian, bad flag)
- tempered_log_posterior: beta * loglike + logprior + log_jacobian
- metropolis_accept: Metropolis decision with -inf / NaN handling
- rung_step: One full update of one rung (per-parameter sweep + joint move)
- parallel_rung_step: Vmapped version over all rungs of the ladder
"""

import jax
import jax.numpy as jnp
import jax.random as random
from functools import partial

from ..error_handling import CallbackError
from ..proposals import (
    univariate_proposal,
    adapt_bandwidth,
    multivariate_proposal,
    adapt_joint_scale,
)
from .transforms import to_natural
from .types import ParamArrays, PhaseParams, LadderState, AdapterState


def call_user_callbacks(theta_natural, loglike_fn, logprior_fn, data, misc):
    """
    Evaluate the user's log-likelihood and log-prior at theta_natural.

    Exceptions raised by the callbacks (including while JAX traces them)
    are re-raised as CallbackError.

    Returns:
        (loglike, logprior) as scalars
    """
    try:
        ll = loglike_fn(theta_natural, data, misc)
        lp = logprior_fn(theta_natural, misc)
    except CallbackError:
        raise
    except Exception as e:
        raise CallbackError(
            f"User callback raised {type(e).__name__}: {e}"
        ) from e

    dtype = theta_natural.dtype
    ll = jnp.reshape(jnp.asarray(ll, dtype=dtype), ())
    lp = jnp.reshape(jnp.asarray(lp, dtype=dtype), ())
    return ll, lp


def evaluate_state(theta_work, param_arrays: ParamArrays, loglike_fn, logprior_fn, data, misc):
    """
    Map a working state to the natural domain and evaluate the callbacks.

    Returns:
        loglike: Untempered log-likelihood
        logprior: Log-prior
        log_jacobian: Summed log-Jacobian of the working -> natural map
        bad: True if either callback returned NaN or +inf
    """
    theta_natural, log_jacobian = to_natural(theta_work, param_arrays)
    ll, lp = call_user_callbacks(theta_natural, loglike_fn, logprior_fn, data, misc)
    # -inf is a legal "outside support" signal; NaN and +inf are errors
    bad = jnp.isnan(ll) | jnp.isnan(lp) | (ll == jnp.inf) | (lp == jnp.inf)
    return ll, lp, log_jacobian, bad


def tempered_log_posterior(beta, loglike, logprior, log_jacobian):
    """
    Tempered log-posterior in the working domain.

    At beta = 0 the likelihood is ignored entirely, so an out-of-support
    likelihood (-inf) contributes 0 rather than NaN.
    """
    tempered_ll = jnp.where(beta == 0, 0.0, beta * loglike)
    return tempered_ll + logprior + log_jacobian


def metropolis_accept(key, lp_proposed, lp_current, bad):
    """
    Metropolis decision: accept with probability min(1, exp(lp_proposed - lp_current)).

    A -inf proposal is always rejected. NaN ratios and flagged callback errors
    are forced to rejection here; the error flag is reported separately.
    """
    log_ratio = lp_proposed - lp_current
    log_ratio = jnp.where(jnp.isnan(log_ratio) | bad, -jnp.inf, log_ratio)
    log_uniform = jnp.log(random.uniform(key, dtype=lp_current.dtype))
    return log_uniform < log_ratio


def rung_step(key, rung: LadderState, adapter: AdapterState, beta,
              param_arrays: ParamArrays, data, misc,
              loglike_fn, logprior_fn, phase_params: PhaseParams):
    """
    Perform one full update of a single rung.

    1. Per-parameter sweep: each coordinate in turn gets a univariate move
       with its own bandwidth (adapted toward 0.44 when BW_UPDATE).
    2. Joint move (d > 1): a multivariate move using the rung's adapted
       covariance, active once COV_MIN_SAMPLES covariance samples exist
       (scale adapted toward 0.234 when BW_UPDATE).

    Random draws are consumed identically whether or not a move is active,
    so the stream depends only on the seed.

    Args:
        key: JAX random key
        rung: LadderState for this rung (unbatched)
        adapter: AdapterState for this rung (unbatched)
        beta: Thermodynamic power of this rung
        param_arrays: ParamArrays
        data, misc: Read-only callback contexts
        loglike_fn, logprior_fn: User callbacks
        phase_params: Static phase configuration

    Returns:
        rung: Updated LadderState
        adapter: Updated AdapterState
        univar_accepts: (d,) 0/1 accept per coordinate
        joint_accept: 0/1
        joint_attempt: 0/1
        n_bad: Number of proposals with NaN/+inf callback output
    """
    evaluate = partial(evaluate_state, param_arrays=param_arrays,
                       loglike_fn=loglike_fn, logprior_fn=logprior_fn,
                       data=data, misc=misc)

    def sweep_body(carry, param_idx):
        """Univariate Metropolis move on one coordinate."""
        current_key, theta, ll, lp, lj, log_bw, n_bad = carry

        proposal, log_hastings, current_key = univariate_proposal(
            current_key, theta, param_idx, log_bw)
        current_key, accept_key = random.split(current_key)

        ll_p, lp_p, lj_p, bad = evaluate(proposal)
        accept = metropolis_accept(
            accept_key,
            tempered_log_posterior(beta, ll_p, lp_p, lj_p) + log_hastings,
            tempered_log_posterior(beta, ll, lp, lj),
            bad,
        )

        theta = jnp.where(accept, proposal, theta)
        ll = jnp.where(accept, ll_p, ll)
        lp = jnp.where(accept, lp_p, lp)
        lj = jnp.where(accept, lj_p, lj)
        if phase_params.BW_UPDATE:
            log_bw = adapt_bandwidth(log_bw, param_idx, accept, adapter.bw_index)
        n_bad = n_bad + bad.astype(jnp.int32)

        return (current_key, theta, ll, lp, lj, log_bw, n_bad), accept.astype(jnp.int32)

    init = (key, rung.theta_work, rung.loglike, rung.logprior, rung.log_jacobian,
            adapter.log_bw, jnp.array(0, dtype=jnp.int32))
    (key, theta, ll, lp, lj, log_bw, n_bad), univar_accepts = jax.lax.scan(
        sweep_body, init, jnp.arange(phase_params.N_PARAMS)
    )

    log_bw_multi = adapter.log_bw_multi
    joint_accept = jnp.array(0, dtype=jnp.int32)
    joint_attempt = jnp.array(0, dtype=jnp.int32)

    if phase_params.N_PARAMS > 1:
        ready = adapter.cov_count >= phase_params.COV_MIN_SAMPLES

        proposal, log_hastings, key = multivariate_proposal(
            key, theta, log_bw_multi, adapter.cov_chol)
        key, accept_key = random.split(key)

        ll_p, lp_p, lj_p, bad = evaluate(proposal)
        bad = bad & ready
        accept = ready & metropolis_accept(
            accept_key,
            tempered_log_posterior(beta, ll_p, lp_p, lj_p) + log_hastings,
            tempered_log_posterior(beta, ll, lp, lj),
            bad,
        )

        theta = jnp.where(accept, proposal, theta)
        ll = jnp.where(accept, ll_p, ll)
        lp = jnp.where(accept, lp_p, lp)
        lj = jnp.where(accept, lj_p, lj)
        if phase_params.BW_UPDATE:
            log_bw_multi = jnp.where(
                ready, adapt_joint_scale(log_bw_multi, accept, adapter.bw_index), log_bw_multi)
        n_bad = n_bad + bad.astype(jnp.int32)
        joint_accept = accept.astype(jnp.int32)
        joint_attempt = ready.astype(jnp.int32)

    bw_index = adapter.bw_index + 1 if phase_params.BW_UPDATE else adapter.bw_index

    new_rung = LadderState(theta_work=theta, loglike=ll, logprior=lp, log_jacobian=lj)
    new_adapter = adapter._replace(log_bw=log_bw, log_bw_multi=log_bw_multi, bw_index=bw_index)
    return new_rung, new_adapter, univar_accepts, joint_accept, joint_attempt, n_bad


def parallel_rung_step(keys, ladder: LadderState, adapter: AdapterState, betas,
                       param_arrays: ParamArrays, data, misc,
                       loglike_fn, logprior_fn, phase_params: PhaseParams):
    """
    Step every rung of the ladder. Rungs have no data dependency on each other.

    Args:
        keys: Random keys, one per rung (R,)
        ladder: LadderState batched over rungs
        adapter: AdapterState batched over rungs
        betas: Thermodynamic powers (R,)
        (remaining arguments shared across rungs)
    """
    step = partial(rung_step, param_arrays=param_arrays, data=data, misc=misc,
                   loglike_fn=loglike_fn, logprior_fn=logprior_fn,
                   phase_params=phase_params)
    return jax.vmap(step)(keys, ladder, adapter, betas)
