"""
MCMC Kernel Compilation and Caching.

This module handles JAX compilation of the per-chunk kernel:
- _run_mcmc_chunk: Module-level chunk runner for cache-stable tracing
- get_chunk_kernel: Compiled kernel for a (callbacks, phase, chunk length) combination
- _COMPILED_KERNEL_CACHE: In-memory cache for compiled kernels

A phase of N iterations runs as a sequence of chunks so that the driver can
log progress, check for cancellation and surface callback errors between
chunks. Every full chunk of a phase reuses the same compiled kernel; only a
shorter final chunk triggers a second compilation.
"""

import jax
import jax.numpy as jnp
import time
from functools import partial
from typing import Callable, Dict, Tuple

from .scan import mcmc_iteration
from .types import PhaseParams

import logging
logger = logging.getLogger('ladderjax')


# --- COMPILED FUNCTION CACHE ---
# Compiled kernels keyed by (callbacks, phase params, chunk length), within session
_COMPILED_KERNEL_CACHE = {}


def _run_mcmc_chunk(carry, betas, param_arrays, data, misc,
                    n_iter, loglike_fn, logprior_fn, phase_params):
    """
    Module-level chunk runner.

    Data and misc are passed as explicit traced arguments (not captured via
    closure), so the callbacks only ever see them as read-only inputs.

    Args:
        carry: ChainCarry
        betas: Thermodynamic powers (R,) (traced)
        param_arrays: ParamArrays (traced)
        data, misc: Callback contexts (traced pytrees)
        n_iter: Iterations in this chunk (static)
        loglike_fn, logprior_fn: User callbacks (static)
        phase_params: PhaseParams (static)

    Returns:
        (final_carry, recorded) where recorded stacks per-iteration outputs
    """
    body = partial(
        mcmc_iteration,
        betas=betas,
        param_arrays=param_arrays,
        data=data,
        misc=misc,
        loglike_fn=loglike_fn,
        logprior_fn=logprior_fn,
        phase_params=phase_params,
    )
    return jax.lax.scan(body, carry, None, length=n_iter)


_run_mcmc_chunk_jit = jax.jit(
    _run_mcmc_chunk,
    static_argnames=('n_iter', 'loglike_fn', 'logprior_fn', 'phase_params')
)


def get_compiled_kernel_cache() -> Dict:
    """Get reference to the compiled kernel cache."""
    return _COMPILED_KERNEL_CACHE


def clear_kernel_cache() -> None:
    """Drop all cached kernels. Primarily for testing."""
    _COMPILED_KERNEL_CACHE.clear()


def get_chunk_kernel(
    n_iter: int,
    loglike_fn: Callable,
    logprior_fn: Callable,
    phase_params: PhaseParams,
) -> Tuple[Callable, bool]:
    """
    Return the kernel running n_iter iterations of the given phase.

    Args:
        n_iter: Iterations per call
        loglike_fn, logprior_fn: User callbacks
        phase_params: Static phase configuration

    Returns:
        (kernel, is_new): kernel(carry, betas, param_arrays, data, misc) ->
        (carry, recorded); is_new is True the first time this key is seen
    """
    cache_key = (loglike_fn, logprior_fn, phase_params, n_iter)
    kernel = _COMPILED_KERNEL_CACHE.get(cache_key)
    if kernel is not None:
        return kernel, False

    kernel = partial(
        _run_mcmc_chunk_jit,
        n_iter=n_iter,
        loglike_fn=loglike_fn,
        logprior_fn=logprior_fn,
        phase_params=phase_params,
    )
    _COMPILED_KERNEL_CACHE[cache_key] = kernel
    return kernel, True


def run_chunk(carry, betas, param_arrays, data, misc, n_iter, loglike_fn, logprior_fn,
              phase_params: PhaseParams):
    """
    Run one chunk, logging compile time the first time a kernel is used.

    Returns:
        (carry, recorded) with device arrays ready
    """
    kernel, is_new = get_chunk_kernel(n_iter, loglike_fn, logprior_fn, phase_params)
    if is_new:
        logger.debug(f"Compiling kernel for phase '{phase_params.NAME}' ({n_iter} iterations)...")
        start = time.perf_counter()

    carry, recorded = kernel(carry, betas, param_arrays, data, misc)
    jax.block_until_ready(carry)

    if is_new:
        logger.debug(f"  Compiled and ran in {time.perf_counter() - start:.4f}s")
    return carry, recorded
