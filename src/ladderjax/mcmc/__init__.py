"""
MCMC Subpackage - Core Metropolis-coupled sampling implementation.

This package contains the core MCMC sampling logic:
- backend: Multi-chain driver (run_mcmc)
- single_run: Single-chain engine (run_chain) and helpers
- compile: Chunk kernel compilation and caching
- config: Configuration and initialization
- phases: Burn-in / sampling phase controller
- diagnostics: Acceptance summaries, R-hat and autocorrelation
- tempering: Temperature ladder and swap protocol
- sampling: Per-rung proposals and Metropolis updates
- scan: JAX scan body
- transforms: Natural <-> working domain reparameterization
- types: Core data structures (ParamArrays, PhaseParams, carries)
- utils: Config defaults
"""

# Import types first (needed by other modules)
from .types import ParamArrays, PhaseParams, build_param_arrays

# Import main entry points
from .backend import run_mcmc
from .single_run import run_chain

# Import commonly used functions
from .config import configure_chain, initialize_chain
from .phases import PhaseController, build_phase_list
from .tempering import build_beta_ladder, beta_midpoints
from .transforms import to_working, to_natural
from .diagnostics import (
    compute_rhat,
    compute_and_print_rhat,
    autocorrelation,
    print_acceptance_summary,
    print_swap_acceptance_summary,
)
from .compile import clear_kernel_cache

__all__ = [
    # Main entry points
    'run_mcmc',
    'run_chain',
    # Types
    'ParamArrays',
    'PhaseParams',
    'build_param_arrays',
    # Config
    'configure_chain',
    'initialize_chain',
    'PhaseController',
    'build_phase_list',
    # Ladder and transforms
    'build_beta_ladder',
    'beta_midpoints',
    'to_working',
    'to_natural',
    # Diagnostics
    'compute_rhat',
    'compute_and_print_rhat',
    'autocorrelation',
    'print_acceptance_summary',
    'print_swap_acceptance_summary',
    # Compile
    'clear_kernel_cache',
]
