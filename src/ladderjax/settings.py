"""
Tuning constants for proposal adaptation.

Target acceptance rates follow the usual optimal-scaling results for
random-walk Metropolis: 0.44 for one-dimensional moves and 0.234 for
moves in many dimensions.

To change a default used by the sampler:
1. Update the constant here
2. Config keys in mcmc.utils.clean_config override the defaults per run
"""

# Robbins-Monro targets
TARGET_ACCEPT_UNIVARIATE = 0.44
TARGET_ACCEPT_MULTIVARIATE = 0.234

# Optimal-scaling constant for the initial joint-move scale: 2.38 / sqrt(d)
JOINT_SCALE_CONSTANT = 2.38

# Regularization added to the running covariance before factorization.
# Small enough to not affect well-conditioned matrices, large enough to
# keep the factorization stable when one direction has barely moved.
COV_NUGGET = 1e-8

# Default run configuration (see mcmc.utils.clean_config)
CONFIG_DEFAULTS = {
    'burnin': 1000,
    'samples': 1000,
    'rungs': 1,
    'gti_pow': 1.0,
    'beta_manual': None,
    'bw_update': True,
    'cov_update': True,
    'coupling_on': True,
    'coupling_on_sampling': True,
    'swap_interval': 1,
    'use_deo': True,
    'bw_init': 0.1,
    'cov_min_samples': 50,
    'save_all_rungs': False,
    'save_burnin': False,
    'chunk_size': 500,
    'rng_seed': 42,
    'use_double': True,
    'chains': 1,
}
