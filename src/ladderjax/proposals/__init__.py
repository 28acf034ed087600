"""
Proposal Distributions for MCMC Sampling

This package implements the two proposal adapters used by every rung:

- bandwidth: per-parameter univariate random walk, one bandwidth per
  parameter, Robbins-Monro adapted toward 0.44 acceptance
- covariance: joint multivariate random walk using the rung's running
  covariance (Welford), scalar multiplier adapted toward 0.234 acceptance

Both proposals are symmetric, so each returns a zero Hastings ratio; the
only correction applied by the rung step is the reparameterization
Jacobian.

All proposal functions return (proposal, log_hastings_ratio, new_key).
Adapter updates are pure functions returning the new adapter values; the
rung step decides whether the current phase applies them.
"""

from .bandwidth import univariate_proposal, adapt_bandwidth
from .covariance import (
    multivariate_proposal,
    adapt_joint_scale,
    welford_update,
    refresh_cholesky,
)
from .common import robbins_monro_update

__all__ = [
    'univariate_proposal',
    'adapt_bandwidth',
    'multivariate_proposal',
    'adapt_joint_scale',
    'welford_update',
    'refresh_cholesky',
    'robbins_monro_update',
]
