"""
Error Handling and Validation Utilities for the MCMC Engine

This module defines the error kinds raised by the sampler and provides
validation functions and diagnostic tools for chain results.

Error kinds:
    ConfigError       - invalid configuration, raised before sampling starts
    CallbackError     - user loglike/logprior returned NaN/+inf or raised
    NumericDegeneracy - warning category for recovered covariance failures
    ChainAborted      - chain cancelled between chunks
"""

from typing import Any, Dict

import numpy as np

import logging
logger = logging.getLogger('ladderjax')


class ConfigError(ValueError):
    """Invalid parameter specs or run configuration. Never recovered."""


class CallbackError(RuntimeError):
    """A user callback returned NaN/+inf or raised. Fatal for the chain."""


class NumericDegeneracy(RuntimeWarning):
    """Covariance adaptation produced a non-positive-definite matrix."""


class ChainAborted(RuntimeError):
    """Chain was cancelled between chunks; partial draws are discarded."""


def _is_flag_list(value) -> bool:
    return isinstance(value, (list, tuple))


def _is_number(value) -> bool:
    """Real scalar (bools excluded)."""
    if isinstance(value, (bool, np.bool_)):
        return False
    return isinstance(value, (int, float, np.integer, np.floating))


def _is_count(value, minimum: int = 0) -> bool:
    """Whole number >= minimum."""
    return _is_number(value) and bool(np.isfinite(value)) and int(value) == value and value >= minimum


def validate_mcmc_config(mcmc_config: Dict[str, Any]) -> None:
    """
    Validates that the MCMC configuration is sensible.

    All problems are collected and reported together, including values of
    the wrong type.

    Args:
        mcmc_config: Configuration dictionary (after clean_config)

    Raises:
        ConfigError: If configuration is invalid
    """
    errors = []

    burnin = mcmc_config.get('burnin', 0)
    burnin_list = list(burnin) if _is_flag_list(burnin) else [burnin]
    for i, n in enumerate(burnin_list):
        if not _is_count(n):
            errors.append(f"burnin[{i}] must be a non-negative integer, got {n!r}")
    n_phases = len(burnin_list)

    for key in ('bw_update', 'cov_update', 'coupling_on'):
        value = mcmc_config.get(key, True)
        if _is_flag_list(value) and len(value) != n_phases:
            errors.append(
                f"{key} has {len(value)} entries but there are {n_phases} burn-in phases"
            )

    samples = mcmc_config.get('samples', 0)
    if not _is_count(samples):
        errors.append(f"samples must be a non-negative integer, got {samples!r}")

    rungs = mcmc_config.get('rungs', 1)
    if not _is_count(rungs, 1):
        errors.append(f"rungs must be an integer >= 1, got {rungs!r}")

    gti_pow = mcmc_config.get('gti_pow', 1.0)
    if not _is_number(gti_pow) or not np.isfinite(gti_pow) or gti_pow < 1:
        errors.append(f"gti_pow must be a finite number >= 1, got {gti_pow!r}")

    for key in ('swap_interval', 'chunk_size', 'chains'):
        value = mcmc_config.get(key, 1)
        if not _is_count(value, 1):
            errors.append(f"{key} must be an integer >= 1, got {value!r}")

    bw_init = mcmc_config.get('bw_init', 0.1)
    if not _is_number(bw_init) or not np.isfinite(bw_init) or bw_init <= 0:
        errors.append(f"bw_init must be a positive finite number, got {bw_init!r}")

    cov_min_samples = mcmc_config.get('cov_min_samples', 2)
    if not _is_count(cov_min_samples, 2):
        errors.append(f"cov_min_samples must be an integer >= 2, got {cov_min_samples!r}")

    beta_manual = mcmc_config.get('beta_manual')
    betas = None
    if beta_manual is not None:
        try:
            betas = np.asarray(beta_manual, dtype=float).ravel()
        except (TypeError, ValueError):
            errors.append(f"beta_manual must be a sequence of numbers, got {beta_manual!r}")

    if betas is not None:
        if betas.size == 0:
            errors.append("beta_manual must not be empty")
        elif np.any(~np.isfinite(betas)) or np.any(betas < 0) or np.any(betas > 1):
            errors.append("beta_manual values must lie in [0, 1]")
        else:
            steps = np.diff(betas)
            if betas.size > 1 and not (np.all(steps > 0) or np.all(steps < 0)):
                errors.append("beta_manual must be strictly monotone")
            elif max(betas[0], betas[-1]) != 1.0:
                errors.append("beta_manual must contain 1.0 at its cold end")
            elif betas.size != rungs:
                errors.append(
                    f"beta_manual has {betas.size} values but rungs = {rungs}"
                )

    if errors:
        raise ConfigError("Invalid MCMC configuration:\n  " + "\n  ".join(errors))


def diagnose_chain_result(result: Dict[str, Any]) -> Dict[str, Any]:
    """
    Analyzes a single chain result to identify common issues.

    Args:
        result: Dict returned by run_chain

    Returns:
        diagnostics: Dictionary with issues, warnings, and info
    """
    report = {
        'issues': [],
        'warnings': [],
        'info': []
    }

    draws = result['draws']
    diagnostics = result['diagnostics']

    if draws.size and not np.all(np.isfinite(draws)):
        report['issues'].append(
            "Draws contain NaN or Inf values - sampler became unstable"
        )

    if draws.shape[0] > 1:
        stuck = np.var(draws, axis=0) < 1e-12
        if np.any(stuck):
            names = [n for n, s in zip(result['param_names'], stuck) if s]
            report['warnings'].append(
                f"Parameter(s) {', '.join(names)} appear stuck (near-zero variance)"
            )

    sampling = [p for p in diagnostics['phases'] if p['name'] == 'sampling']
    if sampling:
        cold_rate = sampling[0]['acceptance_rate'][0]
        if cold_rate < 0.05:
            report['warnings'].append(
                f"Cold rung acceptance rate is {cold_rate:.1%} during sampling"
            )

    n_degenerate = int(np.sum(diagnostics['degeneracy_count']))
    if n_degenerate > 0:
        report['warnings'].append(
            f"{n_degenerate} covariance update(s) were not positive definite"
        )

    report['info'].append(f"Total samples: {draws.shape[0]}")
    report['info'].append(f"Number of rungs: {len(diagnostics['beta_raised'])}")
    report['info'].append(f"Number of parameters: {len(result['param_names'])}")

    return report


def print_diagnostics(report: Dict[str, Any]) -> None:
    """Pretty-print a report from diagnose_chain_result."""
    if report['issues']:
        logger.error("[ERROR] ISSUES:")
        for issue in report['issues']:
            logger.error(f"  - {issue}")

    if report['warnings']:
        logger.warning("[WARN] WARNINGS:")
        for warning in report['warnings']:
            logger.warning(f"  - {warning}")

    if report['info']:
        logger.info("[INFO] INFO:")
        for info in report['info']:
            logger.info(f"  - {info}")

    if not report['issues'] and not report['warnings']:
        logger.info("[OK] No issues detected")
