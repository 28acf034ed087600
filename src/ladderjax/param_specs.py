"""
Parameter Specification System

This module defines how model parameters are declared: a name, bounds, an
initial value and the transformation used to map the bounded natural domain
onto the unconstrained working domain the sampler moves in.

A parameter's transformation is chosen from its bounds:
    (-inf, inf)   -> NONE
    [min,  inf)   -> LOG_LOWER   natural = min + exp(w)
    (-inf, max]   -> LOG_UPPER   natural = max - exp(w)
    [min,  max]   -> LOGIT       natural = min + (max - min) * sigmoid(w)
"""

from dataclasses import dataclass
from enum import IntEnum
from typing import Optional, Union, List, Sequence
import numpy as np

from .error_handling import ConfigError


# ============================================================================
# TRANSFORMATION TYPE ENUMERATION
# ============================================================================

class TransType(IntEnum):
    """
    Enumeration of natural -> working domain transformations.

    IntEnum values are stored in a JAX int array and dispatched with
    jnp.where, so the order matters.
    """
    NONE = 0       # Unbounded: identity
    LOG_LOWER = 1  # Bounded below only
    LOG_UPPER = 2  # Bounded above only
    LOGIT = 3      # Bounded on both sides

    def __str__(self):
        return self.name.replace('_', ' ').lower()


def infer_trans_type(min_val: float, max_val: float) -> TransType:
    """Pick the transformation implied by a pair of bounds."""
    lower_finite = np.isfinite(min_val)
    upper_finite = np.isfinite(max_val)
    if lower_finite and upper_finite:
        return TransType.LOGIT
    if lower_finite:
        return TransType.LOG_LOWER
    if upper_finite:
        return TransType.LOG_UPPER
    return TransType.NONE


def _resolve_trans_type(value, min_val: float, max_val: float) -> TransType:
    """Resolve None / string / int / TransType against the bounds."""
    if value is None:
        return infer_trans_type(min_val, max_val)
    if isinstance(value, str):
        key = value.strip().lower()
        if key == 'none':
            return TransType.NONE
        if key == 'log':
            inferred = infer_trans_type(min_val, max_val)
            # 'log' on a two-sided or unbounded parameter is reported by validation
            if inferred in (TransType.LOG_LOWER, TransType.LOG_UPPER):
                return inferred
            return TransType.LOG_LOWER if np.isfinite(min_val) else TransType.LOG_UPPER
        if key == 'logit':
            return TransType.LOGIT
        raise ConfigError(f"Unknown trans_type '{value}' (expected 'none', 'log' or 'logit')")
    try:
        return TransType(int(value))
    except ValueError:
        raise ConfigError(f"Unknown trans_type {value!r}") from None


# ============================================================================
# PARAMETER SPECIFICATION
# ============================================================================

@dataclass
class ParamSpec:
    """
    Specification for a single model parameter.

    Attributes:
        name: Parameter name used in results and diagnostics
        min: Lower bound in the natural domain (-inf allowed)
        max: Upper bound in the natural domain (+inf allowed)
        init: Initial value, strictly inside (min, max)
        trans_type: None to infer from the bounds, 'none' / 'log' / 'logit',
            or a TransType

    Examples:
        ParamSpec('mu', -10, 10, 0.0)
        ParamSpec('sigma', 0, np.inf, 1.0)
        ParamSpec('p', 0, 1, 0.5, trans_type='logit')
    """
    name: str
    min: float = -np.inf
    max: float = np.inf
    init: float = 0.0
    trans_type: Optional[Union[str, int, TransType]] = None

    def __post_init__(self):
        self.min = float(self.min)
        self.max = float(self.max)
        self.init = float(self.init)
        self.trans_type = _resolve_trans_type(self.trans_type, self.min, self.max)

    def validate(self) -> List[str]:
        """Return a list of problems with this spec (empty if valid)."""
        errors = []
        label = f"Parameter '{self.name}'"

        if np.isnan(self.min) or np.isnan(self.max):
            errors.append(f"{label}: bounds must not be NaN")
            return errors
        if self.min == np.inf or self.max == -np.inf:
            errors.append(f"{label}: min must not be +inf and max must not be -inf")
            return errors
        if not self.min < self.max:
            errors.append(f"{label}: min ({self.min}) must be < max ({self.max})")
            return errors

        if not np.isfinite(self.init):
            errors.append(f"{label}: init must be finite, got {self.init}")
        elif not (self.min < self.init < self.max):
            errors.append(
                f"{label}: init ({self.init}) must lie strictly inside ({self.min}, {self.max})"
            )

        expected = infer_trans_type(self.min, self.max)
        if self.trans_type != expected:
            errors.append(
                f"{label}: trans_type '{self.trans_type}' is inconsistent with bounds "
                f"({self.min}, {self.max}); expected '{expected}'"
            )
        return errors


def make_param_specs(params) -> List[ParamSpec]:
    """
    Build ParamSpec objects from specs, dicts or (name, min, max, init) tuples.

    Dict input follows the usual data-frame layout:
        {'name': [...], 'min': [...], 'max': [...], 'init': [...]}
    """
    if isinstance(params, dict):
        names = list(params['name'])
        n = len(names)
        trans = params.get('trans_type', [None] * n)
        return [
            ParamSpec(names[i], params['min'][i], params['max'][i], params['init'][i], trans[i])
            for i in range(n)
        ]

    specs = []
    for p in params:
        if isinstance(p, ParamSpec):
            specs.append(p)
        elif isinstance(p, dict):
            specs.append(ParamSpec(**p))
        else:
            specs.append(ParamSpec(*p))
    return specs


def validate_param_specs(specs: Sequence[ParamSpec]) -> None:
    """
    Validate a list of parameter specs.

    Raises:
        ConfigError: Listing every invalid spec
    """
    if not specs:
        raise ConfigError("At least one parameter must be specified")

    errors = []
    names = [spec.name for spec in specs]
    duplicates = sorted({n for n in names if names.count(n) > 1})
    if duplicates:
        errors.append(f"Duplicate parameter names: {duplicates}")
    for spec in specs:
        errors.extend(spec.validate())

    if errors:
        raise ConfigError("Invalid parameter specification:\n  " + "\n  ".join(errors))
