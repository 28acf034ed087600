"""
Phase Controller - burn-in / sampling state machine.

A chain moves through a fixed sequence of phases:

    Burnin(0) -> Burnin(1) -> ... -> Sampling -> Done

Each burn-in phase has its own length and its own switches for bandwidth
adaptation, covariance adaptation and Metropolis coupling. Sampling never
adapts; its coupling switch comes from 'coupling_on_sampling'. Phase lengths
are fixed, there is no early stopping, and zero-length phases are skipped.

Every phase is described by a PhaseParams, which is the static argument of
the compiled chunk kernel.
"""

from typing import Dict, Any, Iterator, List, Optional

from .types import PhaseParams
from .utils import as_phase_list, burnin_lengths


def build_phase_list(user_config: Dict[str, Any], n_rungs: int, n_params: int) -> List[PhaseParams]:
    """
    Build the PhaseParams for every phase of a chain, in run order.

    Args:
        user_config: Cleaned and validated configuration
        n_rungs: Number of rungs R
        n_params: Number of parameters d

    Returns:
        List of PhaseParams: burn-in phases followed by the sampling phase
    """
    lengths = burnin_lengths(user_config['burnin'])
    n_burnin = len(lengths)
    bw_update = as_phase_list(user_config['bw_update'], n_burnin)
    cov_update = as_phase_list(user_config['cov_update'], n_burnin)
    coupling_on = as_phase_list(user_config['coupling_on'], n_burnin)

    # The joint covariance needs more observations than dimensions
    cov_min_samples = max(int(user_config['cov_min_samples']), n_params + 1)

    shared = dict(
        N_RUNGS=n_rungs,
        N_PARAMS=n_params,
        SWAP_INTERVAL=int(user_config['swap_interval']),
        USE_DEO=bool(user_config['use_deo']),
        COV_MIN_SAMPLES=cov_min_samples,
        RECORD_ALL_RUNGS=bool(user_config['save_all_rungs']),
    )

    phases = []
    for k, n_iter in enumerate(lengths):
        phases.append(PhaseParams(
            NAME=f'burnin_{k}',
            NUM_ITER=n_iter,
            BW_UPDATE=bw_update[k],
            # Covariance is only estimated in dimensions where the joint move exists
            COV_UPDATE=cov_update[k] and n_params > 1,
            COUPLING_ON=coupling_on[k],
            RECORD_DRAWS=bool(user_config['save_burnin']),
            **shared,
        ))

    phases.append(PhaseParams(
        NAME='sampling',
        NUM_ITER=int(user_config['samples']),
        BW_UPDATE=False,
        COV_UPDATE=False,
        COUPLING_ON=bool(user_config['coupling_on_sampling']),
        RECORD_DRAWS=True,
        **shared,
    ))
    return phases


class PhaseController:
    """
    Walks a chain through its phases.

    Usage:
        controller = PhaseController(phases)
        for phase in controller:
            ...run phase.NUM_ITER iterations...
        controller.state  # 'done'
    """

    def __init__(self, phases: List[PhaseParams]):
        self.phases = list(phases)
        self._index = -1

    @classmethod
    def from_config(cls, user_config: Dict[str, Any], n_rungs: int, n_params: int) -> 'PhaseController':
        return cls(build_phase_list(user_config, n_rungs, n_params))

    @property
    def current(self) -> Optional[PhaseParams]:
        """Phase currently running, or None before start and after the last phase."""
        if 0 <= self._index < len(self.phases):
            return self.phases[self._index]
        return None

    @property
    def state(self) -> str:
        """'pending', the current phase name, or 'done'."""
        if self._index < 0:
            return 'pending'
        if self._index >= len(self.phases):
            return 'done'
        return self.phases[self._index].NAME

    @property
    def adapting(self) -> bool:
        """True while the current phase adapts any proposal."""
        phase = self.current
        return phase is not None and (phase.BW_UPDATE or phase.COV_UPDATE)

    def advance(self) -> Optional[PhaseParams]:
        """
        Move to the next non-empty phase.

        Returns:
            The new current phase, or None once every phase has run
        """
        self._index += 1
        while self._index < len(self.phases) and self.phases[self._index].NUM_ITER == 0:
            self._index += 1
        return self.current

    def __iter__(self) -> Iterator[PhaseParams]:
        while self.advance() is not None:
            yield self.current

    @property
    def total_iterations(self) -> int:
        return sum(p.NUM_ITER for p in self.phases)
