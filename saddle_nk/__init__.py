"""saddle_nk: index-constrained Jacobian-free Newton-Krylov tooling.

This package locates critical points of a potential ``E`` whose Hessian has a
prescribed number of negative eigenvalues (the *saddle index*), using only
evaluations of the gradient ``dE``::

    dE(x) = 0,   #{negative eigenvalues of Hess E(x)} = saddleindex .

``saddleindex = 0`` returns minima only, ``saddleindex = 1`` index-1 saddles
(transition states) and so forth.

High-level entry point
----------------------
``nsolistab`` builds a :class:`StabilizedNewtonSolver` and runs it from a
starting point, returning the final iterate and the number of gradient
evaluations.

Low-level workflow
------------------
1. Pick a preconditioner (:class:`IdentityPreconditioner` by default, or a
   :class:`MatrixPreconditioner`).
2. Pick a direction builder: :class:`LanczosSubspaceBuilder` (default,
   eigenvalue aware) or :class:`NewtonGMRESBuilder` (plain Newton-GMRES).
3. Construct :class:`StabilizedNewtonSolver` and call ``solve(dE, x0)``.

The Krylov kernels ``dirder``, ``givapp`` and ``dgmres`` are exported for
use on their own.

Quick start
-----------
>>> import numpy as np
>>> from saddle_nk import nsolistab
>>> def dE(x):  # E = (x1^2 - 1)^2 + x2^2
...     return np.array([4 * x[0] * (x[0] ** 2 - 1), 2 * x[1]])
>>> x, numdE = nsolistab(dE, np.array([0.3, 0.2]), 1, verbose=0)
>>> bool(np.linalg.norm(x) < 1e-4)
True
"""

import numpy as np

from .krylov import dirder, givapp, dgmres
from .preconditioners import Preconditioner, IdentityPreconditioner, MatrixPreconditioner
from .subspace import (
    SubspaceBuilder,
    LanczosSubspaceBuilder,
    NewtonGMRESBuilder,
    RitzEstimate,
    indexp,
)
from .linesearch import ArmijoFailure, parab3p
from .nonlinear_solvers import StabilizedNewtonSolver, eisenstat_walker

__version__ = "0.1.0"

# Curated public API
__all__ = [
    'nsolistab',
    # Driver
    'StabilizedNewtonSolver', 'eisenstat_walker', 'ArmijoFailure', 'parab3p',
    # Krylov kernels
    'dirder', 'givapp', 'dgmres',
    # Direction builders
    'SubspaceBuilder', 'LanczosSubspaceBuilder', 'NewtonGMRESBuilder', 'RitzEstimate', 'indexp',
    # Preconditioners
    'Preconditioner', 'IdentityPreconditioner', 'MatrixPreconditioner',
]


def nsolistab(
    dE,
    x0,
    saddleindex,
    tol=1e-5,
    maxnumdE=200,
    maxstep=np.inf,
    hfd=1e-7,
    P=None,
    precon_prep=None,
    eigatol=1e-1,
    eigrtol=1e-1,
    verbose=1,
    V0=None,
    krylovinit='resrot',
    solver_opts=None,
):
    """Compute a critical point of ``E`` with prescribed ``saddleindex``.

    Parameters
    ----------
    dE : callable
      Gradient of the potential, ``dE(x) -> ndarray``.
    x0 : array_like, shape (d,)
      Initial condition.
    saddleindex : int
      Number of negative Hessian eigenvalues of the sought critical point.
      Under idealising assumptions the iteration has exactly these critical
      points as stable equilibria; all others are unstable.
    tol : float, default 1e-5
      Stop when ``||dE(x)||_inf <= tol``.
    maxnumdE : int, default 200
      Budget of ``dE`` evaluations.
    maxstep : float, default inf
      Bound on the inf-norm of every accepted step.
    hfd : float, default 1e-7
      Finite difference increment for Hessian-vector products.
    P : Preconditioner, ndarray or None
      Preconditioner (identity if ``None``).
    precon_prep : callable or None
      ``precon_prep(P, x) -> P`` refreshing ``P`` at each new iterate.
    eigatol, eigrtol : float, default 0.1
      Eigen-residual tolerances of the subspace builder.
    verbose : int, default 1
      0 silent, 1 progress, >2 debug trace.
    V0 : ndarray or None
      Initial eigenvector guess, shape ``(d, k)``; random if ``None``.
    krylovinit : {'resrot', 'res', 'rand', 'rot'}
      Initial subspace policy (a leading ``':'`` is accepted).
    solver_opts : dict or None
      Further keyword arguments for :class:`StabilizedNewtonSolver`
      (``subspace_builder``, ``seed``, ``kmax``, ``etamax``, ...).

    Returns
    -------
    x : ndarray
      Final iterate.
    numdE : int
      Number of ``dE`` evaluations. If the budget was exhausted a
      ``RuntimeWarning`` is emitted and the last iterate is returned.

    Raises
    ------
    ArmijoFailure
      If the Newton line search collapses.
    ValueError
      For invalid options such as an unknown ``krylovinit``.
    """
    if solver_opts is None:
        solver_opts = {}

    solver = StabilizedNewtonSolver(
        saddleindex,
        tol=tol,
        maxnumdE=maxnumdE,
        maxstep=maxstep,
        hfd=hfd,
        P=P,
        precon_prep=precon_prep,
        eigatol=eigatol,
        eigrtol=eigrtol,
        verbose=verbose,
        V0=V0,
        krylovinit=krylovinit,
        **solver_opts,
    )
    return solver.solve(dE, x0)
