# nonlinear_solvers.py  (index-constrained Newton-Krylov driver)

from __future__ import annotations

import warnings
from dataclasses import dataclass

import numpy as np

from . import linesearch
from .preconditioners import as_preconditioner
from .subspace import LanczosSubspaceBuilder, indexp

_KRYLOVINIT = ('res', 'rand', 'rot', 'resrot')


def eisenstat_walker(eta_old: float, fnrm: float, fnrm_old: float, tol: float,
                     gamma: float = 0.9, etamax: float = 0.5) -> float:
    """Forcing term update of Eisenstat & Walker (SIAM J. Sci. Comput. 17, 1996).

    ``eta = gamma (fnrm/fnrm_old)^2``, safeguarded by ``gamma eta_old^2`` when
    that exceeds 0.1, clamped to ``etamax`` and floored at ``0.5 tol/fnrm`` so
    the inner solve is never asked for more than the outer tolerance needs.
    """
    rat = fnrm / fnrm_old
    etanew = gamma * rat ** 2
    if gamma * eta_old ** 2 > 0.1:
        etanew = max(etanew, gamma * eta_old ** 2)
    eta = min(etanew, etamax)
    eta = max(eta, 0.5 * tol / fnrm)
    return eta


@dataclass
class NewtonState:
    """Mutable bookkeeping of one ``StabilizedNewtonSolver.solve`` run."""
    x: np.ndarray
    f0: np.ndarray
    P: object
    v: np.ndarray
    numdE: int = 1
    res: float = np.inf
    fnrm: float = 0.0
    eta: float = 0.5
    alpha_old: float = 1.0
    itc: int = 0


class StabilizedNewtonSolver:
    """Find critical points of a potential ``E`` with a prescribed saddle index.

    A stabilising Jacobian-free Newton-Krylov iteration: ``saddleindex = 0``
    only returns minima, ``saddleindex = 1`` only index-1 saddles and so on.
    Each outer iteration asks the subspace builder for a direction in which
    the Hessian's Ritz values carry the sign pattern of the requested index.
    Genuine Newton directions are globalized by an Armijo line search on
    ``||dE||_P``; flipped directions take a crude secant-corrected step.

    Parameters
    ----------
    saddleindex : int
        Number of negative Hessian eigenvalues at the sought critical point.
    tol : float, default 1e-5
        Convergence threshold on ``||dE(x)||_inf``.
    maxnumdE : int, default 200
        Budget of gradient evaluations.
    maxstep : float, default inf
        Upper bound on ``||x_{k+1} - x_k||_inf``.
    hfd : float, default 1e-7
        Finite difference increment for Hessian-vector products.
    P : Preconditioner, ndarray or None
        Preconditioner; identity when ``None``.
    precon_prep : callable, optional
        ``precon_prep(P, x) -> P`` refreshing the preconditioner at ``x``.
        Defaults to ``P.prepare(x)``.
    eigatol, eigrtol : float, default 0.1
        Absolute / relative eigen-residual tolerances of the subspace builder.
    verbose : int, default 1
        0 silent, 1 progress lines, >2 debug trace. The non-convergence
        ``RuntimeWarning`` is issued at every level.
    V0 : ndarray, optional
        Initial rotation seed, shape ``(d, k)``; random ``(d, saddleindex+1)``
        by default.
    krylovinit : {'resrot', 'res', 'rand', 'rot'}
        Initial subspace for the builder: ``-P^{-1} dE``, ``P^{-1}`` times a
        random vector, the previous eigenvector estimate, or both of the
        first and the last side by side (default).
    subspace_builder : SubspaceBuilder, optional
        Direction builder; :class:`LanczosSubspaceBuilder` by default.
    seed : int or numpy.random.Generator, optional
        Seed for the random initial subspaces.
    etamax, gamma : float
        Eisenstat-Walker parameters.
    kmax : int, optional
        Maximal subspace dimension, ``min(40, d)`` by default.
    c_armijo, min_alpha : float
        Sufficient decrease constant and step-length floor of the line search.
    """

    def __init__(
        self,
        saddleindex: int,
        tol: float = 1e-5,
        maxnumdE: int = 200,
        maxstep: float = np.inf,
        hfd: float = 1e-7,
        P=None,
        precon_prep=None,
        eigatol: float = 1e-1,
        eigrtol: float = 1e-1,
        verbose: int = 1,
        V0=None,
        krylovinit: str = 'resrot',
        subspace_builder=None,
        seed=None,
        etamax: float = 0.5,
        gamma: float = 0.9,
        kmax: int | None = None,
        c_armijo: float = 1e-4,
        min_alpha: float = 1e-8,
    ) -> None:
        if not np.isfinite(saddleindex) or int(saddleindex) != saddleindex or saddleindex < 0:
            raise ValueError("saddleindex must be a non-negative integer.")
        if not tol > 0:
            raise ValueError("tol must be positive.")
        if not (np.isfinite(maxnumdE) and maxnumdE >= 1):
            raise ValueError("maxnumdE must be at least 1.")
        if not maxstep > 0:
            raise ValueError("maxstep must be positive.")
        if not 0 < etamax <= 1:
            raise ValueError("etamax must lie in (0, 1].")

        self.saddleindex = int(saddleindex)
        self.tol = float(tol)
        self.maxnumdE = int(maxnumdE)
        self.maxstep = float(maxstep)
        self.hfd = float(hfd)
        self.P = P
        self.precon_prep = precon_prep
        self.eigatol = float(eigatol)
        self.eigrtol = float(eigrtol)
        self.verbose = int(verbose)
        self.V0 = V0
        self.krylovinit = krylovinit
        self.subspace_builder = subspace_builder or LanczosSubspaceBuilder()
        self.seed = seed
        self.etamax = float(etamax)
        self.gamma = float(gamma)
        self.kmax = kmax
        self.c_armijo = float(c_armijo)
        self.min_alpha = float(min_alpha)

        self._reset_history()

    def _reset_history(self):
        self.state = None
        self.converged = False
        self.eta_history = []
        self.step_history = []
        self.res_history = []
        self.fnrm_history = []
        self.newton_history = []

    # ---------- helpers ----------
    def _prepare(self, P, x):
        if self.precon_prep is not None:
            return as_preconditioner(self.precon_prep(P, x))
        return P.prepare(x)

    def _transform(self, D):
        return indexp(D, self.saddleindex)

    def _initial_subspace(self, state, rng):
        mode = self.krylovinit
        if isinstance(mode, str):
            mode = mode.lstrip(':').lower()
        P, f0 = state.P, state.f0
        if mode == 'res':
            return -P.solve(f0)
        elif mode == 'rand':
            return P.solve(rng.random(f0.size))
        elif mode == 'rot':
            return state.v
        elif mode == 'resrot':
            return np.column_stack([P.solve(f0), state.v])
        raise ValueError(
            f"Unknown krylovinit: {self.krylovinit!r}. Use one of {', '.join(_KRYLOVINIT)}."
        )

    # ---------- Public API ----------
    def solve(self, dE, x0):
        """Run the iteration from ``x0``.

        Returns
        -------
        x : ndarray
            Final iterate (the last accepted one if the budget ran out).
        numdE : int
            Total number of gradient evaluations.
        """
        self._reset_history()
        debug = self.verbose > 2
        rng = np.random.default_rng(self.seed)

        x = np.array(x0, dtype=float)
        d = x.size
        if self.V0 is None:
            v = rng.random((d, self.saddleindex + 1))
        else:
            v = np.asarray(self.V0, dtype=float).reshape(d, -1)
        kmax = int(self.kmax) if self.kmax is not None else min(40, d)

        f0 = dE(x)
        P = self._prepare(as_preconditioner(self.P), x)
        state = NewtonState(x=x, f0=f0, P=P, v=v, numdE=1,
                            res=np.linalg.norm(f0, np.inf), fnrm=P.dualnorm(f0),
                            eta=self.etamax)
        self.state = state
        self.res_history.append(state.res)
        self.fnrm_history.append(state.fnrm)

        while state.res > self.tol and state.numdE < self.maxnumdE:
            state.itc += 1

            # (modified) Newton direction
            V0 = self._initial_subspace(state, rng)
            p, ritz, inner_numdE, success, isnewton = self.subspace_builder.build(
                state.f0, dE, state.x, -state.f0, state.eta * state.fnrm, kmax, self._transform,
                P=state.P, V0=V0, hfd=self.hfd, eigatol=self.eigatol, eigrtol=self.eigrtol,
                nev=self.saddleindex + 1, verbose=self.verbose,
            )
            state.numdE += inner_numdE
            if ritz is not None and ritz.vectors.size:
                state.v = ritz.vectors
            self.newton_history.append(bool(isnewton))
            if debug:
                print(f"[nsolistab] isnewton={isnewton} inner success={success} inner numdE={inner_numdE}")

            # line search
            if isnewton:
                pinf = np.linalg.norm(p, np.inf)
                alpha0 = min(1.0, self.maxstep / pinf) if pinf > 0 else 1.0
                alphat, xt, ft, nft, nevals = linesearch.armijo_backtrack(
                    dE, state.x, p, state.f0, state.P, alpha0=alpha0,
                    c_armijo=self.c_armijo, min_alpha=self.min_alpha, verbose=self.verbose,
                )
                state.alpha_old = alphat
            else:
                alphat, xt, ft, nft, nevals = linesearch.flipped_step(
                    dE, state.x, p, state.f0, state.P, state.alpha_old,
                    maxstep=self.maxstep, min_alpha=self.min_alpha, verbose=self.verbose,
                )
            state.numdE += nevals
            if debug:
                print(f"[nsolistab] alpha={alphat:.3e}")

            # update current configuration and preconditioner
            self.step_history.append(float(np.linalg.norm(xt - state.x, np.inf)))
            state.x, state.f0 = xt, ft
            state.P = self._prepare(state.P, state.x)
            state.res = np.linalg.norm(state.f0, np.inf)
            fnrm_old = state.fnrm
            state.fnrm = state.P.dualnorm(state.f0)
            self.res_history.append(state.res)
            self.fnrm_history.append(state.fnrm)

            if self.verbose >= 1:
                print(f"[nsolistab] it={state.itc:3d} numdE={state.numdE:4d} "
                      f"|dE|_inf={state.res:.3e} eta={state.eta:.2e} "
                      f"alpha={alphat:.2e} {'newton' if isnewton else 'flipped'}")

            if state.res <= self.tol:
                break

            state.eta = eisenstat_walker(state.eta, state.fnrm, fnrm_old, self.tol,
                                         gamma=self.gamma, etamax=self.etamax)
            self.eta_history.append(state.eta)

        self.converged = bool(state.res <= self.tol)
        if not self.converged:
            if np.isfinite(state.res):
                reason = "within the maximum number of dE evaluations"
            else:
                reason = "because dE is not finite at the returned iterate"
            warnings.warn(
                f"NK did not converge {reason} "
                f"(numdE={state.numdE}, |dE|_inf={state.res:.3e})",
                RuntimeWarning,
            )
        return state.x, state.numdE
