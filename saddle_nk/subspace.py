"""Search-direction builders for the stabilized Newton-Krylov solver.

A builder receives the current gradient ``f0 = dE(x)`` and returns the next
search direction together with what it learned about the spectrum::

    p, ritz, inner_numdE, success, is_newton = builder.build(
        f0, dE, x, rhs, errtol, kmax, transform, P=P, V0=V0, ...)

``rhs`` is the target residual (``-f0``) and ``errtol`` the absolute
inexactness target ``eta * ||f0||_P``. ``transform`` maps ascending Ritz
values to the signs required by the saddle index (see :func:`indexp`).
``is_newton`` is ``False`` when at least one eigendirection was flipped, in
which case ``p`` is not a descent direction for ``||dE||_P`` and the solver
switches line search.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import NamedTuple, Optional

import numpy as np
import scipy.linalg as sla

from .krylov import dirder, dgmres
from .preconditioners import as_preconditioner


class RitzEstimate(NamedTuple):
    """Lowest Ritz values (ascending) and the matching ``P``-normalized vectors."""
    values: np.ndarray
    vectors: np.ndarray

    @property
    def gap(self) -> Optional[float]:
        """Smallest distance of a computed Ritz value from zero."""
        if self.values.size == 0:
            return None
        return float(np.min(np.abs(self.values)))


def indexp(D, index: int):
    """Sign pattern for a critical point with ``index`` negative eigenvalues.

    ``D`` holds eigenvalue estimates in ascending order; the first ``index``
    entries are made negative and the rest positive.
    """
    D = np.abs(np.asarray(D, dtype=float))
    D[:index] = -D[:index]
    return D


class SubspaceBuilder(ABC):
    """Interface of a search-direction builder (see module docstring)."""

    @abstractmethod
    def build(self, f0, field, x, rhs, errtol, kmax, transform, P=None, V0=None,
              hfd=1e-7, eigatol=1e-1, eigrtol=1e-1, nev=1, verbose=0):
        pass


class LanczosSubspaceBuilder(SubspaceBuilder):
    """Preconditioned Rayleigh-Ritz subspace solver (``dlanczos``).

    Grows a ``P``-orthonormal basis ``V`` together with finite difference
    Hessian products ``AV`` (one field evaluation per basis vector). On every
    cycle the projected matrix ``T = V^T A V`` is diagonalized, its Ritz values
    are passed through ``transform`` and the step

        p = Y diag(1/sigma) Y^T rhs,   Y = V Q

    is formed. When ``transform`` leaves the spectrum untouched the plain
    Galerkin step ``T c = V^T rhs`` is used instead, which stays exact for
    Jacobians that are not quite symmetric.

    The basis is expanded with ``P^{-1} r`` (``r`` the residual of the
    transformed system) until ``||r||_P <= errtol``, then with the worst
    eigen-residual among the lowest ``nev`` Ritz pairs until each of them
    satisfies ``||A y - lambda P y||_P <= max(eigatol, eigrtol |lambda|)``.

    Parameters
    ----------
    drop_tol : float, default 1e-10
        A candidate vector whose ``P``-norm falls below ``drop_tol`` times its
        original norm after orthogonalization is considered dependent.
    reorth_passes : int, default 2
        Number of Gram-Schmidt passes.
    rcond : float, default 1e-8
        Ritz values with ``|sigma| <= rcond * max|sigma|`` are treated as zero:
        their directions are left out of the step (pseudo-inverse) and do not
        count towards the Newton/flipped decision.
    """

    def __init__(self, drop_tol: float = 1e-10, reorth_passes: int = 2, rcond: float = 1e-8):
        self.drop_tol = float(drop_tol)
        self.reorth_passes = max(1, int(reorth_passes))
        self.rcond = float(rcond)

    def build(self, f0, field, x, rhs, errtol, kmax, transform, P=None, V0=None,
              hfd=1e-7, eigatol=1e-1, eigrtol=1e-1, nev=1, verbose=0):
        P = as_preconditioner(P)
        x = np.asarray(x, dtype=float)
        f0 = np.asarray(f0, dtype=float)
        rhs = np.asarray(rhs, dtype=float)
        d = x.size
        maxdim = min(max(int(kmax), 1), d)
        debug = verbose > 2

        V = np.zeros((d, maxdim))
        PV = np.zeros((d, maxdim))
        AV = np.zeros((d, maxdim))
        m = 0
        numdE = 0

        def _extend(w):
            nonlocal m, numdE
            if m >= maxdim:
                return False
            w = np.array(w, dtype=float).reshape(-1)
            nrm0 = np.sqrt(max(P.dot(w, w), 0.0))
            if not np.isfinite(nrm0) or nrm0 == 0.0:
                return False
            for _ in range(self.reorth_passes):
                w = w - V[:, :m] @ (PV[:, :m].T @ w)
            Pw = P.apply(w)
            nrm = np.sqrt(max(np.dot(w, Pw), 0.0))
            if nrm <= self.drop_tol * nrm0:
                return False
            V[:, m] = w / nrm
            PV[:, m] = Pw / nrm
            AV[:, m] = dirder(x, V[:, m], field, f0, h=hfd)
            numdE += 1
            m += 1
            return True

        if V0 is None:
            V0 = P.solve(rhs)
        for col in np.asarray(V0, dtype=float).reshape(d, -1).T:
            _extend(col)
        if m == 0:
            # nothing to build a subspace from (zero right-hand side)
            return np.zeros(d), None, numdE, True, True

        while True:
            Vm, AVm, PVm = V[:, :m], AV[:, :m], PV[:, :m]
            T = Vm.T @ AVm
            lam, Q = sla.eigh(0.5 * (T + T.T))
            sig = np.asarray(transform(lam), dtype=float)
            smax = np.max(np.abs(sig))
            keep = np.abs(sig) > self.rcond * smax if smax > 0 else np.zeros(m, dtype=bool)
            is_newton = bool(np.all(sig[keep] == lam[keep]))

            Vr = Vm.T @ rhs
            coef = None
            if is_newton and np.all(keep):
                try:
                    coef = sla.solve(T, Vr)
                except np.linalg.LinAlgError:
                    coef = None
            if coef is None:
                # pseudo-inverse: (numerically) singular directions get no step
                inv = np.zeros(m)
                inv[keep] = 1.0 / sig[keep]
                coef = Q @ (inv * (Q.T @ Vr))
            p = Vm @ coef

            # residual of the transformed system: A p + P Y diag(sig - lam) Y^T P p - rhs
            r = AVm @ coef + PVm @ (Q @ ((sig - lam) * (Q.T @ coef))) - rhs
            res = P.dualnorm(r)
            lin_ok = res <= errtol

            nchk = min(max(int(nev), 1), m)
            Qn = Q[:, :nchk]
            E = AVm @ Qn - (PVm @ Qn) * lam[:nchk]
            eigres = np.array([P.dualnorm(E[:, j]) for j in range(nchk)])
            eig_ok = eigres <= np.maximum(eigatol, eigrtol * np.abs(lam[:nchk]))

            if debug:
                print(f"[dlanczos] m={m} res={res:.3e} errtol={errtol:.3e} "
                      f"lam={lam[:nchk]} eigres={eigres} isnewton={is_newton}")

            if lin_ok and np.all(eig_ok):
                success = True
                break
            if m >= maxdim:
                # full space: the transformed system is solved exactly
                success = bool(lin_ok and m >= d)
                break

            candidates = []
            if not lin_ok:
                candidates.append(r)
            bad = np.flatnonzero(~eig_ok)
            if bad.size:
                candidates.append(E[:, bad[np.argmax(eigres[bad])]])
            if not any(_extend(P.solve(w)) for w in candidates):
                # invariant subspace, nothing new to add
                success = bool(lin_ok)
                break

        ritz = RitzEstimate(values=lam[:nchk].copy(), vectors=Vm @ Qn)
        return p, ritz, numdE, success, is_newton


class NewtonGMRESBuilder(SubspaceBuilder):
    """Inexact Newton directions from :func:`~saddle_nk.krylov.dgmres`.

    GMRES runs on the preconditioned field ``x -> P^{-1} dE(x)`` with relative
    tolerance ``errtol / ||f0||_P``. No spectral information is produced, so
    the step is always reported as a Newton step; use it for minimization
    (``saddleindex = 0``) of problems with non-symmetric Jacobians.
    """

    def __init__(self, reorth='brown_hindmarsh'):
        self.reorth = reorth

    def build(self, f0, field, x, rhs, errtol, kmax, transform, P=None, V0=None,
              hfd=1e-7, eigatol=1e-1, eigrtol=1e-1, nev=1, verbose=0):
        P = as_preconditioner(P)
        f0 = np.asarray(f0)
        fnrm = P.dualnorm(f0)
        if fnrm == 0:
            return np.zeros_like(f0, dtype=float), None, 0, True, True

        g0 = P.solve(f0)

        def _pfield(z):
            return P.solve(field(z))

        rel = errtol / fnrm
        p, error, iters = dgmres(g0, _pfield, x, rel, kmax, reorth=self.reorth, h=hfd)
        success = bool(error[-1] <= rel * np.linalg.norm(g0))
        if verbose > 2:
            print(f"[dgmres] iters={iters} res={error[-1]:.3e} success={success}")
        return p, None, iters, success, True
