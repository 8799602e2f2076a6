"""Preconditioners for the stabilized Newton-Krylov solver.

Each preconditioner ``P`` supplies

``solve(v)``
    ``P^{-1} v`` (columns of a 2-D array are solved independently).

``apply(v)``
    ``P v``.

``dot(u, v)``
    The ``P`` inner product ``u . P v``.

``dualnorm(v)``
    ``sqrt(v . P^{-1} v)``, the norm in which gradients are measured.

``prepare(x)``
    Return a preconditioner refreshed at the point ``x``. The solver calls this
    once per outer iteration and never mutates the old object, so a refresh
    must return a new instance rather than rebuild in place.
"""

import numpy as np
import scipy.linalg as sla
import scipy.sparse as sp
import scipy.sparse.linalg as spla
from abc import ABC, abstractmethod


##############################################################################
# Base Preconditioner
##############################################################################
class Preconditioner(ABC):
    """Abstract preconditioner interface.

    Subclasses implement ``solve`` and ``apply``; the inner product, dual norm
    and (no-op) refresh are derived from those two.
    """

    @abstractmethod
    def solve(self, v):
        pass

    @abstractmethod
    def apply(self, v):
        pass

    def dot(self, u, v):
        return np.real(np.vdot(u, self.apply(v)))

    def dualnorm(self, v):
        v = np.asarray(v)
        return float(np.sqrt(max(np.real(np.vdot(v, self.solve(v))), 0.0)))

    def prepare(self, x):
        return self


##############################################################################
# IdentityPreconditioner
##############################################################################
class IdentityPreconditioner(Preconditioner):
    """``P = I``; the dual norm is the Euclidean norm."""

    def solve(self, v):
        return np.array(v, copy=True)

    def apply(self, v):
        return np.array(v, copy=True)

    def dot(self, u, v):
        return np.real(np.vdot(u, v))

    def dualnorm(self, v):
        return float(np.linalg.norm(v))


##############################################################################
# MatrixPreconditioner (dense Cholesky / sparse SuperLU)
##############################################################################
class MatrixPreconditioner(Preconditioner):
    """Symmetric positive definite matrix preconditioner.

    Parameters
    ----------
    matrix : ndarray or scipy.sparse matrix, shape (d, d)
        SPD matrix ``P``. Dense matrices are Cholesky factorized, sparse ones
        go through SuperLU.
    update : callable, optional
        ``update(x) -> matrix`` used by :meth:`prepare` to rebuild ``P`` at a
        new point. Without it ``prepare`` keeps the current factorization.
    permc_spec : str, default 'COLAMD'
        Column permutation for the sparse factorization.
    """

    def __init__(self, matrix, update=None, permc_spec: str = 'COLAMD'):
        if matrix.ndim != 2 or matrix.shape[0] != matrix.shape[1]:
            raise ValueError("Preconditioner matrix must be square.")
        self.update = update
        self.permc_spec = permc_spec
        self.sparse = sp.issparse(matrix)
        if self.sparse:
            self.matrix = matrix.tocsc()
            self._lu = spla.splu(self.matrix, permc_spec=permc_spec)
            self._cho = None
        else:
            self.matrix = np.asarray(matrix)
            try:
                self._cho = sla.cho_factor(self.matrix)
            except np.linalg.LinAlgError:
                raise ValueError("Preconditioner matrix must be positive definite.") from None
            self._lu = None

    @property
    def shape(self):
        return self.matrix.shape

    def solve(self, v):
        v = np.asarray(v)
        if self.sparse:
            return self._lu.solve(v)
        return sla.cho_solve(self._cho, v)

    def apply(self, v):
        return self.matrix @ np.asarray(v)

    def prepare(self, x):
        if self.update is None:
            return self
        return MatrixPreconditioner(self.update(x), update=self.update, permc_spec=self.permc_spec)


##############################################################################
# Coercion helper
##############################################################################
def as_preconditioner(P):
    """Coerce ``None``, a matrix or a :class:`Preconditioner` to a preconditioner."""
    if P is None:
        return IdentityPreconditioner()
    if isinstance(P, Preconditioner):
        return P
    if sp.issparse(P) or isinstance(P, np.ndarray):
        return MatrixPreconditioner(P)
    raise ValueError(f"Unsupported preconditioner: {type(P).__name__}")
