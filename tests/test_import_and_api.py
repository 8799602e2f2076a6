import numpy as np


def test_package_import_and_basic_api():
    import saddle_nk as snk

    for name in snk.__all__:
        assert hasattr(snk, name), name
    assert isinstance(snk.__version__, str)

    # E = (x1^2 - 1)^2 + x2^2: index-1 saddle at the origin
    def dE(x):
        return np.array([4.0 * x[0] * (x[0] ** 2 - 1.0), 2.0 * x[1]])

    x, numdE = snk.nsolistab(dE, np.array([0.3, 0.2]), 1, verbose=0)

    assert x.shape == (2,)
    assert isinstance(numdE, int) and numdE > 1
    np.testing.assert_allclose(x, 0.0, atol=1e-4)


def test_solver_object_matches_wrapper():
    from saddle_nk import StabilizedNewtonSolver, nsolistab
    from saddle_nk.testproblems import toy2d

    prob = toy2d()
    x1, n1 = nsolistab(prob.f, prob.init(), 0, verbose=0, solver_opts={'seed': 3})
    x2, n2 = StabilizedNewtonSolver(0, verbose=0, seed=3).solve(prob.f, prob.init())
    np.testing.assert_array_equal(x1, x2)
    assert n1 == n2
