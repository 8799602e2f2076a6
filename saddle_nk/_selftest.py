def _smoke():
    """Solve the reference problems once and print evaluation counts."""
    import numpy as np
    from . import nsolistab
    from .subspace import NewtonGMRESBuilder
    from .testproblems import toy2d, heq, double_well

    cases = [
        (toy2d(), 0, {}),
        (double_well(), 1, {}),
        (heq(), 0, {'subspace_builder': NewtonGMRESBuilder()}),
    ]
    ok = True
    for prob, index, opts in cases:
        x, numdE = nsolistab(prob.f, prob.init(), index, verbose=0, solver_opts=dict(opts, seed=0))
        res = np.linalg.norm(prob.f(x), np.inf)
        passed = res <= 1e-5
        ok = ok and passed
        print(f"  {prob.name:<12s} index={index} numdE={numdE:4d} |dE|_inf={res:.2e} "
              f"{'ok' if passed else 'FAILED'}")
    return ok


def main():
    """
    Run a smoke solve of the reference problems, then the project's test suite.

    Usage:
        saddle_nk-selftest
    """
    import sys
    import os
    import platform
    from importlib import import_module

    print("\n=== saddle_nk self-test ===")
    try:
        import saddle_nk
    except ImportError as e:
        print("Could not import saddle_nk:", e)
        return 1
    print(f"Package: saddle_nk {saddle_nk.__version__} @ {os.path.dirname(saddle_nk.__file__)}")
    print("Python:", platform.python_version(), "| Platform:", platform.platform())
    print("NumPy:", import_module('numpy').__version__, "| SciPy:", import_module('scipy').__version__)

    print("Reference problems:")
    if not _smoke():
        print("Smoke solve FAILED", file=sys.stderr)
        return 1

    try:
        import pytest
    except ImportError:
        print("pytest is required. Install with: pip install -e .[test]", file=sys.stderr)
        return 1

    tests_path = os.path.join(os.path.dirname(os.path.dirname(__file__)), 'tests')
    if not os.path.isdir(tests_path):
        print(f"Tests directory not found: {tests_path}")
        print("If you installed non-editable, clone the repo and run tests from source.")
        return 1

    print(f"Running pytest in: {tests_path}\n")
    exit_code = pytest.main(["-v", tests_path])
    print("\n=== Self-test", "PASSED" if exit_code == 0 else "FAILED", f"(exit code {exit_code}) ===")
    return exit_code


if __name__ == "__main__":
    raise SystemExit(main())
