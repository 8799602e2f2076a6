import os
from setuptools import setup, find_packages, Command
import subprocess

class BuildSphinx(Command):
    description = "Build Sphinx documentation."
    user_options = [
        ('builder=', 'b', 'Sphinx builder to use (html, latex)')
    ]

    def initialize_options(self):
        self.builder = 'html'
        self.build_dir = None

    def finalize_options(self):
        # Build directory for Sphinx output.
        self.build_dir = os.path.join(os.path.dirname(__file__), 'docs/_build')

    def run(self):
        # Regenerate the API .rst files for the saddle_nk package.
        from sphinx.ext.apidoc import main as sphinx_apidoc_main
        apidoc_args = [
            '--force',
            '--module-first',
            '-o', os.path.join('docs', 'source'),
            'saddle_nk',
        ]
        sphinx_apidoc_main(apidoc_args)

        from sphinx.cmd.build import main as sphinx_main
        args = [
            '-b', self.builder,
            os.path.join('docs', 'source'),
            os.path.join(self.build_dir, self.builder)
        ]
        errno = sphinx_main(args)
        if errno:
            raise SystemExit(errno)

        if self.builder == 'latex':
            latex_dir = os.path.join(self.build_dir, 'latex')
            errno = subprocess.call(['make', 'all-pdf'], cwd=latex_dir)
            if errno:
                raise SystemExit(errno)
            print("PDF generated in:", latex_dir)

setup(
    name="saddle_nk",
    version="0.1.0",
    packages=find_packages(exclude=["tests", "tests.*"]),
    description="Jacobian-free Newton-Krylov solvers for critical points with prescribed saddle index",
    python_requires=">=3.8",
    install_requires=[
        "numpy",
        "scipy",
    ],
    extras_require={
        "test": ["pytest"],
        "docs": ["sphinx"],
    },
    entry_points={
        "console_scripts": [
            "saddle_nk-selftest=saddle_nk._selftest:main",
        ],
    },
    cmdclass={'build_sphinx': BuildSphinx},
)
