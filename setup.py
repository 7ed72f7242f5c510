# Copyright (C) TeNPy Developers, GNU GPLv3
from setuptools import setup, find_packages

import os


def read_version():
    """Read the hard-coded version from ``blocktensors/version.py`` without importing it."""
    filename = os.path.join(os.path.dirname(os.path.abspath(__file__)), 'blocktensors',
                            'version.py')
    with open(filename) as f:
        for line in f:
            if line.startswith('version = '):
                return line.split('=')[1].strip().strip("'\"")
    raise RuntimeError('Could not find the version in blocktensors/version.py')


if __name__ == '__main__':
    setup(
        name='blocktensors',
        version=read_version(),
        description='Block-sparse tensor maps between symmetric vector spaces',
        license='GPLv3',
        packages=find_packages(include=['blocktensors', 'blocktensors.*']),
        python_requires='>=3.9',
        install_requires=['numpy>=1.21', 'scipy>=1.7', 'sympy'],
        extras_require={'test': ['pytest']},
    )
