#!/usr/bin/env python

from setuptools import setup

setup(name='qmcstat',
      version='1.0.0',

      # Description of the package
      description='Online mean and standard error of MPI-distributed samples',
      keywords='qmc statistics mean standard-error welford mpi',
      classifiers=["Development Status :: 4 - Beta",
                   "Environment :: Console",
                   "Intended Audience :: Science/Research",
                   "Natural Language :: English",
                   "Programming Language :: Python :: 3",
                   "Topic :: Scientific/Engineering :: Physics",
                   ],
      python_requires='>=3.8',
      install_requires=['numpy >=1.17',
                        'mpi4py >=3.0',
                        'configobj >=5.0'],
      extras_require={'test': ['pytest >=7']},

      # Contents, build and deployment instructions
      packages=['qmcstat'],
      package_data={'qmcstat': ['configspec']},
     )
