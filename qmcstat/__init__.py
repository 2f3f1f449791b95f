"""
Statistics of Monte Carlo samples, on one or many MPI ranks

MPI and the consistent interface
--------------------------------
Quantum Monte Carlo runs typically spread their measurements over many MPI
ranks, each of them holding a different number of observations.  Instead of
gathering the observations on a "master" rank, which then computes mean and
error bars and broadcasts them again, every statistical routine here that ends
in `_mpi` (and every method of `DistributedSample`) follows the consistent
interface model:

    x_0 ->|                |-> f
          |  MPI-enabled   |
    x_1 ->|     f(x)       |-> f
          :                :
    x_n ->|                |-> f
          |________________|

the function is called on every rank, with the rank's local part of the
sample, and returns the identical result on every rank.  This keeps the calling
code free of rank-based branches, so that the MPI versions are drop-in
replacements for the single-core functions `mean()` and `mean_and_err()`.

The price is that such functions are collective: all ranks must call them in the
same order.  A rank that skips a call leaves the others waiting forever; ranks
that call different functions can be detected with the `check_collectives`
option of `ProcessGroup`.
"""
from .exceptions import (StatisticsError, EmptyInputError,
                         InsufficientSamplesError, ShapeMismatchError,
                         ProtocolViolation)
from .mpi import ProcessGroup
from .statistics import (mean, mean_mpi, mean_and_err, mean_and_err_mpi,
                         DistributedSample)
from .onlinestatistics import Aggregate

CODE_VERSION = 1, 0, "0"
CODE_VERSION_STRING = ".".join(map(str,CODE_VERSION))
CODE_DATE = "October 2026"
