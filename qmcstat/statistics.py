"""Mean and standard error of the mean of (MPI-distributed) samples.

A sample is a sequence of observations, where every observation is a real or
complex number or a numpy array of fixed shape.  The routines come in two
flavours:

  - `mean()` and `mean_and_err()` work on the observations stored locally;

  - `mean_mpi()` and `mean_and_err_mpi()` work on a sample that is distributed
    over the ranks of a process group, i.e., every rank holds some (possibly
    zero) observations.  They are collective and return the identical result
    on every rank, which makes them drop-in replacements for the single-core
    versions (cf. the consistent interface model described in `qmcstat`).

The means are computed on-line following Welford [1], i.e., the running mean
is updated with every observation rather than dividing a huge sum at the end:

    m_{n+1} = m_n + (x_n - m_n) / (n + 1)

The standard error of the mean is computed in a second pass as

    SEM = sqrt( sum_i Re[conj(x_i - m) (x_i - m)] / (N (N-1)) ).

[1]: B.P. Welford 1962, Technometrics, Vol. 4(3), pp. 419-420
"""
from warnings import warn
import numpy as np

from .exceptions import (EmptyInputError, InsufficientSamplesError,
                         ShapeMismatchError)
from .mpi import as_group


def _observation(x):
    # Returns observation as numpy array, rejecting non-numeric types
    x = np.asarray(x)
    if x.dtype.kind not in "biufc":
        raise TypeError("unsupported type of observation: %s" % x.dtype)
    return x

def _accumulator_dtype(dtype):
    # integers and bools are promoted, low-precision types widened
    return np.result_type(dtype, np.float64)

def _real_dtype(dtype):
    return np.finfo(dtype).dtype

def _regular(arr):
    # 0-d arrays are handed out as numpy scalars
    if arr.ndim == 0:
        return arr[()]
    return arr

def conj_r(x, y):
    """Return the element-wise real part of `conj(x) * y`.

    For real arguments, this reduces to the element-wise product.
    """
    return np.real(np.conj(x) * y)


def _mean(data):
    ndata = len(data)
    if not ndata:
        raise EmptyInputError("mean of empty sample is undefined")

    first = _observation(data[0])
    mean_calc = np.zeros(first.shape, _accumulator_dtype(first.dtype))
    for n in range(ndata):
        x = _observation(data[n]) if n else first
        if x.shape != mean_calc.shape:
            raise ShapeMismatchError("observation %d has shape %s, expected %s"
                                     % (n, x.shape, mean_calc.shape))
        mean_calc = mean_calc + (x - mean_calc) / (n + 1)
    return mean_calc

def mean(data):
    """Calculate the arithmetic mean of the observations in `data`.

    :arg data:
        sequence of observations (numbers or equally-shaped arrays), supporting
        `len()` and indexing, e.g., an array where the zeroth axis enumerates
        the observations
    :return:
        mean, with the shape of a single observation
    :raises EmptyInputError:
        if `data` is empty
    """
    return _regular(_mean(data))


def mean_and_err(data):
    """Calculate mean and standard error of the mean of `data`.

    :arg data:
        sequence of observations (see `mean()`)
    :return:
        pair `(mean, err)`, where `err` is real and has the shape of `mean`
    :raises InsufficientSamplesError:
        if `data` contains less than two observations
    """
    length = len(data)
    if length < 2:
        raise InsufficientSamplesError(
            "standard error requires at least 2 observations, got %d" % length)

    mean_calc = _mean(data)
    err_calc = np.zeros(mean_calc.shape, _real_dtype(mean_calc.dtype))
    norm = length * (length - 1)
    for n in range(length):
        diff = _observation(data[n]) - mean_calc
        err_calc += conj_r(diff, diff) / norm
    np.sqrt(err_calc, out=err_calc)
    return _regular(mean_calc), _regular(err_calc)


# Errors that are raised consistently on all ranks if detected on one of them.
# The failing rank re-raises its own exception; the other ranks raise the first
# of these classes that matches it, so subclasses not listed here arrive as
# their listed base class.
_AGREED_ERRORS = (EmptyInputError, InsufficientSamplesError,
                  ShapeMismatchError, TypeError, ValueError)
_AGREED_BY_NAME = dict((cls.__name__, cls) for cls in _AGREED_ERRORS)

def _agree_layout(group, nlocal, local, failure, nrequired):
    """Agree on the number of observations and their layout across ranks.

    Every rank contributes its number of observations, the shape and dtype of
    its local mean and the error (if any) it encountered while computing it.
    Since every rank sees the same information, problems are raised on all
    ranks alike rather than leaving the healthy ranks waiting in the next
    collective call.  Returns total count, shape and dtype.
    """
    if failure is None:
        mine = (nlocal, local.shape if nlocal else None,
                local.dtype.str if nlocal else None, None)
    else:
        kind = next(cls for cls in _AGREED_ERRORS if isinstance(failure, cls))
        mine = (nlocal, None, None, (kind.__name__, str(failure)))

    layouts = group.allgather(mine)
    for rank, (_, _, _, rank_failure) in enumerate(layouts):
        if rank_failure is not None:
            if rank == group.rank:
                raise failure
            kind_name, message = rank_failure
            raise _AGREED_BY_NAME[kind_name]("rank %d: %s" % (rank, message))

    ntotal = sum(layout[0] for layout in layouts)
    if not ntotal and nrequired <= 1:
        raise EmptyInputError("no observations on any of the %d ranks"
                              % group.size)
    if ntotal < nrequired:
        raise InsufficientSamplesError(
            "at least %d observations required, got %d across %d ranks"
            % (nrequired, ntotal, group.size))

    filled = [(rank, layout) for rank, layout in enumerate(layouts)
              if layout[0]]
    shape = filled[0][1][1]
    for rank, layout in filled:
        if layout[1] != shape:
            raise ShapeMismatchError(
                "observations have shape %s on rank %d, but %s on rank %d"
                % (layout[1], rank, shape, filled[0][0]))
    dtype = np.result_type(*[np.dtype(layout[2]) for _, layout in filled])
    return ntotal, shape, dtype

def _mean_mpi(group, data, nrequired=1):
    nlocal = len(data)
    local = None
    failure = None
    if nlocal:
        try:
            local = _mean(data)
        except _AGREED_ERRORS as e:
            failure = e
    ntotal, shape, dtype = _agree_layout(group, nlocal, local, failure,
                                         nrequired)

    # Rescale the local average to its share of the global average. Ranks
    # without observations contribute zero.
    if nlocal:
        mean_calc = np.array(local * (float(nlocal) / ntotal), dtype)
    else:
        mean_calc = np.zeros(shape, dtype)
    group.all_reduce_in_place(mean_calc)
    return ntotal, mean_calc

def mean_mpi(group, data):
    """Calculate the arithmetic mean of a sample distributed over ranks.

    This function is collective and returns the same result on every rank of
    `group`.  The local number of observations may differ between ranks and
    may be zero on some of them.

    :arg group:
        ProcessGroup or mpi4py communicator (`None` for MPI_COMM_WORLD)
    :arg data:
        sequence of locally stored observations (see `mean()`)
    :raises EmptyInputError:
        if there are no observations on any rank
    :raises ShapeMismatchError:
        if observations differ in shape on one or across ranks
    """
    group = as_group(group)
    _, mean_calc = _mean_mpi(group, data)
    return _regular(mean_calc)


def mean_and_err_mpi(group, data):
    """Calculate mean and standard error of a sample distributed over ranks.

    This function is collective and returns the same pair `(mean, err)` on
    every rank of `group`.  Deviations are taken with respect to the global
    mean on every rank, so the result coincides with `mean_and_err()` applied
    to the concatenation of all local samples.

    :arg group:
        ProcessGroup or mpi4py communicator (`None` for MPI_COMM_WORLD)
    :arg data:
        sequence of locally stored observations (see `mean()`)
    :raises InsufficientSamplesError:
        if there are less than two observations across all ranks
    """
    group = as_group(group)
    ntotal, mean_calc = _mean_mpi(group, data, nrequired=2)

    err_calc = np.zeros(mean_calc.shape, _real_dtype(mean_calc.dtype))
    for n in range(len(data)):
        diff = _observation(data[n]) - mean_calc
        err_calc += conj_r(diff, diff)
    group.all_reduce_in_place(err_calc)
    err_calc /= ntotal * (ntotal - 1)
    np.sqrt(err_calc, out=err_calc)
    return _regular(mean_calc), _regular(err_calc)


def join(*samples):
    """Joins a set of DistributedSample instances to one big sample"""
    if not samples:
        raise ValueError("Must pass list of at least one sample")

    group = samples[0].group
    if any(sample.group.comm != group.comm for sample in samples):
        raise ValueError("MPI communicator must agree for all samples")

    local = np.concatenate(tuple(sample.local for sample in samples), axis=0)
    ntotal = sum(sample.ntotal for sample in samples)
    return DistributedSample(local, group, ntotal)


class DistributedSample(object):
    """Sample distributed over MPI ranks.

    The zeroth dimension of the sample corresponds to the observations, the
    other (optional) dimensions to the components of a single observation.
    Every rank stores a contiguous chunk of observations, e.g.::

        observation:     | 0 | 1 | 2 | 3 | 4 | 5 | 6 | 7 | 8 | 9 |
                            -------------   ---------   ---------
        stored on:            rank 0         rank 1      rank 2

    All statistical quantities are calculated across the whole distributed
    sample, so every method except `apply()` is collective.
    """

    def __init__(self, local, group=None, ntotal=None):
        """Create a new distributed sample.

        :arg local:
            (n,...)-array corresponding to n locally stored observations
        :arg group:
            ProcessGroup or mpi4py communicator (`None` for MPI_COMM_WORLD)
        :arg ntotal:
            total number of observations (inferred by default, which is a
            collective operation)
        """
        self.group = as_group(group)
        self.local = np.asarray(local)
        if self.local.ndim == 0:
            self.local = self.local.ravel()
        self.nlocal = self.local.shape[0]

        if ntotal is not None:
            if ntotal < self.nlocal:
                raise ValueError("ntotal must at least cover local")
            if self.group.size == 1 and ntotal != self.nlocal:
                raise ValueError("ntotal inconsistent for single-core")
            self.ntotal = ntotal
        else:
            self.ntotal = self.group.all_reduce(self.nlocal)

        if not self.nlocal:
            warn("rank %d holds no observations of the sample"
                 % self.group.rank, RuntimeWarning, 2)

    def apply(self, func):
        """Return new sample with every observation `x` replaced by `func(x)`.

        Note that this will bias estimates such as the mean if `func` is not
        linear.  `func` must return arrays of the same shape for every
        observation.
        """
        return DistributedSample(np.array([func(self.local[i, ...])
                                           for i in range(self.nlocal)]),
                                 self.group, self.ntotal)

    def mean(self):
        """Calculate and return the sample mean."""
        return mean_mpi(self.group, self.local)

    def mean_and_err(self):
        """Calculate and return sample mean and standard error of the mean."""
        return mean_and_err_mpi(self.group, self.local)

    def stderr(self):
        """Calculate and return the sample standard error of the mean.

            .. math::
                \\textrm{SEM} = \\sqrt{\\frac{\\sum_i |y_i-\\bar{y}|^2}
                {n(n-1)}}
        """
        return self.mean_and_err()[1]

    def _require(self, ddof):
        if self.ntotal <= ddof:
            raise InsufficientSamplesError(
                "need more than %d observations, got %d" % (ddof, self.ntotal))

    def _sqdiff(self, mean):
        # Return sum of squared differences to a given mean.
        mean = np.asarray(mean)
        sqdiff = np.zeros(mean.shape,
                          _real_dtype(_accumulator_dtype(mean.dtype)))
        for bin_i in self.local:
            sqdiff += conj_r(bin_i - mean, bin_i - mean)
        self.group.all_reduce_in_place(sqdiff)
        return sqdiff

    def _bidiff(self, mean):
        # Return outer product of element differences to a given mean
        # (bilinear in differences).
        mean = np.asarray(mean)
        dtype = _accumulator_dtype(mean.dtype)
        # complex observations on any rank make the covariance complex
        if self.group.all_reduce(int(np.iscomplexobj(self.local))):
            dtype = np.result_type(dtype, np.complex64)
        flatmean = mean.ravel()
        flatdata = np.reshape(self.local, (self.nlocal, flatmean.size))
        diff = np.einsum('ij,ik->jk',
                         (flatdata - flatmean),
                         np.conj(flatdata - flatmean))
        diff = np.array(np.reshape(diff, mean.shape * 2), dtype)
        self.group.all_reduce_in_place(diff)
        return diff

    def var(self, mean=None, ddof=1):
        """Calculate and return the sample variance :math:`s^2`.

            .. math::
                s^2 = \\frac{\\sum_i |y_i-\\bar{y}|^2}{n-\\textrm{ddof}}

        :arg mean:
            If ``mean`` is not given, it is calculated.
        :arg ddof:
            delta degrees of freedom
        """
        self._require(ddof)
        if mean is None:
            mean = self.mean()
        result = self._sqdiff(mean)
        result /= self.ntotal - ddof
        return _regular(result)

    def stddev(self, ddof=1):
        """Calculate and return the sample standard deviation :math:`s`.

        .. note::
            While the sample variance :math:`s^2` with ``ddof=1`` is an
            unbiased estimator, the sample standard deviation :math:`s`
            is not. It generally underestimates the standard deviation.
        """
        return np.sqrt(self.var(ddof=ddof))

    def cov(self, mean=None, ddof=1):
        """Calculate and return the sample covariance.

            .. math::
                K_{YY,jk} = \\frac{\\sum_i (y_{j,i}-\\bar{y_j})
                                           {(y_{k,i}-\\bar{y_k})}^*}
                                  {n-\\textrm{ddof}}
        """
        self._require(ddof)
        if mean is None:
            mean = self.mean()
        result = self._bidiff(mean)
        result /= self.ntotal - ddof
        return result

    def cov_of_mean(self, cov=None):
        """Calculate and return the covariance estimate of the sample mean.

        Its diagonal entries are the squared standard errors of the mean
        `stderr()`, whereas the diagonal entries of `cov()` are the sample
        variances.

        :arg cov:
            sample covariance :math:`K_{YY}`, calculated if not given
        """
        if cov is None:
            cov = self.cov()
        return cov / self.ntotal
