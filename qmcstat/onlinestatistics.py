"""@package onlinestatistics"""
import numpy as np

from .exceptions import InsufficientSamplesError, ShapeMismatchError
from .mpi import as_group


class Sample(object):
    """ A statistical sample summarised by size, mean and squared deviations """
    def __init__(self, mean, sumqdiff=None, n=1):
        self.mean = mean
        self.sumqdiff = sumqdiff
        self.n = n

    def get_variance(self, ddof=0):
        """ Returns the current variance """
        if ddof < 0:
            raise ValueError("DDoF must be non-negative")
        if self.n <= ddof:
            raise InsufficientSamplesError(
                "variance with ddof=%d undefined for %d values" % (ddof, self.n))
        return self.sumqdiff/float(self.n - ddof)

    variance = property(lambda self: self.get_variance(),
                        doc="Biased variance of the sample")

    variance_unbiased = property(lambda self: self.get_variance(1),
                                 doc="Unbiased variance of the sample")

    stddev = property(lambda self: np.sqrt(self.get_variance()),
                      doc="Biased standard deviation of the sample")

    stddev_unbiased = property(lambda self: np.sqrt(self.get_variance(1)),
                               doc="Unbiased standard deviation of the sample")

    error = property(lambda self: np.sqrt(self.get_variance(1)/self.n),
                     doc="Standard error of the mean")


class Aggregate(Sample):
    """ An on-line statistical aggregator for mean and variance.

    Implementation of an on-line algorithm for statistical variables, where mean
    and variance are updated continuously as new values are added, without the
    need to provide the whole sample for the computation.

    This is intended for situations where the sample is too big for the memory,
    is produced step by step by a simulation, or some continuous monitoring of
    the quantities is required.  Aggregates of partial samples can be merged,
    which is how `allreduce()` combines the aggregates of several MPI ranks.

    The algorithm is stable and based on:
      [1] D.E. Knuth 1999, The Art of Computer Programming, Vol. 2
      [2] B.P. Welford 1962, Technometrics, Vol. 4(3), pp. 419-420
    """
    def __init__(self):
        """ Initialises an empty set of values """
        Sample.__init__(self, None, None, 0)

    def reset(self):
        """ Empties the set of values and clears the aggregates """
        self.__init__()

    def add(self, p):
        """ Adds an element (or a whole Sample) to the sample """
        if not isinstance(p, Sample):
            p = np.asarray(p)
            if p.dtype.kind not in "biufc":
                raise TypeError("unsupported type of value: %s" % p.dtype)
            p = Sample(p, None, 1)
        if p.n == 0:
            return

        if self.n == 0:
            # First entry is handled specially
            self.n = p.n
            self.mean = np.array(p.mean, np.result_type(p.mean, np.float64))
            if p.sumqdiff is not None:
                self.sumqdiff = np.array(p.sumqdiff, np.float64)
            else:
                self.sumqdiff = np.abs(np.zeros_like(self.mean)) # ensure realness
        else:
            if np.shape(p.mean) != self.mean.shape:
                raise ShapeMismatchError("cannot add shape %s to aggregate of"
                                         " shape %s" % (np.shape(p.mean),
                                                        self.mean.shape))
            # Generalising Knuth's method [1] to complex variables, but replacing
            # the variance addition with Welford's original formula [2] to avoid
            # multiplication with potentially big array and complex cancellation.
            oldcount = self.n
            delta = p.mean - self.mean
            self.n += p.n
            adjust = float(p.n)/self.n

            self.mean = self.mean + delta * adjust
            self.sumqdiff = self.sumqdiff + np.square(np.abs(delta)) * (oldcount*adjust)
            if p.sumqdiff is not None:
                self.sumqdiff = self.sumqdiff + p.sumqdiff

    def add_all(self, ps):
        """ Adds all elements of the iterators """
        for p in ps:
            self.add(p)

    def allreduce(self, group=None):
        """ Returns the aggregate over all ranks of `group` (collective).

        The partial aggregates are gathered and merged in rank order on every
        rank, so the result is the same everywhere.
        """
        group = as_group(group)
        parts = group.allgather((self.n, self.mean, self.sumqdiff))
        result = Aggregate()
        for n, mean, sumqdiff in parts:
            result.add(Sample(mean, sumqdiff, n))
        return result
