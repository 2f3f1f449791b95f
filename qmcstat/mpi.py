"""Collective-communication boundary of the statistics routines"""
import sys
import numpy as np

from mpi4py import MPI as mpi
# NOTE: Only a small subset of mpi4py is used here: rank/size queries, the
#       pickle-based lowercase `allreduce`, `allgather` and `bcast`, and the
#       buffer-based `Allreduce` for numpy arrays.

from .exceptions import ProtocolViolation

DEBUG = False
MPI_COMM_WORLD = mpi.COMM_WORLD


def as_group(group):
    """Return `group` as ProcessGroup, wrapping bare communicators (or None,
    which stands for MPI_COMM_WORLD)"""
    if isinstance(group, ProcessGroup):
        return group
    return ProcessGroup(group)


class ProcessGroup(object):
    """Set of MPI ranks that take part in a collective computation.

    Wraps an mpi4py communicator and keeps track of the MPI topology. All
    methods named after MPI operations are collective: they have to be called
    by every rank of the group, in the same order, or the group hangs.

    If `check_collectives` is set, every collective operation is preceded by
    an exchange of a running sequence number and the operation name, so that
    ranks which have taken different code paths raise `ProtocolViolation`
    instead of mixing up unrelated data.  This doubles the number of messages
    and is meant for debugging.  Note that a rank skipping collective calls
    altogether can still not be detected, because its peers simply wait.
    """
    def __init__(self, comm=None, root=0, check_collectives=False, debug=None):
        if comm is None: comm = MPI_COMM_WORLD
        self.comm = comm
        self.rank = comm.Get_rank()
        self.size = comm.Get_size()
        if not 0 <= root < self.size:
            raise ValueError("root rank %d outside of group of size %d"
                             % (root, self.size))
        self.root = root
        self.is_root = self.rank == root
        self.check_collectives = check_collectives
        self.debug = debug
        self.ncollectives = 0

    def rdebug(self, fmt, *params):
        """Write debugging message to STDERR, but only on root"""
        debug = DEBUG if self.debug is None else self.debug
        if debug and self.is_root:
            sys.stderr.write("MPI: %s\n" % (str(fmt) % params))

    def _enter(self, opname):
        self.ncollectives += 1
        self.rdebug("collective #%d: %s", self.ncollectives, opname)
        if not self.check_collectives:
            return
        mine = self.ncollectives, opname
        seen = self.comm.allgather(mine)
        if any(tuple(other) != mine for other in seen):
            raise ProtocolViolation(
                "ranks diverge in collective calls: " +
                ", ".join("rank %d at #%d %s" % (rank, seq, name)
                          for rank, (seq, name) in enumerate(seen)))

    def all_reduce(self, value):
        """Sum `value` over all ranks and return the result on every rank.

        Numpy arrays are reduced via the buffer interface into a fresh array,
        everything else (Python numbers) via pickle.
        """
        if isinstance(value, np.ndarray):
            result = np.array(value, copy=True, order="C")
            self.all_reduce_in_place(result)
            return result
        self._enter("allreduce")
        return self.comm.allreduce(value, op=mpi.SUM)

    def all_reduce_in_place(self, arr):
        """Overwrite `arr` with its sum over all ranks (on every rank)"""
        if not isinstance(arr, np.ndarray):
            raise TypeError("in-place reduction requires a numpy array")
        if not (arr.flags.c_contiguous and arr.flags.writeable):
            raise ValueError("in-place reduction requires a writeable,"
                             " contiguous array")
        self._enter("Allreduce")
        self.comm.Allreduce(mpi.IN_PLACE, arr, op=mpi.SUM)

    def allgather(self, obj):
        """Return list of the `obj` of every rank, ordered by rank"""
        self._enter("allgather")
        return self.comm.allgather(obj)

    def on_root(self, func):
        """Execute something on root only, but broadcast the result"""
        self._enter("bcast")
        if self.is_root: result = func()
        else: result = None
        return self.comm.bcast(result, root=self.root)
