import threading

import numpy as np
import pytest
from mpi4py import MPI as mpi


class FakeWorld(object):
    """State shared by the (thread) ranks of one fake communicator"""
    def __init__(self, size):
        self.size = size
        self.barrier = threading.Barrier(size, timeout=20)
        self.slots = [None] * size

    def exchange(self, rank, obj):
        self.slots[rank] = obj
        self.barrier.wait()
        result = list(self.slots)
        self.barrier.wait()
        return result


class FakeComm(object):
    """Stand-in for the subset of mpi4py.MPI.Comm used by qmcstat.

    Every rank runs in its own thread; collective operations synchronise
    the threads through a barrier and reduce in rank order.
    """
    def __init__(self, world, rank):
        self.world = world
        self.rank = rank

    def Get_rank(self):
        return self.rank

    def Get_size(self):
        return self.world.size

    def allgather(self, obj):
        return self.world.exchange(self.rank, obj)

    def allreduce(self, obj, op=mpi.SUM):
        assert op == mpi.SUM
        parts = self.allgather(obj)
        total = parts[0]
        for part in parts[1:]:
            total = total + part
        return total

    def Allreduce(self, sendbuf, recvbuf, op=mpi.SUM):
        assert op == mpi.SUM
        if sendbuf is mpi.IN_PLACE:
            sendbuf = recvbuf
        parts = self.allgather(np.array(sendbuf, copy=True))
        total = parts[0].copy()
        for part in parts[1:]:
            total += part
        recvbuf[...] = total

    def bcast(self, obj, root=0):
        return self.allgather(obj)[root]


def _run_ranks(nranks, func):
    """Run `func(comm)` on `nranks` fake ranks.

    Returns a list with one `(result, exception)` pair per rank.
    """
    world = FakeWorld(nranks)
    outcomes = [(None, None)] * nranks

    def target(rank):
        try:
            outcomes[rank] = func(FakeComm(world, rank)), None
        except Exception as e:
            outcomes[rank] = None, e

    threads = [threading.Thread(target=target, args=(rank,))
               for rank in range(nranks)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(60)
        assert not thread.is_alive(), "fake rank hangs"
    return outcomes


@pytest.fixture
def run_ranks():
    return _run_ranks


@pytest.fixture
def comm_self():
    return mpi.COMM_SELF
