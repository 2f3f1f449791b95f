import numpy as np
import pytest

import qmcstat.mpi
from qmcstat.exceptions import ProtocolViolation
from qmcstat.mpi import ProcessGroup, as_group
from qmcstat.statistics import mean_mpi


def _results(outcomes):
    for result, exc in outcomes:
        assert exc is None, exc
    return [result for result, _ in outcomes]


class TestProcessGroup(object):
    def test_topology(self, run_ranks):
        def func(comm):
            group = ProcessGroup(comm, root=2)
            return group.rank, group.size, group.is_root

        results = _results(run_ranks(3, func))
        assert results == [(0, 3, False), (1, 3, False), (2, 3, True)]

    def test_invalid_root(self, comm_self):
        with pytest.raises(ValueError):
            ProcessGroup(comm_self, root=1)

    def test_as_group(self, comm_self):
        group = ProcessGroup(comm_self)
        assert as_group(group) is group
        assert as_group(comm_self).comm is comm_self
        assert as_group(None).comm is qmcstat.mpi.MPI_COMM_WORLD

    def test_all_reduce_integer(self, run_ranks):
        results = _results(run_ranks(4, lambda comm:
            ProcessGroup(comm).all_reduce(comm.Get_rank() + 1)))
        assert results == [10, 10, 10, 10]

    def test_all_reduce_array(self, run_ranks):
        def func(comm):
            local = np.full((2, 3), comm.Get_rank() + 1j)
            total = ProcessGroup(comm).all_reduce(local)
            assert total is not local
            np.testing.assert_array_equal(local, comm.Get_rank() + 1j)
            return total

        for total in _results(run_ranks(3, func)):
            np.testing.assert_array_equal(total, np.full((2, 3), 3 + 3j))

    def test_all_reduce_in_place(self, run_ranks):
        def func(comm):
            arr = np.array(float(comm.Get_rank()))
            ProcessGroup(comm).all_reduce_in_place(arr)
            return arr[()]

        assert _results(run_ranks(3, func)) == [3., 3., 3.]

    def test_all_reduce_in_place_needs_buffer(self, comm_self):
        group = ProcessGroup(comm_self)
        with pytest.raises(TypeError):
            group.all_reduce_in_place([1., 2.])
        with pytest.raises(ValueError):
            group.all_reduce_in_place(np.zeros((4, 4))[:, 1])
        assert group.ncollectives == 0

    def test_on_root(self, run_ranks):
        called = []

        def func(comm):
            group = ProcessGroup(comm, root=1)
            return group.on_root(lambda: called.append(group.rank) or "done")

        assert _results(run_ranks(3, func)) == ["done"] * 3
        assert called == [1]

    def test_rdebug(self, comm_self, capsys):
        group = ProcessGroup(comm_self, debug=True)
        group.all_reduce(5)
        assert capsys.readouterr().err == "MPI: collective #1: allreduce\n"

        group = ProcessGroup(comm_self)
        group.all_reduce(5)
        assert capsys.readouterr().err == ""

    def test_debug_switch(self, comm_self, capsys, monkeypatch):
        monkeypatch.setattr(qmcstat.mpi, "DEBUG", True)
        ProcessGroup(comm_self).allgather(None)
        assert capsys.readouterr().err == "MPI: collective #1: allgather\n"


class TestCheckCollectives(object):
    def test_consistent_calls(self, run_ranks):
        def func(comm):
            group = ProcessGroup(comm, check_collectives=True)
            return mean_mpi(group, [float(comm.Get_rank())])

        results = _results(run_ranks(3, func))
        assert results[0] == results[1] == results[2]
        np.testing.assert_allclose(results[0], 1., rtol=1e-15)

    def test_diverging_calls(self, run_ranks):
        def func(comm):
            group = ProcessGroup(comm, check_collectives=True)
            if comm.Get_rank() == 0:
                return group.all_reduce(1)
            return mean_mpi(group, [1.])

        outcomes = run_ranks(3, func)
        for result, exc in outcomes:
            assert isinstance(exc, ProtocolViolation)
            assert "rank 0 at #1 allreduce" in str(exc)
