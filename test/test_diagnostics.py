import json
import logging

import pytest

from chaosraft.interfaces import new_membership
from chaosraft.probes import diagnostics
from chaosraft.probes.diagnostics import dump_info, dump_info_to_file


@pytest.fixture
def sink():
    records = []

    class _Handler(logging.Handler):
        def emit(self, record):
            records.append(record.getMessage())

    log = logging.getLogger('chaosraft.test.diagnostics')
    log.setLevel(logging.DEBUG)
    log.propagate = False
    handler = _Handler()
    log.addHandler(handler)
    log.records = records
    yield log
    log.removeHandler(handler)


def test_dump_info_lists_every_member(make_cluster, sink):
    _, (a, b, c) = make_cluster(3)
    addr_map = dump_info(a, sink=sink)
    assert addr_map == {1: 'localhost:26001', 2: 'localhost:26002',
                        3: 'localhost:26003'}
    assert any("role leader" in m for m in sink.records)
    assert any("member 3, address localhost:26003" in m
               for m in sink.records)


def test_self_address_comes_from_the_replica(make_cluster, sink):
    _, (a, b) = make_cluster(2)
    a.raft_address = 'self.example:1'
    a.node_registry.addresses.clear()
    assert dump_info(a, sink=sink) == {1: 'self.example:1'}


def test_unresolvable_peers_are_left_out(make_cluster, sink):
    _, (a, b, c) = make_cluster(3)
    del a.node_registry.addresses[(1, 3)]
    addr_map = dump_info(a, sink=sink)
    assert addr_map == {1: 'localhost:26001', 2: 'localhost:26002'}


def test_observers_and_witnesses_are_members(make_cluster, sink):
    _, (a,) = make_cluster(1)
    a.state_machine.membership = new_membership(
        {1: 'localhost:26001'}, observers={4: 'o'}, witnesses={5: 'w'})
    a.node_registry.addresses[(1, 4)] = 'observer:4'
    a.node_registry.addresses[(1, 5)] = 'witness:5'
    assert dump_info(a, sink=sink) == {1: 'localhost:26001', 4: 'observer:4',
                                       5: 'witness:5'}


def test_dump_info_never_raises(make_cluster, sink):
    _, (a,) = make_cluster(1)

    def broken():
        raise RuntimeError("boom")

    a.raft_info = broken
    assert dump_info(a, sink=sink) == {}
    assert not a.raft_lock.locked()


def test_dump_info_of_stopped_peer(make_cluster, sink):
    _, (a,) = make_cluster(1)
    a.running = False
    assert dump_info(a, sink=sink) == {}
    assert any("not running" in m for m in sink.records)


def test_dump_info_to_file(make_cluster, tmp_path, monkeypatch):
    monkeypatch.setattr(diagnostics, 'get_chaos_temp_dir',
                        lambda: str(tmp_path))
    _, (a, b) = make_cluster(2)
    a.propose(1, 1, 'k', 'v')
    a.process()
    path = dump_info_to_file(a)
    with open(path, 'r') as f:
        doc = json.load(f)
    assert doc['role'] == 'LEADER'
    assert doc['committed'] == 1
    assert doc['applied'] == 1
    assert doc['addresses'] == {'1': 'localhost:26001',
                                '2': 'localhost:26002'}


def test_dump_info_to_file_is_best_effort(make_cluster, monkeypatch):
    def no_temp_dir():
        raise OSError("read-only filesystem")

    monkeypatch.setattr(diagnostics, 'get_chaos_temp_dir', no_temp_dir)
    _, (a,) = make_cluster(1)
    assert dump_info_to_file(a) is None
