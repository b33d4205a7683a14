import pytest

from chaosraft import tunables
from chaosraft.common import *
from chaosraft.tunables import TunableParameterStore


def test_defaults():
    t = tunables.current()
    assert t.pending_proposal_shards == DEFAULT_CHAOS_PENDING_PROPOSAL_SHARDS
    assert t.task_batch_size == DEFAULT_CHAOS_TASK_BATCH_SIZE
    assert t.receive_queue_len == DEFAULT_CHAOS_RECEIVE_QUEUE_LEN
    assert t.apply_worker_count == DEFAULT_CHAOS_APPLY_WORKER_COUNT


def test_every_setter():
    tunables.set_pending_proposal_shards(1)
    tunables.set_task_batch_size(2)
    tunables.set_incoming_proposals_max_len(3)
    tunables.set_incoming_read_index_max_len(4)
    tunables.set_receive_queue_len(5)
    tunables.set_snapshot_worker_count(6)
    tunables.set_apply_worker_count(7)
    assert tuple(tunables.current()) == (1, 2, 3, 4, 5, 6, 7)


def test_degenerate_values_are_accepted():
    tunables.set_receive_queue_len(0)
    tunables.set_incoming_proposals_max_len(0)
    assert tunables.current().receive_queue_len == 0
    assert tunables.current().incoming_proposals_max_len == 0


def test_snapshot_is_immutable():
    snapshot = tunables.current()
    tunables.set_task_batch_size(1)
    assert snapshot.task_batch_size == DEFAULT_CHAOS_TASK_BATCH_SIZE
    with pytest.raises(AttributeError):
        snapshot.task_batch_size = 3


def test_freeze_rejects_late_mutation():
    tunables.set_receive_queue_len(4)
    tunables.freeze()
    assert tunables.get_store().is_frozen
    with pytest.raises(TunablesFrozenError):
        tunables.set_receive_queue_len(8)
    assert tunables.current().receive_queue_len == 4

    tunables.reset()
    tunables.set_receive_queue_len(8)
    assert tunables.current().receive_queue_len == 8


def test_stores_are_independent():
    store = TunableParameterStore()
    store.set_apply_worker_count(1)
    assert tunables.current().apply_worker_count == \
        DEFAULT_CHAOS_APPLY_WORKER_COUNT


def test_task_batch_size_bounds_each_apply_cycle(make_cluster):
    tunables.set_task_batch_size(3)
    _, (replica,) = make_cluster(1)
    for i in range(10):
        replica.propose(1, i + 1, 'k', i)
    assert replica.process() == 3
    assert replica.state_machine.get_last_applied() == 3
    assert replica.process() == 3
    assert replica.process() == 3
    assert replica.process() == 1


def test_instances_keep_the_tunables_they_were_built_with(make_cluster):
    _, (before,) = make_cluster(1)
    tunables.set_task_batch_size(2)
    _, (after,) = make_cluster(1)
    for r in (before, after):
        for i in range(10):
            r.propose(1, i + 1, 'k', i)
    assert before.process() == 10
    assert after.process() == 2
