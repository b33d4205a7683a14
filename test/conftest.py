import hashlib
import json
import threading

from collections import deque, namedtuple

import pytest

from chaosraft import tunables
from chaosraft.actions.hooks import TrafficHookRegistry
from chaosraft.actions.partition import PartitionController
from chaosraft.common import RaftRole
from chaosraft.interfaces import (IAddressResolver, IReplica, IStateMachine,
                                  RaftInfo, Session, new_membership)

Entry = namedtuple('Entry', ['index', 'client_id', 'series_id', 'key',
                             'value'])
MessageBatch = namedtuple('MessageBatch', ['source', 'target', 'entries'])


class FakeStateMachine(IStateMachine):
    def __init__(self, membership=None):
        self.kv = {}
        self.sessions = {}
        self.membership = membership or new_membership()
        self.last_applied = 0
        self.hash_error = None

    def apply(self, entry):
        self.kv[entry.key] = entry.value
        session = self.sessions.get(entry.client_id)
        history = dict(session.history) if session else {}
        history[entry.series_id] = entry.value
        self.sessions[entry.client_id] = Session(entry.client_id,
                                                 entry.series_id, history)
        self.last_applied = entry.index

    def get_hash(self):
        if self.hash_error is not None:
            raise self.hash_error
        doc = json.dumps(sorted(self.kv.items())).encode('utf-8')
        return int.from_bytes(hashlib.sha256(doc).digest()[:8], 'big')

    def get_sessions(self):
        return self.sessions

    def get_membership(self):
        return self.membership

    def get_last_applied(self):
        return self.last_applied


class FakeResolver(IAddressResolver):
    def __init__(self, addresses=None):
        self.addresses = dict(addresses or {})

    def resolve(self, cluster_id, node_id):
        try:
            return self.addresses[(cluster_id, node_id)]
        except KeyError:
            raise LookupError("node {} of cluster {} is unknown".format(
                node_id, cluster_id))


class FakeTransport(object):
    """
    Delivers message batches between fake replicas of one process.

    Partition state is checked on the sender and on the receiver for every
    batch, hooks run on the sender before delivery.
    """

    def __init__(self):
        self.replicas = {}
        self.delivered = 0

    def register(self, replica):
        self.replicas[replica.node_id] = replica
        replica.transport = self

    def send(self, batch):
        source = self.replicas[batch.source]
        if not source.partition.admit():
            return False
        verdict = source.hooks.apply_message_batch(batch)
        if not verdict.forward:
            return False
        target = self.replicas.get(verdict.payload.target)
        if target is None or not target.partition.admit():
            return False
        if len(target.receive_queue) >= target.tunables.receive_queue_len:
            return False
        target.receive_queue.append(verdict.payload)
        self.delivered += 1
        return True


class FakeReplica(IReplica):
    """
    A toy replica. The leader commits proposals locally and pushes them to
    every peer. Followers append what arrives in order and ignore gaps.
    Tunables are read once, at construction.
    """

    def __init__(self, cluster_id, node_id, address, membership=None,
                 registry=None, role=RaftRole.FOLLOWER):
        self.cluster_id = cluster_id
        self.node_id = node_id
        self.raft_address = address
        self.state_machine = FakeStateMachine(membership)
        self.node_registry = registry or FakeResolver()
        self.raft_lock = threading.Lock()
        self.tunables = tunables.current()
        self.partition = PartitionController(name=node_id)
        self.hooks = TrafficHookRegistry()
        self.receive_queue = deque()
        self.transport = None
        self.role = role
        self.term = 1
        self.running = True
        self.log = []
        self.committed = 0

    def raft_info(self):
        if not self.running:
            return None
        leader = self.node_id if self.role is RaftRole.LEADER else None
        return RaftInfo(role=self.role, term=self.term, vote=leader,
                        leader_id=leader,
                        first_index=1 if self.log else 0,
                        last_index=len(self.log), committed=self.committed,
                        applied=self.state_machine.last_applied)

    def in_mem_log_size(self):
        return len(self.log) - self.state_machine.last_applied

    def peers(self):
        return [node_id for node_id in self.transport.replicas
                if node_id != self.node_id]

    def propose(self, client_id, series_id, key, value):
        with self.raft_lock:
            entry = Entry(len(self.log) + 1, client_id, series_id, key, value)
            self.log.append(entry)
            self.committed = entry.index
        for peer in self.peers():
            self.transport.send(MessageBatch(self.node_id, peer, (entry,)))
        return entry

    def catch_up(self, peer):
        """
        Push every entry the peer is missing in a single batch.
        """
        start = len(self.transport.replicas[peer].log)
        entries = tuple(self.log[start:])
        return self.transport.send(MessageBatch(self.node_id, peer, entries))

    def process(self):
        """
        One cycle of the processing loop. Returns the number of entries
        applied.
        """
        with self.raft_lock:
            while self.receive_queue:
                batch = self.receive_queue.popleft()
                for entry in batch.entries:
                    if entry.index == len(self.log) + 1:
                        self.log.append(entry)
                        self.committed = entry.index
            start = self.state_machine.last_applied
            end = min(self.committed, start + self.tunables.task_batch_size)
            for entry in self.log[start:end]:
                self.state_machine.apply(entry)
            return end - start


@pytest.fixture(autouse=True)
def reset_tunables():
    tunables.reset()
    yield
    tunables.reset()


@pytest.fixture
def make_cluster():
    """
    Build a consensus group of fake replicas wired to one transport. The
    first replica leads.
    """
    def _make_cluster(size, cluster_id=1):
        addresses = {i: "localhost:{}".format(26000 + i)
                     for i in range(1, size + 1)}
        registry = FakeResolver({(cluster_id, i): a
                                 for i, a in addresses.items()})
        transport = FakeTransport()
        replicas = []
        for node_id, address in addresses.items():
            role = RaftRole.LEADER if node_id == 1 else RaftRole.FOLLOWER
            replica = FakeReplica(cluster_id, node_id, address,
                                  membership=new_membership(addresses),
                                  registry=registry, role=role)
            transport.register(replica)
            replicas.append(replica)
        return transport, replicas
    return _make_cluster
