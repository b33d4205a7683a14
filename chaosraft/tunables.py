"""
Process-wide capacity and concurrency tunables of the system under test.

A system instance reads the tunables exactly once, at construction, by calling
current(). Every setter must therefore run before the instances it is meant to
affect are constructed. Instances constructed earlier keep the snapshot they
took.

No range or sanity checks are done. Degenerate values such as a zero length
receive queue are accepted on purpose so experiments can provoke starvation
and backpressure.

Call freeze() once the experiment is configured. From then on every setter
raises TunablesFrozenError rather than silently having no effect on running
instances.
"""
import threading

from collections import namedtuple
from chaosraft.common import *
from logzero import logger

Tunables = namedtuple('Tunables', ['pending_proposal_shards',
                                   'task_batch_size',
                                   'incoming_proposals_max_len',
                                   'incoming_read_index_max_len',
                                   'receive_queue_len',
                                   'snapshot_worker_count',
                                   'apply_worker_count'])

DEFAULT_TUNABLES = Tunables(
    pending_proposal_shards=DEFAULT_CHAOS_PENDING_PROPOSAL_SHARDS,
    task_batch_size=DEFAULT_CHAOS_TASK_BATCH_SIZE,
    incoming_proposals_max_len=DEFAULT_CHAOS_INCOMING_PROPOSALS_MAX_LEN,
    incoming_read_index_max_len=DEFAULT_CHAOS_INCOMING_READ_INDEX_MAX_LEN,
    receive_queue_len=DEFAULT_CHAOS_RECEIVE_QUEUE_LEN,
    snapshot_worker_count=DEFAULT_CHAOS_SNAPSHOT_WORKER_COUNT,
    apply_worker_count=DEFAULT_CHAOS_APPLY_WORKER_COUNT)


class TunableParameterStore(object):
    """
    Holds the tunables handed to every system instance constructed afterwards.
    """

    def __init__(self, defaults: Tunables = DEFAULT_TUNABLES):
        self._defaults = defaults
        self._tunables = defaults
        self._frozen = False
        self._mu = threading.Lock()

    def current(self) -> Tunables:
        """
        Return an immutable snapshot of the tunables.
        """
        return self._tunables

    @property
    def is_frozen(self) -> bool:
        return self._frozen

    def freeze(self) -> None:
        """
        Reject every later setter call.
        """
        with self._mu:
            self._frozen = True
        logger.info("tunables frozen: %s", self._tunables)

    def reset(self) -> None:
        """
        Restore the defaults and accept setter calls again.
        """
        with self._mu:
            self._tunables = self._defaults
            self._frozen = False
        logger.debug("tunables reset to defaults")

    def _set(self, name: str, value: int) -> None:
        with self._mu:
            if self._frozen:
                raise TunablesFrozenError(
                    "cannot set {} to {}, tunables are frozen".format(name,
                                                                     value))
            self._tunables = self._tunables._replace(**{name: value})
        logger.debug("tunable %s set to %s", name, value)

    def set_pending_proposal_shards(self, sz: int) -> None:
        self._set('pending_proposal_shards', sz)

    def set_task_batch_size(self, sz: int) -> None:
        self._set('task_batch_size', sz)

    def set_incoming_proposals_max_len(self, sz: int) -> None:
        self._set('incoming_proposals_max_len', sz)

    def set_incoming_read_index_max_len(self, sz: int) -> None:
        self._set('incoming_read_index_max_len', sz)

    def set_receive_queue_len(self, sz: int) -> None:
        self._set('receive_queue_len', sz)

    def set_snapshot_worker_count(self, count: int) -> None:
        self._set('snapshot_worker_count', count)

    def set_apply_worker_count(self, count: int) -> None:
        self._set('apply_worker_count', count)


# The process-wide store read by system instances that are not handed one.
_store = TunableParameterStore()


def get_store() -> TunableParameterStore:
    return _store


def current() -> Tunables:
    return _store.current()


def freeze() -> None:
    _store.freeze()


def reset() -> None:
    _store.reset()


def set_pending_proposal_shards(sz: int) -> None:
    _store.set_pending_proposal_shards(sz)


def set_task_batch_size(sz: int) -> None:
    _store.set_task_batch_size(sz)


def set_incoming_proposals_max_len(sz: int) -> None:
    _store.set_incoming_proposals_max_len(sz)


def set_incoming_read_index_max_len(sz: int) -> None:
    _store.set_incoming_read_index_max_len(sz)


def set_receive_queue_len(sz: int) -> None:
    _store.set_receive_queue_len(sz)


def set_snapshot_worker_count(count: int) -> None:
    """
    Set how many snapshot workers instances constructed afterwards use.
    """
    _store.set_snapshot_worker_count(count)


def set_apply_worker_count(count: int) -> None:
    """
    Set how many apply workers instances constructed afterwards use.
    """
    _store.set_apply_worker_count(count)
