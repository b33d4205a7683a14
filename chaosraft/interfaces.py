"""
Contracts of the system under test as consumed by chaosraft.

chaosraft never constructs replicas, state machines, transports or address
registries. It borrows them from the system under test through the abstract
classes below. Anything that implements these interfaces can be probed and
faulted.
"""
import abc

from collections import namedtuple

from typing import Dict, Optional

Membership = namedtuple('Membership', ['config_change_id', 'addresses',
                                       'observers', 'witnesses', 'removed'])
Session = namedtuple('Session', ['client_id', 'responded_up_to', 'history'])
RaftInfo = namedtuple('RaftInfo', ['role', 'term', 'vote', 'leader_id',
                                   'first_index', 'last_index', 'committed',
                                   'applied'])


def new_membership(addresses: Dict[int, str] = None,
                   observers: Dict[int, str] = None,
                   witnesses: Dict[int, str] = None,
                   removed=None, config_change_id: int = 0) -> Membership:
    """
    Build a Membership, defaulting every missing part to an empty container.
    """
    return Membership(config_change_id=config_change_id,
                      addresses=dict(addresses or {}),
                      observers=dict(observers or {}),
                      witnesses=dict(witnesses or {}),
                      removed=set(removed or ()))


class IStateMachine(abc.ABC):
    """
    The replicated state machine owned by one replica.
    """

    @abc.abstractmethod
    def get_hash(self) -> int:
        """
        Return the state machine's own 64 bit digest. May raise.
        """
        raise NotImplementedError

    @abc.abstractmethod
    def get_sessions(self) -> Dict[int, Session]:
        raise NotImplementedError

    @abc.abstractmethod
    def get_membership(self) -> Membership:
        raise NotImplementedError

    @abc.abstractmethod
    def get_last_applied(self) -> int:
        raise NotImplementedError


class IAddressResolver(abc.ABC):
    """
    Maps (cluster id, node id) to a network address.
    """

    @abc.abstractmethod
    def resolve(self, cluster_id: int, node_id: int) -> str:
        """
        Return the address of a node. Raises when the node is unknown.
        """
        raise NotImplementedError


class IReplica(abc.ABC):
    """
    One consensus participant.

    raft_lock is the lock the replica's processing loop holds while it
    mutates protocol state. chaosraft only ever holds it to copy in-memory
    state, never across I/O.
    """
    cluster_id = None
    node_id = None
    raft_address = None
    state_machine = None
    node_registry = None
    raft_lock = None

    @abc.abstractmethod
    def raft_info(self) -> Optional[RaftInfo]:
        """
        Return the protocol state, or None when the peer is not running.

        Called with raft_lock held.
        """
        raise NotImplementedError

    @abc.abstractmethod
    def in_mem_log_size(self) -> int:
        """
        Return the number of entries held in the in-memory log.

        Called with raft_lock held.
        """
        raise NotImplementedError


class IFile(abc.ABC):
    """
    An open file of an IFS.
    """

    @abc.abstractmethod
    def read(self, size: int = -1) -> bytes:
        raise NotImplementedError

    @abc.abstractmethod
    def write(self, data: bytes) -> int:
        raise NotImplementedError

    @abc.abstractmethod
    def seek(self, offset: int, whence: int = 0) -> int:
        raise NotImplementedError

    @abc.abstractmethod
    def sync(self) -> None:
        raise NotImplementedError

    @abc.abstractmethod
    def close(self) -> None:
        raise NotImplementedError

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_value, traceback):
        self.close()


class IFS(abc.ABC):
    """
    The storage abstraction the system under test writes through.
    """

    @abc.abstractmethod
    def create(self, name: str) -> IFile:
        raise NotImplementedError

    @abc.abstractmethod
    def open(self, name: str) -> IFile:
        raise NotImplementedError

    @abc.abstractmethod
    def open_for_append(self, name: str) -> IFile:
        raise NotImplementedError

    @abc.abstractmethod
    def remove(self, name: str) -> None:
        raise NotImplementedError

    @abc.abstractmethod
    def remove_all(self, name: str) -> None:
        raise NotImplementedError

    @abc.abstractmethod
    def rename(self, old_name: str, new_name: str) -> None:
        raise NotImplementedError

    @abc.abstractmethod
    def mkdir_all(self, name: str) -> None:
        raise NotImplementedError

    @abc.abstractmethod
    def list(self, name: str):
        raise NotImplementedError

    @abc.abstractmethod
    def exists(self, name: str) -> bool:
        raise NotImplementedError

    @abc.abstractmethod
    def stat(self, name: str):
        raise NotImplementedError
