from chaosraft.common import *
from chaosraft.interfaces import IReplica
from logzero import logger

from typing import List, Optional


def _role(replica: IReplica):
    with replica.raft_lock:
        info = replica.raft_info()
    if info is None:
        return None
    return info.role


def is_leader(replica: IReplica) -> bool:
    return _role(replica) is RaftRole.LEADER


def is_follower(replica: IReplica) -> bool:
    return _role(replica) is RaftRole.FOLLOWER


def get_last_applied(replica: IReplica) -> int:
    """
    Return the index of the last entry applied to the replica's state machine.
    """
    return replica.state_machine.get_last_applied()


def get_in_mem_log_size(replica: IReplica) -> int:
    with replica.raft_lock:
        return replica.in_mem_log_size()


def get_leader(replicas: List[IReplica]) -> Optional[int]:
    """
    Return the node id of the leader, None unless exactly one replica leads.

    :param replicas: The replicas of one consensus group.
        Required.
    :type replicas: List[IReplica]
    :return: Union[int,None]
    """
    leaders = [r.node_id for r in replicas if is_leader(r)]
    if len(leaders) != 1:
        logger.debug("expected a single leader, found %s", leaders)
        return None
    return leaders[0]


def leader_is_unique(replicas: List[IReplica]) -> bool:
    """
    Is exactly one of the replicas the leader?

    :return: bool
    """
    leader = get_leader(replicas)
    if leader is None:
        logger.error("No unique leader among nodes %s",
                     [r.node_id for r in replicas])
        return False
    logger.debug("node %s is the only leader", leader)
    return True
