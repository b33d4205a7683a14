import json
import logging

from chaosraft.common import *
from chaosraft.interfaces import IReplica
from logzero import logger
from os.path import join

from typing import Dict, Optional


def _members(membership) -> Dict[int, str]:
    members = {}
    members.update(membership.witnesses)
    members.update(membership.observers)
    members.update(membership.addresses)
    return members


def _collect(replica: IReplica):
    """
    Resolve the address map and read the protocol state of a replica.

    Must be called with the replica's raft lock held. Returns (None, None)
    when the replica's protocol peer is not running.
    """
    info = replica.raft_info()
    if info is None:
        return None, None
    addr_map = {}
    membership = replica.state_machine.get_membership()
    for node_id in _members(membership):
        if node_id == replica.node_id:
            addr_map[node_id] = replica.raft_address
            continue
        try:
            addr_map[node_id] = replica.node_registry.resolve(
                replica.cluster_id, node_id)
        except Exception as e:
            logger.debug("failed to resolve node %s: %s", node_id, e)
    return addr_map, info


def _prefix(replica: IReplica) -> str:
    return "[{:05d}:{:05d}]".format(replica.cluster_id, replica.node_id)


def dump_info(replica: IReplica,
              sink: Optional[logging.Logger] = None) -> Dict[int, str]:
    """
    Log the address map and protocol state of a replica.

    Every member of the replica's membership is listed with its address. The
    replica's own address comes from its configuration, peers are looked up
    through the replica's node registry. Peers that cannot be resolved are
    left out.

    Never raises. Diagnostics must not abort a test run, so any failure is
    logged and an empty map is returned.

    :param replica: The replica to dump.
        Required.
    :type replica: IReplica
    :param sink: Where to write the dump.
        Optional. (Default: the logzero logger)
    :type sink: logging.Logger
    :return: Dict[int, str] the address map that was logged
    """
    sink = sink or logger
    try:
        with replica.raft_lock:
            addr_map, info = _collect(replica)
        prefix = _prefix(replica)
        if info is None:
            sink.info("%s raft peer not running, nothing to dump", prefix)
            return {}
        sink.info("%s raft info, role %s, term %d, vote %s, leader %s",
                  prefix, info.role.name.lower(), info.term, info.vote,
                  info.leader_id)
        sink.info("%s raft log, first index %d, last index %d, committed %d,"
                  " applied %d", prefix, info.first_index, info.last_index,
                  info.committed, info.applied)
        for node_id in sorted(addr_map):
            sink.info("%s member %d, address %s", prefix, node_id,
                      addr_map[node_id])
        return addr_map
    except Exception as e:
        logger.error("Failed to dump raft info of node %s",
                     getattr(replica, 'node_id', None))
        logger.exception(e)
        return {}


def dump_info_to_file(replica: IReplica) -> Optional[str]:
    """
    Write the address map and protocol state of a replica to the chaos temp
    dir as a JSON document named <cluster id>-<node id>-raft-info.

    Best effort like dump_info. Returns the path written or None.

    :param replica: The replica to dump.
        Required.
    :type replica: IReplica
    :return: Union[str,None]
    """
    try:
        with replica.raft_lock:
            addr_map, info = _collect(replica)
        if info is None:
            logger.info("%s raft peer not running, nothing to dump",
                        _prefix(replica))
            return None
        doc = {
            'cluster_id': replica.cluster_id,
            'node_id': replica.node_id,
            'role': info.role.name,
            'term': info.term,
            'vote': info.vote,
            'leader_id': info.leader_id,
            'first_index': info.first_index,
            'last_index': info.last_index,
            'committed': info.committed,
            'applied': info.applied,
            'addresses': {str(k): v for k, v in sorted(addr_map.items())},
        }
        path = join(get_chaos_temp_dir(), "{}-{}-raft-info".format(
            replica.cluster_id, replica.node_id))
        with open(path, 'w') as f:
            f.write(json.dumps(doc))
        logger.debug("raft info of node %s written to %s", replica.node_id,
                     path)
        return path
    except Exception as e:
        logger.error("Failed to write raft info of node %s",
                     getattr(replica, 'node_id', None))
        logger.exception(e)
        return None
