import hashlib
import json

from collections import Counter, namedtuple
from chaosraft.common import *
from chaosraft.interfaces import IReplica, Membership
from logzero import logger

from typing import Dict, List

DigestTriple = namedtuple('DigestTriple', ['state_machine', 'session',
                                           'membership'])


def _canonical_value(value):
    """
    Turn a value json cannot encode into a form that is the same on every
    replica. Objects without their own __repr__ are reduced to their class
    name and attributes, so no memory address ever reaches the digest.
    """
    if isinstance(value, (bytes, bytearray)):
        return ['bytes', bytes(value).hex()]
    if isinstance(value, (set, frozenset)):
        return sorted(json.dumps(v, default=_canonical_value)
                      for v in value)
    cls = type(value)
    name = "{}.{}".format(cls.__module__, cls.__qualname__)
    if cls.__repr__ is not object.__repr__:
        return [name, repr(value)]
    attrs = getattr(value, '__dict__', {})
    return [name, [[k, attrs[k]] for k in sorted(attrs)]]


def _hash64(doc) -> int:
    encoded = json.dumps(doc, separators=(',', ':'),
                         default=_canonical_value).encode('utf-8')
    return int.from_bytes(hashlib.sha256(encoded).digest()[:8], 'big')


def _sorted_pairs(mapping: Dict) -> List:
    return [[k, mapping[k]] for k in sorted(mapping)]


def canonical_membership(membership: Membership) -> List:
    """
    Serialize a membership with every part ordered by node id.

    Two memberships holding the same members produce the same serialization
    no matter in which order members were added.
    """
    return [membership.config_change_id,
            _sorted_pairs(membership.addresses),
            _sorted_pairs(membership.observers),
            _sorted_pairs(membership.witnesses),
            sorted(membership.removed)]


def canonical_sessions(sessions: Dict) -> List:
    result = []
    for client_id in sorted(sessions):
        session = sessions[client_id]
        history = [[series_id, session.history[series_id]]
                   for series_id in sorted(session.history)]
        result.append([client_id, session.responded_up_to, history])
    return result


def state_machine_digest(replica: IReplica) -> int:
    """
    Return the digest of a replica's state machine.

    Computing it is left to the state machine itself. Failing to produce one
    is fatal to the calling test and is never retried.

    :param replica: The replica to digest.
        Required.
    :type replica: IReplica
    :return: int
    :raises DigestComputationError: the state machine failed to hash itself
    """
    try:
        return replica.state_machine.get_hash()
    except Exception as e:
        logger.error("Failed to get the state machine hash of node %s",
                     replica.node_id)
        raise DigestComputationError(
            "state machine of node {} in cluster {} failed to produce a "
            "digest".format(replica.node_id, replica.cluster_id)) from e


def session_digest(replica: IReplica) -> int:
    """
    Return the digest of a replica's client session table.

    The table is copied while holding the replica's raft lock and hashed
    after the lock is released.

    :param replica: The replica to digest.
        Required.
    :type replica: IReplica
    :return: int
    """
    with replica.raft_lock:
        doc = canonical_sessions(replica.state_machine.get_sessions())
    return _hash64(doc)


def membership_digest(replica: IReplica) -> int:
    """
    Return the digest of a replica's membership configuration.

    :param replica: The replica to digest.
        Required.
    :type replica: IReplica
    :return: int
    """
    with replica.raft_lock:
        doc = canonical_membership(replica.state_machine.get_membership())
    return _hash64(doc)


def digest_triple(replica: IReplica) -> DigestTriple:
    return DigestTriple(state_machine=state_machine_digest(replica),
                        session=session_digest(replica),
                        membership=membership_digest(replica))


_digesters = {
    DigestKind.STATE_MACHINE: state_machine_digest,
    DigestKind.SESSION: session_digest,
    DigestKind.MEMBERSHIP: membership_digest,
}


def get_digests(replicas: List[IReplica],
                kind: DigestKind = DigestKind.STATE_MACHINE) -> Dict[int, int]:
    """
    Return {node id: digest} for every replica.
    """
    digester = _digesters[DigestKind(kind)]
    return {replica.node_id: digester(replica) for replica in replicas}


def diverged_replicas(replicas: List[IReplica],
                      kind: DigestKind = DigestKind.STATE_MACHINE
                      ) -> List[int]:
    """
    Return the ids of replicas whose digest differs from the most common one.

    Ties are broken in favour of the digest of the first replica. Equal
    digests only mean no divergence was detected so far, not that the
    replicas are proven identical.

    :param replicas: The replicas to compare.
        Required.
    :type replicas: List[IReplica]
    :param kind: Which digest to compare.
        Optional. (Default: DigestKind.STATE_MACHINE)
    :type kind: DigestKind
    :return: List[int]
    """
    digests = get_digests(replicas, kind)
    if not digests:
        return []
    counts = Counter(digests.values())
    first = digests[replicas[0].node_id]
    majority = max(counts, key=lambda d: (counts[d], d == first))
    return sorted(node_id for node_id, d in digests.items() if d != majority)


def replicas_are_consistent(replicas: List[IReplica],
                            kind: DigestKind = DigestKind.STATE_MACHINE
                            ) -> bool:
    """
    Do all replicas report the same digest?

    A probe. It measures and logs, it never asserts. A state machine that
    cannot produce a digest still raises DigestComputationError.

    :return: bool
    """
    kind = DigestKind(kind)
    diverged = diverged_replicas(replicas, kind)
    if diverged:
        logger.error("%s digest of nodes %s diverged from the rest of the "
                     "group", kind.name.lower(), diverged)
        return False
    logger.debug("no %s digest divergence detected across %d nodes",
                 kind.name.lower(), len(replicas))
    return True
