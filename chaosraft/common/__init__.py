import shutil
import tempfile
from enum import Enum
from logzero import logger
from os import makedirs
from psutil import Process, NoSuchProcess


class ChaosError(Exception):
    """
    Base class of all errors raised by chaosraft.
    """


class DigestComputationError(ChaosError):
    """
    A replica's state machine could not produce a digest.

    Fatal to the calling test. A digest is never retried.
    """


class TunablesFrozenError(ChaosError):
    """
    A tunable was set after the tunable store was frozen.
    """


def get_chaos_temp_dir() -> str:
    """
    Create a temporary directory unique to each chaos experiment.

    The temporary directory will take the form <tempdir>/chaosraft.<pid>
    The <pid> will be the chaos processe's pid iff it exists. Otherwise, the
    subprocess's pid.

    :return: str
    """
    # Get current process info
    myp = Process()
    subprocess_pid = myp.pid
    chaos_pid = None
    # Walk all the way up the process tree
    while(1):
        #  Break when we find the 'chaos' process
        if myp.name() == 'chaos':
            logger.debug("Found 'chaos' process")
            chaos_pid = myp.pid
            break
        try:
            parent_pid = myp.ppid()
            if parent_pid == 0:
                raise NoSuchProcess(parent_pid)
            myp = Process(parent_pid)
            logger.debug("myp.name=%s", myp.name())
        except NoSuchProcess:
            logger.info("Did not find chaos pid before traversing all the way" \
                        " to the top of the process tree! Defaulting to %s",
                        subprocess_pid)
            chaos_pid = subprocess_pid
            break

    logger.debug("subprocess pid: %s chaos pid: %s", subprocess_pid, chaos_pid)
    tempdir_path = "{}/chaosraft.{}".format(tempfile.gettempdir(), chaos_pid)
    makedirs(tempdir_path, exist_ok=True)
    logger.debug("tempdir: %s", tempdir_path)
    return tempdir_path


def remove_chaos_temp_dir(cleanup: bool = True) -> bool:
    """
    Remove the chaos temp directory created by get_chaos_temp_dir

    :param cleanup: Perform the cleanup task?
    :type cleanup: bool
        Optional. (Default: True)
    :return: bool
    """
    temp_dir = get_chaos_temp_dir()
    if cleanup:
        logger.debug("Recursively deleting %s", temp_dir)
        try:
            shutil.rmtree(temp_dir)
        except Exception as e:
            logger.error("Failed to recursively delete the contents of %s",
                         temp_dir)
            logger.exception(e)
            return False
    else:
        logger.info("Skip removal of %s.", temp_dir)
    return True


class RaftRole(Enum):
    """
    All roles a replica may play in its consensus group.
    """
    FOLLOWER = 1
    CANDIDATE = 2
    PRE_VOTE_CANDIDATE = 3
    LEADER = 4
    OBSERVER = 5
    WITNESS = 6

    @classmethod
    def has_value(cls, value):
        return any(value == item.value for item in cls)


class DigestKind(Enum):
    """
    The three digests that can be computed for a replica.
    """
    STATE_MACHINE = 1
    SESSION = 2
    MEMBERSHIP = 3

    @classmethod
    def has_value(cls, value):
        return any(value == item.value for item in cls)


class FaultKind(Enum):
    """
    All supported network fault policies.
    """
    # all I/O goes through untouched
    CONNECTED = 1
    # no I/O at all, the replica is cut off from every peer
    ISOLATED = 2
    # every I/O attempt is held back for a fixed duration
    DELAYED = 3
    # every I/O attempt is dropped with a fixed probability
    LOSSY = 4

    @classmethod
    def has_value(cls, value):
        return any(value == item.value for item in cls)


# Chaos defaults
# Please keep defaults in lexically acending order by name
DEFAULT_CHAOS_APPLY_WORKER_COUNT=16
DEFAULT_CHAOS_INCOMING_PROPOSALS_MAX_LEN=2048
DEFAULT_CHAOS_INCOMING_READ_INDEX_MAX_LEN=4096
DEFAULT_CHAOS_PENDING_PROPOSAL_SHARDS=16
DEFAULT_CHAOS_RECEIVE_QUEUE_LEN=1024
DEFAULT_CHAOS_SNAPSHOT_WORKER_COUNT=64
DEFAULT_CHAOS_TASK_BATCH_SIZE=512
