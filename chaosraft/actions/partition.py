import abc
import random
import time

from chaosraft.common import *
from logzero import logger

from typing import Callable


class FaultPolicy(abc.ABC):
    """
    How a replica's transport treats each I/O attempt.

    Policies are immutable. A PartitionController swaps whole policies, never
    mutates one in place.
    """
    kind = None

    @abc.abstractmethod
    def admit(self, rand: Callable[[], float] = random.random,
              sleep: Callable[[float], None] = time.sleep) -> bool:
        raise NotImplementedError

    def __eq__(self, other):
        return type(self) is type(other) and self.__dict__ == other.__dict__

    def __hash__(self):
        return hash((type(self), tuple(sorted(self.__dict__.items()))))

    def __repr__(self):
        args = ", ".join("{}={!r}".format(k, v)
                         for k, v in sorted(self.__dict__.items()))
        return "{}({})".format(type(self).__name__, args)


class Connected(FaultPolicy):
    kind = FaultKind.CONNECTED

    def admit(self, rand=random.random, sleep=time.sleep) -> bool:
        return True


class Isolated(FaultPolicy):
    kind = FaultKind.ISOLATED

    def admit(self, rand=random.random, sleep=time.sleep) -> bool:
        return False


class Delayed(FaultPolicy):
    """
    Hold every I/O attempt back for duration seconds, then let it through.
    """
    kind = FaultKind.DELAYED

    def __init__(self, duration: float):
        if duration < 0:
            raise ValueError("delay must not be negative, got {}".format(
                duration))
        self.duration = duration

    def admit(self, rand=random.random, sleep=time.sleep) -> bool:
        sleep(self.duration)
        return True


class Lossy(FaultPolicy):
    """
    Drop each I/O attempt with the given probability.
    """
    kind = FaultKind.LOSSY

    def __init__(self, probability: float):
        if not 0.0 <= probability <= 1.0:
            raise ValueError("loss probability must be within [0, 1], got "
                             "{}".format(probability))
        self.probability = probability

    def admit(self, rand=random.random, sleep=time.sleep) -> bool:
        return rand() >= self.probability


CONNECTED = Connected()
ISOLATED = Isolated()


class PartitionController(object):
    """
    Controls whether one replica can talk to the outside world.

    The transport of the replica must call admit() (or is_partitioned()) on
    every send and receive attempt, not only when connecting, so that a
    partition takes effect on the very next I/O and lifts as soon as it is
    restored.

    The current policy is held in a single attribute and replaced by plain
    assignment. Readers on the I/O path never lock.

    Restoring a partitioned replica does nothing beyond letting traffic flow
    again. Catching up on missed entries is left to the replication engine.
    """

    def __init__(self, name: str = None,
                 rand: Callable[[], float] = random.random,
                 sleep: Callable[[float], None] = time.sleep):
        self.name = name
        self._policy = CONNECTED
        self._rand = rand
        self._sleep = sleep

    @property
    def fault_policy(self) -> FaultPolicy:
        return self._policy

    def set_fault_policy(self, policy: FaultPolicy) -> None:
        """
        Replace the current fault policy.

        :param policy: One of Connected(), Isolated(), Delayed(duration) or
            Lossy(probability).
            Required.
        :type policy: FaultPolicy
        :return: None
        """
        if not isinstance(policy, FaultPolicy):
            raise ValueError("expected a FaultPolicy, got {!r}".format(policy))
        old = self._policy
        if old == policy:
            logger.debug("%s already in fault policy %s", self._label(),
                         policy)
            return
        self._policy = policy
        logger.info("%s fault policy changed from %s to %s", self._label(),
                    old, policy)

    def partition_node(self) -> None:
        """
        Cut the replica off from all peers. A no-op when already partitioned.
        """
        if self.is_partitioned():
            logger.debug("%s already in partition test mode", self._label())
            return
        self._policy = ISOLATED
        logger.info("%s entered partition test mode", self._label())

    def restore_partitioned_node(self) -> None:
        """
        Leave partition test mode and lift any other fault policy. A no-op
        when already connected.
        """
        if self._policy.kind is FaultKind.CONNECTED:
            logger.debug("%s not in partition test mode", self._label())
            return
        self._policy = CONNECTED
        logger.info("%s restored from partition test mode", self._label())

    def is_partitioned(self) -> bool:
        return self._policy.kind is FaultKind.ISOLATED

    def admit(self) -> bool:
        """
        Decide the fate of one I/O attempt under the current policy.

        Returns False when the attempt must be dropped. A Delayed policy
        sleeps on the calling thread before admitting.

        :return: bool
        """
        return self._policy.admit(rand=self._rand, sleep=self._sleep)

    def _label(self) -> str:
        if self.name is None:
            return "node"
        return "node {}".format(self.name)
