"""
Pre-send interception of outbound traffic.

The transport of the system under test calls apply_message_batch() for every
outbound message batch and apply_stream_chunk() for every snapshot stream
chunk, synchronously on the sending thread and before the payload reaches the
network. Each hook returns a Verdict:

- pass_through(payload): forward the payload untouched,
- drop(payload): do not send it,
- mutate(new_payload): forward new_payload instead.

Hooks of one kind form an ordered chain. set_*_hook() replaces the whole chain
with a single hook, add_*_hook() appends to it. The chain runs in
registration order, each hook sees the payload produced by the previous one
and the first drop ends the chain.

Hooks run inline on the send path. A slow hook delays every outbound message
of the node, so hooks should be quick. Sleeping in a hook on purpose is how
reordering is emulated.
"""
import random
import threading
import time

from collections import namedtuple
from logzero import logger

from typing import Any, Callable, Optional

Verdict = namedtuple('Verdict', ['payload', 'forward'])

MESSAGE_BATCH = 'message-batch'
STREAM_CHUNK = 'stream-chunk'


def pass_through(payload: Any) -> Verdict:
    return Verdict(payload, True)


def drop(payload: Any) -> Verdict:
    return Verdict(payload, False)


def mutate(payload: Any) -> Verdict:
    return Verdict(payload, True)


class TrafficHookRegistry(object):
    """
    Holds the active hook chain of each kind for one node.

    Each chain is a tuple that is never modified. Registration builds a new
    tuple and swaps it in with a single assignment, so a send in flight sees
    either the whole old chain or the whole new one. Only writers lock.
    """

    def __init__(self):
        self._chains = {MESSAGE_BATCH: (), STREAM_CHUNK: ()}
        self._mu = threading.Lock()

    def _replace(self, kind: str, hook: Optional[Callable]) -> None:
        chain = () if hook is None else (hook,)
        with self._mu:
            self._chains = dict(self._chains, **{kind: chain})
        if hook is None:
            logger.info("%s hooks cleared", kind)
        else:
            logger.info("%s hook set to %s", kind, hook)

    def _append(self, kind: str, hook: Callable) -> None:
        if hook is None:
            raise ValueError("hook must not be None")
        with self._mu:
            chain = self._chains[kind] + (hook,)
            self._chains = dict(self._chains, **{kind: chain})
        logger.info("%s hook %s added, %d active", kind, hook, len(chain))

    def set_message_batch_hook(self, hook: Optional[Callable]) -> None:
        """
        Make hook the only message batch hook. None removes every hook.
        """
        self._replace(MESSAGE_BATCH, hook)

    def set_stream_chunk_hook(self, hook: Optional[Callable]) -> None:
        """
        Make hook the only stream chunk hook. None removes every hook.
        """
        self._replace(STREAM_CHUNK, hook)

    def add_message_batch_hook(self, hook: Callable) -> None:
        self._append(MESSAGE_BATCH, hook)

    def add_stream_chunk_hook(self, hook: Callable) -> None:
        self._append(STREAM_CHUNK, hook)

    def hooks(self, kind: str):
        return self._chains[kind]

    def apply_message_batch(self, batch: Any) -> Verdict:
        return self._apply(self._chains[MESSAGE_BATCH], batch)

    def apply_stream_chunk(self, chunk: Any) -> Verdict:
        return self._apply(self._chains[STREAM_CHUNK], chunk)

    @staticmethod
    def _apply(chain, payload: Any) -> Verdict:
        verdict = pass_through(payload)
        for hook in chain:
            verdict = hook(verdict.payload)
            if not verdict.forward:
                break
        return verdict


def drop_all() -> Callable[[Any], Verdict]:
    """
    A hook that drops everything.
    """
    def _drop_all(payload):
        return drop(payload)
    return _drop_all


def drop_randomly(probability: float,
                  rand: Callable[[], float] = random.random
                  ) -> Callable[[Any], Verdict]:
    """
    A hook that drops each payload with the given probability.
    """
    if not 0.0 <= probability <= 1.0:
        raise ValueError("drop probability must be within [0, 1], got "
                         "{}".format(probability))

    def _drop_randomly(payload):
        if rand() < probability:
            return drop(payload)
        return pass_through(payload)
    return _drop_randomly


def delay(seconds: float,
          sleep: Callable[[float], None] = time.sleep
          ) -> Callable[[Any], Verdict]:
    """
    A hook that holds each payload back for the given number of seconds.
    """
    if seconds < 0:
        raise ValueError("delay must not be negative, got {}".format(seconds))

    def _delay(payload):
        sleep(seconds)
        return pass_through(payload)
    return _delay
