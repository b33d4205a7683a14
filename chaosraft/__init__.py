"""
chaosraft module

This module contains:
 - actions that inject faults into a running consensus group: network
   partitions and fault policies, and pre-send traffic hooks (actions
   directory)
 - probes that gather data/information about replica state: consistency
   digests, raft diagnostics and role introspection (probes directory)
 - process-wide tunables of the system under test (tunables.py file)
 - an in-memory filesystem to run the system under test on (vfs.py file)
 - the contracts chaosraft expects the system under test to implement
   (interfaces.py file)
 - common defaults, enums and errors (common directory)

chaosraft is a library-level control surface. It runs in-process, next to the
replicas it controls, and every operation is a plain synchronous call made
from whichever thread the test driver or the system under test is on.
chaosraft starts no threads of its own.

A typical experiment:

1. Override tunables and pick a MemFS before constructing any replica.
2. Register traffic hooks on each replica's transport.
3. Partition and restore replicas while load is applied.
4. Poll consistency digests across replicas to detect divergence.
5. Dump raft diagnostics of every replica when something looks wrong.

Probes measure, they do not judge. Matching digests mean no divergence was
detected so far, never that replicas are proven identical. Deciding whether
an experiment failed is left to the test driver.

Things to consider when adding or modifying actions and/or probes:
1. Actions and Probes could/may be used outside of Chaos experiments for other
   kinds of integration or systems testing. Therefore, actions should
   be written in a way they can reused outside of the context of the
   the chaosraft module.
2. Actions and probes only borrow replicas. They must never hold a replica's
   raft lock across I/O.
"""
