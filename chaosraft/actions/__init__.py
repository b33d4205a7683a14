"""
Chaos 'actions' module.

This module contains *actions* that modify how replicas of a consensus group
talk to each other.

*Actions* introduce 'chaos' (impede traffic, drop, delay or corrupt messages)
into the distributed system. They are executed in the order the test driver
calls them and take effect immediately: a partition applies to the very next
send or receive attempt of the replica.

*Actions* applied to a system should not cause predictable failure. The
purpose of an experiment is to introduce chaos to expose
weakness/vulnerability, bottlenecks/inefficiency, etc. without causing
systemic failure. If systemic failure is the result, either a bug exists or
the experiment is too aggressive.

Each *action* acts on a single replica. Coordinating faults across a group is
up to the test driver.
"""
