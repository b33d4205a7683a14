"""
Chaos 'probes' module.

*Probes* gather and return replica state. They never change it and never
assert on it.
"""
