"""
statecheck

Replica consistency verification for replicated-log clusters: reads every
replica's persisted state-machine store read-only and checks that they hold
identical key-value data.
"""

__version__ = "0.1.0"
