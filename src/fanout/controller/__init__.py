"""
Fan-out of Tasks to workers and fan-in of their outcomes.

The submodules are:
 - core -- aggregation policy and runner configuration
 - notify -- the status bus, publishing TaskStatus transitions to subscribers
 - runner -- the Runner itself
"""
