"""
Low level representation of fanout tasks -- the parts that cross the isolation boundary.

Used to stabilise the contract between Tasks, the Runner and the worker processes.

Works on atomic level: a single callable with its encoded payload, all that is
necessary for it to be executed in an isolated process.
"""
