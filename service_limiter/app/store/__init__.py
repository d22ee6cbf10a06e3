"""
Counter store package.

Holds the store interfaces the limiters depend on, a Redis implementation for
cross-process coordination and an in-memory one for tests and single-process
use.
"""
