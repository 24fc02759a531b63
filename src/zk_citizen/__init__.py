"""
ZK-Citizen - Privacy-Preserving Identity and Census Core

A commitment / nullifier / accumulator protocol that lets participants
register hidden identity attributes exactly once into an authenticated
Merkle accumulator, and lets any observer check aggregate predicates
(age, nationality, population, membership) against the shared state.

This package implements the protocol core only. Transport, storage engines
and real zero-knowledge proving backends plug in through narrow interfaces.
"""

__version__ = "1.0.0"
__author__ = "ZK-Citizen Team"
__email__ = "dev@zk-citizen.org"
