"""
Contracts Module

This module defines the explicit data types that form the contracts between
layers. All inter-layer communication MUST use these contracts.

DESIGN PRINCIPLES:
==================
1. All contract types are immutable (frozen dataclasses)
2. All failures carry an explicit ErrorCode
3. All timestamps use UTC and are never mutated
4. Hash-chained events for integrity verification
"""
