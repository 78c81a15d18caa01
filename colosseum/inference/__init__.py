"""
Asynchronous policy inference.

This module provides:
- InferencePool: per-agent throttled prediction service with idle eviction
- InferenceResult: the reply delivered to each prediction callback
"""
from .pool import InferenceCallback, InferencePool, InferenceResult, ModelSnapshot

__all__ = [
    'InferenceCallback',
    'InferencePool',
    'InferenceResult',
    'ModelSnapshot',
]
