"""
Safety filters applied to the nominal torque before dynamics compensation.
"""

from .hocbf import (
    ConstraintRows,
    FilterResult,
    HOCBFSafetyFilter,
    HOCBFSettings,
    make_plane,
)

__all__ = [
    'ConstraintRows',
    'FilterResult',
    'HOCBFSafetyFilter',
    'HOCBFSettings',
    'make_plane',
]
