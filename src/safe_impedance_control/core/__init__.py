"""
Core control pipeline: contracts, impedance law, safety filter, lifecycle.
"""
