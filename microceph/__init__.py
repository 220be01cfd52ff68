"""Ceph cluster building blocks: config rendering, keyrings, OSDs, CRUSH rules and services."""

__version__ = "0.1.0"