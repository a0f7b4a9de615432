"""Resource handlers: one per remote resource type."""

from .base import DescribeResult, ResourceConfig, ResourceHandler, ResourceState

__all__ = [
    'DescribeResult',
    'ResourceConfig',
    'ResourceHandler',
    'ResourceState',
]
