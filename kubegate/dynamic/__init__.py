"""Custom-resource access that bypasses the typed cache."""

from kubegate.dynamic.adapter import DynamicResourceAdapter

__all__ = ["DynamicResourceAdapter"]
