"""Plugins - Deployment-specific extensions installed on the callback dispatcher."""

from .maintenance import MaintenanceHooks

__all__ = ["MaintenanceHooks"]
