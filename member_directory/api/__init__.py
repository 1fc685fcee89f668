"""
API routers
"""

from member_directory.api import directory, tenants, waitlist, webhooks

__all__ = ["directory", "tenants", "waitlist", "webhooks"]
