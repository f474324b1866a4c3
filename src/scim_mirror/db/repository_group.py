"""
Group Repository

Repository for mirrored directory groups.
"""

from scim_mirror.db.repository_base import BaseRepository
from scim_mirror.models.entities import LocalGroup


class GroupRepository(BaseRepository):
    """Group repository (synced from the directory's /Groups)."""

    table = "user_groups"
    columns = ("name", "display_name", "description", "directory_last_modified")
    search_columns = ("name", "display_name")
    order_by = "lower(coalesce(display_name, name, id))"
    model = LocalGroup
