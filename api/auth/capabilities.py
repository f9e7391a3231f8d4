"""
Platform role -> capability table.
"""

from __future__ import annotations

ROLE_CAPABILITIES: dict[str, frozenset[str]] = {
    "administrator": frozenset(
        {
            "read",
            "upload_files",
            "edit_posts",
            "edit_others_posts",
            "publish_posts",
            "manage_options",
        }
    ),
    "editor": frozenset({"read", "upload_files", "edit_posts", "edit_others_posts", "publish_posts"}),
    "author": frozenset({"read", "upload_files", "edit_posts", "publish_posts"}),
    "contributor": frozenset({"read", "edit_posts"}),
    "subscriber": frozenset({"read"}),
}


def capabilities_for(user: dict | None) -> frozenset[str]:
    if not user or not bool(user.get("is_active", True)):
        return frozenset()
    role = str(user.get("role") or "").strip().lower()
    return ROLE_CAPABILITIES.get(role, frozenset())


def user_can(user: dict | None, capability: str) -> bool:
    return capability in capabilities_for(user)
