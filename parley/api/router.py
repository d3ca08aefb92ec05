"""Route tables for the user and admin listeners."""

from parley.api import admin, auth, chats, events, groups, health, messages, profile, settings
from parley.api.routing import TieredRouter


def build_user_router() -> TieredRouter:
    router = TieredRouter("user", serve_static=True)

    # Open
    router.open("GET", "/health", health.health)
    router.open("GET", "/api/config", health.public_config)
    router.open("POST", "/api/register", auth.register)
    router.open("POST", "/api/login", auth.login)
    router.open("POST", "/api/logout", auth.logout)

    # Light: signature and expiry only
    router.light("GET", "/api/profile", profile.get_profile)
    router.light("GET", "/api/messages", messages.get_messages)
    router.light("GET", "/api/chats", chats.list_chats)
    router.light("GET", "/api/groups", groups.list_groups)
    router.light("GET", "/api/groups/:id/members", groups.list_members)
    router.light("GET", "/api/events", events.stream_events)

    # Hard: live session and IP binding
    router.hard("POST", "/api/messages/send", messages.send_message)
    router.hard("POST", "/api/messages/read", messages.mark_read)
    router.hard("POST", "/api/chats", chats.create_direct_chat)
    router.hard("POST", "/api/groups", groups.create_group)
    router.hard("POST", "/api/groups/:id/members", groups.add_member)
    router.hard("DELETE", "/api/groups/:id/members", groups.remove_member)
    router.hard("POST", "/api/profile/update", profile.update_profile)
    router.hard("POST", "/api/settings/password", settings.change_password)
    router.hard("POST", "/api/settings/logout-all", settings.logout_all)

    return router


def build_admin_router() -> TieredRouter:
    router = TieredRouter("admin")

    router.open("GET", "/health", health.health)
    router.open("POST", "/admin/api/login", auth.admin_login)
    router.open("POST", "/admin/api/logout", auth.logout)

    router.admin("POST", "/admin/api/stats", admin.stats)
    router.admin("POST", "/admin/api/users", admin.list_users)
    router.admin("POST", "/admin/api/users/ban", admin.ban_user)
    router.admin("POST", "/admin/api/users/unban", admin.unban_user)
    router.admin("POST", "/admin/api/users/promote", admin.promote_user)
    router.admin("POST", "/admin/api/users/demote", admin.demote_user)
    router.admin("DELETE", "/admin/api/users/:id", admin.delete_user)
    router.admin("GET", "/admin/api/metrics", admin.metrics)

    return router
