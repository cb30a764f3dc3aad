import enum


class Role(str, enum.Enum):
    USER = "user"
    ADMIN = "admin"


class Capability(str, enum.Enum):
    PARTICIPATE = "participate"
    MANAGE_EVENTS = "manage_events"
    MANAGE_CATALOG = "manage_catalog"
    MANAGE_PARTICIPANTS = "manage_participants"
    MANAGE_USERS = "manage_users"
    VIEW_REPORTS = "view_reports"


ROLE_CAPABILITIES: dict[Role, frozenset[Capability]] = {
    Role.USER: frozenset({Capability.PARTICIPATE}),
    Role.ADMIN: frozenset(
        {
            Capability.MANAGE_EVENTS,
            Capability.MANAGE_CATALOG,
            Capability.MANAGE_PARTICIPANTS,
            Capability.MANAGE_USERS,
            Capability.VIEW_REPORTS,
        }
    ),
}


def has_capability(role: Role | str, capability: Capability) -> bool:
    try:
        role = Role(role)
    except ValueError:
        return False
    return capability in ROLE_CAPABILITIES.get(role, frozenset())
