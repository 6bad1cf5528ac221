ROLE_INVITABLE: dict[str, frozenset[str]] = {
    "super_admin": frozenset({"site_admin", "operator", "client_admin"}),
    "site_admin": frozenset({"operator", "client_admin"}),
    "operator": frozenset({"client_admin"}),
    "client_admin": frozenset({"client_user"}),
    "client_user": frozenset(),
}

ROLE_LEVELS: dict[str, int] = {
    "super_admin": 5,
    "site_admin": 4,
    "operator": 3,
    "client_admin": 2,
    "client_user": 1,
}

ORGANIZATION_ROLES: frozenset[str] = frozenset({"client_admin", "client_user"})

# Random bytes behind opaque tokens (hex encoded, so strings are twice as long)
INVITE_TOKEN_BYTES = 32
REFRESH_TOKEN_BYTES = 64

OTP_MIN = 100000
OTP_MAX = 999999
CODE_LENGTH = 6
PASSWORD_MIN_LENGTH = 8

EVENT_ROUTES: dict[str, str] = {
    "invite_created": "user.invite.created",
    "invite_accepted": "user.invite.accepted",
}

REFRESH_TOKEN_PURGE_GRACE_HOURS = 24
HOUSEKEEPING_JOB_TIMEOUT = 120
