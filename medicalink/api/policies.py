from __future__ import annotations

from medicalink.service.guards import RateLimitRule, RoutePolicy
from medicalink.storage.models import StaffRole

MINUTE_MS = 60_000

SUPER_ADMIN = (StaffRole.SUPER_ADMIN.value,)
ADMINS = (StaffRole.SUPER_ADMIN.value, StaffRole.ADMIN.value)

LOGIN = RoutePolicy("login", rate_limit=RateLimitRule(5, MINUTE_MS))
REFRESH = RoutePolicy("refresh", rate_limit=RateLimitRule(20, MINUTE_MS))
LOGOUT = RoutePolicy("logout", rate_limit=RateLimitRule(30, MINUTE_MS), authenticate=True)
LOGOUT_ALL = RoutePolicy("logout-all", rate_limit=RateLimitRule(10, MINUTE_MS), authenticate=True)
PROFILE = RoutePolicy("profile", authenticate=True)
CHANGE_PASSWORD = RoutePolicy(
    "change-password", rate_limit=RateLimitRule(3, 5 * MINUTE_MS), authenticate=True
)
RESET_PASSWORD = RoutePolicy("reset-password", rate_limit=RateLimitRule(2, 5 * MINUTE_MS))

STAFF_CREATE = RoutePolicy("staff-create", authenticate=True, roles=SUPER_ADMIN)
STAFF_READ = RoutePolicy("staff-read", authenticate=True, roles=ADMINS)
STAFF_STATISTICS = RoutePolicy("staff-statistics", authenticate=True, roles=ADMINS)
STAFF_RESET_PASSWORD = RoutePolicy("staff-reset-password", authenticate=True, roles=SUPER_ADMIN)
STAFF_DELETE = RoutePolicy("staff-delete", authenticate=True, roles=SUPER_ADMIN)
STAFF_RESTORE = RoutePolicy("staff-restore", authenticate=True, roles=SUPER_ADMIN)
