from __future__ import annotations

from ticketdesk.identity.models import Profile
from ticketdesk.platform.security.repository import TenantRepository


class ProfileRepository(TenantRepository):
    model = Profile
    entity = "profiles"
