from ticketdesk.identity.models import Profile
from ticketdesk.identity.repository import ProfileRepository
from ticketdesk.identity.resolver import ActorResolver, actor_resolver, collect_actor_ids
from ticketdesk.identity.schemas import ProfileRead

__all__ = [
    "Profile",
    "ProfileRead",
    "ProfileRepository",
    "ActorResolver",
    "actor_resolver",
    "collect_actor_ids",
]
