from .service import (
    accept_invitation,
    create_invitation,
    decline_invitation,
    delete_invitation,
    get_entity_invitations,
    get_user_invitations,
    resend_invitation,
    verify_invitation,
)
from .targets import EntityType, Target
