from ethio_home.models.user import STAFF_ROLES


class OwnershipPolicy:
    """Decides whether an actor may act on a document it may not own.

    Actors whose role is in ``restricted_roles`` must own the document
    (``getattr(document, owner_field) == actor.id``); ``bypass_roles``
    always pass. Roles in neither set pass as well, so route-level role
    checks remain the first gate.
    """

    def __init__(self, owner_field, restricted_roles, bypass_roles=STAFF_ROLES):
        self.owner_field = owner_field
        self.restricted_roles = set(restricted_roles)
        self.bypass_roles = set(bypass_roles)

    def can_act_on_resource(self, actor, document, action):
        if actor is None:
            return False
        if actor.role in self.bypass_roles:
            return True
        if actor.role in self.restricted_roles:
            return getattr(document, self.owner_field) == actor.id
        return True


# Listings: sellers and agents only touch their own
PROPERTY_POLICY = OwnershipPolicy('owner_id', restricted_roles=('seller', 'agent'))

# Buyer-authored documents: everyone but staff must be the author
AUTHOR_POLICY = OwnershipPolicy('buyer_id', restricted_roles=('buyer', 'seller', 'agent'))
