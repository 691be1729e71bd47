from types import SimpleNamespace

from ethio_home.services.policy import AUTHOR_POLICY, PROPERTY_POLICY, OwnershipPolicy


def actor(role, id=1):
    return SimpleNamespace(role=role, id=id)


def test_property_policy():
    listing = SimpleNamespace(owner_id=1)

    assert PROPERTY_POLICY.can_act_on_resource(actor('seller', 1), listing, 'update')
    assert not PROPERTY_POLICY.can_act_on_resource(actor('seller', 2), listing, 'update')
    assert not PROPERTY_POLICY.can_act_on_resource(actor('agent', 2), listing, 'delete')
    assert PROPERTY_POLICY.can_act_on_resource(actor('admin', 2), listing, 'delete')
    assert PROPERTY_POLICY.can_act_on_resource(actor('employee', 2), listing, 'update')


def test_author_policy():
    review = SimpleNamespace(buyer_id=7)

    assert AUTHOR_POLICY.can_act_on_resource(actor('buyer', 7), review, 'read')
    assert not AUTHOR_POLICY.can_act_on_resource(actor('buyer', 8), review, 'read')
    assert not AUTHOR_POLICY.can_act_on_resource(actor('seller', 8), review, 'update')
    assert AUTHOR_POLICY.can_act_on_resource(actor('employee', 8), review, 'delete')


def test_missing_actor_is_denied():
    assert not PROPERTY_POLICY.can_act_on_resource(None, SimpleNamespace(owner_id=1), 'read')


def test_unlisted_roles_pass():
    policy = OwnershipPolicy('owner_id', restricted_roles=('seller',), bypass_roles=())
    assert policy.can_act_on_resource(actor('buyer', 99), SimpleNamespace(owner_id=1), 'read')
