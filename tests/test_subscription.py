from conftest import make_user, make_property, give_plan, auth_header, sign
from ethio_home.models import Payment, SubscriptionPlan
from ethio_home.services.payments import confirm_payment

PLAN = {'interval': 'monthly', 'amount': 500, 'frequency': 1}


def subscribe(client, user, **overrides):
    return client.post('/api/v1/subscription', headers=auth_header(user), json={**PLAN, **overrides})


def test_subscription_checkout_then_verify(client, db, chapa):
    seller = make_user('seller')

    res = subscribe(client, seller)
    assert res.status_code == 201
    tx_ref = res.get_json()['tx_ref']
    assert tx_ref.startswith(f'{seller.id}-')
    assert chapa.initialized[0]['return_url'].endswith(f'/api/v1/subscription/verify-payment/{tx_ref}')
    assert SubscriptionPlan.query.count() == 0

    res = client.get(f'/api/v1/subscription/verify-payment/{tx_ref}', headers=auth_header(seller))
    assert res.status_code == 200
    plan = res.get_json()['data']['data']
    assert plan['seller_id'] == seller.id
    assert plan['interval'] == 'monthly'
    assert plan['active'] is True
    assert plan['tx_ref'] == [tx_ref]
    assert len(plan['payment_date']) == 1

    res = client.get(f'/api/v1/subscription/verify-payment/{tx_ref}', headers=auth_header(seller))
    assert res.get_json()['data']['data']['id'] == plan['id']
    assert SubscriptionPlan.query.count() == 1
    assert chapa.verify_calls == [tx_ref]


def test_active_plan_unlocks_listing_management(client, chapa):
    seller = make_user('seller')
    listing = {'title': 'Villa in CMC', 'description': 'Garden villa', 'price': 8000000,
               'location': 'CMC', 'type': 'villa', 'status': 'for-sale'}

    assert client.post('/api/v1/properties', headers=auth_header(seller), json=listing).status_code == 403

    tx_ref = subscribe(client, seller).get_json()['tx_ref']
    client.get(f'/api/v1/subscription/verify-payment/{tx_ref}', headers=auth_header(seller))

    assert client.post('/api/v1/properties', headers=auth_header(seller), json=listing).status_code == 201


def test_second_subscription_is_rejected(client):
    agent = make_user('agent')
    give_plan(agent)

    res = subscribe(client, agent)
    assert res.status_code == 400
    assert res.get_json()['message'] == 'This seller or agent already has an active subscription plan'


def test_only_listers_subscribe(client):
    assert subscribe(client, make_user()).status_code == 403


def test_subscription_terms_are_validated(client):
    seller = make_user('seller')
    assert subscribe(client, seller, interval='daily').status_code == 400
    assert subscribe(client, seller, amount=-5).status_code == 400
    assert subscribe(client, seller, frequency='often').status_code == 400
    assert subscribe(client, seller, currency='EUR').status_code == 400
    assert Payment.query.count() == 0


def test_failed_subscription_payment(client, chapa):
    seller = make_user('seller')
    tx_ref = subscribe(client, seller).get_json()['tx_ref']

    chapa.outcome = 'failed'
    res = client.get(f'/api/v1/subscription/verify-payment/{tx_ref}', headers=auth_header(seller))
    assert res.status_code == 400
    assert res.get_json()['message'] == 'Payment verification failed'
    assert SubscriptionPlan.query.count() == 0
    assert Payment.query.filter_by(tx_ref=tx_ref).one().status == 'failed'


def test_only_payer_verifies_subscription(client, chapa):
    seller = make_user('seller')
    tx_ref = subscribe(client, seller).get_json()['tx_ref']
    res = client.get(f'/api/v1/subscription/verify-payment/{tx_ref}', headers=auth_header(make_user('seller')))
    assert res.status_code == 403


def test_renewal_is_appended_to_active_plan(db):
    seller = make_user('seller')
    plan = give_plan(seller)
    db.session.add(Payment(tx_ref='renewal-1', purpose='subscription', user_id=seller.id,
                           amount=500, currency='ETB', status='pending'))
    db.session.commit()

    result = confirm_payment('renewal-1', 'success', {'method': 'telebirr', 'charge': '17.5'})
    assert result.id == plan.id
    assert SubscriptionPlan.query.count() == 1
    assert plan.to_dict()['tx_ref'] == ['renewal-1']

    # replayed confirmation does not attach twice
    assert confirm_payment('renewal-1', 'success', {}).id == plan.id
    assert plan.payments.count() == 1


def test_refund_deactivates_plan_without_other_payments(db):
    seller = make_user('seller')
    db.session.add(Payment(tx_ref='sub-1', purpose='subscription', user_id=seller.id,
                           amount=500, currency='ETB', status='pending',
                           extra_data={'interval': 'quarterly', 'amount': 1400, 'frequency': 1}))
    db.session.commit()

    plan = confirm_payment('sub-1', 'success', {})
    assert plan.interval == 'quarterly'
    assert float(plan.amount) == 1400

    confirm_payment('sub-1', 'refunding', {})
    assert db.session.get(SubscriptionPlan, plan.id).active is False


def test_subscription_webhook_creates_plan(client, db, chapa):
    seller = make_user('seller')
    tx_ref = subscribe(client, seller).get_json()['tx_ref']

    raw, signature = sign({'status': 'success', 'tx_ref': tx_ref, 'payment_method': 'mpesa'})
    for _ in range(2):
        res = client.post('/api/v1/subscription/webhook', data=raw, content_type='application/json',
                          headers={'x-chapa-signature': signature})
        assert res.status_code == 200

    plan = SubscriptionPlan.query.one()
    assert plan.seller_id == seller.id
    assert Payment.query.filter_by(tx_ref=tx_ref).one().payment_method == 'mpesa'

    res = client.get(f'/api/v1/subscription/verify-payment/{tx_ref}', headers=auth_header(seller))
    assert res.get_json()['data']['data']['id'] == plan.id
    assert chapa.verify_calls == []


def test_plan_listing_is_scoped(client):
    admin = make_user('admin')
    seller = make_user('seller')
    give_plan(seller)
    give_plan(make_user('agent'))

    assert client.get('/api/v1/subscription', headers=auth_header(admin)).get_json()['results'] == 2

    body = client.get('/api/v1/subscription', headers=auth_header(seller)).get_json()
    assert body['results'] == 1
    assert body['data']['data'][0]['seller_id'] == seller.id

    assert client.get('/api/v1/subscription', headers=auth_header(make_user())).status_code == 403


def test_staff_manages_plans(client, db):
    employee = make_user('employee')
    admin = make_user('admin')
    seller = make_user('seller')
    plan = give_plan(seller)
    db.session.add(Payment(tx_ref='paid-1', purpose='subscription', user_id=seller.id, plan_id=plan.id,
                           amount=500, currency='ETB', status='success'))
    db.session.commit()

    res = client.patch(f'/api/v1/subscription/{plan.id}', headers=auth_header(employee),
                       json={'interval': 'annually', 'amount': 5000})
    assert res.status_code == 200
    assert res.get_json()['data']['data']['interval'] == 'annually'

    url = f'/api/v1/subscription/{plan.id}/status'
    assert client.patch(url, headers=auth_header(employee), json={'active': 'no'}).status_code == 400
    res = client.patch(url, headers=auth_header(employee), json={'active': False})
    assert res.get_json()['data']['data']['active'] is False

    give_plan(seller)
    res = client.patch(url, headers=auth_header(employee), json={'active': True})
    assert res.status_code == 400

    assert client.delete(f'/api/v1/subscription/{plan.id}', headers=auth_header(employee)).status_code == 403
    assert client.delete(f'/api/v1/subscription/{plan.id}', headers=auth_header(admin)).status_code == 204
    assert Payment.query.filter_by(tx_ref='paid-1').one().plan_id is None
    assert client.patch(url, headers=auth_header(admin), json={'active': True}).status_code == 404


def test_renewal_checkout_appends_to_active_plan(client, chapa):
    seller = make_user('seller')
    first_ref = subscribe(client, seller, interval='quarterly', amount=1400).get_json()['tx_ref']
    client.get(f'/api/v1/subscription/verify-payment/{first_ref}', headers=auth_header(seller))

    res = client.post('/api/v1/subscription/renew', headers=auth_header(seller))
    assert res.status_code == 201
    renewal_ref = res.get_json()['tx_ref']
    sent = chapa.initialized[-1]
    assert sent['amount'] == '1400.0'
    assert sent['meta']['interval'] == 'quarterly'

    res = client.get(f'/api/v1/subscription/verify-payment/{renewal_ref}', headers=auth_header(seller))
    assert res.status_code == 200
    plan = res.get_json()['data']['data']
    assert plan['tx_ref'] == [first_ref, renewal_ref]
    assert len(plan['payment_date']) == 2
    assert SubscriptionPlan.query.count() == 1


def test_renewal_needs_an_active_plan(client, chapa):
    seller = make_user('seller')
    give_plan(seller, active=False)

    res = client.post('/api/v1/subscription/renew', headers=auth_header(seller))
    assert res.status_code == 404
    assert chapa.initialized == []
    assert client.post('/api/v1/subscription/renew', headers=auth_header(make_user())).status_code == 403


def test_success_after_refund_is_ignored(db):
    seller = make_user('seller')
    db.session.add(Payment(tx_ref='sub-late', purpose='subscription', user_id=seller.id,
                           amount=500, currency='ETB', status='pending',
                           extra_data={'interval': 'monthly', 'amount': 500, 'frequency': 1}))
    db.session.commit()

    plan = confirm_payment('sub-late', 'success', {})
    confirm_payment('sub-late', 'refunding', {})
    confirm_payment('sub-late', 'success', {})

    assert Payment.query.filter_by(tx_ref='sub-late').one().status == 'refunding'
    assert SubscriptionPlan.query.count() == 1
    assert db.session.get(SubscriptionPlan, plan.id).active is False


def test_verify_of_refunded_subscription_payment_fails(client, chapa):
    seller = make_user('seller')
    tx_ref = subscribe(client, seller).get_json()['tx_ref']
    confirm_payment(tx_ref, 'refunding', {})

    res = client.get(f'/api/v1/subscription/verify-payment/{tx_ref}', headers=auth_header(seller))
    assert res.status_code == 400
    assert SubscriptionPlan.query.count() == 0


def test_webhook_for_a_sale_reference_is_not_applied_here(client, db, chapa):
    buyer = make_user()
    property = make_property(make_user('seller'))
    tx_ref = client.post(f'/api/v1/properties/{property.id}/selling/initialize',
                         headers=auth_header(buyer)).get_json()['tx_ref']

    raw, signature = sign({'status': 'success', 'tx_ref': tx_ref})
    res = client.post('/api/v1/subscription/webhook', data=raw, content_type='application/json',
                      headers={'Chapa-Signature': signature})
    assert res.status_code == 404
    assert Payment.query.filter_by(tx_ref=tx_ref).one().status == 'pending'
    assert SubscriptionPlan.query.count() == 0
