from conftest import make_user, make_property, auth_header
from ethio_home.models import Selling, Review


def record_sale(db, property, buyer, paid=True):
    selling = Selling(property_id=property.id, buyer_id=buyer.id, amount=property.price, paid=paid)
    property.sold = True
    db.session.add(selling)
    db.session.commit()
    return selling


def post_review(client, user, property, text='Great neighbourhood and honest seller', rating=5):
    return client.post(f'/api/v1/properties/{property.id}/reviews', headers=auth_header(user),
                       json={'review': text, 'rating': rating})


def test_only_purchasers_can_review(client, db):
    buyer = make_user()
    property = make_property(make_user('seller'))

    res = post_review(client, buyer, property)
    assert res.status_code == 403

    record_sale(db, property, buyer)
    res = post_review(client, buyer, property)
    assert res.status_code == 201
    data = res.get_json()['data']['data']
    assert data['buyer_id'] == buyer.id
    assert data['property_id'] == property.id


def test_refunded_purchase_does_not_count(client, db):
    buyer = make_user()
    property = make_property(make_user('seller'))
    record_sale(db, property, buyer, paid=False)
    assert post_review(client, buyer, property).status_code == 403


def test_sellers_cannot_review(client, db):
    seller = make_user('seller')
    property = make_property(seller)
    assert post_review(client, seller, property).status_code == 403


def test_review_validation(client, db):
    buyer = make_user()
    property = make_property(make_user('seller'))
    record_sale(db, property, buyer)

    assert post_review(client, buyer, property, text='Too short').status_code == 400
    assert post_review(client, buyer, property, rating=6).status_code == 400
    assert Review.query.count() == 0


def test_public_listing_is_scoped_to_property(client, db):
    buyer = make_user()
    seller = make_user('seller')
    first = make_property(seller)
    second = make_property(seller)
    record_sale(db, first, buyer)
    record_sale(db, second, buyer)
    post_review(client, buyer, first)
    post_review(client, buyer, second)

    assert client.get('/api/v1/reviews').get_json()['results'] == 2

    body = client.get(f'/api/v1/properties/{first.id}/reviews').get_json()
    assert body['results'] == 1
    assert body['data']['data'][0]['property_id'] == first.id

    review_id = body['data']['data'][0]['id']
    assert client.get(f'/api/v1/reviews/{review_id}').status_code == 200
    assert client.get(f'/api/v1/properties/{second.id}/reviews/{review_id}').status_code == 404


def test_only_author_or_staff_edits(client, db):
    author = make_user()
    other = make_user()
    property = make_property(make_user('seller'))
    record_sale(db, property, author)
    review_id = post_review(client, author, property).get_json()['data']['data']['id']

    res = client.patch(f'/api/v1/reviews/{review_id}', headers=auth_header(other), json={'rating': 1})
    assert res.status_code == 403

    res = client.patch(f'/api/v1/reviews/{review_id}', headers=auth_header(author), json={'rating': 4})
    assert res.status_code == 200
    assert res.get_json()['data']['data']['rating'] == 4

    admin = make_user('admin')
    assert client.delete(f'/api/v1/reviews/{review_id}', headers=auth_header(admin)).status_code == 204
