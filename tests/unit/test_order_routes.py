import json
from decimal import Decimal

from models import MerchandiseSize, Notification, Order, OrderItem, db


def place_order(client, items, name="John Doe", email="johndoe@example.com"):
    payload = {"name": name, "email": email, "items": items}
    return client.post("/api/order", data=json.dumps(payload), content_type="application/json")


def stock(merch_id, size):
    row = MerchandiseSize.query.filter_by(merchandise_id=merch_id, size=size).one()
    db.session.refresh(row)
    return row.quantity


def test_order_merchandise_and_posters(client, shirt, movie, mailer):
    response = place_order(
        client,
        [
            {"merchandise_id": str(shirt.id), "size": "M", "quantity": 2},
            {"movie_id": str(movie.id), "quantity": 3},
        ],
    )
    assert response.status_code == 201
    body = response.get_json()
    assert body["total"] == "70.00"

    order = Order.query.one()
    assert str(order.id) == body["order_id"]
    assert order.paid is False
    assert order.total == Decimal("70.00")
    assert sorted(item.price for item in order.items) == [Decimal("10.00"), Decimal("20.00")]
    assert stock(shirt.id, "M") == 1

    assert len(mailer.sent) == 1
    assert mailer.sent[0]["to"] == "johndoe@example.com"
    assert mailer.sent[0]["cc"] == "theater@example.com"
    assert "Golden Arm T-Shirt" in mailer.sent[0]["html"]
    assert "Jaws poster" in mailer.sent[0]["html"]


def test_order_exceeding_stock_changes_nothing(client, shirt):
    response = place_order(client, [{"merchandise_id": str(shirt.id), "size": "M", "quantity": 4}])
    assert response.status_code == 400
    assert Order.query.count() == 0
    assert OrderItem.query.count() == 0
    assert stock(shirt.id, "M") == 3


# each line passes the stock check on its own but not together
def test_inventory_conflict_rolls_back_order(client, shirt, mailer):
    response = place_order(
        client,
        [
            {"merchandise_id": str(shirt.id), "size": "M", "quantity": 2},
            {"merchandise_id": str(shirt.id), "size": "M", "quantity": 2},
        ],
    )
    assert response.status_code == 409
    assert Order.query.count() == 0
    assert OrderItem.query.count() == 0
    assert Notification.query.count() == 0
    assert stock(shirt.id, "M") == 3
    assert mailer.sent == []


def test_order_item_validation(client, shirt, movie):
    cases = [
        [],
        [{"quantity": 1}],
        [{"merchandise_id": str(shirt.id), "movie_id": str(movie.id), "quantity": 1}],
        [{"movie_id": str(movie.id), "quantity": 0}],
        [{"movie_id": str(movie.id), "size": "L", "quantity": 1}],
        [{"merchandise_id": str(shirt.id), "quantity": 1}],
        [{"merchandise_id": str(shirt.id), "size": "XXL", "quantity": 1}],
        [{"merchandise_id": "00000000-0000-0000-0000-000000000000", "quantity": 1}],
        [{"movie_id": "00000000-0000-0000-0000-000000000000", "quantity": 1}],
    ]
    for items in cases:
        response = place_order(client, items)
        assert response.status_code == 400, items
    assert Order.query.count() == 0


def test_order_survives_email_failure(client, movie, mailer):
    mailer.fail = True
    response = place_order(client, [{"movie_id": str(movie.id), "quantity": 1}])
    assert response.status_code == 201
    assert Order.query.count() == 1
    assert Notification.query.one().status == "pending"


def test_list_orders(client, shirt, movie, admin_headers):
    place_order(client, [{"merchandise_id": str(shirt.id), "size": "L", "quantity": 1}])
    place_order(client, [{"movie_id": str(movie.id), "quantity": 1}], name="Jane")

    assert client.get("/api/order/all").status_code == 401
    response = client.get("/api/order/all", headers=admin_headers)
    assert response.status_code == 200
    orders = response.get_json()["data"]
    assert len(orders) == 2

    items = [item for order in orders for item in order["items"]]
    merch_item = next(item for item in items if item["merchandise_id"])
    poster_item = next(item for item in items if item["movie_id"])
    assert merch_item["merchandise"]["name"] == "Golden Arm T-Shirt"
    assert "sizes" not in merch_item["merchandise"]
    assert poster_item["movie"]["title"] == "Jaws"
    assert poster_item["price"] == "10.00"


def test_update_order_status(client, movie, admin_headers):
    place_order(client, [{"movie_id": str(movie.id), "quantity": 1}])
    order = Order.query.one()

    response = client.put(
        f"/api/order/status/{order.id}",
        data=json.dumps({"paid": True}),
        content_type="application/json",
        headers=admin_headers,
    )
    assert response.status_code == 200
    assert db.session.get(Order, order.id).paid is True

    response = client.put(
        "/api/order/status/00000000-0000-0000-0000-000000000000",
        data=json.dumps({"paid": True}),
        content_type="application/json",
        headers=admin_headers,
    )
    assert response.status_code == 404


def test_delete_unpaid_order_restores_inventory(client, shirt, admin_headers):
    place_order(
        client,
        [
            {"merchandise_id": str(shirt.id), "size": "M", "quantity": 2},
            {"merchandise_id": str(shirt.id), "size": "L", "quantity": 1},
        ],
    )
    assert stock(shirt.id, "M") == 1
    assert stock(shirt.id, "L") == 4
    order = Order.query.one()

    response = client.delete(f"/api/order/{order.id}", headers=admin_headers)
    assert response.status_code == 200
    assert Order.query.count() == 0
    assert OrderItem.query.count() == 0
    assert stock(shirt.id, "M") == 3
    assert stock(shirt.id, "L") == 5


def test_delete_paid_order_keeps_inventory(client, shirt, admin_headers):
    place_order(client, [{"merchandise_id": str(shirt.id), "size": "M", "quantity": 2}])
    order = Order.query.one()
    order.paid = True
    db.session.commit()

    response = client.delete(f"/api/order/{order.id}", headers=admin_headers)
    assert response.status_code == 200
    assert Order.query.count() == 0
    assert stock(shirt.id, "M") == 1
