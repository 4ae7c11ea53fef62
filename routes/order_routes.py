import logging
from decimal import Decimal

from flask import Blueprint, current_app, jsonify
from sqlalchemy import update
from sqlalchemy.orm import selectinload

from auth import admin_required
from errors import APIError, BadRequest, Conflict, NotFound
from models import Merchandise, MerchandiseSize, Movie, Order, OrderItem, db
from notifications import dispatch_notifications, enqueue_email
from routes import request_data
from schemas import order_request_schema, order_schema, order_status_schema, orders_schema

logger = logging.getLogger(__name__)

order_bp = Blueprint("order_api", __name__)


def build_order_items(items):
    """Check each requested item against the catalogue and price it.

    Returns ``(total, order_items)``. Prices are copied onto the items so
    later catalogue changes do not alter the order.
    """
    poster_price = current_app.config["POSTER_PRICE"]
    total = Decimal("0.00")
    order_items = []

    for item in items:
        quantity = item["quantity"]
        if item["merchandise_id"] is not None:
            merch = db.session.get(Merchandise, item["merchandise_id"])
            if merch is None:
                raise BadRequest("Merchandise not found")

            size_label = item["size"]
            if merch.sizes and not size_label:
                raise BadRequest(f"A size is required for {merch.name}")
            if size_label:
                size = MerchandiseSize.query.filter_by(
                    merchandise_id=merch.id, size=size_label
                ).first()
                if size is None:
                    raise BadRequest(f"Size {size_label} is not available for {merch.name}")
                if size.quantity < quantity:
                    raise BadRequest(f"Insufficient inventory for {merch.name} size {size_label}")

            order_items.append(
                OrderItem(merchandise=merch, quantity=quantity, size=size_label, price=merch.price)
            )
            total += merch.price * quantity
        else:
            movie = db.session.get(Movie, item["movie_id"])
            if movie is None:
                raise BadRequest("Movie not found")
            order_items.append(OrderItem(movie=movie, quantity=quantity, size="", price=poster_price))
            total += poster_price * quantity

    return total, order_items


def reserve_inventory(order_items):
    for item in order_items:
        if item.merchandise_id is None or not item.size:
            continue
        # only succeeds while enough stock is on hand
        result = db.session.execute(
            update(MerchandiseSize)
            .where(
                MerchandiseSize.merchandise_id == item.merchandise_id,
                MerchandiseSize.size == item.size,
                MerchandiseSize.quantity >= item.quantity,
            )
            .values(quantity=MerchandiseSize.quantity - item.quantity)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            raise Conflict(f"Could not update inventory for size {item.size}")


def restore_inventory(order_items):
    for item in order_items:
        if item.merchandise_id is None or not item.size:
            continue
        result = db.session.execute(
            update(MerchandiseSize)
            .where(
                MerchandiseSize.merchandise_id == item.merchandise_id,
                MerchandiseSize.size == item.size,
            )
            .values(quantity=MerchandiseSize.quantity + item.quantity)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            logger.warning(
                "Size %s of merchandise %s no longer exists; %d items not restocked",
                item.size,
                item.merchandise_id,
                item.quantity,
            )


@order_bp.route("/api/order", methods=["POST"])
def add_order():
    data = order_request_schema.load(request_data())

    try:
        total, order_items = build_order_items(data["items"])
        order = Order(name=data["name"], email=data["email"], total=total, paid=False)
        order.items = order_items
        db.session.add(order)
        db.session.flush()

        reserve_inventory(order_items)

        notification = enqueue_email(
            "order",
            order.email,
            "Golden Arm Order Confirmation",
            "email/order.html",
            cc=current_app.config.get("EMAIL_FROM"),
            order=order,
        )
        db.session.commit()
    except APIError:
        db.session.rollback()
        raise

    logger.info("Order %s placed by %s for %s", order.id, order.email, order.total)
    dispatch_notifications([notification.id])

    return (
        jsonify(
            {
                "success": True,
                "message": "Order placed successfully",
                "order_id": str(order.id),
                "total": f"{order.total:.2f}",
            }
        ),
        201,
    )


@order_bp.route("/api/order/all", methods=["GET"])
@admin_required
def get_all_orders():
    orders = (
        Order.query.options(
            selectinload(Order.items).selectinload(OrderItem.merchandise),
            selectinload(Order.items).selectinload(OrderItem.movie),
        )
        .order_by(Order.date.desc())
        .all()
    )
    return jsonify({"success": True, "data": orders_schema.dump(orders)})


@order_bp.route("/api/order/status/<uuid:order_id>", methods=["PUT"])
@admin_required
def update_order_status(order_id):
    data = order_status_schema.load(request_data())
    order = db.session.get(Order, order_id)
    if order is None:
        raise NotFound("Order not found")

    order.paid = data["paid"]
    db.session.commit()
    logger.info("Order %s marked %s", order_id, "paid" if order.paid else "unpaid")
    return jsonify(
        {"success": True, "message": "Order status updated successfully", "data": order_schema.dump(order)}
    )


@order_bp.route("/api/order/<uuid:order_id>", methods=["DELETE"])
@admin_required
def delete_order(order_id):
    order = db.session.get(Order, order_id)
    if order is None:
        raise NotFound("Order not found")

    paid = order.paid
    # paid orders have left the building
    if not paid:
        restore_inventory(order.items)

    db.session.delete(order)
    db.session.commit()
    logger.info("Deleted order %s (paid=%s)", order_id, paid)
    return jsonify({"success": True, "message": "Order deleted successfully"})
