import logging

from flask import current_app

import store
from audit import log_admin_action
from database import db, OrderStatus, TERMINAL_STATUSES, money, now_utc, iso
from errors import ConflictError, Forbidden, InvalidStatus, NotFound, ValidationError

logger = logging.getLogger(__name__)

STATUS_LABELS = {
    OrderStatus.NEW: "New",
    OrderStatus.CONFIRMED: "Confirmed",
    OrderStatus.PREPARING: "Preparing",
    OrderStatus.READY_FOR_PICKUP: "Ready for Pickup",
    OrderStatus.ON_THE_WAY: "On the Way",
    OrderStatus.DELIVERED: "Delivered",
    OrderStatus.PICKED_UP: "Picked Up",
    OrderStatus.CANCELLED: "Cancelled",
}

STATUS_ALIASES = {
    "new": OrderStatus.NEW,
    "pending": OrderStatus.NEW,
    "order received": OrderStatus.NEW,
    "confirmed": OrderStatus.CONFIRMED,
    "preparing": OrderStatus.PREPARING,
    "ready for pickup": OrderStatus.READY_FOR_PICKUP,
    "pick up ready": OrderStatus.READY_FOR_PICKUP,
    "pickup ready": OrderStatus.READY_FOR_PICKUP,
    "on the way": OrderStatus.ON_THE_WAY,
    "delivered": OrderStatus.DELIVERED,
    "picked up": OrderStatus.PICKED_UP,
    "cancelled": OrderStatus.CANCELLED,
}

# Admin override vocabulary: wire label -> canonical status.
ADMIN_STATUSES = {
    "Pending": OrderStatus.NEW,
    "Preparing": OrderStatus.PREPARING,
    "Delivered": OrderStatus.DELIVERED,
    "Cancelled": OrderStatus.CANCELLED,
}

RESTAURANT_STATUSES = frozenset({
    OrderStatus.CONFIRMED,
    OrderStatus.PREPARING,
    OrderStatus.READY_FOR_PICKUP,
    OrderStatus.ON_THE_WAY,
    OrderStatus.DELIVERED,
    OrderStatus.PICKED_UP,
})

TRANSITIONS = {
    OrderStatus.NEW: {OrderStatus.CONFIRMED, OrderStatus.PREPARING, OrderStatus.CANCELLED},
    OrderStatus.CONFIRMED: {OrderStatus.PREPARING, OrderStatus.CANCELLED},
    OrderStatus.PREPARING: {OrderStatus.READY_FOR_PICKUP, OrderStatus.ON_THE_WAY, OrderStatus.CANCELLED},
    OrderStatus.READY_FOR_PICKUP: {OrderStatus.ON_THE_WAY, OrderStatus.PICKED_UP, OrderStatus.CANCELLED},
    OrderStatus.ON_THE_WAY: {OrderStatus.DELIVERED, OrderStatus.CANCELLED},
    OrderStatus.DELIVERED: set(),
    OrderStatus.PICKED_UP: set(),
    OrderStatus.CANCELLED: set(),
}


def _alias_key(value):
    s = str(value or "").strip().lower().replace("-", " ").replace("_", " ")
    return " ".join(s.split())


def parse_status(value) -> OrderStatus:
    st = STATUS_ALIASES.get(_alias_key(value))
    if st is None:
        raise InvalidStatus(f"Invalid status value: {value!r}")
    return st


def parse_admin_status(value):
    # exact labels only, no alias folding
    if isinstance(value, str) and value in ADMIN_STATUSES:
        return value, ADMIN_STATUSES[value]
    raise InvalidStatus(
        "Invalid status value! Allowed: " + ", ".join(ADMIN_STATUSES)
    )


def status_label(value):
    try:
        return STATUS_LABELS[OrderStatus(value)]
    except ValueError:
        return value


def admin_status_label(value):
    for label, st in ADMIN_STATUSES.items():
        if st == value:
            return label
    return status_label(value)


def can_transition(current, target) -> bool:
    current, target = OrderStatus(current), OrderStatus(target)
    if current == target:
        return True
    return target in TRANSITIONS[current]


def order_to_dict(o, dish_name=None, restaurant_name=None, customer_name=None):
    out = {
        "id": o.id,
        "customer_id": o.customer_id,
        "restaurant_id": o.restaurant_id,
        "dish_id": o.dish_id,
        "quantity": o.quantity,
        "total_price": str(money(o.total_price)),
        "status": o.status,
        "status_label": status_label(o.status),
        "created_at": iso(o.created_at),
        "updated_at": iso(o.updated_at),
        "delivered_at": iso(o.delivered_at),
        "cancelled_at": iso(o.cancelled_at),
        "cancelled_reason": o.cancelled_reason
    }
    if dish_name is not None:
        out["dish_name"] = dish_name
    if restaurant_name is not None:
        out["restaurant_name"] = restaurant_name
    if customer_name is not None:
        out["customer_name"] = customer_name
    return out


def _apply_status(o, target):
    now = now_utc()
    o.status = target.value
    o.updated_at = now
    if target in (OrderStatus.DELIVERED, OrderStatus.PICKED_UP):
        o.delivered_at = now
    if target == OrderStatus.CANCELLED:
        o.cancelled_at = now


def place_order(principal, dish_id, quantity):
    if not principal.is_customer:
        raise Forbidden("Only customers can place orders")
    try:
        quantity = int(quantity)
    except (TypeError, ValueError):
        raise ValidationError("Quantity must be a whole number")
    if quantity < 1:
        raise ValidationError("Quantity must be at least 1")

    dish = store.get_active_dish(dish_id)
    if not dish:
        raise NotFound("Dish not found!")

    total_price = money(dish.price) * quantity
    o = store.create_order(
        customer_id=principal.id,
        restaurant_id=dish.restaurant_id,
        dish_id=dish.id,
        quantity=quantity,
        total_price=total_price,
        status=OrderStatus.NEW.value
    )
    logger.info("Order %s placed: customer=%s dish=%s qty=%s total=%s",
                o.id, principal.id, dish.id, quantity, total_price)
    return o


def advance_status(principal, order_id, requested):
    if principal.is_super_admin:
        return _admin_override(principal, order_id, requested)
    if principal.is_restaurant:
        return _restaurant_advance(principal, order_id, requested)
    raise Forbidden("Forbidden: insufficient role")


def _restaurant_advance(principal, order_id, requested):
    target = parse_status(requested)
    if target not in RESTAURANT_STATUSES:
        raise InvalidStatus(f"Restaurants cannot set status {status_label(target.value)!r}")

    o = store.get_order(order_id)
    if not o:
        raise NotFound("Order not found!")

    if current_app.config.get("ENFORCE_RESTAURANT_OWNERSHIP", True) and o.restaurant_id != principal.id:
        raise Forbidden("Order belongs to another restaurant")

    current = OrderStatus(o.status)
    if current == target:
        return o
    if not can_transition(current, target):
        raise ConflictError(
            f"Cannot change order from {STATUS_LABELS[current]} to {STATUS_LABELS[target]}"
        )

    _apply_status(o, target)
    db.session.commit()
    logger.info("Restaurant %s moved order %s: %s -> %s", principal.id, o.id, current.value, target.value)
    return o


def _admin_override(principal, order_id, requested):
    label, target = parse_admin_status(requested)

    o = store.get_order(order_id)
    if not o:
        raise NotFound("Order not found!")

    current = OrderStatus(o.status)
    if current in TERMINAL_STATUSES and current != target:
        raise ConflictError(f"Order is closed ({STATUS_LABELS[current]})")

    if current != target:
        _apply_status(o, target)
        db.session.commit()
    logger.info("Super admin %s set order %s to %s", principal.email, o.id, target.value)

    log_admin_action(principal.email, f"Updated Order Status to {label}", o.id)
    return o


def cancel_order(principal, order_id, reason=None):
    if not principal.is_customer:
        raise Forbidden("Only customers can cancel their orders")

    o = store.get_customer_order(order_id, principal.id)
    if not o:
        raise NotFound("Order not found or does not belong to you!")

    current = OrderStatus(o.status)
    if current in TERMINAL_STATUSES:
        raise ConflictError(f"Order cannot be cancelled once {STATUS_LABELS[current]}")

    _apply_status(o, OrderStatus.CANCELLED)
    o.cancelled_reason = (reason or "").strip() or None
    db.session.commit()
    logger.info("Customer %s cancelled order %s (%s)", principal.id, o.id, o.cancelled_reason)
    return o


def delete_order(principal, order_id):
    if not principal.is_super_admin:
        raise Forbidden("Forbidden: Only super admins can perform this action!")

    o = store.get_order(order_id)
    if not o:
        raise NotFound("Order not found!")

    oid = o.id
    store.remove_order(o)
    logger.info("Super admin %s deleted order %s", principal.email, oid)

    log_admin_action(principal.email, "Deleted Order", oid)
    return oid
