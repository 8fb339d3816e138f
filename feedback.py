import logging

from flask import current_app
from sqlalchemy import func

import store
from database import db, Feedback, Order, Restaurant, User, OrderStatus, now_utc, iso
from errors import ConflictError, Forbidden, NotFound, ValidationError

logger = logging.getLogger(__name__)

DUPLICATE_POLICIES = ("allow", "reject", "replace")


def duplicate_policy():
    policy = (current_app.config.get("FEEDBACK_DUPLICATE_POLICY") or "allow").strip().lower()
    if policy not in DUPLICATE_POLICIES:
        raise ValueError(f"Unknown FEEDBACK_DUPLICATE_POLICY {policy!r}")
    return policy


def submit_feedback(principal, order_id, rating, comment=None):
    # created is False only when the replace policy overwrote an earlier row
    if not principal.is_customer:
        raise Forbidden("Only customers can leave feedback")
    if isinstance(rating, bool) or not isinstance(rating, int) or rating < 1 or rating > 5:
        raise ValidationError("Rating must be between 1 and 5!")

    o = store.get_customer_order(order_id, principal.id)
    if not o:
        raise NotFound("Order not found or does not belong to you!")
    if o.status != OrderStatus.DELIVERED.value:
        raise ConflictError("You can only review completed orders!")

    policy = duplicate_policy()
    existing = None
    if policy != "allow":
        existing = (
            Feedback.query
            .filter_by(order_id=o.id, customer_id=principal.id)
            .order_by(Feedback.id.asc())
            .first()
        )
    if existing and policy == "reject":
        raise ConflictError("Feedback already submitted for this order!")

    if existing:
        existing.rating = rating
        existing.comment = comment
        existing.created_at = now_utc()
        db.session.commit()
        logger.info("Customer %s replaced feedback %s on order %s", principal.id, existing.id, o.id)
        return existing, False

    fb = Feedback(order_id=o.id, customer_id=principal.id, rating=rating, comment=comment)
    db.session.add(fb)
    db.session.commit()
    logger.info("Customer %s rated order %s: %s", principal.id, o.id, rating)
    return fb, True


def feedback_for_order(order_id):
    rows = (
        db.session.query(Feedback, User.name)
        .join(User, Feedback.customer_id == User.id)
        .filter(Feedback.order_id == int(order_id))
        .order_by(Feedback.created_at.asc(), Feedback.id.asc())
        .all()
    )
    return [{
        "id": fb.id,
        "order_id": fb.order_id,
        "rating": fb.rating,
        "comment": fb.comment,
        "created_at": iso(fb.created_at),
        "customer_name": name
    } for fb, name in rows]


def restaurant_rating(restaurant_id):
    if not db.session.get(Restaurant, int(restaurant_id)):
        raise NotFound("Restaurant not found!")

    avg, count = (
        db.session.query(func.avg(Feedback.rating), func.count(Feedback.id))
        .join(Order, Feedback.order_id == Order.id)
        .filter(Order.restaurant_id == int(restaurant_id))
        .one()
    )
    return {
        "restaurant_id": int(restaurant_id),
        "average_rating": f"{float(avg or 0):.2f}",
        "total_reviews": int(count or 0)
    }
