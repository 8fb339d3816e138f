from sqlalchemy import func

from database import db, Order, Dish, Restaurant, User, Feedback, money


def get_order(order_id):
    return db.session.get(Order, int(order_id))


def get_customer_order(order_id, customer_id):
    return Order.query.filter_by(id=int(order_id), customer_id=int(customer_id)).first()


def get_active_dish(dish_id):
    return Dish.query.filter_by(id=int(dish_id), is_deleted=False).first()


def create_order(customer_id, restaurant_id, dish_id, quantity, total_price, status):
    o = Order(
        customer_id=customer_id,
        restaurant_id=restaurant_id,
        dish_id=dish_id,
        quantity=quantity,
        total_price=total_price,
        status=status
    )
    db.session.add(o)
    db.session.commit()
    return o


def _joined_orders():
    return (
        db.session.query(
            Order,
            Dish.name.label("dish_name"),
            Restaurant.name.label("restaurant_name"),
            User.name.label("customer_name")
        )
        .join(Dish, Order.dish_id == Dish.id)
        .join(Restaurant, Order.restaurant_id == Restaurant.id)
        .join(User, Order.customer_id == User.id)
    )


def customer_orders(customer_id):
    return (
        _joined_orders()
        .filter(Order.customer_id == int(customer_id))
        .order_by(Order.created_at.desc(), Order.id.desc())
        .all()
    )


def customer_order_detail(order_id, customer_id):
    return (
        _joined_orders()
        .filter(Order.id == int(order_id), Order.customer_id == int(customer_id))
        .first()
    )


def restaurant_orders(restaurant_id, status=None):
    q = _joined_orders().filter(Order.restaurant_id == int(restaurant_id))
    if status:
        q = q.filter(Order.status == status)
    return q.order_by(Order.created_at.desc(), Order.id.desc()).all()


def remove_order(order):
    Feedback.query.filter_by(order_id=order.id).delete(synchronize_session=False)
    db.session.delete(order)
    db.session.commit()


def dashboard_stats(top=5):
    total_orders = db.session.query(func.count(Order.id)).scalar() or 0
    total_revenue = db.session.query(func.coalesce(func.sum(Order.total_price), 0)).scalar()

    top_rows = (
        db.session.query(Restaurant.id, Restaurant.name, func.count(Order.id).label("order_count"))
        .join(Order, Order.restaurant_id == Restaurant.id)
        .group_by(Restaurant.id, Restaurant.name)
        .order_by(func.count(Order.id).desc(), Restaurant.id.asc())
        .limit(top)
        .all()
    )
    return {
        "total_orders": int(total_orders),
        "total_revenue": str(money(total_revenue or 0)),
        "top_restaurants": [
            {"restaurant_id": rid, "restaurant_name": name, "order_count": int(count)}
            for rid, name, count in top_rows
        ]
    }
