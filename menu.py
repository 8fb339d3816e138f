import logging

from database import db, Dish, Restaurant, money
from errors import NotFound

logger = logging.getLogger(__name__)


def list_restaurants():
    return Restaurant.query.order_by(Restaurant.name.asc()).all()


def restaurant_dishes(restaurant_id):
    if not db.session.get(Restaurant, int(restaurant_id)):
        raise NotFound("Restaurant not found!")
    return (
        Dish.query
        .filter_by(restaurant_id=int(restaurant_id), is_deleted=False)
        .order_by(Dish.id.asc())
        .all()
    )


def owned_dish(restaurant_id, dish_id):
    # Another restaurant's dish is reported as missing.
    d = Dish.query.filter_by(id=int(dish_id), restaurant_id=int(restaurant_id), is_deleted=False).first()
    if not d:
        raise NotFound("Dish not found!")
    return d


def add_dish(restaurant_id, body):
    d = Dish(
        restaurant_id=int(restaurant_id),
        name=body.name,
        description=body.description,
        price=money(body.price),
        category=body.category,
        image=body.image
    )
    db.session.add(d)
    db.session.commit()
    logger.info("Restaurant %s added dish %s", restaurant_id, d.id)
    return d


def update_dish(restaurant_id, dish_id, body):
    d = owned_dish(restaurant_id, dish_id)
    d.name = body.name
    d.description = body.description
    d.price = money(body.price)
    d.category = body.category
    d.image = body.image
    db.session.commit()
    return d


def delete_dish(restaurant_id, dish_id):
    d = owned_dish(restaurant_id, dish_id)
    d.is_deleted = True
    db.session.commit()
    logger.info("Restaurant %s removed dish %s", restaurant_id, d.id)
    return d
