from decimal import Decimal

import pytest

from app import create_app, limiter
from database import db, User, Admin, Restaurant, Dish, Order, CustomerProfile, Role
from identity import Principal, KIND_USER, KIND_RESTAURANT, KIND_ADMIN

PASSWORD = "Secret@123"


@pytest.fixture
def app():
    app = create_app({
        "TESTING": True,
        "SECRET_KEY": "test-secret",
        "SQLALCHEMY_DATABASE_URI": "sqlite://",
        "ADMIN_EMAIL": "root@example.com",
        "ADMIN_PASSWORD": PASSWORD,
        "FEEDBACK_DUPLICATE_POLICY": "allow",
        "ENFORCE_RESTAURANT_OWNERSHIP": True,
        "AUDIT_ASYNC": False,
        "LOG_LEVEL": "WARNING",
    })
    limiter.reset()
    yield app
    with app.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


class Seed:
    """Creates rows directly and hands back ids plus Authorization headers."""

    def __init__(self, app):
        self.app = app
        self._n = 0

    def _email(self, prefix):
        self._n += 1
        return f"{prefix}{self._n}@example.com"

    def headers(self, principal):
        token = self.app.extensions["identity"].issue(principal)
        return {"Authorization": f"Bearer {token}"}

    def customer(self, name="Alice"):
        with self.app.app_context():
            u = User(name=name, email=self._email("customer"), role=Role.CUSTOMER.value)
            u.set_password(PASSWORD)
            db.session.add(u)
            db.session.flush()
            db.session.add(CustomerProfile(user_id=u.id))
            db.session.commit()
            p = Principal(u.id, u.email, u.role, KIND_USER)
        return p, self.headers(p)

    def restaurant(self, name="Pizza Place"):
        with self.app.app_context():
            r = Restaurant(name=name, email=self._email("restaurant"), location="Main St", phone="555", cuisine="Italian")
            r.set_password(PASSWORD)
            db.session.add(r)
            db.session.commit()
            p = Principal(r.id, r.email, Role.RESTAURANT.value, KIND_RESTAURANT)
        return p, self.headers(p)

    def admin(self, role=Role.SUPER_ADMIN.value):
        with self.app.app_context():
            a = Admin(email=self._email("admin"), role=role)
            a.set_password(PASSWORD)
            db.session.add(a)
            db.session.commit()
            p = Principal(a.id, a.email, a.role, KIND_ADMIN)
        return p, self.headers(p)

    def dish(self, restaurant_id, price="12.50", name="Margherita"):
        with self.app.app_context():
            d = Dish(restaurant_id=restaurant_id, name=name, description="Classic", price=Decimal(price), category="Pizza")
            db.session.add(d)
            db.session.commit()
            return d.id

    def order_status(self, order_id):
        with self.app.app_context():
            o = db.session.get(Order, order_id)
            return o.status if o else None

    def set_status(self, order_id, status):
        with self.app.app_context():
            o = db.session.get(Order, order_id)
            o.status = status
            db.session.commit()


@pytest.fixture
def seed(app):
    return Seed(app)


@pytest.fixture
def placed_order(client, seed):
    """A customer, a restaurant with a 12.50 dish, and one order of 3."""
    customer, customer_headers = seed.customer()
    restaurant, restaurant_headers = seed.restaurant()
    dish_id = seed.dish(restaurant.id, price="12.50")
    resp = client.post("/api/orders", json={"dish_id": dish_id, "quantity": 3}, headers=customer_headers)
    assert resp.status_code == 201
    return {
        "order_id": resp.get_json()["id"],
        "dish_id": dish_id,
        "customer": customer,
        "customer_headers": customer_headers,
        "restaurant": restaurant,
        "restaurant_headers": restaurant_headers,
    }
