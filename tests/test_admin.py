from sqlalchemy.exc import OperationalError

from app import create_app
from audit import AuditTrail, log_admin_action
from database import db, AdminLog, Feedback, Order, Role


def admin_logs(app):
    with app.app_context():
        return [row.to_dict() for row in AdminLog.query.order_by(AdminLog.id.asc()).all()]


def put_admin_status(client, order_id, status, headers):
    return client.put(f"/api/admin/orders/{order_id}", json={"status": status}, headers=headers)


def test_invalid_admin_status_changes_nothing(app, client, seed, placed_order):
    _, headers = seed.admin()
    resp = put_admin_status(client, placed_order["order_id"], "Shipped", headers)
    assert resp.status_code == 400
    data = resp.get_json()
    assert data["kind"] == "invalid_status"
    assert "Pending, Preparing, Delivered, Cancelled" in data["error"]
    assert seed.order_status(placed_order["order_id"]) == "new"
    assert admin_logs(app) == []


def test_admin_status_on_missing_order_writes_no_log(app, client, seed):
    _, headers = seed.admin()
    resp = put_admin_status(client, 9999, "Delivered", headers)
    assert resp.status_code == 404
    assert admin_logs(app) == []


def test_admin_sets_delivered_and_is_audited(app, client, seed, placed_order):
    admin, headers = seed.admin()
    resp = put_admin_status(client, placed_order["order_id"], "Delivered", headers)
    assert resp.status_code == 200
    order = resp.get_json()["order"]
    assert order["status"] == "delivered"
    assert order["delivered_at"] is not None

    logs = admin_logs(app)
    assert len(logs) == 1
    assert logs[0]["admin_email"] == admin.email
    assert logs[0]["action"] == "Updated Order Status to Delivered"
    assert logs[0]["target_user_id"] == placed_order["order_id"]
    assert logs[0]["timestamp"] is not None


def test_admin_pending_maps_to_new(client, seed, placed_order):
    _, headers = seed.admin()
    seed.set_status(placed_order["order_id"], "preparing")
    resp = put_admin_status(client, placed_order["order_id"], "Pending", headers)
    assert resp.status_code == 200
    assert resp.get_json()["message"] == "Order updated to Pending successfully!"
    assert seed.order_status(placed_order["order_id"]) == "new"


def test_admin_status_must_match_exactly(app, client, seed, placed_order):
    _, headers = seed.admin()
    for wire in ("pending", "DELIVERED", " Cancelled ", "preparing"):
        resp = put_admin_status(client, placed_order["order_id"], wire, headers)
        assert resp.status_code == 400, wire
        assert resp.get_json()["kind"] == "invalid_status"
    assert seed.order_status(placed_order["order_id"]) == "new"
    assert admin_logs(app) == []


def test_admin_message_uses_canonical_label(client, seed, placed_order):
    _, headers = seed.admin()
    resp = put_admin_status(client, placed_order["order_id"], "Delivered", headers)
    assert resp.get_json()["message"] == "Order updated to Delivered successfully!"


def test_plain_admin_cannot_override(app, client, seed, placed_order):
    _, headers = seed.admin(role=Role.ADMIN.value)
    resp = put_admin_status(client, placed_order["order_id"], "Delivered", headers)
    assert resp.status_code == 403
    assert seed.order_status(placed_order["order_id"]) == "new"
    assert admin_logs(app) == []


def test_restaurant_cannot_use_admin_override(client, placed_order):
    resp = put_admin_status(client, placed_order["order_id"], "Delivered", placed_order["restaurant_headers"])
    assert resp.status_code == 403


def test_reapplying_same_status_is_idempotent(app, client, seed, placed_order):
    _, headers = seed.admin()
    assert put_admin_status(client, placed_order["order_id"], "Cancelled", headers).status_code == 200
    assert put_admin_status(client, placed_order["order_id"], "Cancelled", headers).status_code == 200
    assert seed.order_status(placed_order["order_id"]) == "cancelled"
    assert len(admin_logs(app)) == 2


def test_closed_order_cannot_be_reopened(app, client, seed, placed_order):
    _, headers = seed.admin()
    put_admin_status(client, placed_order["order_id"], "Delivered", headers)
    resp = put_admin_status(client, placed_order["order_id"], "Pending", headers)
    assert resp.status_code == 409
    assert seed.order_status(placed_order["order_id"]) == "delivered"
    assert len(admin_logs(app)) == 1


def test_admin_delete_order(app, client, seed, placed_order):
    admin, headers = seed.admin()
    oid = placed_order["order_id"]
    seed.set_status(oid, "delivered")
    client.post(f"/api/orders/{oid}/feedback", json={"rating": 4}, headers=placed_order["customer_headers"])

    resp = client.delete(f"/api/admin/orders/{oid}", headers=headers)
    assert resp.status_code == 200
    with app.app_context():
        assert db.session.get(Order, oid) is None
        assert Feedback.query.filter_by(order_id=oid).count() == 0

    logs = admin_logs(app)
    assert [(row["action"], row["target_user_id"], row["admin_email"]) for row in logs] == [("Deleted Order", oid, admin.email)]

    assert client.delete(f"/api/admin/orders/{oid}", headers=headers).status_code == 404
    assert len(admin_logs(app)) == 1


def test_logs_are_newest_first_and_capped(app, client, seed):
    _, headers = seed.admin()
    with app.app_context():
        for i in range(1, 56):
            log_admin_action("ops@example.com", "Updated Order Status to Pending", i)

    resp = client.get("/api/admin/logs", headers=headers)
    assert resp.status_code == 200
    logs = resp.get_json()["logs"]
    assert len(logs) == 50
    assert logs[0]["target_user_id"] == 55
    assert logs[-1]["target_user_id"] == 6


def test_logs_empty_is_ok(client, seed):
    _, headers = seed.admin()
    resp = client.get("/api/admin/logs", headers=headers)
    assert resp.status_code == 200
    assert resp.get_json()["logs"] == []


def test_plain_admin_cannot_read_logs(client, seed):
    _, headers = seed.admin(role=Role.ADMIN.value)
    assert client.get("/api/admin/logs", headers=headers).status_code == 403


def test_dashboard_stats(client, seed):
    _, alice = seed.customer("Alice")
    pizza, _ = seed.restaurant("Pizza Place")
    burger, _ = seed.restaurant("Burger Barn")
    pizza_dish = seed.dish(pizza.id, price="10.00")
    burger_dish = seed.dish(burger.id, price="4.25", name="Cheeseburger")
    for dish_id, qty in [(pizza_dish, 1), (pizza_dish, 2), (burger_dish, 2)]:
        client.post("/api/orders", json={"dish_id": dish_id, "quantity": qty}, headers=alice)

    _, headers = seed.admin(role=Role.ADMIN.value)
    resp = client.get("/api/admin/dashboard", headers=headers)
    assert resp.status_code == 200
    data = resp.get_json()
    assert data["total_orders"] == 3
    assert data["total_revenue"] == "38.50"
    assert [r["restaurant_name"] for r in data["top_restaurants"]] == ["Pizza Place", "Burger Barn"]
    assert data["top_restaurants"][0]["order_count"] == 2


def test_dashboard_empty(client, seed):
    _, headers = seed.admin()
    data = client.get("/api/admin/dashboard", headers=headers).get_json()
    assert data["total_orders"] == 0
    assert data["total_revenue"] == "0.00"
    assert data["top_restaurants"] == []


def test_admin_profile(client, seed):
    admin, headers = seed.admin(role=Role.ADMIN.value)
    other, _ = seed.admin(role=Role.ADMIN.value)

    resp = client.get("/api/admin/profile", headers=headers)
    assert resp.status_code == 200
    assert resp.get_json()["admin"]["email"] == admin.email

    resp = client.get("/api/admin/profile", query_string={"email": other.email}, headers=headers)
    assert resp.status_code == 403

    _, super_headers = seed.admin()
    resp = client.get("/api/admin/profile", query_string={"email": other.email}, headers=super_headers)
    assert resp.status_code == 200
    assert resp.get_json()["admin"]["role"] == "admin"


def test_super_admin_creates_account(app, client, seed):
    admin, headers = seed.admin()
    resp = client.post("/api/admin/users", json={
        "name": "Carol", "email": "carol@example.com", "password": "Secret@123", "role": "customer",
    }, headers=headers)
    assert resp.status_code == 201
    logs = admin_logs(app)
    assert logs[0]["action"] == "Created customer account carol@example.com"
    assert logs[0]["target_user_id"] == resp.get_json()["id"]


def test_audit_failure_does_not_fail_the_override(app, client, seed, placed_order, monkeypatch):
    def broken_write(self, admin_email, action, target_id):
        raise OperationalError("INSERT INTO admin_logs", {}, Exception("disk full"))

    monkeypatch.setattr(AuditTrail, "_write", broken_write)
    _, headers = seed.admin()
    resp = put_admin_status(client, placed_order["order_id"], "Preparing", headers)
    assert resp.status_code == 200
    assert seed.order_status(placed_order["order_id"]) == "preparing"
    assert admin_logs(app) == []


def test_async_audit_trail_writes_in_background():
    app = create_app({
        "TESTING": True,
        "SECRET_KEY": "test-secret",
        "SQLALCHEMY_DATABASE_URI": "sqlite://",
        "AUDIT_ASYNC": True,
        "AUDIT_WORKERS": 1,
        "LOG_LEVEL": "WARNING",
    })
    trail = app.extensions["audit_trail"]
    try:
        with app.app_context():
            future = log_admin_action("ops@example.com", "Deleted Order", 12)
            assert future is not None
            future.result(timeout=10)
            rows = AdminLog.query.all()
            assert [(r.action, r.target_user_id) for r in rows] == [("Deleted Order", 12)]
    finally:
        trail.shutdown()
        with app.app_context():
            db.drop_all()
