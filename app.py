import logging

from flask import Flask, Blueprint, request, jsonify, g, current_app
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_login import LoginManager, login_required, current_user
from sqlalchemy.exc import SQLAlchemyError
from werkzeug.exceptions import HTTPException

import accounts
import feedback
import lifecycle
import menu
import store
from audit import AuditTrail, log_admin_action, recent_entries
from config import Config
from database import db, now_utc
from errors import ServiceError, AuthError, NotFound, StoreError
from identity import IdentityOracle, RevocationStore, bearer_token, identity_oracle, require_roles
from schemas import (
    parse_body,
    SignupBody, LoginBody,
    OrderCreate, StatusUpdate, CancelBody, FeedbackCreate,
    DishBody, RestaurantProfileUpdate, CustomerProfileUpdate
)

logger = logging.getLogger(__name__)

api = Blueprint("api", __name__, url_prefix="/api")

login_manager = LoginManager()

limiter = Limiter(key_func=get_remote_address)


def json_error(err: ServiceError):
    return jsonify(err.to_dict()), err.status_code


def principal():
    return current_user._get_current_object()


@login_manager.request_loader
def load_principal(req):
    token = bearer_token(req)
    if token is None:
        if req.headers.get("Authorization"):
            g.auth_error = "Unauthorized: No token provided!"
        return None
    try:
        return identity_oracle().authenticate(token)
    except AuthError as e:
        g.auth_error = e.message
        return None


@login_manager.unauthorized_handler
def _unauthorized():
    return json_error(AuthError(g.pop("auth_error", None) or "Authentication required"))


def register_error_handlers(app):
    @app.errorhandler(ServiceError)
    def _service_error(e):
        if e.status_code >= 500:
            logger.error("%s on %s %s: %s", type(e).__name__, request.method, request.path, e.message)
        return json_error(e)

    @app.errorhandler(SQLAlchemyError)
    def _store_error(e):
        db.session.rollback()
        logger.exception("Store error on %s %s", request.method, request.path)
        return json_error(StoreError())

    @app.errorhandler(HTTPException)
    def _http_error(e):
        if not request.path.startswith("/api/"):
            return e
        err = ServiceError(e.description if e.code != 404 else "Not found")
        err.status_code = e.code
        err.kind = (e.name or "error").lower().replace(" ", "_")
        return json_error(err)


def create_app(overrides=None):
    app = Flask(__name__)
    app.config.from_object(Config)
    if overrides:
        app.config.update(overrides)

    logging.basicConfig(
        level=str(app.config.get("LOG_LEVEL", "INFO")).upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s"
    )

    db.init_app(app)
    login_manager.init_app(app)
    limiter.init_app(app)

    max_age = int(app.config["TOKEN_MAX_AGE"])
    app.extensions["identity"] = IdentityOracle(
        app.config["SECRET_KEY"],
        max_age=max_age,
        revocations=RevocationStore(max_age=max_age)
    )
    AuditTrail(app)

    app.register_blueprint(api)
    register_error_handlers(app)

    with app.app_context():
        db.create_all()
    logger.info("Using database: %s", app.config["SQLALCHEMY_DATABASE_URI"])
    return app


# ---------------------------
# System
# ---------------------------

@api.route("/health", methods=["GET"])
def api_health():
    return jsonify({"success": True, "time": now_utc().isoformat()})


@api.route("/system/init", methods=["POST"])
def api_system_init():
    db.create_all()
    admin = accounts.seed_super_admin()
    if admin:
        return jsonify({"success": True, "message": f"Initialized. Super admin: {admin.email}"})
    return jsonify({"success": True, "message": "Already initialized"})


# ---------------------------
# Auth
# ---------------------------

@api.route("/auth/signup", methods=["POST"])
def api_signup():
    body = parse_body(SignupBody)
    account = accounts.register_account(body)
    return jsonify({
        "success": True,
        "message": "User registered successfully!",
        "id": account.id,
        "user": accounts.principal_for(account).to_dict()
    }), 201


def _not_admin_login():
    data = request.get_json(silent=True)
    return not isinstance(data, dict) or data.get("account") != "admin"


@api.route("/auth/login", methods=["POST"])
@limiter.limit(
    lambda: current_app.config["ADMIN_LOGIN_RATE_LIMIT"],
    exempt_when=_not_admin_login,
    error_message="Too many login attempts. Try again later."
)
def api_login():
    body = parse_body(LoginBody)
    p = accounts.check_login(body)
    token = identity_oracle().issue(p)
    logger.info("Login: %s %s", p.kind, p.email)
    return jsonify({
        "success": True,
        "message": "Login successful!",
        "token": token,
        "token_type": "bearer",
        "user": p.to_dict()
    })


@api.route("/auth/logout", methods=["POST"])
@login_required
def api_logout():
    identity_oracle().revoke(bearer_token(request))
    return jsonify({"success": True, "message": "Logout successful! Token invalidated."})


@api.route("/auth/me", methods=["GET"])
@login_required
def api_me():
    return jsonify({"success": True, "user": principal().to_dict()})


# ---------------------------
# Customer profile
# ---------------------------

@api.route("/profile", methods=["GET"])
@require_roles("customer")
def api_profile_get():
    profile = accounts.customer_profile(current_user.id)
    return jsonify({"success": True, "profile": profile.to_dict()})


@api.route("/profile", methods=["PUT"])
@require_roles("customer")
def api_profile_update():
    body = parse_body(CustomerProfileUpdate)
    profile = accounts.update_customer_profile(current_user.id, body)
    return jsonify({"success": True, "message": "Profile updated successfully!", "profile": profile.to_dict()})


# ---------------------------
# Public restaurant catalogue
# ---------------------------

@api.route("/restaurants", methods=["GET"])
def api_restaurants_list():
    return jsonify({"success": True, "restaurants": [r.to_dict() for r in menu.list_restaurants()]})


@api.route("/restaurants/<int:restaurant_id>/dishes", methods=["GET"])
def api_restaurant_menu(restaurant_id):
    dishes = menu.restaurant_dishes(restaurant_id)
    return jsonify({"success": True, "dishes": [d.to_dict() for d in dishes]})


@api.route("/restaurants/<int:restaurant_id>/rating", methods=["GET"])
def api_restaurant_rating(restaurant_id):
    return jsonify({"success": True, **feedback.restaurant_rating(restaurant_id)})


# ---------------------------
# Restaurant session
# ---------------------------

@api.route("/restaurant/profile", methods=["GET"])
@require_roles("restaurant")
def api_restaurant_profile():
    r = accounts.get_restaurant(current_user.id)
    return jsonify({"success": True, "restaurant": r.to_dict()})


@api.route("/restaurant/profile", methods=["PUT"])
@require_roles("restaurant")
def api_restaurant_profile_update():
    body = parse_body(RestaurantProfileUpdate)
    r = accounts.update_restaurant_profile(current_user.id, body)
    return jsonify({"success": True, "message": "Profile updated successfully!", "restaurant": r.to_dict()})


@api.route("/restaurant/dishes", methods=["GET"])
@require_roles("restaurant")
def api_restaurant_dishes():
    dishes = menu.restaurant_dishes(current_user.id)
    return jsonify({"success": True, "dishes": [d.to_dict() for d in dishes]})


@api.route("/restaurant/dishes", methods=["POST"])
@require_roles("restaurant")
def api_restaurant_dish_create():
    body = parse_body(DishBody)
    d = menu.add_dish(current_user.id, body)
    return jsonify({"success": True, "message": "Dish added successfully!", "dish": d.to_dict()}), 201


@api.route("/restaurant/dishes/<int:dish_id>", methods=["PUT"])
@require_roles("restaurant")
def api_restaurant_dish_update(dish_id):
    body = parse_body(DishBody)
    d = menu.update_dish(current_user.id, dish_id, body)
    return jsonify({"success": True, "message": "Dish updated successfully!", "dish": d.to_dict()})


@api.route("/restaurant/dishes/<int:dish_id>", methods=["DELETE"])
@require_roles("restaurant")
def api_restaurant_dish_delete(dish_id):
    menu.delete_dish(current_user.id, dish_id)
    return jsonify({"success": True, "message": "Dish deleted successfully!"})


@api.route("/restaurant/orders", methods=["GET"])
@require_roles("restaurant")
def api_restaurant_orders():
    status = request.args.get("status")
    if status:
        status = lifecycle.parse_status(status).value
    rows = store.restaurant_orders(current_user.id, status=status)
    return jsonify({"success": True, "orders": [
        lifecycle.order_to_dict(o, dish_name=dish, customer_name=customer)
        for o, dish, _restaurant, customer in rows
    ]})


@api.route("/restaurant/orders/<int:order_id>/status", methods=["PUT"])
@require_roles("restaurant")
def api_restaurant_order_status(order_id):
    body = parse_body(StatusUpdate)
    o = lifecycle.advance_status(principal(), order_id, body.status)
    return jsonify({
        "success": True,
        "message": f"Order updated to {lifecycle.status_label(o.status)} successfully!",
        "order": lifecycle.order_to_dict(o)
    })


# ---------------------------
# Customer orders
# ---------------------------

@api.route("/orders", methods=["POST"])
@require_roles("customer")
def api_orders_create():
    body = parse_body(OrderCreate)
    o = lifecycle.place_order(principal(), body.dish_id, body.quantity)
    return jsonify({
        "success": True,
        "message": "Order placed successfully!",
        "id": o.id,
        "order": lifecycle.order_to_dict(o)
    }), 201


@api.route("/orders", methods=["GET"])
@require_roles("customer")
def api_orders_list():
    rows = store.customer_orders(current_user.id)
    return jsonify({"success": True, "orders": [
        lifecycle.order_to_dict(o, dish_name=dish, restaurant_name=restaurant)
        for o, dish, restaurant, _customer in rows
    ]})


@api.route("/orders/<int:order_id>", methods=["GET"])
@require_roles("customer")
def api_order_get(order_id):
    row = store.customer_order_detail(order_id, current_user.id)
    if not row:
        raise NotFound("Order not found or does not belong to you!")
    o, dish, restaurant, _customer = row
    return jsonify({
        "success": True,
        "order": lifecycle.order_to_dict(o, dish_name=dish, restaurant_name=restaurant)
    })


@api.route("/orders/<int:order_id>/cancel", methods=["POST"])
@require_roles("customer")
def api_order_cancel(order_id):
    body = parse_body(CancelBody)
    o = lifecycle.cancel_order(principal(), order_id, body.reason)
    return jsonify({"success": True, "message": "Order cancelled", "order": lifecycle.order_to_dict(o)})


@api.route("/orders/<int:order_id>/feedback", methods=["POST"])
@require_roles("customer")
def api_feedback_create(order_id):
    body = parse_body(FeedbackCreate)
    fb, created = feedback.submit_feedback(principal(), order_id, body.rating, body.comment)
    return jsonify({
        "success": True,
        "message": "Feedback submitted successfully!" if created else "Feedback updated successfully!",
        "id": fb.id
    }), 201 if created else 200


@api.route("/orders/<int:order_id>/feedback", methods=["GET"])
def api_feedback_list(order_id):
    return jsonify({"success": True, "feedback": feedback.feedback_for_order(order_id)})


# ---------------------------
# Admin
# ---------------------------

@api.route("/admin/dashboard", methods=["GET"])
@require_roles("admin", "super_admin")
def api_admin_dashboard():
    logger.info("Admin %s is fetching dashboard stats", current_user.email)
    return jsonify({"success": True, **store.dashboard_stats()})


@api.route("/admin/profile", methods=["GET"])
@require_roles("admin", "super_admin")
def api_admin_profile():
    admin = accounts.admin_profile(principal(), request.args.get("email"))
    return jsonify({"success": True, "admin": admin.to_dict()})


@api.route("/admin/orders/<int:order_id>", methods=["PUT"])
@require_roles("super_admin")
def api_admin_order_status(order_id):
    body = parse_body(StatusUpdate)
    o = lifecycle.advance_status(principal(), order_id, body.status)
    return jsonify({
        "success": True,
        "message": f"Order updated to {lifecycle.admin_status_label(o.status)} successfully!",
        "order": lifecycle.order_to_dict(o)
    })


@api.route("/admin/orders/<int:order_id>", methods=["DELETE"])
@require_roles("super_admin")
def api_admin_order_delete(order_id):
    oid = lifecycle.delete_order(principal(), order_id)
    return jsonify({"success": True, "message": f"Order ID {oid} deleted successfully!"})


@api.route("/admin/logs", methods=["GET"])
@require_roles("super_admin")
def api_admin_logs():
    return jsonify({"success": True, "logs": [row.to_dict() for row in recent_entries(50)]})


@api.route("/admin/users", methods=["POST"])
@require_roles("super_admin")
def api_admin_create_user():
    body = parse_body(SignupBody)
    account = accounts.register_account(body)
    log_admin_action(current_user.email, f"Created {body.role} account {body.email}", account.id)
    return jsonify({"success": True, "message": "User created successfully!", "id": account.id}), 201


if __name__ == "__main__":
    create_app().run(host="127.0.0.1", port=5000, debug=True, use_reloader=False)
