import logging

from flask import current_app

from database import db, User, Admin, Restaurant, CustomerProfile, Role, now_utc
from errors import AuthError, ConflictError, Forbidden, NotFound
from identity import Principal, KIND_USER, KIND_RESTAURANT, KIND_ADMIN

logger = logging.getLogger(__name__)

ACCOUNT_MODELS = {
    "customer": User,
    "restaurant": Restaurant,
    "admin": Admin,
}


def principal_for(account) -> Principal:
    if isinstance(account, Admin):
        return Principal(account.id, account.email, account.role, KIND_ADMIN)
    if isinstance(account, Restaurant):
        return Principal(account.id, account.email, Role.RESTAURANT.value, KIND_RESTAURANT)
    return Principal(account.id, account.email, account.role, KIND_USER)


def register_account(body):
    model = ACCOUNT_MODELS[body.role]
    if model.query.filter_by(email=body.email).first():
        raise ConflictError("Email already registered!")

    if body.role == "restaurant":
        account = Restaurant(
            name=body.name,
            email=body.email,
            location=body.location or "",
            phone=body.phone or "",
            cuisine=body.cuisine or ""
        )
    else:
        account = User(name=body.name, email=body.email, role=Role.CUSTOMER.value)
    account.set_password(body.password)
    db.session.add(account)
    db.session.flush()

    if isinstance(account, User):
        db.session.add(CustomerProfile(user_id=account.id, phone=body.phone))

    db.session.commit()
    logger.info("Registered %s account %s (%s)", body.role, account.id, account.email)
    return account


def check_login(body) -> Principal:
    model = ACCOUNT_MODELS[body.account]
    account = model.query.filter_by(email=body.email).first()
    if not account or not account.check_password(body.password):
        logger.info("Failed %s login for %s", body.account, body.email)
        raise AuthError("Invalid email or password!")
    return principal_for(account)


def seed_super_admin():
    if Admin.query.count() > 0:
        return None
    admin = Admin(email=current_app.config["ADMIN_EMAIL"].strip().lower(), role=Role.SUPER_ADMIN.value)
    admin.set_password(current_app.config["ADMIN_PASSWORD"])
    db.session.add(admin)
    db.session.commit()
    logger.info("Seeded super admin %s", admin.email)
    return admin


def customer_profile(user_id):
    profile = CustomerProfile.query.filter_by(user_id=int(user_id)).first()
    if not profile:
        raise NotFound("Profile not found!")
    return profile


def update_customer_profile(user_id, body):
    profile = CustomerProfile.query.filter_by(user_id=int(user_id)).first()
    if not profile:
        profile = CustomerProfile(user_id=int(user_id))
        db.session.add(profile)
    for field, value in body.model_dump(exclude_unset=True).items():
        setattr(profile, field, value)
    profile.updated_at = now_utc()
    db.session.commit()
    return profile


def get_restaurant(restaurant_id):
    r = db.session.get(Restaurant, int(restaurant_id))
    if not r:
        raise NotFound("Restaurant not found!")
    return r


def update_restaurant_profile(restaurant_id, body):
    r = get_restaurant(restaurant_id)
    r.name = body.name
    r.location = body.location
    r.phone = body.phone
    r.cuisine = body.cuisine
    db.session.commit()
    return r


def admin_profile(principal, email=None):
    target = (email or "").strip().lower() or principal.email
    if target != principal.email and not principal.is_super_admin:
        raise Forbidden("Forbidden: Admins cannot fetch another admin's profile!")
    admin = Admin.query.filter_by(email=target).first()
    if not admin:
        raise NotFound("Admin profile not found!")
    return admin
