import re
from decimal import Decimal
from typing import Literal, Optional

from flask import request
from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator
from pydantic import ValidationError as SchemaError

from errors import ValidationError

STRONG_PASSWORD = re.compile(r"^(?=.*[a-z])(?=.*[A-Z])(?=.*\d)(?=.*[@$!%*?&])[A-Za-z\d@$!%*?&]{8,}$")


class RequestBody(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True, extra="ignore")


class SignupBody(RequestBody):
    name: str = Field(min_length=1, max_length=160)
    email: EmailStr
    password: str
    role: Literal["customer", "restaurant"] = "customer"
    location: Optional[str] = Field(default=None, max_length=300)
    phone: Optional[str] = Field(default=None, max_length=40)
    cuisine: Optional[str] = Field(default=None, max_length=80)

    @field_validator("email")
    @classmethod
    def lower_email(cls, v):
        return v.lower()

    @field_validator("password")
    @classmethod
    def strong_password(cls, v):
        if not STRONG_PASSWORD.match(v):
            raise ValueError(
                "Password must be at least 8 characters long, include an uppercase letter, "
                "a lowercase letter, a number, and a special character."
            )
        return v


class LoginBody(RequestBody):
    email: str = Field(min_length=1)
    password: str = Field(min_length=1)
    account: Literal["customer", "restaurant", "admin"] = "customer"

    @field_validator("email")
    @classmethod
    def lower_email(cls, v):
        return v.lower()


class OrderCreate(RequestBody):
    dish_id: int = Field(gt=0)
    quantity: int = Field(default=1, ge=1, le=100)


class StatusUpdate(RequestBody):
    model_config = ConfigDict(str_strip_whitespace=False, extra="ignore")

    status: str = Field(min_length=1)


class CancelBody(RequestBody):
    reason: Optional[str] = Field(default=None, max_length=300)


class FeedbackCreate(RequestBody):
    rating: int = Field(ge=1, le=5)
    comment: Optional[str] = Field(default=None, max_length=1000)


class DishBody(RequestBody):
    name: str = Field(min_length=1, max_length=180)
    description: str = Field(min_length=1, max_length=500)
    price: Decimal = Field(gt=0, lt=100000000)
    category: str = Field(min_length=1, max_length=80)
    image: Optional[str] = Field(default=None, max_length=300)


class RestaurantProfileUpdate(RequestBody):
    name: str = Field(min_length=1, max_length=160)
    location: str = Field(min_length=1, max_length=300)
    phone: str = Field(min_length=1, max_length=40)
    cuisine: str = Field(min_length=1, max_length=80)


class CustomerProfileUpdate(RequestBody):
    phone: Optional[str] = Field(default=None, max_length=40)
    address: Optional[str] = Field(default=None, max_length=500)
    country: Optional[str] = Field(default=None, max_length=80)
    state: Optional[str] = Field(default=None, max_length=80)
    city: Optional[str] = Field(default=None, max_length=80)


def schema_details(exc: SchemaError):
    out = []
    for err in exc.errors():
        field = ".".join(str(p) for p in err.get("loc", ())) or "body"
        out.append({"field": field, "message": err.get("msg", "Invalid value")})
    return out


def parse_body(model_cls):
    data = request.get_json(silent=True)
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ValidationError("Expected JSON object body")
    try:
        return model_cls.model_validate(data)
    except SchemaError as e:
        details = schema_details(e)
        raise ValidationError(details[0]["message"] if len(details) == 1 else "Invalid request body", details=details)
