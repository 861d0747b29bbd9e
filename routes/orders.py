"""
Order lifecycle routes.

Handles:
- GET    /api/orders                 - list orders
- GET    /api/orders/<n>             - read one order
- POST   /api/orders                 - create (201)
- GET    /api/orders/valida/<n>      - validate-exists
- POST   /api/orders/<n>/start       - start on the remote system
- POST   /api/orders/<n>/stop        - stop remotely, then locally
- DELETE /api/orders/<n>             - delete (204)

Handlers only translate HTTP to LifecycleService calls. Errors propagate
to the OrderBridgeError handler registered in routes/__init__.py.
"""

from typing import Any, Dict, Optional

from flask import Blueprint, current_app, request

from core.exceptions import OrderNotFoundError, ValidationError
from logging_config import get_logger


# Module logger
logger = get_logger(__name__)

orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")


def _lifecycle():
    return current_app.config["LIFECYCLE_SERVICE"]


def _body() -> Dict[str, Any]:
    """JSON body with lower-cased keys; an absent body is an empty object."""
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return {str(k).lower(): v for k, v in data.items()}


def _int_field(data: Dict[str, Any], name: str, label: str,
               default: Optional[int] = None) -> int:
    value = data.get(name)
    if value is None or value == "":
        if default is not None:
            return default
        raise ValidationError(f"{label} is required.", field=label)
    if isinstance(value, bool):
        raise ValidationError(f"{label} must be an integer.", field=label)
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{label} must be an integer.", field=label)


def _user_id(data: Dict[str, Any]) -> int:
    # Body wins over the query string; anonymous callers are user 0
    if "userid" in data:
        return _int_field(data, "userid", "USERID", default=0)
    return _int_field({"userid": request.args.get("userId")}, "userid", "USERID", default=0)


@orders_bp.route("", methods=["GET"])
def list_orders():
    store = current_app.config["ORDER_STORE"]
    return {"orders": [order.to_dict() for order in store.list_orders()]}


@orders_bp.route("/<int:production_order>", methods=["GET"])
def get_order(production_order: int):
    store = current_app.config["ORDER_STORE"]
    order = store.get_order(production_order)
    if order is None:
        raise OrderNotFoundError(production_order)
    return order.to_dict()


@orders_bp.route("", methods=["POST"])
def create_order():
    """
    Create a production order.

    Body: ``{"USERID": int, "ORDER": int, "slitter": str (optional)}``
    """
    data = _body()
    user_id = _int_field(data, "userid", "USERID")
    production_order = _int_field(data, "order", "ORDER")
    slitter = str(data.get("slitter") or "")

    order = _lifecycle().create_order(user_id, production_order, slitter)
    logger.info(f"Order {production_order} created by user {user_id}")
    return order.to_dict(), 201


@orders_bp.route("/valida/<int:production_order>", methods=["GET"])
def validate_exists(production_order: int):
    return {"exists": _lifecycle().validate_exists(production_order)}


@orders_bp.route("/<int:production_order>/start", methods=["POST"])
def start_order(production_order: int):
    data = _body()
    _lifecycle().start_order(production_order, _user_id(data), data.get("slitter") or None)
    return "", 204


@orders_bp.route("/<int:production_order>/stop", methods=["POST"])
def stop_order(production_order: int):
    data = _body()
    result = _lifecycle().stop_order(production_order, _user_id(data),
                                     data.get("slitter") or None)
    return result.to_dict()


@orders_bp.route("/<int:production_order>", methods=["DELETE"])
def delete_order(production_order: int):
    _lifecycle().delete_order(production_order, _user_id(_body()))
    return "", 204
