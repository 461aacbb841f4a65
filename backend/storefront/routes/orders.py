# Overview: Flask API routes for orders; parses input and returns JSON responses.

"""
Order API routes.

- POST   /api/orders                      checkout (guest or authenticated)
- GET    /api/orders                      list (admin: all, customer: own)
- GET    /api/orders/<id>                 read (owner, admin, or guest via ?email=)
- PATCH  /api/orders/<id>/status          admin status transition
- POST   /api/orders/<id>/cancel          admin cancellation
- POST   /api/orders/<id>/payment/proof   attach InstaPay proof
- POST   /api/orders/<id>/confirm-payment admin approve/reject InstaPay proof

Errors are returned as {"error", "code", "details"} with the status carried by
the OrderError.
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..errors import OrderError
from ..services import order_service, order_status_service, payment_service, idempotency_service
from ..decorators import load_identity, require_auth, require_admin


orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")


def _error_response(e: OrderError):
    return jsonify(e.to_dict()), e.status_code


@orders_bp.post("")
@load_identity
def create_order_route():
    """
    Create an order from a cart.

    Headers: optional Authorization (bearer), optional Idempotency-Key.
    """
    try:
        key = idempotency_service.normalize_key(request.headers.get("Idempotency-Key"))
        body, status = order_service.place_order(
            request.get_json(silent=True),
            actor=g.current_user,
            idempotency_key=key,
        )
        return jsonify(body), status

    except OrderError as e:
        return _error_response(e)


@orders_bp.get("")
@require_auth
def list_orders_route():
    """
    Query params:
    - page, per_page
    - status, payment_method (optional filters)
    """
    try:
        result = order_service.list_orders(
            g.current_user,
            page=request.args.get("page", 1, type=int),
            per_page=request.args.get("per_page", type=int),
            status=request.args.get("status"),
            payment_method=request.args.get("payment_method"),
        )
        return jsonify(result), 200

    except OrderError as e:
        return _error_response(e)


@orders_bp.get("/<int:order_id>")
@load_identity
def get_order_route(order_id: int):
    try:
        order = order_service.get_order(
            order_id,
            actor=g.current_user,
            guest_email=request.args.get("email"),
        )
        return jsonify({"order": order.to_dict()}), 200

    except OrderError as e:
        return _error_response(e)


@orders_bp.patch("/<int:order_id>/status")
@require_admin
def update_status_route(order_id: int):
    data = request.get_json(silent=True) or {}
    if "status" not in data:
        return jsonify({"error": "status required", "code": "VALIDATION_ERROR", "details": {}}), 400

    try:
        order = order_status_service.update_order_status(order_id, data["status"], g.current_user.id)
        current_app.logger.info("Order %s moved to %s by user %s", order_id, order.status, g.current_user.id)
        return jsonify({"order": order.to_dict()}), 200

    except OrderError as e:
        return _error_response(e)


@orders_bp.post("/<int:order_id>/cancel")
@require_admin
def cancel_order_route(order_id: int):
    try:
        order = order_status_service.cancel_order(order_id, g.current_user.id)
        current_app.logger.info("Order %s cancelled by user %s", order_id, g.current_user.id)
        return jsonify({"order": order.to_dict()}), 200

    except OrderError as e:
        return _error_response(e)


@orders_bp.post("/<int:order_id>/payment/proof")
@load_identity
def attach_payment_proof_route(order_id: int):
    data = request.get_json(silent=True) or {}
    try:
        payment = payment_service.attach_proof(
            order_id,
            data.get("proof_url"),
            actor=g.current_user,
            guest_email=data.get("email") or request.args.get("email"),
        )
        return jsonify({"payment": payment.to_dict()}), 200

    except OrderError as e:
        return _error_response(e)


@orders_bp.post("/<int:order_id>/confirm-payment")
@require_admin
def confirm_payment_route(order_id: int):
    data = request.get_json(silent=True) or {}
    try:
        payment = payment_service.review_payment(
            order_id,
            approved=data.get("approved") is True,
            actor_user_id=g.current_user.id,
        )
        return jsonify({"payment": payment.to_dict()}), 200

    except OrderError as e:
        return _error_response(e)
