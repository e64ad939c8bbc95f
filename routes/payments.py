"""Payment endpoints: manual payments, Stripe Checkout, returns and webhooks."""

from __future__ import annotations

from flask import Blueprint, jsonify, request
from flask_jwt_extended import jwt_required
from werkzeug.exceptions import BadRequest

from models import db
from services import gateway, payments
from services.access import get_payment, load_visible_application
from utils.identity import current_user
from utils.request_validation import parse_int, parse_json_request

payments_bp = Blueprint("payments", __name__)


@payments_bp.route("/applications/<int:application_id>", methods=["POST"])
@jwt_required()
def create_payment(application_id: int):
    """Record a manual payment (or a resubmission after rejection)."""

    data = parse_json_request(
        request,
        required_keys=["amount", "service_fee", "net_amount", "payment_method", "reference_number"],
    )
    result = payments.create_payment(
        current_user(),
        application_id,
        amount=data["amount"],
        service_fee=data["service_fee"],
        net_amount=data["net_amount"],
        method=data["payment_method"],
        reference_number=data["reference_number"],
    )
    db.session.commit()
    return jsonify(result), 201


@payments_bp.route("/applications/<int:application_id>", methods=["GET"])
@jwt_required()
def payment_history(application_id: int):
    return jsonify({"payments": payments.payment_history(current_user(), application_id)})


@payments_bp.route("/applications/<int:application_id>/checkout", methods=["POST"])
@jwt_required()
def create_checkout(application_id: int):
    """Create a Stripe Checkout session for the application fee."""

    data = parse_json_request(request, allow_empty=True) if request.is_json else {}
    result = payments.create_checkout(
        current_user(),
        application_id,
        success_url=data.get("success_url"),
        cancel_url=data.get("cancel_url"),
    )
    db.session.commit()
    return jsonify(result), 200 if result["reused"] else 201


@payments_bp.route("/<int:payment_id>", methods=["GET"])
@jwt_required()
def get_payment_detail(payment_id: int):
    payment = get_payment(payment_id)
    load_visible_application(current_user(), payment.application_id)
    return jsonify(payment.to_dict())


@payments_bp.route("/<int:payment_id>/abandonment", methods=["GET"])
@jwt_required()
def check_abandonment(payment_id: int):
    return jsonify(payments.check_abandonment(current_user(), payment_id))


@payments_bp.route("/<int:payment_id>/abandon", methods=["POST"])
@jwt_required()
def abandon_payment(payment_id: int):
    payment = payments.abandon_payment(current_user(), payment_id)
    db.session.commit()
    return jsonify(payment.to_dict())


@payments_bp.route("/<int:payment_id>/sync", methods=["POST"])
@jwt_required()
def sync_payment(payment_id: int):
    """Reconcile a payment with the gateway's authoritative status."""

    result = payments.sync_payment(current_user(), payment_id)
    db.session.commit()
    return jsonify(result)


@payments_bp.route("/return", methods=["GET", "POST"])
@jwt_required()
def handle_return():
    """Handle the checkout redirect back into the app."""

    if request.is_json:
        params = parse_json_request(request, required_keys=["payment_id", "status"])
    else:
        params = request.args
    payment_id = params.get("payment_id")
    status = params.get("status")
    if payment_id is None or not status:
        raise BadRequest("payment_id and status are required.")

    result = payments.handle_return(
        current_user(), parse_int(payment_id, "payment_id"), str(status)
    )
    db.session.commit()
    return jsonify(result)


@payments_bp.route("/webhook", methods=["POST"])
def payment_webhook():
    """Apply signed Stripe webhook events to local payments."""

    event = gateway.construct_webhook_event(
        request.get_data(), request.headers.get("Stripe-Signature")
    )
    result = payments.apply_webhook_event(event)
    db.session.commit()
    return jsonify({"received": True, **result})
