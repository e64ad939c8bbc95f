"""Notification inbox endpoints."""

from __future__ import annotations

from flask import Blueprint, jsonify, request
from flask_jwt_extended import jwt_required

from models import db
from services import notifications
from utils.identity import current_user

notifications_bp = Blueprint("notifications", __name__)


@notifications_bp.route("", methods=["GET"])
@jwt_required()
def list_notifications():
    unread_only = request.args.get("unread", "").lower() in {"1", "true", "yes"}
    items = notifications.list_for_user(current_user(), unread_only=unread_only)
    return jsonify({"notifications": [item.to_dict() for item in items]})


@notifications_bp.route("/<int:notification_id>/read", methods=["POST"])
@jwt_required()
def mark_read(notification_id: int):
    notification = notifications.mark_read(current_user(), notification_id)
    db.session.commit()
    return jsonify(notification.to_dict())
