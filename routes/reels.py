"""
Reel event route.

POST /api/reels/events - store a reel set and register it remotely
"""

from flask import Blueprint, current_app, request

from models.reel_event import ReelEvent


reels_bp = Blueprint("reels", __name__, url_prefix="/api/reels")


@reels_bp.route("/events", methods=["POST"])
def create_reel_event():
    event = ReelEvent.from_dict(request.get_json(silent=True))
    return current_app.config["REEL_SERVICE"].ingest(event)
