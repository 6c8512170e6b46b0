"""
HTTP API - JSON render surface over the GameController

Reads return snapshots; writes go through the controller's four entry
points. Malformed bodies get a 400 with the validation errors; operations
the engine rejects get a 400 with the controller's result dictionary.

Startup: python src/main.py
"""

import logging

from flask import Flask, jsonify, request
from pydantic import BaseModel, ValidationError

from config import Config, config
from core.game_controller import GameController
from sources.sentiment import SentimentAnalyzer

from .schemas import AssetRequest, BetRequest, ClaimRequest, DurationRequest

logger = logging.getLogger(__name__)


def _parse(model: type[BaseModel]) -> BaseModel:
    """Validate the JSON body against `model` (missing body counts as {})"""
    payload = request.get_json(silent=True)
    if payload is None:
        payload = {}
    return model.model_validate(payload)


def _result_response(result: dict):
    return jsonify(result), (200 if result.get("success") else 400)


def create_app(
    controller: GameController,
    analyzer: SentimentAnalyzer | None = None,
    cfg: Config = config,
) -> Flask:
    """Build the Flask app bound to one controller"""
    app = Flask(__name__)
    default_user = cfg.get("api", "default_user")

    def current_user() -> str:
        return request.args.get("user_id") or default_user

    @app.errorhandler(ValidationError)
    def handle_validation_error(e: ValidationError):
        errors = [
            {"field": ".".join(str(p) for p in err["loc"]), "message": err["msg"]}
            for err in e.errors()
        ]
        return jsonify({"success": False, "error": "Invalid request", "details": errors}), 400

    # ========== Reads ==========

    @app.route("/api/state")
    def get_state():
        return jsonify(controller.get_snapshot(current_user()).to_dict())

    @app.route("/api/history")
    def get_history():
        return jsonify({"bets": controller.finished_bets(current_user())})

    @app.route("/api/leaderboard")
    def get_leaderboard():
        return jsonify(
            {
                "leaders": [stats.to_dict() for stats in controller.leaderboard()],
                "me": controller.get_user_stats(current_user()).to_dict(),
            }
        )

    @app.route("/api/assets")
    def get_assets():
        return jsonify(
            {
                "assets": [asset.to_dict() for asset in controller.list_assets()],
                "durations": list(cfg.DURATIONS),
                "selected_asset": controller.selected_asset.symbol,
                "selected_duration": controller.engine.duration_sec,
            }
        )

    # ========== Writes ==========

    @app.route("/api/bets", methods=["POST"])
    def place_bet():
        body = _parse(BetRequest)
        result = controller.place_bet(
            body.position, body.amount, user_id=body.user_id or current_user()
        )
        return _result_response(result)

    @app.route("/api/claims/<int:round_id>", methods=["POST"])
    def claim(round_id: int):
        body = _parse(ClaimRequest)
        return _result_response(controller.claim(round_id, user_id=body.user_id or current_user()))

    @app.route("/api/asset", methods=["POST"])
    def select_asset():
        body = _parse(AssetRequest)
        return _result_response(controller.select_asset(body.symbol))

    @app.route("/api/duration", methods=["POST"])
    def select_duration():
        body = _parse(DurationRequest)
        return _result_response(controller.select_duration(body.seconds))

    @app.route("/api/analysis", methods=["POST"])
    def analyze():
        if analyzer is None:
            return jsonify({"success": False, "error": "Sentiment analysis not configured"}), 503

        snapshot = controller.get_snapshot(current_user())
        prices = [point.value for point in snapshot.price_history]
        analysis = analyzer.analyze(snapshot.selected_asset, prices)
        return jsonify({"success": True, "asset": snapshot.selected_asset, **analysis.model_dump(mode="json")})

    logger.info(f"API created with {len(list(app.url_map.iter_rules()))} routes")
    return app
