"""Flask API for the A/B-test admin screen, variant assignment and event collection."""
import logging
import sys
from pathlib import Path

ROOT = Path(__file__).parent.parent.parent
sys.path.insert(0, str(ROOT))

from flask import Flask, request, jsonify

from src.experimentation.engine import ExperimentEngine
from src.experimentation.errors import (
    InvalidStateError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)

logger = logging.getLogger(__name__)


def create_app(engine: ExperimentEngine) -> Flask:
    """Build the app around an already constructed engine."""
    app = Flask(__name__)
    app.config["ENGINE"] = engine

    @app.errorhandler(ValidationError)
    def _validation_error(e):
        return jsonify({"error": str(e), "invariant": e.invariant}), 400

    @app.errorhandler(NotFoundError)
    def _not_found(e):
        return jsonify({"error": str(e)}), 404

    @app.errorhandler(InvalidStateError)
    @app.errorhandler(InvalidTransitionError)
    def _conflict(e):
        return jsonify({"error": str(e)}), 409

    def _body():
        data = request.get_json(silent=True)
        if not isinstance(data, dict):
            raise ValidationError("Request body must be a JSON object")
        return data

    @app.route("/ping", methods=["GET"])
    def ping():
        return "pong"

    @app.route("/ab-tests", methods=["GET"])
    def list_tests():
        tests = engine.list_experiments(
            status=request.args.get("status"),
            component=request.args.get("component"),
        )
        summary = engine.summarize_experiments()
        summary.pop("total")
        return jsonify({
            "tests": [t.to_dict() for t in tests],
            "total": len(tests),
            "summary": summary,
        })

    @app.route("/ab-tests", methods=["POST"])
    def create_test():
        test = engine.create_experiment(_body())
        return jsonify({"success": True, "test_id": test.id, "test": test.to_dict()}), 201

    @app.route("/ab-tests/<test_id>", methods=["GET"])
    def get_test(test_id):
        return jsonify(engine.get_experiment(test_id).to_dict())

    @app.route("/ab-tests/<test_id>", methods=["PUT"])
    def update_test(test_id):
        test = engine.update_experiment(test_id, _body())
        return jsonify({"success": True, "test": test.to_dict()})

    @app.route("/ab-tests/<test_id>", methods=["DELETE"])
    def delete_test(test_id):
        engine.delete_experiment(test_id)
        return jsonify({"success": True, "message": "Test deleted successfully"})

    @app.route("/ab-tests/<test_id>/transition", methods=["POST"])
    def transition_test(test_id):
        event = _body().get("event")
        if not event:
            raise ValidationError("Missing required field: event")
        test = engine.transition(test_id, event)
        return jsonify({"success": True, "test": test.to_dict()})

    @app.route("/ab-tests/<test_id>/variants", methods=["POST"])
    def add_variant(test_id):
        test = engine.add_variant(test_id, _body())
        return jsonify({"success": True, "test": test.to_dict()}), 201

    @app.route("/ab-tests/<test_id>/variants/<variant_id>", methods=["DELETE"])
    def remove_variant(test_id, variant_id):
        test = engine.remove_variant(test_id, variant_id)
        return jsonify({"success": True, "test": test.to_dict()})

    @app.route("/ab-tests/<test_id>/traffic", methods=["PUT"])
    def set_traffic(test_id):
        test = engine.set_traffic(test_id, _body())
        return jsonify({"success": True, "test": test.to_dict()})

    @app.route("/ab-tests/<test_id>/variants/<variant_id>/active", methods=["PUT"])
    def set_variant_active(test_id, variant_id):
        body = _body()
        if "is_active" not in body:
            raise ValidationError("Missing required field: is_active")
        if not isinstance(body["is_active"], bool):
            raise ValidationError("is_active must be true or false")
        test = engine.update_variant_active(test_id, variant_id, body["is_active"])
        return jsonify({"success": True, "test": test.to_dict()})

    @app.route("/ab-tests/<test_id>/results", methods=["GET"])
    def get_results(test_id):
        return jsonify(engine.get_results(test_id).to_dict())

    @app.route("/ab-tests/<test_id>/assign", methods=["GET"])
    def assign(test_id):
        visitor_id = request.args.get("visitor_id")
        if not visitor_id:
            raise ValidationError("Missing query parameter: visitor_id")
        return jsonify({"test_id": test_id, "variant_id": engine.assign(test_id, visitor_id)})

    @app.route("/events/<kind>", methods=["POST"])
    def record_event(kind):
        if kind not in ("exposure", "conversion"):
            raise NotFoundError("event type", kind)
        body = _body()
        missing = [k for k in ("test_id", "variant_id") if not body.get(k)]
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")
        record = engine.record_exposure if kind == "exposure" else engine.record_conversion
        recorded = record(body["test_id"], body["variant_id"], body.get("visitor_id"))
        return jsonify({"recorded": recorded}), 202

    return app


if __name__ == "__main__":
    from src.experimentation.config import EngineConfig

    logging.basicConfig(level=logging.INFO)
    create_app(ExperimentEngine(EngineConfig(data_dir=str(ROOT / "data" / "experiments")))).run(
        host="0.0.0.0", port=5000
    )
