"""
Web application module for the Match Fee Allocation Engine.

This module contains the Flask app factory exposing attendance, fee and
override operations as JSON API endpoints.
"""
import logging
from typing import Any, Dict, List, Optional, Tuple

from flask import Flask, jsonify, request

from ..models import AttendanceUpdateRequest, BulkItemError, FeeOverride, MatchInfo, PlayerAttendance
from ..services import FeeEngineError, ServiceFactory, ValidationError
from ..utils import APP_TITLE, AppConfig, setup_logging

logger = logging.getLogger(__name__)


class WebAppState:
    """
    State holder for one web application instance.

    Services come from a ServiceFactory so tests can inject an in-memory store.
    """

    def __init__(self, factory: ServiceFactory):
        self.service_factory = factory
        services = factory.create_complete_service_suite()
        self.attendance_service = services['attendance']
        self.fee_calculation_service = services['fees']
        self.fee_override_service = services['overrides']
        self.settings_service = services['settings']
        self.persistence_service = services['persistence']


def _ok(data: Any, status: int = 200):
    return jsonify({"success": True, "data": data}), status


def _error(e: FeeEngineError):
    return jsonify({"success": False, "error": e.to_dict()}), e.status_code


def _server_error():
    return jsonify({
        "success": False,
        "error": {"code": "SERVER_ERROR", "message": "Internal server error", "details": []}
    }), 500


def _json_body() -> Dict[str, Any]:
    """Request JSON object, or ValidationError if the body is not an object."""
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data


def _parse(parser, data, what: str):
    try:
        return parser(data)
    except (AttributeError, TypeError, ValueError) as e:
        raise ValidationError(f"Malformed {what}: {e}") from e


def _parse_bulk_overrides(
    data: Dict[str, Any]
) -> Tuple[List[Tuple[str, FeeOverride]], List[BulkItemError]]:
    """Split bulk items into (player_id, override) pairs and per-item parse errors."""
    items = data.get("overrides")
    if not isinstance(items, list):
        raise ValidationError("'overrides' must be a list")
    parsed = []
    errors = []
    for index, item in enumerate(items):
        player_id = str(item.get("playerId") or "") if isinstance(item, dict) else ""
        try:
            if not player_id:
                raise ValidationError(f"Override {index} needs a playerId")
            parsed.append((player_id, _parse(FeeOverride.from_dict, item, "override")))
        except ValidationError as e:
            errors.append(BulkItemError(player_id=player_id, error=e.message, code=e.code))
    return parsed, errors


def _parse_selected_player_ids(data: Dict[str, Any]) -> Optional[List[str]]:
    selected = data.get("selectedPlayerIds")
    if selected is None:
        return None
    if not isinstance(selected, list):
        raise ValidationError("'selectedPlayerIds' must be a list")
    return [str(player_id) for player_id in selected]


def _parse_player_ids(data: Dict[str, Any]) -> List[str]:
    player_ids = data.get("playerIds")
    if not isinstance(player_ids, list) or not player_ids:
        raise ValidationError("'playerIds' must be a non-empty list")
    return [str(player_id) for player_id in player_ids]


def create_app(config: Optional[AppConfig] = None, factory: Optional[ServiceFactory] = None) -> Flask:
    """
    Create and configure the Flask application with API endpoints.

    Args:
        config: Application configuration; read from the environment when omitted
        factory: Service factory; built from config when omitted

    Returns:
        Configured Flask application instance
    """
    if factory is None:
        factory = ServiceFactory(config or AppConfig.from_env())
    app = Flask(__name__)
    app_state = WebAppState(factory)
    app.extensions["matchfees"] = app_state

    # ==================== Attendance ==================== #

    @app.route("/api/matches/<match_id>/attendance", methods=["GET"])
    def get_attendance(match_id):
        """Get stored attendance and an events summary."""
        try:
            return _ok(app_state.attendance_service.get_attendance_data(match_id))
        except FeeEngineError as e:
            return _error(e)
        except Exception:
            logger.exception("Failed to load attendance for match %s", match_id)
            return _server_error()

    @app.route("/api/matches/<match_id>/attendance", methods=["PUT"])
    def update_attendance(match_id):
        """Replace attendance and events of a match, then recalculate fees."""
        try:
            data = _json_body()
            update = _parse(AttendanceUpdateRequest.from_dict, data, "attendance data")
            match_info = _parse(MatchInfo.from_dict, data.get("matchInfo"), "match info")
            expected_version = data.get("expectedVersion")
            if expected_version is not None and not isinstance(expected_version, int):
                raise ValidationError("'expectedVersion' must be an integer")

            summary = app_state.attendance_service.update_attendance(
                match_id,
                update,
                match_info=match_info,
                selected_player_ids=_parse_selected_player_ids(data),
                expected_version=expected_version
            )
            return _ok(summary.to_dict())
        except FeeEngineError as e:
            return _error(e)
        except Exception:
            logger.exception("Failed to save attendance for match %s", match_id)
            return _server_error()

    @app.route("/api/matches/<match_id>/attendance/validate", methods=["POST"])
    def validate_attendance(match_id):
        """Validate a submission and preview goalkeeper conflicts without saving."""
        try:
            data = _json_body()
            update = _parse(AttendanceUpdateRequest.from_dict, data, "attendance data")
            result = app_state.attendance_service.validate_attendance_data(
                match_id, update.attendance_data, update.events,
                selected_player_ids=_parse_selected_player_ids(data)
            )
            return _ok(result.to_dict())
        except FeeEngineError as e:
            return _error(e)
        except Exception:
            logger.exception("Failed to validate attendance for match %s", match_id)
            return _server_error()

    @app.route("/api/matches/<match_id>/info", methods=["PATCH"])
    def update_match_info(match_id):
        """Update match costs and rates; fees are recalculated on change."""
        try:
            info = _parse(MatchInfo.from_dict, _json_body(), "match info")
            breakdown = app_state.fee_calculation_service.update_match_costs(
                match_id,
                field_fee_total=info.field_fee_total,
                water_fee_total=info.water_fee_total,
                late_fee_rate=info.late_fee_rate,
                video_fee_per_unit=info.video_fee_per_unit
            )
            return _ok(breakdown.to_dict())
        except FeeEngineError as e:
            return _error(e)
        except Exception:
            logger.exception("Failed to update match info for %s", match_id)
            return _server_error()

    # ==================== Fees ==================== #

    @app.route("/api/matches/<match_id>/fees", methods=["GET"])
    def get_fees(match_id):
        """Get the fee breakdown from persisted values."""
        try:
            return _ok(app_state.fee_calculation_service.get_fee_breakdown(match_id).to_dict())
        except FeeEngineError as e:
            return _error(e)
        except Exception:
            logger.exception("Failed to load fees for match %s", match_id)
            return _server_error()

    @app.route("/api/matches/<match_id>/fees/recalculate", methods=["POST"])
    def recalculate_fees(match_id):
        """Recalculate all fees of a match, keeping overrides."""
        try:
            return _ok(app_state.fee_calculation_service.recalculate_all_fees(match_id).to_dict())
        except FeeEngineError as e:
            return _error(e)
        except Exception:
            logger.exception("Failed to recalculate fees for match %s", match_id)
            return _server_error()

    @app.route("/api/matches/<match_id>/fees", methods=["PUT"])
    def apply_bulk_overrides(match_id):
        """Apply several overrides; per-player failures are reported, not raised."""
        try:
            items, parse_errors = _parse_bulk_overrides(_json_body())
            result = app_state.fee_override_service.apply_bulk_overrides(match_id, items)
            result.errors.extend(parse_errors)
            return jsonify({"success": result.success, "data": result.to_dict()})
        except FeeEngineError as e:
            return _error(e)
        except Exception:
            logger.exception("Failed to apply overrides for match %s", match_id)
            return _server_error()

    @app.route("/api/matches/<match_id>/players/<player_id>/fees", methods=["POST"])
    def calculate_player_fees(match_id, player_id):
        """Preview one player's fees for a grid, merged with any stored override."""
        try:
            grid = _parse(PlayerAttendance.from_dict, _json_body(), "attendance grid")
            errors = app_state.attendance_service.validator.check_grid(player_id, grid)
            if errors:
                raise ValidationError("Invalid attendance data", details=errors)
            result = app_state.fee_calculation_service.calculate_player_fees(match_id, player_id, grid)
            return _ok(result.to_dict())
        except FeeEngineError as e:
            return _error(e)
        except Exception:
            logger.exception("Failed to calculate fees for player %s in match %s", player_id, match_id)
            return _server_error()

    # ==================== Overrides ==================== #

    @app.route("/api/matches/<match_id>/overrides", methods=["GET"])
    def get_override_history(match_id):
        """Get the overrides of a match, newest first."""
        try:
            history = app_state.fee_override_service.get_override_history(match_id)
            return _ok([entry.to_dict() for entry in history])
        except FeeEngineError as e:
            return _error(e)
        except Exception:
            logger.exception("Failed to load overrides for match %s", match_id)
            return _server_error()

    @app.route("/api/matches/<match_id>/overrides/statistics", methods=["GET"])
    def get_override_statistics(match_id):
        try:
            return _ok(app_state.fee_override_service.get_override_statistics(match_id).to_dict())
        except FeeEngineError as e:
            return _error(e)
        except Exception:
            logger.exception("Failed to compute override statistics for match %s", match_id)
            return _server_error()

    @app.route("/api/matches/<match_id>/overrides/copy", methods=["POST"])
    def copy_overrides(match_id):
        """Copy overrides from another match onto this one."""
        try:
            data = _json_body()
            source_match_id = data.get("sourceMatchId")
            if not source_match_id:
                raise ValidationError("'sourceMatchId' is required")
            mapping = data.get("playerMapping") or {}
            if not isinstance(mapping, dict):
                raise ValidationError("'playerMapping' must be an object")

            result = app_state.fee_override_service.copy_overrides_from_match(
                str(source_match_id), match_id,
                {str(k): str(v) for k, v in mapping.items()}
            )
            return jsonify({"success": result.success, "data": result.to_dict()})
        except FeeEngineError as e:
            return _error(e)
        except Exception:
            logger.exception("Failed to copy overrides onto match %s", match_id)
            return _server_error()

    @app.route("/api/matches/<match_id>/overrides", methods=["DELETE"])
    def remove_bulk_overrides(match_id):
        try:
            player_ids = _parse_player_ids(_json_body())
            result = app_state.fee_override_service.remove_bulk_overrides(match_id, player_ids)
            return jsonify({"success": result.success, "data": result.to_dict()})
        except FeeEngineError as e:
            return _error(e)
        except Exception:
            logger.exception("Failed to remove overrides for match %s", match_id)
            return _server_error()

    @app.route("/api/matches/<match_id>/overrides/<player_id>", methods=["PUT"])
    def apply_override(match_id, player_id):
        """Create or replace one player's override."""
        try:
            override = _parse(FeeOverride.from_dict, _json_body(), "override")
            breakdown = app_state.fee_override_service.apply_override(match_id, player_id, override)
            return _ok(breakdown.to_dict())
        except FeeEngineError as e:
            return _error(e)
        except Exception:
            logger.exception("Failed to apply override for player %s in match %s", player_id, match_id)
            return _server_error()

    @app.route("/api/matches/<match_id>/overrides/<player_id>", methods=["DELETE"])
    def remove_override(match_id, player_id):
        try:
            breakdown = app_state.fee_override_service.remove_override(match_id, player_id)
            return _ok(breakdown.to_dict())
        except FeeEngineError as e:
            return _error(e)
        except Exception:
            logger.exception("Failed to remove override for player %s in match %s", player_id, match_id)
            return _server_error()

    @app.route("/api/players/<player_id>/overrides", methods=["GET"])
    def get_player_override_history(player_id):
        try:
            history = app_state.fee_override_service.get_player_override_history(player_id)
            return _ok([entry.to_dict() for entry in history])
        except FeeEngineError as e:
            return _error(e)
        except Exception:
            logger.exception("Failed to load overrides for player %s", player_id)
            return _server_error()

    return app


def run_web_app(config: Optional[AppConfig] = None) -> None:
    """
    Run the web application.

    Args:
        config: Application configuration; read from the environment when omitted
    """
    config = config or AppConfig.from_env()
    setup_logging(config.log_level, config.log_file)
    app = create_app(config)
    logger.info("Starting %s on %s:%s", APP_TITLE, config.host, config.port)
    app.run(host=config.host, port=config.port, debug=False)


def main() -> None:
    run_web_app()


if __name__ == "__main__":
    main()
