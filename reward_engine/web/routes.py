import logging
from flask import jsonify, request, current_app
from reward_engine import __version__
from reward_engine.database.models import ActivitySnapshot
from reward_engine.database.mongo import apply_profile_patch, get_db
from reward_engine.utils.conversions import to_millis, utc_now
from reward_engine.utils.security import ClaimError, RateLimited
from reward_engine.utils.validators import CLAIM_SCHEMA, validate_json_input

logger = logging.getLogger(__name__)


def client_ip():
    forwarded = request.headers.get('X-Forwarded-For', '')
    if forwarded:
        return forwarded.split(',')[0].strip()
    return request.remote_addr or 'unknown'


def configure_routes(app, engine):
    @app.route('/api/health', methods=['GET'])
    def health_check():
        return jsonify({
            'status': 'ok',
            'timestamp': to_millis(utc_now())
        }), 200

    @app.route('/api/daily-task', methods=['GET'])
    def daily_task_status():
        return jsonify({
            'status': 'online',
            'engine': f'DailyTaskFlow v{__version__}',
            'timestamp': to_millis(utc_now())
        }), 200

    @app.route('/api/daily-task', methods=['POST'])
    @validate_json_input(CLAIM_SCHEMA)
    def claim_daily_tasks():
        """Evaluate today's eligible rewards for the reporting user"""
        data = request.validated_data
        data['ipAddress'] = client_ip()

        snapshot = ActivitySnapshot(data)
        decision = engine.claim(snapshot)

        if current_app.config.get('PERSIST_PROFILES'):
            database = get_db()
            if database is not None:
                apply_profile_patch(database, snapshot.user_id, decision.profile_patch)

        return jsonify(decision.to_dict()), 200

    # Error handlers
    @app.errorhandler(ClaimError)
    def claim_error(e):
        response = jsonify(e.to_dict())
        response.status_code = e.status_code
        if isinstance(e, RateLimited):
            response.headers['Retry-After'] = str(e.retry_after)
        return response

    @app.errorhandler(404)
    def page_not_found(e):
        return jsonify({'error': 'Not found'}), 404

    @app.errorhandler(405)
    def method_not_allowed(e):
        return jsonify({'error': 'Method not allowed'}), 405

    @app.errorhandler(500)
    def internal_error(e):
        logger.error(f"Unhandled error: {e}")
        return jsonify({'reward': 0, 'error': 'Calibration sync failed'}), 500
