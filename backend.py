"""
Admin API for the moderation bot
Settings read/write, raid status and manual override, audit logs and health.
"""

from flask import Flask, request, jsonify
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
import logging
import asyncio
import concurrent.futures
from datetime import datetime, timezone
from functools import wraps

from config import config as app_config
from core.auth_manager import AuthManager
from core.data_manager import create_settings_store
from core.moderation import ProtectionManager, SettingsValidationError
from core.shared_state import state

logger = logging.getLogger(__name__)

# Flask app
flask_config = app_config.get_flask_config()

app = Flask(__name__)
app.config['SECRET_KEY'] = flask_config['secret_key']

IS_PRODUCTION = app_config.is_production()
ALLOWED_ORIGINS = flask_config['cors_origins']

CORS(app,
     origins=ALLOWED_ORIGINS,
     supports_credentials=True,
     allow_headers=['Content-Type', 'Authorization', 'X-Requested-With'],
     methods=['GET', 'POST', 'PUT', 'OPTIONS'],
     max_age=3600
)

# Initialize rate limiter
limiter = Limiter(
    app=app,
    key_func=get_remote_address,
    default_limits=["200 per day", "50 per hour"],
    storage_uri="memory://"
)

auth_manager = AuthManager(
    app_config.dashboard_username,
    app_config.dashboard_password,
    app_config.jwt_secret_key
)

MAX_LOG_LIMIT = 200
BOT_CALL_TIMEOUT = 15


def require_auth(f):
    """Decorator to require a valid session cookie or Bearer token"""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        user = None

        session_token = request.cookies.get('session_token')
        if session_token:
            user = auth_manager.validate_session(session_token)

        if user is None:
            auth_header = request.headers.get('Authorization', '')
            if auth_header.startswith('Bearer '):
                user = auth_manager.validate_jwt_token(auth_header[7:])

        if not user:
            return jsonify({'success': False, 'error': 'Not authenticated'}), 401

        request.user = user
        return f(*args, **kwargs)

    return decorated_function


def safe_error_response(error, status_code=500, log_error=True):
    """
    Create a safe error response that doesn't leak sensitive information.
    Only returns user-friendly error messages.
    """
    if log_error and error:
        logger.error(f"API Error: {str(error)}", exc_info=True)

    user_messages = {
        400: 'Bad request - please check your input',
        401: 'Authentication required',
        403: 'Access denied',
        404: 'Resource not found',
        429: 'Too many requests - please try again later',
        500: 'Server error - please try again later',
        503: 'Service unavailable - please try again later'
    }

    message = user_messages.get(status_code, 'An error occurred')

    return jsonify({'error': message}), status_code


def _parse_guild_id(guild_id):
    guild_id = str(guild_id).strip()
    if not guild_id.isdigit():
        return None
    return int(guild_id)


def get_protection_manager() -> ProtectionManager:
    """Returns the bot's settings writer, or a standalone one when the bot is not running"""
    if state.protection_manager is None:
        store = create_settings_store(app_config)
        state.store = store
        state.protection_manager = ProtectionManager(store, defaults={'moderation': app_config.get_moderation_defaults()})
        logger.info("Standalone settings writer created for backend")
    return state.protection_manager


def run_on_bot_loop(coro, timeout=BOT_CALL_TIMEOUT):
    """Runs a coroutine on the bot's event loop and waits for its result"""
    if state.loop is None or state.loop.is_closed():
        coro.close()
        raise RuntimeError('Bot event loop is not running')
    future = asyncio.run_coroutine_threadsafe(coro, state.loop)
    return future.result(timeout=timeout)


def set_bot_instance(bot, loop=None):
    """Set global bot instance reference"""
    state.set_bot(bot, loop)
    logger.info("Bot instance linked to backend")


def run_backend():
    """Function for start.py to start Flask backend in separate thread"""
    try:
        logger.info(f"Starting Flask backend on {flask_config['host']}:{flask_config['port']}")
        app.run(host=flask_config['host'], port=flask_config['port'], debug=False, use_reloader=False, threaded=True)
    except Exception as e:
        logger.error(f"Failed to start Flask backend: {e}")
        raise


@app.errorhandler(429)
def ratelimit_handler(e):
    return safe_error_response(e, 429, log_error=False)


# ========== HEALTH ==========
@app.route('/api/health', methods=['GET'])
def health_check():
    report = {
        'timestamp': datetime.now(timezone.utc).isoformat(),
        'environment': 'production' if IS_PRODUCTION else 'development',
        'bot_status': 'online' if state.is_bot_ready() else 'offline',
        'sessions': auth_manager.get_session_stats(),
    }

    if state.health_checker is None:
        report['status'] = 'ok'
        return jsonify(report)

    try:
        report.update(state.health_checker.moderation_health_check())
    except Exception as e:
        logger.error(f"Health check failed: {e}", exc_info=True)
        report['status'] = 'unhealthy'
        return jsonify(report), 503

    return jsonify(report)


# ========== AUTHENTICATION ==========
@app.route('/api/auth/login', methods=['POST'])
@limiter.limit("5 per minute")  # Max 5 login attempts per minute per IP
def login():
    data = request.get_json(silent=True) or {}
    username = data.get('username')
    password = data.get('password')

    if not username or not password:
        return jsonify({'success': False, 'error': 'Missing credentials'}), 400

    auth_manager.cleanup_expired_sessions()

    user = auth_manager.authenticate_user(username, password)
    if not user:
        logger.warning(f"Failed login attempt for {username} from {get_remote_address()}")
        return jsonify({'success': False, 'error': 'Invalid credentials'}), 401

    session_token = auth_manager.create_session(user)
    response = jsonify({
        'success': True,
        'user': {'username': user['username'], 'role': user['role']},
        'token': auth_manager.create_jwt_token(user)
    })

    response.set_cookie(
        'session_token', session_token,
        httponly=True,
        secure=IS_PRODUCTION,
        samesite='None' if IS_PRODUCTION else 'Lax',
        max_age=auth_manager.session_timeout
    )
    return response


@app.route('/api/auth/logout', methods=['POST'])
def logout():
    session_token = request.cookies.get('session_token')
    if session_token:
        auth_manager.destroy_session(session_token)

    response = jsonify({'success': True})
    response.delete_cookie('session_token')
    return response


@app.route('/api/auth/me', methods=['GET'])
@require_auth
def get_current_user():
    return jsonify({
        'authenticated': True,
        'user': {'username': request.user.get('username'), 'role': request.user.get('role')}
    })


# ========== SETTINGS ==========
def _get_settings(kind, guild_id):
    parsed = _parse_guild_id(guild_id)
    if parsed is None:
        return jsonify({'error': 'Invalid guild id'}), 400

    try:
        return jsonify(get_protection_manager().load_settings(kind, parsed))
    except Exception as e:
        return safe_error_response(e)


def _update_settings(kind, guild_id):
    parsed = _parse_guild_id(guild_id)
    if parsed is None:
        return jsonify({'error': 'Invalid guild id'}), 400

    patch = request.get_json(silent=True)
    if not isinstance(patch, dict):
        return jsonify({'error': 'Request body must be a JSON object'}), 400

    try:
        success, document = get_protection_manager().save_settings(kind, parsed, patch)
    except SettingsValidationError as e:
        return jsonify({'error': str(e)}), 400
    except Exception as e:
        return safe_error_response(e)

    if not success:
        return safe_error_response(None, 503, log_error=False)

    logger.info(f"{kind} settings for guild {parsed} updated by {request.user.get('username')}")
    return jsonify({'success': True, 'settings': document})


@app.route('/api/<guild_id>/moderation', methods=['GET'])
@require_auth
def get_moderation_settings(guild_id):
    return _get_settings('moderation', guild_id)


@app.route('/api/<guild_id>/moderation', methods=['PUT'])
@require_auth
def update_moderation_settings(guild_id):
    return _update_settings('moderation', guild_id)


@app.route('/api/<guild_id>/raid', methods=['GET'])
@require_auth
def get_raid_settings(guild_id):
    return _get_settings('raid', guild_id)


@app.route('/api/<guild_id>/raid', methods=['PUT'])
@require_auth
def update_raid_settings(guild_id):
    return _update_settings('raid', guild_id)


# ========== RAID DEFENSE ==========
@app.route('/api/<guild_id>/raid/status', methods=['GET'])
@require_auth
def get_raid_status(guild_id):
    parsed = _parse_guild_id(guild_id)
    if parsed is None:
        return jsonify({'error': 'Invalid guild id'}), 400

    detector = state.raid_detector
    defense = detector.get_state(parsed) if detector is not None else None
    if defense is None:
        return jsonify({
            'active': False,
            'recentJoins': detector.join_count(parsed) if detector is not None else 0
        })

    return jsonify({'active': True, 'state': defense.to_dict()})


@app.route('/api/<guild_id>/raid/deactivate', methods=['POST'])
@require_auth
def deactivate_raid(guild_id):
    parsed = _parse_guild_id(guild_id)
    if parsed is None:
        return jsonify({'error': 'Invalid guild id'}), 400

    if state.raid_detector is None or state.loop is None:
        return safe_error_response(None, 503, log_error=False)

    reason = f"manual by {request.user.get('username')}"
    try:
        ended = run_on_bot_loop(state.raid_detector.deactivate(parsed, reason=reason))
    except (RuntimeError, concurrent.futures.TimeoutError) as e:
        logger.error(f"Raid deactivation for guild {parsed} failed: {e}")
        return safe_error_response(None, 503, log_error=False)
    except Exception as e:
        return safe_error_response(e)

    if not ended:
        return jsonify({'success': False, 'error': 'Raid defense is not active'}), 404
    return jsonify({'success': True})


# ========== AUDIT LOGS ==========
@app.route('/api/<guild_id>/moderation/logs', methods=['GET'])
@require_auth
def get_moderation_logs(guild_id):
    parsed = _parse_guild_id(guild_id)
    if parsed is None:
        return jsonify({'error': 'Invalid guild id'}), 400

    limit = request.args.get('limit', 50, type=int)
    limit = max(1, min(limit, MAX_LOG_LIMIT))
    action = request.args.get('action') or None

    if state.audit_logger is None:
        return jsonify({'logs': [], 'count': 0})

    logs = state.audit_logger.get_audit_logs(parsed, action=action, limit=limit)
    return jsonify({'logs': logs, 'count': len(logs)})
