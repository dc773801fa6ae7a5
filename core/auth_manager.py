"""
Authentication Manager for the moderation dashboard
Provides session management, JWT access tokens and login lockout.
"""

import hmac
import secrets
import time
import logging
from datetime import datetime, timedelta, timezone
from typing import Dict, Optional, Any
import jwt

logger = logging.getLogger(__name__)


class AuthManager:
    """Single-operator dashboard authentication with session management"""

    def __init__(self, username: str, password: str, jwt_secret: str, session_timeout: int = 3600):
        self.username = username
        self.password = password
        self.jwt_secret = jwt_secret
        self.session_timeout = session_timeout
        self.sessions: Dict[str, Dict[str, Any]] = {}

        # Security settings
        self.max_login_attempts = 5
        self.lockout_duration = 900  # 15 minutes
        self.login_attempts: Dict[str, Dict[str, Any]] = {}

    def authenticate_user(self, username: str, password: str) -> Optional[Dict[str, Any]]:
        """Check credentials against the configured dashboard account"""
        if self._is_account_locked(username):
            logger.warning(f"Login attempt for locked account: {username}")
            return None

        user_ok = hmac.compare_digest(str(username or ''), self.username)
        password_ok = hmac.compare_digest(str(password or ''), self.password)

        if user_ok and password_ok:
            self._clear_failed_attempts(username)
            return {
                'username': username,
                'role': 'admin',
                'permissions': ['read', 'write']
            }

        self._record_failed_attempt(username)
        return None

    def create_session(self, user_data: Dict[str, Any]) -> str:
        """Create a new authenticated session"""
        session_id = secrets.token_hex(32)

        now = time.time()
        self.sessions[session_id] = {
            'user': user_data,
            'created_at': now,
            'expires_at': now + self.session_timeout,
        }

        logger.info(f"Session created for user: {user_data['username']}")
        return session_id

    def validate_session(self, session_id: str) -> Optional[Dict[str, Any]]:
        """Validate session and return user data if valid"""
        if session_id not in self.sessions:
            return None

        session = self.sessions[session_id]
        now = time.time()

        if now > session['expires_at']:
            self.destroy_session(session_id)
            return None

        # Extend session if it's close to expiry
        if session['expires_at'] - now < 300:
            session['expires_at'] = now + self.session_timeout
            logger.debug(f"Session extended for user: {session['user']['username']}")

        return session['user']

    def destroy_session(self, session_id: str):
        """Destroy a session"""
        if self.sessions.pop(session_id, None) is not None:
            logger.info("Session destroyed")

    def cleanup_expired_sessions(self) -> int:
        """Clean up expired sessions"""
        now = time.time()
        expired_sessions = [sid for sid, session in self.sessions.items() if now > session['expires_at']]
        for session_id in expired_sessions:
            del self.sessions[session_id]

        if expired_sessions:
            logger.info(f"Cleaned up {len(expired_sessions)} sessions")
        return len(expired_sessions)

    def create_jwt_token(self, user_data: Dict[str, Any]) -> str:
        """Create JWT access token"""
        payload = {
            'username': user_data.get('username'),
            'role': user_data.get('role'),
            'permissions': user_data.get('permissions', []),
            'iat': datetime.now(timezone.utc),
            'exp': datetime.now(timezone.utc) + timedelta(hours=1)
        }

        return jwt.encode(payload, self.jwt_secret, algorithm='HS256')

    def validate_jwt_token(self, token: str) -> Optional[Dict[str, Any]]:
        """Validate JWT token"""
        try:
            return jwt.decode(token, self.jwt_secret, algorithms=['HS256'])
        except jwt.ExpiredSignatureError:
            return None
        except jwt.InvalidTokenError:
            return None

    def _record_failed_attempt(self, username: str):
        """Record failed login attempt"""
        now = time.time()

        if username not in self.login_attempts:
            self.login_attempts[username] = {'count': 0, 'first_attempt': now, 'locked_until': 0}

        attempts = self.login_attempts[username]
        attempts['count'] += 1

        if attempts['count'] >= self.max_login_attempts:
            attempts['locked_until'] = now + self.lockout_duration
            logger.warning(f"Account locked for user: {username}")

    def _clear_failed_attempts(self, username: str):
        """Clear failed login attempts for user"""
        self.login_attempts.pop(username, None)

    def _is_account_locked(self, username: str) -> bool:
        """Check if account is currently locked"""
        attempts = self.login_attempts.get(username)
        if not attempts:
            return False

        if attempts.get('locked_until', 0) == 0:
            return False

        if time.time() > attempts['locked_until']:
            self._clear_failed_attempts(username)
            return False

        return True

    def get_session_stats(self) -> Dict[str, Any]:
        """Get session statistics for monitoring"""
        now = time.time()
        active_sessions = len([s for s in self.sessions.values() if now <= s['expires_at']])

        return {
            'active_sessions': active_sessions,
            'expired_sessions': len(self.sessions) - active_sessions,
            'locked_accounts': len([u for u in self.login_attempts.values() if u.get('locked_until', 0) > now])
        }
