"""
Authentication blueprint for back-office admins.
Session based: a successful login stores admin_user_id in the Flask session.
"""

from datetime import datetime, timezone
import logging

from flask import Blueprint, request, session, g, jsonify
from flask_wtf.csrf import generate_csrf

from jewelbox.database import get_session
from jewelbox.decorators.admin_security import admin_required
from jewelbox.exceptions import ValidationError, UnauthorizedError
from jewelbox.models import Admin

logger = logging.getLogger(__name__)

auth_bp = Blueprint('auth', __name__, url_prefix='/api/auth')


def _admin_payload(admin: Admin) -> dict:
    return {
        'id': admin.id,
        'name': admin.name,
        'email': admin.email,
        'last_login': admin.last_login.isoformat() if admin.last_login else None,
    }


@auth_bp.route('/login', methods=['POST'])
def login():
    """Log an admin in with email and password."""
    data = request.get_json(silent=True) or {}
    email = str(data.get('email') or '').strip().lower()
    password = str(data.get('password') or '')

    if not email or not password:
        raise ValidationError('Email and password are required')

    db_session = get_session()
    admin = db_session.query(Admin).filter(Admin.email == email).first()

    if not admin or not admin.check_password(password):
        logger.warning(f"[AUTH] Failed login for {email}")
        raise UnauthorizedError('Invalid email or password')

    admin.last_login = datetime.now(timezone.utc)
    db_session.commit()

    session.clear()
    session['admin_user_id'] = admin.id
    session.permanent = True

    logger.info(f"[AUTH] Admin {admin.id} logged in")
    return jsonify({'status': 'success', 'admin': _admin_payload(admin)})


@auth_bp.route('/csrf-token')
def csrf_token():
    """Token for the X-CSRFToken header of mutating requests."""
    return jsonify({'status': 'success', 'csrf_token': generate_csrf()})


@auth_bp.route('/logout', methods=['POST'])
def logout():
    session.pop('admin_user_id', None)
    return jsonify({'status': 'success'})


@auth_bp.route('/me')
@admin_required
def me():
    return jsonify({'status': 'success', 'admin': _admin_payload(g.admin_user)})
