"""
Admin security decorators.
Every mutating API endpoint requires a logged-in back-office admin.
"""

from functools import wraps
from flask import session, g

from jewelbox.exceptions import UnauthorizedError


def admin_required(f):
    """
    Decorator: Require admin user to be logged in.

    Checks session['admin_user_id'] and loads the admin into g.admin_user.
    Fails fast with UnauthorizedError (401 JSON) before the view runs.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        admin_user_id = session.get('admin_user_id')

        if not admin_user_id:
            raise UnauthorizedError('Admin login required')

        from jewelbox.database import get_session
        from jewelbox.models import Admin

        admin_user = get_session().query(Admin).filter_by(id=admin_user_id).first()

        if not admin_user:
            # Admin user no longer exists in database
            session.pop('admin_user_id', None)
            raise UnauthorizedError('Invalid admin session')

        g.admin_user = admin_user

        return f(*args, **kwargs)

    return decorated_function


def load_admin_user():
    """
    Load admin user into g if admin is logged in.

    Registered as a before_request hook so read-only views can show who is
    logged in without requiring it.
    """
    g.admin_user = None

    admin_user_id = session.get('admin_user_id')
    if admin_user_id:
        from jewelbox.database import get_session
        from jewelbox.models import Admin

        admin_user = get_session().query(Admin).filter_by(id=admin_user_id).first()
        if admin_user:
            g.admin_user = admin_user
