from functools import wraps

from flask import g, session

from models import User, StaffUser
from services import AuthenticationError, PermissionDeniedError

STAFF = ("receptionist", "maintenance", "manager")
FRONT_DESK = ("receptionist", "manager")


def login_user(user):
    session.clear()
    session["user_id"] = user.id


def logout_user():
    session.clear()


def can_sign_in(user):
    if not user.enabled:
        return False
    if isinstance(user, StaffUser) and user.staff_status == "inactive":
        return False
    return True


def current_user():
    """The logged-in user for this request, loaded once and cached on g."""
    if "current_user" in g:
        return g.current_user
    user = None
    user_id = session.get("user_id")
    if user_id is not None:
        user = g.db.get(User, user_id)
        # accounts switched off after login lose access on their next request
        if user is not None and not can_sign_in(user):
            user = None
    g.current_user = user
    return user


def roles_required(*roles):
    """
    Gate a view on the caller's role. With no roles any logged-in user passes.
    """
    def decorator(view):
        @wraps(view)
        def wrapped(*args, **kwargs):
            user = current_user()
            if user is None:
                raise AuthenticationError("Login required")
            if roles and user.role not in roles:
                raise PermissionDeniedError(f"Role '{user.role}' may not perform this action")
            return view(*args, **kwargs)
        return wrapped
    return decorator


login_required = roles_required()


def ensure_own_booking(user, booking):
    # guests only ever see their own stays
    if user.role == "guest" and booking.guest_id != user.id:
        raise PermissionDeniedError("Guests may only access their own bookings")
