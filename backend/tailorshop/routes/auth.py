# backend/tailorshop/routes/auth.py
"""
Authentication API routes.

Accounts are created with `flask users create`; there is no registration
endpoint.
"""

from flask import Blueprint, request, jsonify, g

from ..services import auth_service, session_service, permission_service, notification_service
from ..decorators import require_auth


auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


@auth_bp.post("/login")
def login_route():
    """
    Request body: {"username": "...", "password": "..."}

    Returns the user, the role's permissions and a bearer token.
    """
    data = request.get_json(silent=True) or {}
    username = data.get("username")
    password = data.get("password")

    if not all([username, password]):
        return jsonify({"error": "username and password required"}), 400

    user = auth_service.authenticate(username, password)
    if not user:
        permission_service.log_security_event(
            user_id=None,
            event_type="LOGIN_FAILED",
            success=False,
            resource=request.path,
            action="LOGIN",
            reason=f"Invalid credentials for '{username}'",
            ip_address=request.remote_addr,
        )
        return jsonify({"error": "Invalid credentials"}), 401

    session, token = session_service.create_session(
        user_id=user.id,
        user_agent=request.headers.get("User-Agent"),
        ip_address=request.remote_addr,
    )

    return jsonify({
        "user": user.to_dict(),
        "permissions": sorted(permission_service.get_role_permissions(user.role)),
        "token": token,
        "session": session.to_dict(),
    }), 200


@auth_bp.post("/logout")
@require_auth
def logout_route():
    session_service.revoke_session(g.session_token)
    return jsonify({"message": "Logged out"}), 200


@auth_bp.get("/me")
@require_auth
def me_route():
    user = g.current_user
    return jsonify({
        "user": user.to_dict(),
        "permissions": sorted(permission_service.get_role_permissions(user.role)),
        "unread_notifications": notification_service.unread_count(user.id),
    }), 200
