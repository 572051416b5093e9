from datetime import datetime

from flask import jsonify, request
from flask_login import login_user, logout_user, login_required, current_user
from sqlalchemy.exc import IntegrityError

from quizhub import db
from quizhub.config import config
from quizhub.auth import auth_bp
from quizhub.auth.models import User
from quizhub.auth.utils import (
    hash_password, is_valid_email, normalize_email, validate_password, validate_profile_update, validate_role,
    verify_password,
)
from quizhub.security.access_policy import Action, Actor, is_allowed
from quizhub.security.rate_limiter import rate_limit
from quizhub.security.security_logger import SecurityLogger


@auth_bp.route("/", methods=["GET"])
def auth_root():
    """Simple health/info endpoint for auth API."""
    base_path = config.AUTH_API_PREFIX
    return jsonify(
        {
            "status": "ok",
            "message": "Auth API is running",
            "endpoints": [
                f"{base_path}/register",
                f"{base_path}/login",
                f"{base_path}/logout",
                f"{base_path}/me",
                f"{base_path}/profile",
                f"{base_path}/users",
            ],
        }
    ), 200


@auth_bp.route("/register", methods=["POST"])
def register():
    data = request.get_json(silent=True) or {}
    email = normalize_email(data.get("email"))
    password = data.get("password") or ""
    full_name = (data.get("full_name") or "").strip()
    role = (data.get("role") or config.DEFAULT_USER_TYPE).strip().lower()

    if not email or not password or not full_name:
        return jsonify({"success": False, "error": "Email, password and full name are required",
                        "code": "validation_error"}), 400

    if not is_valid_email(email):
        return jsonify({"success": False, "error": "Please provide a valid email address",
                        "code": "validation_error"}), 400

    # Admins are provisioned out of band
    allowed_roles = [r for r in config.SELF_REGISTER_USER_TYPES if r in config.VALID_USER_TYPES]
    role_error = validate_role(role, allowed_roles)
    if role_error:
        return jsonify({"success": False, "error": role_error, "code": "validation_error"}), 400

    is_valid, error_message = validate_password(password)
    if not is_valid:
        return jsonify({"success": False, "error": error_message, "code": "validation_error"}), 400

    if User.query.filter_by(email=email).first():
        return jsonify({"success": False, "error": "Email is already registered", "code": "conflict"}), 409

    user = User(email=email, password_hash=hash_password(password), full_name=full_name, role=role)
    db.session.add(user)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        return jsonify({"success": False, "error": "Email is already registered", "code": "conflict"}), 409

    return jsonify({"success": True, "message": config.MSG_REGISTER_SUCCESS, "user": user.to_dict()}), 201


@auth_bp.route("/login", methods=["POST"])
@rate_limit('LOGIN_RATE_LIMIT', per='ip', error_message='Too many login attempts. Please try again later.')
def login():
    data = request.get_json(silent=True) or {}
    email = normalize_email(data.get("email"))
    password = data.get("password") or ""
    remember = data.get("remember", False)  # Default to False if not provided

    if not email or not password:
        return jsonify({"success": False, "error": "Email and password are required",
                        "code": "validation_error"}), 400

    if not is_valid_email(email):
        return jsonify({"success": False, "error": "Please provide a valid email address",
                        "code": "validation_error"}), 400

    user = User.query.filter_by(email=email).first()
    if not user or not verify_password(password, user.password_hash):
        SecurityLogger.log_failed_login(email, "Unknown email" if not user else "Wrong password")
        return jsonify({"success": False, "error": "Invalid email or password", "code": "invalid_credentials"}), 401

    if not user.is_active:
        SecurityLogger.log_failed_login(email, "Account deactivated")
        return jsonify({"success": False, "error": "This account has been deactivated",
                        "code": "account_inactive"}), 403

    user.last_login = datetime.utcnow()
    db.session.commit()
    login_user(user, remember=remember)
    SecurityLogger.log_successful_login(user.id, user.email)

    return jsonify({"success": True, "message": config.MSG_LOGIN_SUCCESS, "user": user.to_dict()}), 200


@auth_bp.route("/logout", methods=["POST"])
@login_required
def logout():
    logout_user()
    return jsonify({"success": True, "message": config.MSG_LOGOUT_SUCCESS}), 200


@auth_bp.route("/me", methods=["GET"])
@login_required
def me():
    return jsonify({"success": True, "user": current_user.to_dict()}), 200


def _forbidden(actor: Actor, action: Action, resource: str):
    SecurityLogger.log_access_denied(actor.id, actor.role, action.value, resource)
    return jsonify({"success": False, "error": "You do not have permission to perform this action",
                    "code": "forbidden"}), 403


@auth_bp.route("/profile", methods=["GET"])
@login_required
def get_profile():
    return jsonify({"success": True, "user": current_user.to_dict()}), 200


@auth_bp.route("/profile", methods=["PATCH"])
@login_required
def update_profile():
    """
    Update the current user's profile.

    Request body may contain full_name, email and password; any other
    field rejects the whole update.
    """
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return jsonify({"success": False, "error": "Request body must be a JSON object",
                        "code": "validation_error"}), 400

    actor = Actor.from_user(current_user)
    user = db.session.get(User, current_user.id)
    if not is_allowed(actor, Action.UPDATE, user):
        return _forbidden(actor, Action.UPDATE, f"user {user.id}")

    cleaned, error_message = validate_profile_update(data)
    if error_message:
        return jsonify({"success": False, "error": error_message, "code": "validation_error"}), 400

    email = cleaned.get("email")
    if email and email != user.email and User.query.filter_by(email=email).first():
        return jsonify({"success": False, "error": "Email is already registered", "code": "conflict"}), 409

    for field, value in cleaned.items():
        setattr(user, field, value)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        return jsonify({"success": False, "error": "Email is already registered", "code": "conflict"}), 409

    return jsonify({"success": True, "message": "Profile updated", "user": user.to_dict()}), 200


@auth_bp.route("/profile", methods=["DELETE"])
@login_required
def deactivate_account():
    """Deactivate the current user's account and end the session."""
    actor = Actor.from_user(current_user)
    user = db.session.get(User, current_user.id)
    if not is_allowed(actor, Action.DELETE, user):
        return _forbidden(actor, Action.DELETE, f"user {user.id}")

    user.is_active = False
    db.session.commit()
    logout_user()
    SecurityLogger.log_account_deactivated(user.id, user.email)
    return jsonify({"success": True, "message": "Account deactivated successfully"}), 200


@auth_bp.route("/users", methods=["GET"])
@login_required
def list_users():
    """
    List every account (admin only).

    Query params: role (student, teacher or admin)
    """
    actor = Actor.from_user(current_user)
    if not is_allowed(actor, Action.MANAGE_USERS, None):
        return _forbidden(actor, Action.MANAGE_USERS, "users")

    query = User.query
    role = request.args.get("role")
    if role:
        query = query.filter_by(role=role.strip().lower())
    users = query.order_by(User.created_at.desc(), User.id.desc()).all()
    return jsonify({"success": True, "users": [u.to_dict() for u in users], "count": len(users)}), 200


@auth_bp.route("/users/<int:user_id>/role", methods=["PATCH"])
@login_required
def update_user_role(user_id):
    """Change a user's role (admin only). Request body: {"role": "teacher"}"""
    actor = Actor.from_user(current_user)
    if not is_allowed(actor, Action.MANAGE_USERS, None):
        return _forbidden(actor, Action.MANAGE_USERS, f"user {user_id}")

    data = request.get_json(silent=True) or {}
    role = (data.get("role") or "").strip().lower() if isinstance(data.get("role"), str) else ""
    role_error = validate_role(role, config.VALID_USER_TYPES)
    if role_error:
        return jsonify({"success": False, "error": role_error, "code": "validation_error"}), 400

    user = db.session.get(User, user_id)
    if user is None:
        return jsonify({"success": False, "error": "User not found", "code": "not_found"}), 404

    # Demoting yourself could leave no admin to undo it
    if user.id == actor.id and role != user.role:
        return jsonify({"success": False, "error": "Admins cannot change their own role",
                        "code": "validation_error"}), 400

    previous_role = user.role
    user.role = role
    db.session.commit()
    SecurityLogger.log_role_change(actor.id, user.id, previous_role, role)
    return jsonify({"success": True, "message": "Role updated", "user": user.to_dict()}), 200
