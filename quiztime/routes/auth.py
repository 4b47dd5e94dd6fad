from flask import Blueprint, request, jsonify
from flask_jwt_extended import (create_access_token, get_jwt_identity,
                                jwt_required, get_jwt)
from sqlalchemy.exc import SQLAlchemyError
from datetime import datetime
from quiztime.errors import StorageUnavailableError
from quiztime.models import db, User
import logging

logger = logging.getLogger(__name__)

bp = Blueprint('auth', __name__)


def issue_token(user):
    return create_access_token(identity=user.get_id(),
                               additional_claims={
                                   "username": user.username,
                                   "email": user.email
                               })


@bp.route('/signup', methods=['POST'])
def register():
    data = request.get_json(silent=True) or {}
    username = data.get('username')
    password = data.get('password')
    email = data.get('email')

    if not username or not password or not email:
        return jsonify(
            {"msg": "Username, email and password are required"}), 400

    try:
        existing = User.query.filter_by(username=username).first()
        if existing and existing.password_hash:
            return jsonify({"msg": "Username already exists"}), 409
        if User.query.filter_by(email=email).first():
            return jsonify({"msg": "Email already exists"}), 409

        if existing:
            # Claim a record created by the question endpoints before signup
            user = existing
            user.email = email
            user.set_password(password)
        else:
            user = User(username=username, email=email, password=password)
            db.session.add(user)
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        logger.error(f"Error in registration: {str(e)}")
        raise StorageUnavailableError("Error creating user")

    logger.info(f"Created new user: {username}")
    return jsonify({"msg": "User created successfully"}), 201


@bp.route('/login', methods=['POST'])
def login():
    data = request.get_json(silent=True) or {}
    identifier = data.get('username')  # Can be username or email
    password = data.get('password')

    if not identifier or not password:
        return jsonify({"msg": "Username and password are required"}), 400

    user = User.query.filter((User.username == identifier)
                             | (User.email == identifier)).first()

    if not user or not user.check_password(password):
        return jsonify({"msg": "Invalid credentials"}), 401

    user.last_activity = datetime.utcnow()
    db.session.commit()

    logger.info(f"Successful login for user: {user.username}")
    return jsonify({
        "access_token": issue_token(user),
        "username": user.username,
        "user_id": user.user_id
    }), 200


@bp.route('/verify_token', methods=['GET'])
@jwt_required()
def verify_token():
    """Endpoint to verify if a token is valid"""
    current_user = get_jwt_identity()
    claims = get_jwt()
    return jsonify({
        "valid": True,
        "user_id": current_user,
        "username": claims.get("username")
    }), 200
