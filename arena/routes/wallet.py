from flask import Blueprint, jsonify, current_app

from arena.app import json_body
from arena.errors import NotFoundError
from arena.models import User

bp = Blueprint('wallet', __name__, url_prefix='/api/v1')


def get_user_or_404(user_id: int) -> User:
    user = current_app.store.get(User, user_id)
    if user is None:
        raise NotFoundError("User not found")
    return user


# ==================== Users ====================

@bp.route('/users', methods=['POST'])
def create_user():
    """Sign up a new user with a zero balance."""
    data = json_body()
    user = current_app.store.create_user(
        username=data.get('username'),
        email=data.get('email'),
        password=data.get('password'),
        mobile_no=data.get('mobile_no')
    )
    return jsonify(user.to_dict()), 201


@bp.route('/auth/verify', methods=['POST'])
def verify_credentials():
    data = json_body()
    user = current_app.store.verify_credentials(data.get('username'), data.get('password'))
    if user is None:
        return jsonify({'error': 'Invalid username or password', 'code': 'unauthorized'}), 401
    return jsonify(user.to_dict())


@bp.route('/users/<int:user_id>', methods=['GET'])
def get_user(user_id: int):
    return jsonify(get_user_or_404(user_id).to_dict())


# ==================== Wallet ====================

@bp.route('/users/<int:user_id>/transactions', methods=['GET'])
def list_transactions(user_id: int):
    transactions = current_app.ledger.list_user_transactions(user_id)
    return jsonify([t.to_dict() for t in transactions])


@bp.route('/users/<int:user_id>/deposit', methods=['POST'])
def deposit(user_id: int):
    data = json_body()
    transaction = current_app.ledger.deposit(user_id, data.get('amount'), data.get('method'))
    return jsonify(transaction.to_dict()), 201


@bp.route('/users/<int:user_id>/withdraw', methods=['POST'])
def withdraw(user_id: int):
    data = json_body()
    transaction = current_app.ledger.withdraw(user_id, data.get('amount'), data.get('method'))
    return jsonify(transaction.to_dict()), 201


# ==================== Tournaments ====================

@bp.route('/users/<int:user_id>/tournaments', methods=['GET'])
def list_user_tournaments(user_id: int):
    """A user's registrations, each with its tournament."""
    pairs = current_app.registrations.list_user_registrations(user_id)
    return jsonify([
        dict(registration.to_dict(), tournament=tournament.to_dict())
        for registration, tournament in pairs
    ])
