from flask import Blueprint, request, jsonify, current_app
from flask_login import login_required, current_user
from sqlalchemy.exc import IntegrityError
from .models import db, User
from .tokens import issue_token

main = Blueprint('main', __name__)

@main.route('/')
def index():
    return jsonify({'message': 'Welcome to the rock/paper/scissors arena!'})

@main.route('/api/auth/register', methods=['POST', 'OPTIONS'])
def register():
    if request.method == 'OPTIONS':
        return jsonify({'status': 'ok'}), 200
    data = request.get_json(silent=True) or {}
    username = (data.get('username') or '').strip()
    password = data.get('password')
    if not username or not password:
        return jsonify({'error': 'Missing username or password'}), 400

    if User.query.filter_by(username=username).first():
        return jsonify({'error': 'Username already exists'}), 400

    user = User(username=username)
    user.set_password(password)
    db.session.add(user)
    try:
        db.session.commit()
    except IntegrityError:
        # Lost a race against a concurrent registration of the same name
        db.session.rollback()
        return jsonify({'error': 'Username already exists'}), 400

    current_app.logger.info(f"[register] user={user.id} username={user.username}")
    return jsonify({'message': 'User created successfully', 'userId': user.id}), 201

@main.route('/api/auth/login', methods=['POST', 'OPTIONS'])
def login():
    if request.method == 'OPTIONS':
        return jsonify({'status': 'ok'}), 200
    data = request.get_json(silent=True) or {}
    user = User.query.filter_by(username=data.get('username')).first()
    if user and data.get('password') and user.check_password(data.get('password')):
        return jsonify({'message': 'Logged in successfully.', 'token': issue_token(user)})
    return jsonify({'error': 'Invalid username or password'}), 401

@main.route('/api/auth/me')
@login_required
def me():
    return jsonify(current_user.to_dict())
