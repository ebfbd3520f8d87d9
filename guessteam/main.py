from flask import Blueprint, jsonify
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from guessteam import db

main = Blueprint('main', __name__)

@main.route('/')
def index():
    return jsonify({'message': 'Welcome to the guess-the-team game server!'})

@main.route('/health')
def health():
    try:
        db.session.execute(text('SELECT 1'))
    except SQLAlchemyError:
        return jsonify({'status': 'degraded', 'database': False}), 503
    return jsonify({'status': 'ok', 'database': True})
