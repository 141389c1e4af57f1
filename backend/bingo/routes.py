from flask import Blueprint, current_app, jsonify, request
from flask_login import current_user, login_required, login_user, logout_user
import hmac

from bingo.models import AdminUser

main = Blueprint('main', __name__)


@main.route('/')
def index():
    return jsonify({'message': 'Bingo game server', 'status': 'ok'})


@main.route('/api/admin/login', methods=['POST'])
def admin_login():
    data = request.get_json(silent=True) or {}
    key = current_app.config.get('ADMIN_KEY')
    supplied = data.get('key')
    if key and supplied is not None and hmac.compare_digest(str(supplied), str(key)):
        login_user(AdminUser(), remember=True)
        return jsonify({'success': True, 'user': AdminUser().to_dict()})
    return jsonify({'success': False, 'error': 'Invalid admin key'}), 401


@main.route('/api/admin/check_login', methods=['GET'])
@login_required
def admin_check_login():
    return jsonify({'success': True, 'user': current_user.to_dict()})


@main.route('/api/admin/logout', methods=['POST'])
@login_required
def admin_logout():
    logout_user()
    return jsonify({'success': True})
