from flask import Blueprint, current_app, request, jsonify
from flask_login import login_user, logout_user, login_required, current_user
from livequiz.models import User
from livequiz.services.sessions.identity import issue_host_token

main = Blueprint('main', __name__)


@main.route('/')
def index():
    return jsonify({'message': 'Live quiz session server'})


@main.route('/login', methods=['POST'])
def login():
    """Log a host in and hand back the token used on the quiz socket."""
    data = request.get_json(silent=True) or {}
    user = User.query.filter_by(username=data.get('username')).first()
    if user and user.check_password(data.get('password') or ''):
        login_user(user, remember=True)
        return jsonify({
            'success': True,
            'user': user.to_dict(),
            'accessToken': issue_host_token(user),
        })
    current_app.logger.info(f"[login-failed] username={data.get('username')}")
    return jsonify({'success': False, 'message': 'Invalid username or password'}), 401


@main.route('/logout', methods=['POST'])
@login_required
def logout():
    logout_user()
    return jsonify({'success': True})


@main.route('/api/sessions/active')
@login_required
def active_sessions():
    """Summaries of live sessions hosted by the current user."""
    manager = current_app.extensions['livequiz']
    return jsonify(manager.active_sessions(host_id=str(current_user.id)))
