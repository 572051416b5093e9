"""
Analytics API routes.

Students read their own analytics. Quiz owners and collaborators read
per-quiz analytics and any user's record on their quizzes. Admins read
everything.
"""
from flask import Blueprint, Response, jsonify, request
from flask_login import login_required, current_user

from quizhub.config import config
from quizhub.analytics import service
from quizhub.security.access_policy import Actor

analytics_bp = Blueprint("analytics", __name__, url_prefix=config.ANALYTICS_API_PREFIX)


def _actor() -> Actor:
    return Actor.from_user(current_user)


@analytics_bp.route('/user', methods=['GET'])
@login_required
def user_analytics():
    """Current user's records across quizzes, most recent first."""
    records = service.user_overview(_actor(), request.args.get('user_id', type=int))
    return jsonify({
        'success': True,
        'analytics': [record.to_dict() for record in records],
    }), 200


@analytics_bp.route('/users/<int:user_id>/quizzes/<int:quiz_id>', methods=['GET'])
@login_required
def user_quiz_analytics(user_id, quiz_id):
    record = service.get_analytics(_actor(), user_id, quiz_id)
    return jsonify({'success': True, 'analytics': record}), 200


@analytics_bp.route('/user/categories', methods=['GET'])
@login_required
def category_performance():
    rows = service.category_performance(_actor(), request.args.get('user_id', type=int))
    return jsonify({
        'success': True,
        'categories': {row.category: row.to_dict() for row in rows},
    }), 200


@analytics_bp.route('/user/export', methods=['GET'])
@login_required
def export_analytics():
    """
    Download records as a file.

    Query params: format=csv|json, start_date, end_date (ISO 8601), user_id (staff only)
    """
    body, mimetype, filename = service.export_analytics(
        _actor(),
        request.args.get('format', ''),
        start=request.args.get('start_date'),
        end=request.args.get('end_date'),
        user_id=request.args.get('user_id', type=int),
    )
    return Response(body, mimetype=mimetype,
                    headers={'Content-Disposition': f'attachment; filename={filename}'})


@analytics_bp.route('/quiz/<int:quiz_id>', methods=['GET'])
@login_required
def quiz_analytics(quiz_id):
    data = service.quiz_analytics(_actor(), quiz_id)
    return jsonify(dict(data, success=True)), 200


@analytics_bp.route('/quiz/<int:quiz_id>/questions', methods=['GET'])
@login_required
def question_difficulty(quiz_id):
    stats = service.question_difficulty(_actor(), quiz_id)
    return jsonify({'success': True, 'questions': stats}), 200
