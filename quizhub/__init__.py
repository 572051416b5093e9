from flask import Flask, jsonify, request
from flask_sqlalchemy import SQLAlchemy
from flask_login import LoginManager
from dotenv import load_dotenv
from flask_migrate import Migrate
from flask_compress import Compress
import logging

# Load environment variables early so config is available for blueprint creation
load_dotenv()

from quizhub.config import config

db = SQLAlchemy()
migrate = Migrate()
login_manager = LoginManager()
compress = Compress()


def create_app(test_config: dict | None = None) -> Flask:
    """
    Application factory for the Flask app.
    Loads environment variables, configures the database,
    and registers blueprints.

    Args:
        test_config: Optional mapping applied on top of the environment
            configuration (used by the test suite).
    """
    # Re-initialize config to ensure latest .env values are loaded
    from quizhub.config import Config
    global config
    config = Config()

    # Validate configuration
    config.validate()

    app = Flask(__name__)

    # Load configuration from config module
    app.config["SECRET_KEY"] = config.SECRET_KEY
    app.config["SQLALCHEMY_DATABASE_URI"] = config.SQLALCHEMY_DATABASE_URI
    app.config["SQLALCHEMY_TRACK_MODIFICATIONS"] = config.SQLALCHEMY_TRACK_MODIFICATIONS
    app.config["SQLALCHEMY_ECHO"] = config.SQLALCHEMY_ECHO
    app.config["ATTEMPT_GRACE_SECONDS"] = config.ATTEMPT_GRACE_SECONDS
    app.config["DB_RETRY_ATTEMPTS"] = config.DB_RETRY_ATTEMPTS
    app.config["DB_RETRY_BACKOFF_SECONDS"] = config.DB_RETRY_BACKOFF_SECONDS
    app.config["RATELIMIT_ENABLED"] = True

    if app.config["SQLALCHEMY_DATABASE_URI"].startswith("mysql"):
        # Database connection pooling for performance
        app.config["SQLALCHEMY_ENGINE_OPTIONS"] = {
            "pool_size": 10,
            "pool_recycle": 3600,
            "pool_pre_ping": True,
            "max_overflow": 20,
            "connect_args": {
                "connect_timeout": 5,
                "read_timeout": 10,
                "write_timeout": 10,
                "charset": "utf8mb4",
                "autocommit": False,
            }
        }

    # Response compression settings
    app.config["COMPRESS_MIMETYPES"] = ['application/json', 'text/csv']
    app.config["COMPRESS_LEVEL"] = 6
    app.config["COMPRESS_MIN_SIZE"] = 500
    app.config["SESSION_COOKIE_SECURE"] = config.SESSION_COOKIE_SECURE
    app.config["SESSION_COOKIE_HTTPONLY"] = config.SESSION_COOKIE_HTTPONLY
    app.config["SESSION_COOKIE_SAMESITE"] = config.SESSION_COOKIE_SAMESITE

    if test_config:
        app.config.update(test_config)

    app.logger.setLevel(getattr(logging, config.LOG_LEVEL, logging.INFO))

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)
    login_manager.init_app(app)
    compress.init_app(app)

    @login_manager.user_loader
    def load_user(user_id):
        from quizhub.auth.models import User
        try:
            user = db.session.get(User, int(user_id))
        except (ValueError, TypeError):
            return None
        # Deactivated accounts lose existing sessions too
        if user is None or not user.is_active:
            return None
        return user

    @login_manager.unauthorized_handler
    def unauthorized():
        """API clients get JSON instead of a redirect to a login page."""
        return jsonify({'success': False, 'error': 'Authentication required', 'code': 'unauthenticated'}), 401

    # Register blueprints
    from quizhub.auth import auth_bp
    app.register_blueprint(auth_bp)

    from quizhub.quiz.routes import quiz_bp
    app.register_blueprint(quiz_bp)

    from quizhub.analytics.routes import analytics_bp
    app.register_blueprint(analytics_bp)

    from quizhub.common.errors import register_error_handlers
    register_error_handlers(app)

    @app.errorhandler(404)
    def handle_404(e):
        """Handle 404 errors for unknown routes."""
        app.logger.warning(f"404 error: {request.method} {request.path}")
        return jsonify({
            'success': False,
            'error': f'Route not found: {request.method} {request.path}',
            'code': 'not_found'
        }), 404

    @app.errorhandler(405)
    def handle_405(e):
        """Handle 405 Method Not Allowed."""
        app.logger.warning(f"405 error: {request.method} {request.path}")
        return jsonify({
            'success': False,
            'error': f'Method not allowed: {request.method} {request.path}',
            'code': 'method_not_allowed'
        }), 405

    @app.route("/health")
    def health():
        return jsonify({'status': 'ok'}), 200

    # Create tables if they do not exist
    with app.app_context():
        from quizhub.auth import models as auth_models  # noqa: F401
        from quizhub.quiz import models as quiz_models  # noqa: F401
        from quizhub.analytics import models as analytics_models  # noqa: F401
        db.create_all()

    app.logger.info("QuizHub application initialized")
    return app
