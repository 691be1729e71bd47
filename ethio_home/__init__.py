from flask import Flask
from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate
from flask_jwt_extended import JWTManager
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_talisman import Talisman
import logging
import os
from dotenv import load_dotenv
from werkzeug.middleware.proxy_fix import ProxyFix

load_dotenv()

db = SQLAlchemy()
migrate = Migrate()
jwt = JWTManager()
limiter = Limiter(key_func=get_remote_address)


def configure_logging(app):
    level = getattr(logging, str(app.config.get('LOG_LEVEL', 'INFO')).upper(), logging.INFO)
    logging.basicConfig(
        level=level,
        format='%(asctime)s %(levelname)s [%(name)s] %(message)s'
    )
    logging.getLogger('ethio_home').setLevel(level)
    app.logger.setLevel(level)


def create_app(config_name=None):
    from ethio_home.config import config_by_name

    app = Flask(__name__)

    # Trust reverse proxy headers
    app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1, x_host=1, x_prefix=1)

    config_name = config_name or os.getenv('FLASK_ENV', 'development')
    app.config.from_object(config_by_name.get(config_name, config_by_name['development']))

    configure_logging(app)

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)
    jwt.init_app(app)
    limiter.init_app(app)

    # CORS configuration
    CORS(app, supports_credentials=True, resources={
        r"/api/*": {
            "origins": app.config['CORS_ORIGIN'].split(','),
            "methods": ["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
            "allow_headers": ["Content-Type", "Authorization"]
        }
    })

    # Security headers (only in production)
    if config_name == 'production':
        Talisman(app, force_https=True, content_security_policy=None)

    from ethio_home.errors import register_error_handlers
    from ethio_home.utils.decorators import register_jwt_callbacks

    register_error_handlers(app, db)
    register_jwt_callbacks(jwt)

    # Register blueprints
    from ethio_home.api.auth import auth_bp
    from ethio_home.api.users import users_bp
    from ethio_home.api.properties import properties_bp
    from ethio_home.api.interest import interest_bp
    from ethio_home.api.reviews import reviews_bp
    from ethio_home.api.selling import selling_bp
    from ethio_home.api.subscription import subscription_bp

    app.register_blueprint(auth_bp, url_prefix='/api/v1/users')
    app.register_blueprint(users_bp, url_prefix='/api/v1/users')
    app.register_blueprint(properties_bp, url_prefix='/api/v1/properties')
    app.register_blueprint(interest_bp, url_prefix='/api/v1/interest')
    app.register_blueprint(reviews_bp, url_prefix='/api/v1/reviews')
    app.register_blueprint(selling_bp, url_prefix='/api/v1/selling')
    app.register_blueprint(subscription_bp, url_prefix='/api/v1/subscription')

    # Nested property routes
    app.register_blueprint(interest_bp, url_prefix='/api/v1/properties/<int:property_id>/interest',
                           name='property_interest')
    app.register_blueprint(reviews_bp, url_prefix='/api/v1/properties/<int:property_id>/reviews',
                           name='property_reviews')
    app.register_blueprint(selling_bp, url_prefix='/api/v1/properties/<int:property_id>/selling',
                           name='property_selling')

    from ethio_home.commands import register_commands
    register_commands(app)

    # Health check endpoint
    @app.route('/health')
    def health_check():
        return {'status': 'healthy', 'service': 'ethio-home-api'}, 200

    # Create tables
    with app.app_context():
        import ethio_home.models  # noqa: F401
        db.create_all()

    return app
