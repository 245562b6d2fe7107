"""
ABIS Barangay Records - Flask API Application
Main application entry point
"""
import sys
import json
import time
from pathlib import Path
from dotenv import load_dotenv

# Determine project root (2 levels up from this file)
API_DIR = Path(__file__).parent.resolve()
PROJECT_ROOT = API_DIR.parent.parent.resolve()

# Load environment variables from .env file at project root
env_path = PROJECT_ROOT / '.env'
if env_path.exists():
    load_dotenv(env_path)

# Add project root to path for absolute imports
sys.path.insert(0, str(PROJECT_ROOT))

from flask import Flask, jsonify, request, send_from_directory
from flask_cors import CORS
from flask_limiter.errors import RateLimitExceeded
from sqlalchemy import text
from werkzeug.exceptions import RequestEntityTooLarge

from abis.api.config import Config
from abis.api import db, migrate, limiter, __version__
from abis.api.utils.authorization import init_authorizer

SERVICE_NAME = 'ABIS Barangay Records API'

# Only these local upload categories may be served without a check
PUBLIC_UPLOAD_PREFIXES = ('blotter/', 'settings/')
PROTECTED_UPLOAD_PREFIXES = ('certificates/', 'payments/')

DEV_ORIGINS = (
    "http://localhost:3000",
    "http://localhost:5173",
    "http://127.0.0.1:3000",
    "http://127.0.0.1:5173",
)


def cors_origins(config) -> list:
    """WEB_URL plus CORS_ALLOWED_ORIGINS; local dev servers outside production."""
    is_production = config.get('FLASK_ENV') == 'production' and not config.get('DEBUG')
    origins = [(config.get('WEB_URL') or '').strip()]
    origins += [o.strip() for o in (config.get('CORS_ALLOWED_ORIGINS') or '').split(',')]
    if not is_production:
        origins += DEV_ORIGINS
    origins = list(dict.fromkeys(o for o in origins if o))
    if is_production and not origins:
        raise RuntimeError("CORS configuration error: set WEB_URL or CORS_ALLOWED_ORIGINS in production.")
    return origins


def strip_error_details(response):
    """Drop the ``details`` key from JSON error bodies."""
    if response.status_code < 400 or not response.is_json:
        return
    payload = response.get_json(silent=True)
    if isinstance(payload, dict) and 'details' in payload:
        payload.pop('details')
        response.set_data(json.dumps(payload))


def create_app(config_class=Config, authorizer=None):
    """Application factory pattern"""
    app = Flask(__name__)
    app.config.from_object(config_class)

    db_url = app.config.get('SQLALCHEMY_DATABASE_URI', '')
    if 'postgresql' in db_url:
        app.logger.info("Database: PostgreSQL")
    elif 'sqlite' in db_url:
        app.logger.info("Database: SQLite (local)")

    config_class.init_app(app)

    # Initialize extensions with app
    db.init_app(app)
    migrate.init_app(app, db, directory=str(API_DIR / 'migrations'))

    # Flask-Limiter honours RATELIMIT_ENABLED itself
    limiter.init_app(app)
    if app.config.get('RATELIMIT_ENABLED', True):
        app.logger.info("Rate limiting enabled")
    else:
        app.logger.warning("Rate limiting is DISABLED - not recommended for production")

    init_authorizer(app, authorizer)

    @app.before_request
    def reject_oversized_body():
        """Answer 413 before a handler parses the body."""
        limit = app.config.get('MAX_CONTENT_LENGTH')
        if limit and request.content_length and request.content_length > limit:
            return request_too_large(None)

    @app.after_request
    def add_security_headers(response):
        """Add security headers to all responses."""
        response.headers['X-Content-Type-Options'] = 'nosniff'
        response.headers['X-Frame-Options'] = 'DENY'
        response.headers['Referrer-Policy'] = 'strict-origin-when-cross-origin'
        response.headers['Permissions-Policy'] = 'geolocation=(), microphone=(), camera=()'

        if not app.config.get('DEBUG'):
            response.headers['Strict-Transport-Security'] = 'max-age=31536000; includeSubDomains'
            strip_error_details(response)
        return response

    CORS(app,
         origins=cors_origins(app.config),
         methods=["GET", "POST", "PUT", "DELETE", "OPTIONS", "PATCH"],
         allow_headers=[
             "Content-Type",
             "X-Requested-With",
             app.config.get('ADMIN_KEY_HEADER', 'X-Admin-Key'),
             app.config.get('PUBLIC_TOKEN_HEADER', 'X-Public-Token'),
         ],
         expose_headers=["Content-Type", "Content-Disposition"])

    # Register blueprints
    from abis.api.routes import (
        documents_bp,
        blotter_bp,
        certificates_bp,
        settings_bp,
        reports_bp,
    )

    app.register_blueprint(documents_bp)
    app.register_blueprint(blotter_bp)
    app.register_blueprint(certificates_bp)
    app.register_blueprint(settings_bp)
    app.register_blueprint(reports_bp)

    @app.route('/', methods=['GET'])
    def root():
        """API root endpoint"""
        return jsonify({
            'message': SERVICE_NAME,
            'version': __version__,
            'organization': app.config.get('BARANGAY_NAME'),
        }), 200

    @app.route('/health', methods=['GET'])
    def health_check():
        """Health check endpoint for monitoring"""
        return jsonify({
            'status': 'ok',
            'service': SERVICE_NAME,
            'version': __version__,
        }), 200

    @app.route('/health/db', methods=['GET'])
    def db_health_check():
        """Health check endpoint that tests database connectivity"""
        start = time.time()
        try:
            db.session.execute(text('SELECT 1')).fetchone()
            db.session.rollback()  # Don't leave transaction open
            elapsed = time.time() - start
            return jsonify({
                'status': 'healthy',
                'database': 'connected',
                'latency_ms': round(elapsed * 1000, 2),
                'service': SERVICE_NAME,
            }), 200
        except Exception as e:
            elapsed = time.time() - start
            app.logger.error("Database health check failed: %s", e)
            return jsonify({
                'status': 'unhealthy',
                'database': 'disconnected',
                'latency_ms': round(elapsed * 1000, 2),
                'error': str(e)[:200],
            }), 503

    @app.route('/uploads/<path:filename>')
    def serve_uploaded_file(filename):
        """Serve only non-sensitive uploaded files."""
        normalized = str(filename or '').replace('\\', '/').lstrip('/')
        if not normalized or '..' in normalized.split('/'):
            return jsonify({'error': 'Invalid file path'}), 400

        # Certificates and payment proofs go through their own download routes
        if any(normalized.startswith(prefix) for prefix in PROTECTED_UPLOAD_PREFIXES):
            return jsonify({'error': 'Forbidden'}), 403
        if not any(normalized.startswith(prefix) for prefix in PUBLIC_UPLOAD_PREFIXES):
            return jsonify({'error': 'Forbidden'}), 403

        return send_from_directory(str(app.config.get('UPLOAD_FOLDER', 'uploads')), normalized)

    # Error handlers
    @app.errorhandler(404)
    def not_found(error):
        return jsonify({'error': 'Resource not found'}), 404

    @app.errorhandler(405)
    def method_not_allowed(error):
        return jsonify({'error': 'Method not allowed'}), 405

    @app.errorhandler(RequestEntityTooLarge)
    def request_too_large(error):
        limit_mb = (app.config.get('MAX_CONTENT_LENGTH') or 0) / (1024 * 1024)
        return jsonify({'error': f'Request too large. Maximum upload size is {limit_mb:g}MB.'}), 413

    @app.errorhandler(500)
    def internal_error(error):
        db.session.rollback()
        return jsonify({'error': 'Internal server error'}), 500

    @app.errorhandler(403)
    def forbidden(error):
        return jsonify({'error': 'Forbidden'}), 403

    @app.errorhandler(RateLimitExceeded)
    def ratelimit_handler(error):
        payload = {'error': 'Rate limit exceeded'}
        desc = getattr(error, 'description', None)
        if desc:
            payload['details'] = str(desc)
        return jsonify(payload), 429

    return app


# Create app instance
app = create_app()

if __name__ == '__main__':
    app.run(
        host='0.0.0.0',
        port=app.config.get('PORT', 8000),
        debug=app.config['DEBUG']
    )
