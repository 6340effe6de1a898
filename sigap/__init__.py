from flask import Flask, current_app
from werkzeug.exceptions import HTTPException
from flask_jwt_extended import JWTManager
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool
from sqlalchemy.orm import sessionmaker, scoped_session
from dotenv import load_dotenv
from datetime import timedelta
from typing import Optional, Dict, Any
import logging
import os

load_dotenv()

db_engine = None
SessionLocal = None
jwt = JWTManager()


def create_app(config: Optional[Dict[str, Any]] = None):
    global db_engine, SessionLocal
    app = Flask(__name__)

    app.config['JWT_SECRET_KEY'] = os.getenv('JWT_SECRET_KEY', 'dev-secret')
    app.config['JWT_ACCESS_TOKEN_EXPIRES'] = timedelta(minutes=int(os.getenv('JWT_ACCESS_TOKEN_EXPIRES_MIN', '480')))
    app.config['DATABASE_URL'] = os.getenv('DATABASE_URL', 'sqlite:///sigap.db')
    app.config['SIGAP_API_BASE_URL'] = os.getenv('SIGAP_API_BASE_URL', 'http://127.0.0.1:8000/api')
    app.config['SIGAP_API_TIMEOUT'] = float(os.getenv('SIGAP_API_TIMEOUT', '15'))
    app.config['LOG_LEVEL'] = os.getenv('LOG_LEVEL', 'INFO')
    app.config['REPOSITORY_FACTORY'] = None

    if config:
        # allow tests or callers to override default config values
        app.config.update(config)

    logging.getLogger('sigap').setLevel(app.config['LOG_LEVEL'])
    app.logger.setLevel(app.config['LOG_LEVEL'])

    # Audit store
    db_url = app.config['DATABASE_URL']
    if db_url.endswith(':memory:'):
        # Ensure a single shared in-memory SQLite database across all sessions
        db_engine = create_engine(
            db_url,
            echo=False,
            future=True,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    else:
        db_engine = create_engine(db_url, echo=False, future=True)
    SessionLocal = scoped_session(sessionmaker(bind=db_engine, expire_on_commit=False, autoflush=False))

    jwt.init_app(app)

    from .routes.session import session_bp
    from .routes.tickets import tickets_bp
    from .routes.work_orders import wo_bp
    from .routes.audit import audit_bp
    app.register_blueprint(session_bp, url_prefix='/session')
    app.register_blueprint(tickets_bp, url_prefix='/tickets')
    app.register_blueprint(wo_bp, url_prefix='/work-orders')
    app.register_blueprint(audit_bp, url_prefix='/audit')

    @app.route('/healthz')
    def health():
        return {'status': 'ok'}

    @app.teardown_appcontext
    def remove_session(exc=None):
        SessionLocal.remove()

    from .services.repository import UpstreamRejected, UpstreamUnavailable
    from .workflow.results import MalformedRecord

    # Unified error handler producing standardized JSON shape
    @app.errorhandler(Exception)
    def handle_errors(e):  # type: ignore
        if isinstance(e, HTTPException):
            payload = {
                'error': {
                    'status': e.code,
                    'title': e.name,
                    'detail': e.description,
                }
            }
            extra = getattr(e, 'extra', None)
            if extra:
                payload['error'].update(extra)
            return payload, e.code
        if isinstance(e, UpstreamRejected):
            code = e.status_code if 400 <= e.status_code < 500 else 502
            payload = {
                'error': {
                    'status': code,
                    'title': 'Rejected By Backend',
                    'detail': e.message,
                }
            }
            refetched = getattr(e, 'refetched', None)
            if refetched is not None:
                # fresh snapshot so the client redraws its controls from server state
                payload['refetched'] = refetched
            return payload, code
        if isinstance(e, UpstreamUnavailable):
            app.logger.warning('Backend unavailable: %s', e)
            return {
                'error': {
                    'status': 503,
                    'title': 'Backend Unavailable',
                    'detail': str(e),
                }
            }, 503
        if isinstance(e, MalformedRecord):
            app.logger.error('Malformed backend record: %s', e)
            return {
                'error': {
                    'status': 502,
                    'title': 'Malformed Backend Record',
                    'detail': str(e),
                }
            }, 502
        # Unhandled exception
        app.logger.exception('Unhandled exception')
        return {
            'error': {
                'status': 500,
                'title': 'Internal Server Error',
                'detail': 'Unexpected error'
            }
        }, 500

    return app


def get_db():
    return SessionLocal()


def get_repository(token: Optional[str] = None):
    """Backend client for the current request, authenticated with the caller's upstream token."""
    factory = current_app.config.get('REPOSITORY_FACTORY')
    if factory is not None:
        return factory(token)
    from .services.repository import TicketRepositoryClient
    return TicketRepositoryClient(
        current_app.config['SIGAP_API_BASE_URL'],
        token=token,
        timeout=current_app.config['SIGAP_API_TIMEOUT'],
    )
