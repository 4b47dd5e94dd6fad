from flask import Flask, jsonify
from flask_jwt_extended import JWTManager
from flask_cors import CORS
from config import Config
from quiztime.errors import QuizTimeError
from quiztime.models import db
from quiztime.services.locks import KeyedLock
from sqlalchemy.exc import SQLAlchemyError
from flask_migrate import Migrate
import logging
import random

jwt = JWTManager()
migrate = Migrate()


def configure_logging(app):
    handlers = [logging.StreamHandler()]
    if app.config.get('LOG_FILE'):
        handlers.append(logging.FileHandler(app.config['LOG_FILE'], mode='a'))

    logging.basicConfig(
        level=app.config.get('LOG_LEVEL', 'INFO'),
        format='%(asctime)s.%(msecs)03d [%(levelname)s] %(name)s (%(filename)s:%(lineno)d): %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S',
        handlers=handlers
    )

    logging.getLogger('quiztime').setLevel(app.config.get('LOG_LEVEL', 'INFO'))
    logging.getLogger('werkzeug').setLevel(logging.INFO)
    logging.getLogger('sqlalchemy.engine').setLevel(logging.WARNING)


def engine_options(database_url, timeout):
    """Pool settings that keep every database call bounded by ``timeout``."""
    options = {
        "pool_recycle": 300,
        "pool_pre_ping": True,
    }
    if database_url.startswith('sqlite'):
        options["connect_args"] = {"timeout": timeout}
    else:
        options["pool_timeout"] = timeout
        options["connect_args"] = {
            "connect_timeout": max(int(timeout), 1),
            "options": f"-c statement_timeout={int(timeout * 1000)}"
        }
    return options


def register_error_handlers(app):

    @app.errorhandler(QuizTimeError)
    def handle_quiztime_error(error):
        response = jsonify(error.to_dict())
        response.status_code = error.status_code
        if error.retryable:
            response.headers['Retry-After'] = '1'
        return response

    @app.errorhandler(SQLAlchemyError)
    def handle_database_error(error):
        db.session.rollback()
        logging.getLogger(__name__).error(f"Database error: {error}")
        response = jsonify({"error": "Storage unavailable, please retry", "retryable": True})
        response.status_code = 503
        response.headers['Retry-After'] = '1'
        return response


def create_app(config_class=Config):
    app = Flask(__name__)
    app.config.from_object(config_class)

    configure_logging(app)
    logger = logging.getLogger(__name__)
    logger.info("Starting application initialization")

    # Configure CORS
    if app.config['FLASK_ENV'] == 'development':
        CORS(app, resources={r"/*": {"origins": "*"}})
    else:
        CORS(app,
             resources={
                 r"/*": {
                     "origins": app.config['CORS_ORIGINS'].split(','),
                     "expose_headers": ["Content-Type", "Authorization"],
                     "allow_headers":
                     ["Content-Type", "Authorization", "Accept"],
                     "methods": ["GET", "POST", "OPTIONS"]
                 }
             })

    # JWT Configuration
    app.config['JWT_TOKEN_LOCATION'] = ['headers']
    app.config['JWT_HEADER_NAME'] = 'Authorization'
    app.config['JWT_HEADER_TYPE'] = 'Bearer'

    @jwt.expired_token_loader
    def expired_token_callback(jwt_header, jwt_payload):
        return jsonify({"error": "Token has expired"}), 401

    @jwt.invalid_token_loader
    def invalid_token_callback(error):
        return jsonify({"error": "Invalid token"}), 401

    @jwt.unauthorized_loader
    def missing_token_callback(error):
        return jsonify({"error": "Authorization token is missing"}), 401

    # Configure SQLAlchemy
    try:
        logger.info(
            f"Configuring database with URL: {app.config['DATABASE_URL']}")
        app.config['SQLALCHEMY_DATABASE_URI'] = app.config['DATABASE_URL']
        app.config['SQLALCHEMY_TRACK_MODIFICATIONS'] = False
        app.config['SQLALCHEMY_ENGINE_OPTIONS'] = engine_options(
            app.config['DATABASE_URL'], app.config['STORE_TIMEOUT'])

        # Initialize extensions
        jwt.init_app(app)
        db.init_app(app)
        migrate.init_app(app, db)
        logger.info("Successfully initialized Flask extensions")

        with app.app_context():
            db.create_all()
            logger.info("Database tables created successfully")

        app.extensions['quiztime_locks'] = KeyedLock(
            timeout=app.config['STORE_TIMEOUT'])
        seed = app.config.get('RANDOM_SEED')
        app.extensions['quiztime_rng'] = random.Random(
            int(seed) if seed is not None else None)

        # Register blueprints
        from quiztime.routes import auth, game, stats, main, profile
        from quiztime.routes.commands import register_commands
        app.register_blueprint(main.bp)  # Main routes
        app.register_blueprint(auth.bp)  # Auth routes (/login, /signup)
        app.register_blueprint(profile.bp)  # /profile, /api/score
        app.register_blueprint(game.bp, url_prefix='/api')
        app.register_blueprint(stats.bp, url_prefix='/api')
        register_commands(app)
        register_error_handlers(app)
        logger.info("Successfully registered all blueprints")

    except Exception as e:
        logger.error(f"Error during application initialization: {str(e)}")
        raise

    logger.info("Application initialization completed successfully")
    return app
