import logging
import os

from flask import Flask, request, jsonify
from sqlalchemy.exc import SQLAlchemyError

from shared.pubsub import EventPublisher
from .catalog import Catalog
from .config import config
from .entity_store import EntityStore
from .errors import ArenaError, ValidationError
from .ledger import Ledger
from .models import db
from .registration import RegistrationWorkflow

logger = logging.getLogger(__name__)


def configure_logging(app: Flask):
    level = str(app.config.get('LOG_LEVEL', 'INFO')).upper()
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format='%(asctime)s %(levelname)s [%(name)s] %(message)s'
    )


def json_body() -> dict:
    """The request's JSON object; anything else is a validation error."""
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data


def require_int(data: dict, field: str) -> int:
    value = data.get(field)
    if not isinstance(value, int) or isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer")
    return value


def optional_int(data: dict, field: str):
    if data.get(field) is None:
        return None
    return require_int(data, field)


def create_app(config_name: str = None, overrides: dict = None) -> Flask:
    """Application factory for the arena API."""
    if config_name is None:
        config_name = os.getenv('FLASK_ENV', 'development')

    app = Flask(__name__)
    app.config.from_object(config[config_name])
    if overrides:
        app.config.update(overrides)

    configure_logging(app)

    # Initialize extensions
    db.init_app(app)

    # Initialize services
    publisher = EventPublisher.from_url(app.config.get('REDIS_URL'))
    store = EntityStore()
    ledger = Ledger(store, publisher)

    # Store services on app for access in routes
    app.publisher = publisher
    app.store = store
    app.ledger = ledger
    app.catalog = Catalog(store, publisher)
    app.registrations = RegistrationWorkflow(store, ledger, publisher)

    # Create tables
    with app.app_context():
        db.create_all()
        if app.config.get('SEED_ON_STARTUP'):
            from .seed import seed_reference_data
            seed_reference_data(app.catalog)

    register_error_handlers(app)
    register_api_routes(app)

    from .routes import wallet
    app.register_blueprint(wallet.bp)

    return app


def register_error_handlers(app: Flask):

    @app.errorhandler(ArenaError)
    def handle_arena_error(error: ArenaError):
        return jsonify(error.to_dict()), error.status_code


def register_api_routes(app: Flask):
    """Register API routes."""

    # ==================== Games ====================

    @app.route('/api/v1/games', methods=['GET'])
    def api_list_games():
        return jsonify([g.to_dict() for g in app.catalog.list_games()])

    @app.route('/api/v1/games/<int:game_id>', methods=['GET'])
    def api_get_game(game_id: int):
        return jsonify(app.catalog.get_game(game_id).to_dict())

    # ==================== Tournaments ====================

    @app.route('/api/v1/tournaments', methods=['GET'])
    def api_list_tournaments():
        """List tournaments, optionally by game or by status filter."""
        status = request.args.get('status', 'all')
        game_id = request.args.get('game_id', type=int)

        tournaments = app.catalog.list_tournaments(filter=status, game_id=game_id)
        return jsonify([t.to_dict() for t in tournaments])

    @app.route('/api/v1/tournaments', methods=['POST'])
    def api_create_tournament():
        data = json_body()
        tournament = app.catalog.create_tournament(
            title=data.get('title'),
            game_id=require_int(data, 'game_id'),
            start_time=data.get('start_time'),
            end_time=data.get('end_time'),
            prize_pool=data.get('prize_pool', 0),
            entry_fee=data.get('entry_fee', 0),
            max_players=data.get('max_players'),
            tournament_type=data.get('tournament_type', 'solo'),
            description=data.get('description'),
            status=data.get('status', 'upcoming'),
            featured=data.get('featured', False),
            image_url=data.get('image_url')
        )
        return jsonify(tournament.to_dict()), 201

    @app.route('/api/v1/tournaments/<int:tournament_id>', methods=['GET'])
    def api_get_tournament(tournament_id: int):
        return jsonify(app.catalog.get_tournament(tournament_id).to_dict())

    @app.route('/api/v1/tournaments/<int:tournament_id>/<any(start, complete):action>', methods=['POST'])
    def api_transition_tournament(tournament_id: int, action: str):
        tournament = app.catalog.transition_tournament(tournament_id, action)
        return jsonify(tournament.to_dict())

    # ==================== Registration ====================

    @app.route('/api/v1/tournaments/<int:tournament_id>/register', methods=['POST'])
    def api_register(tournament_id: int):
        """Register a user for a tournament, charging the entry fee."""
        data = json_body()
        user_id = require_int(data, 'user_id')

        registration = app.registrations.register(user_id, tournament_id)
        return jsonify(registration.to_dict()), 201

    @app.route('/api/v1/tournaments/<int:tournament_id>/registrations', methods=['GET'])
    def api_tournament_registrations(tournament_id: int):
        app.catalog.get_tournament(tournament_id)
        registrations = app.registrations.list_tournament_registrations(tournament_id)
        return jsonify([r.to_dict() for r in registrations])

    @app.route('/api/v1/registrations/<int:registration_id>/status', methods=['POST'])
    def api_update_registration_status(registration_id: int):
        data = json_body()
        status = data.get('status')
        if not status:
            raise ValidationError("status is required")

        registration = app.registrations.update_status(
            registration_id,
            status,
            placement=optional_int(data, 'placement')
        )
        return jsonify(registration.to_dict())

    @app.route('/api/v1/registrations/<int:registration_id>/earnings', methods=['POST'])
    def api_credit_earnings(registration_id: int):
        data = json_body()
        transaction = app.ledger.credit_earnings(
            registration_id,
            require_int(data, 'user_id'),
            data.get('amount'),
            placement=optional_int(data, 'placement')
        )
        return jsonify(transaction.to_dict()), 201

    # ==================== Health Check ====================

    @app.route('/health')
    def health_check():
        """Health check endpoint."""
        try:
            db.session.execute(db.text('SELECT 1'))
            db_ok = True
        except SQLAlchemyError as e:
            logger.error(f"Database health check failed: {e}")
            db_ok = False

        if not app.publisher.enabled:
            redis_state = 'disabled'
        else:
            redis_state = 'connected' if app.publisher.ping() else 'disconnected'

        healthy = db_ok and redis_state != 'disconnected'
        return jsonify({
            'status': 'healthy' if healthy else 'unhealthy',
            'database': 'connected' if db_ok else 'disconnected',
            'redis': redis_state
        }), 200 if healthy else 503
