"""
Fleetwatch - Flask Application Factory
"""
import logging
import click
from flask import Flask, current_app, jsonify
from flask_sqlalchemy import SQLAlchemy
from config import config

db = SQLAlchemy()
logger = logging.getLogger(__name__)

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def create_app(config_name='default', notifier=None):
    """Application factory pattern"""
    app = Flask(__name__)
    app.config.from_object(config[config_name]())

    logging.basicConfig(level=app.config['LOG_LEVEL'], format=LOG_FORMAT)
    logging.getLogger('fleetwatch').setLevel(app.config['LOG_LEVEL'])

    # Initialize extensions
    db.init_app(app)

    from fleetwatch.services import build_orchestrator
    from fleetwatch.store import FleetStore
    app.extensions['fleetwatch'] = build_orchestrator(FleetStore(db.session), app.config, notifier=notifier)

    # Error handlers
    @app.errorhandler(404)
    def not_found_error(error):
        """Handle 404 errors."""
        return jsonify({'error': 'Not found'}), 404

    @app.errorhandler(500)
    def internal_error(error):
        """Handle 500 errors."""
        logger.error(f"Internal server error: {error}")
        db.session.rollback()  # Rollback any failed transactions
        return jsonify({'error': 'Internal server error'}), 500

    @app.errorhandler(413)
    def request_entity_too_large(error):
        """Handle file too large errors."""
        return jsonify({'error': 'Log upload too large'}), 413

    # Register blueprints
    from fleetwatch.routes import api_bp
    app.register_blueprint(api_bp, url_prefix='/api')

    # Create database tables
    with app.app_context():
        db.create_all()

    _register_commands(app)

    return app


def get_orchestrator():
    """Orchestrator bound to the current app"""
    return current_app.extensions['fleetwatch']


def _register_commands(app):
    @app.cli.command('init-db')
    def init_db_command():
        """Create any missing database tables."""
        db.create_all()
        click.echo('Database tables created')

    @app.cli.command('check-silence')
    def check_silence_command():
        """Run the device silence detector over all active tenants."""
        anomalies = get_orchestrator().run_silence_check()
        click.echo(f'{len(anomalies)} silent device(s) flagged')

    @app.cli.command('check-volume')
    def check_volume_command():
        """Run the upload volume detector over all active tenants."""
        anomalies = get_orchestrator().run_volume_check()
        click.echo(f'{len(anomalies)} volume anomaly(ies) flagged')

    @app.cli.command('compute-health')
    @click.option('--tenant', 'tenant_id', default=None, help='Only score devices of this tenant')
    def compute_health_command(tenant_id):
        """Recompute health scores, worst devices first."""
        results = get_orchestrator().run_health_compute(tenant_id=tenant_id)
        for result in results:
            click.echo(f'{result.score:>3}  {result.trend:<9}  {result.device_id}')
        click.echo(f'Scored {len(results)} device(s)')
