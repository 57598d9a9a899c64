from flask import Flask
from flask_cors import CORS
from flask_socketio import SocketIO
import click
from config import Config

socketio = SocketIO(async_mode=None)

EXTENSION_KEY = 'bullscows'


def create_app(config_class=Config):
    flask_app = Flask(__name__)
    flask_app.config.from_object(config_class)

    origins = flask_app.config.get('CORS_ORIGINS') or '*'
    if origins == ['*']:
        origins = '*'
    CORS(flask_app, supports_credentials=True, origins=origins)

    # Initialize Socket.IO after app is created
    socketio.init_app(flask_app, cors_allowed_origins=origins)

    from bullscows.main import main
    flask_app.register_blueprint(main)

    # One coordinator per app; handlers find it through app.extensions
    from bullscows.socketio_events import build_coordinator, register_socketio_handlers
    flask_app.extensions[EXTENSION_KEY] = build_coordinator(flask_app, socketio)
    register_socketio_handlers(namespace=flask_app.config.get('SOCKETIO_NAMESPACE', '/'))

    @click.command('score')
    @click.argument('guess')
    @click.argument('secret')
    def score_command(guess, secret):
        """Scores GUESS against SECRET the way a match would."""
        from bullscows.services.match.scoring import evaluate, is_valid_code
        for label, value in (('guess', guess), ('secret', secret)):
            if not is_valid_code(value):
                raise click.BadParameter(f"{value!r} is not 4 distinct digits", param_hint=label)
        result = evaluate(guess, secret)
        click.echo(f"{result.bulls} bulls, {result.cows} cows")

    @click.command('lobby')
    def lobby_command():
        """Prints the lobby snapshot of this app instance."""
        snapshot = get_coordinator(flask_app).lobby_snapshot()
        if not snapshot:
            click.echo('Lobby is empty.')
        for entry in snapshot:
            status = f"vs {entry['opponent']}" if entry['inGame'] else 'idle'
            click.echo(f"{entry['name']}\t{status}")

    flask_app.cli.add_command(score_command)
    flask_app.cli.add_command(lobby_command)

    return flask_app


def get_coordinator(flask_app=None):
    if flask_app is None:
        from flask import current_app
        flask_app = current_app
    return flask_app.extensions[EXTENSION_KEY]
