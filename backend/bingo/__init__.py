from flask import Flask
from flask_cors import CORS
from flask_login import LoginManager
from flask_socketio import SocketIO
import atexit
import click
from config import Config

login_manager = LoginManager()
socketio = SocketIO(cors_allowed_origins=Config.CORS_ORIGINS, async_mode=None)


def create_app(config_class=Config):
    flask_app = Flask(__name__)
    flask_app.config.from_object(config_class)
    allowed_origins = flask_app.config.get('CORS_ORIGINS') or []

    login_manager.init_app(flask_app)
    CORS(flask_app, supports_credentials=True, origins=allowed_origins)

    # Initialize Socket.IO after app is created
    socketio.init_app(flask_app, cors_allowed_origins=allowed_origins)

    # Build the single game instance for this process
    from bingo.commands import CommandProcessor
    from bingo.services.directory import SessionDirectory, SocketIOBroadcaster
    from bingo.services.games.engine import GameSettings, GameStateMachine

    # Timers are off in tests unless explicitly enabled
    timers_enabled = (not flask_app.config.get('TESTING')) or flask_app.config.get('ENABLE_SCHEDULER_IN_TESTS', False)
    settings = GameSettings.from_mapping(flask_app.config)
    settings.auto_call_enabled = settings.auto_call_enabled and timers_enabled

    directory = SessionDirectory(
        SocketIOBroadcaster(socketio, namespace='/ws'),
        retention=int(flask_app.config.get('LOG_RETENTION', 1000)),
        admin_stale_sec=float(flask_app.config.get('ADMIN_STALE_SEC', 300)),
    )
    game = GameStateMachine(
        settings,
        directory,
        spawn=socketio.start_background_task,
        sleep=socketio.sleep,
    )
    flask_app.extensions['bingo'] = game
    flask_app.extensions['bingo_commands'] = CommandProcessor(game)

    # Import and register blueprints here
    from bingo.routes import main
    flask_app.register_blueprint(main)

    from bingo.api.stats import stats
    flask_app.register_blueprint(stats, url_prefix='/api')

    # Register Socket.IO event handlers
    from bingo.socketio_events import register_socketio_handlers
    register_socketio_handlers()

    # Flask-Login user loader: the admin key is the only login
    from bingo.models import AdminUser

    @login_manager.user_loader
    def load_user(user_id):
        return AdminUser() if user_id == AdminUser.id else None

    if timers_enabled:
        game.start_background_tasks()
        atexit.register(game.shutdown)

    @click.command('game-settings')
    def game_settings_command():
        """Print the effective game settings."""
        for name, value in vars(game.settings).items():
            print(f'{name} = {value!r}')

    flask_app.cli.add_command(game_settings_command)

    return flask_app
