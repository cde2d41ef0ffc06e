from flask import Flask
from flask_sqlalchemy import SQLAlchemy
from flask_bcrypt import Bcrypt
from flask_login import LoginManager
from flask_cors import CORS
from flask_migrate import Migrate
from flask_socketio import SocketIO
import click
from config import Config

db = SQLAlchemy()
bcrypt = Bcrypt()
login_manager = LoginManager()
migrate = Migrate()
socketio = SocketIO(cors_allowed_origins='*', async_mode=None)

def create_app(config_class=Config):
    flask_app = Flask(__name__)
    flask_app.config.from_object(config_class)

    db.init_app(flask_app)
    bcrypt.init_app(flask_app)
    login_manager.init_app(flask_app)
    migrate.init_app(flask_app, db)
    # One policy for every endpoint: open origin, fixed headers and methods
    CORS(
        flask_app,
        origins='*',
        send_wildcard=True,
        allow_headers=flask_app.config.get('CORS_ALLOW_HEADERS', ['content-type']),
        methods=['GET', 'POST', 'OPTIONS'],
    )

    socketio.init_app(flask_app, cors_allowed_origins='*')

    from matchup.errors import register_error_handlers
    register_error_handlers(flask_app)

    from matchup.main import main
    flask_app.register_blueprint(main)

    from matchup.api.timer import timer
    flask_app.register_blueprint(timer, url_prefix='/api')

    from matchup.api.tournament import tournament
    flask_app.register_blueprint(tournament, url_prefix='/api')

    from matchup.socketio_events import register_socketio_handlers
    register_socketio_handlers(testing=flask_app.config.get('TESTING', False))

    from matchup.models import User

    @login_manager.user_loader
    def load_user(user_id):
        return db.session.get(User, int(user_id))

    @login_manager.unauthorized_handler
    def unauthorized():
        from matchup.errors import error_response
        return error_response('Login required', 401)

    @click.command('db-reset')
    def db_reset_command():
        """Drops, recreates, and seeds the database."""
        with flask_app.app_context():
            db.drop_all()
            db.create_all()

            users = ['testuser1', 'testuser2', 'testuser3']
            for u in users:
                user = User(username=u)
                user.set_password('password')
                db.session.add(user)

            db.session.commit()
            print('Database has been reset and seeded!')

    @click.command('timer-tick')
    def timer_tick_command():
        """Runs one catch-up pass of the bracket timer."""
        from matchup.services.tournament.scheduler import catch_up
        with flask_app.app_context():
            fired = catch_up()
            print(f'Checkpoints fired: {fired or "none"}')

    flask_app.cli.add_command(db_reset_command)
    flask_app.cli.add_command(timer_tick_command)

    return flask_app
