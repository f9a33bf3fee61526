from flask import Flask

from markvault.api import api_bp
from markvault.auth import auth_bp
from markvault.config import Config
from markvault.extensions import db, login_manager, migrate, oauth
from markvault.jobs.scheduler import prune_feed, start_scheduler
from markvault.web import web_bp


def create_app(config_object=Config):
    app = Flask(__name__)
    app.config.from_object(config_object)

    db.init_app(app)
    migrate.init_app(app, db)
    login_manager.init_app(app)
    oauth.init_app(app)
    oauth.register(
        name="google",
        client_id=app.config["GOOGLE_CLIENT_ID"],
        client_secret=app.config["GOOGLE_CLIENT_SECRET"],
        server_metadata_url=app.config["GOOGLE_DISCOVERY_URL"],
        client_kwargs={"scope": "openid email profile"},
    )

    app.register_blueprint(auth_bp)
    app.register_blueprint(web_bp)
    app.register_blueprint(api_bp)

    @app.cli.command("init-db")
    def init_db_command():
        db.create_all()
        print("Initialized MarkVault database.")

    @app.cli.command("prune-feed")
    def prune_feed_command():
        events, subscriptions = prune_feed(app)
        print(f"Pruned {events} change events and {subscriptions} subscriptions.")

    @app.context_processor
    def inject_globals():
        return {"app_name": "MarkVault"}

    with app.app_context():
        db.create_all()

    start_scheduler(app)
    return app
