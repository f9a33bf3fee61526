import httpx
import pytest

from markvault import create_app
from markvault.client.gateway import ClientConfig, GatewayClient
from markvault.config import TestConfig
from markvault.extensions import db
from markvault.models import User
from markvault.services.security import issue_api_token


@pytest.fixture
def app(tmp_path):
    app = create_app(TestConfig)
    app.config["UPLOAD_FOLDER"] = str(tmp_path / "uploads")
    with app.app_context():
        db.drop_all()
        db.create_all()
    yield app


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def make_user(app):
    def _make_user(email: str):
        with app.app_context():
            user = User(email=email, name=email.split("@")[0])
            db.session.add(user)
            db.session.commit()
            token = issue_api_token(user.id, "pytest")
            return user.id, token

    return _make_user


@pytest.fixture
def make_gateway(app):
    gateways = []

    def _make_gateway(token: str) -> GatewayClient:
        gateway = GatewayClient(
            ClientConfig(base_url="http://testserver", token=token),
            transport=httpx.WSGITransport(app=app),
        )
        gateways.append(gateway)
        return gateway

    yield _make_gateway
    for gateway in gateways:
        gateway.close()
