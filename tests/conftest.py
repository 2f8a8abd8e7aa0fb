import pytest
from fastapi.testclient import TestClient

from finsight_billing.auth import Identity, current_user
from finsight_billing.config import Settings
from finsight_billing.database import Base, build_engine, build_session_factory
from finsight_billing.gateway import GatewayClient
from finsight_billing.main import create_app
from finsight_billing.models import Payment, Subscription, User
from finsight_billing.store import PaymentStore

USER_ID = "user-1"
OTHER_USER_ID = "user-2"
JWT_SECRET = "test-secret"


@pytest.fixture
def session_factory(tmp_path):
    engine = build_engine(f"sqlite:///{tmp_path / 'test_billing.db'}")
    Base.metadata.create_all(bind=engine)
    yield build_session_factory(engine)
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def store(session_factory):
    return PaymentStore(session_factory)


@pytest.fixture
def gateway(mocker):
    return mocker.Mock(spec=GatewayClient)


@pytest.fixture
def settings():
    return Settings(
        database_url="sqlite://",
        jwt_secret=JWT_SECRET,
        licence_key="licence",
        site="finsight",
        app_base_url="https://app.example.com",
    )


@pytest.fixture
def app(settings, store, gateway):
    return create_app(settings=settings, store=store, gateway=gateway)


@pytest.fixture
def client(app):
    # Bypass auth verification for tests
    app.dependency_overrides[current_user] = lambda: Identity(user_id=USER_ID, email="user@example.com")
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def anonymous_client(app):
    with TestClient(app) as c:
        yield c


@pytest.fixture
def seed(session_factory):
    """Insert rows and return them detached."""

    def _seed(*rows):
        with session_factory.begin() as db:
            db.add_all(rows)
        return rows

    return _seed


@pytest.fixture
def fetch(session_factory):
    def _fetch(model, pk):
        with session_factory() as db:
            return db.get(model, pk)

    return _fetch


@pytest.fixture
def user_row(seed):
    seed(
        User(id=USER_ID, email="user@example.com", tier="professional", subscription_status="active"),
        User(id=OTHER_USER_ID, email="other@example.com", tier="business", subscription_status="active"),
    )


def make_subscription(**overrides):
    fields = dict(
        id="SUB1",
        user_id=USER_ID,
        tier_id="professional",
        amount=99,
        currency="USD",
        frequency="monthly",
        status="active",
        ezee_transaction_number="TX1",
    )
    fields.update(overrides)
    return Subscription(**fields)


def make_payment(**overrides):
    fields = dict(
        id="PAY1",
        user_id=USER_ID,
        subscription_id="SUB1",
        order_id="ORD1",
        amount=99,
        currency="USD",
        status="pending",
    )
    fields.update(overrides)
    return Payment(**fields)
