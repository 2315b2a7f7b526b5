import pytest
from datetime import date, timedelta
from decimal import Decimal

from config import Config
from tasador import create_app
from tasador.database import create_schema, drop_schema
from tasador.models import (
    Plan, Tenant, TenantPlanOverride, Profile, Advisor, SubscriptionCycle, CycleStatus, Role
)


@pytest.fixture(scope='session')
def app(tmp_path_factory):
    """Create application instance for testing (SQLite file database)."""
    db_path = tmp_path_factory.mktemp('db') / 'tasador_test.db'

    class TestConfig(Config):
        TESTING = True
        ENV = 'testing'
        WTF_CSRF_ENABLED = False
        SQLALCHEMY_DATABASE_URI = f'sqlite:///{db_path}'
        SQLALCHEMY_ECHO = False
        MP_ACCESS_TOKEN = None
        MP_WEBHOOK_SECRET = None
        SITE_URL = 'http://testserver'
        IVA_RATE = Decimal('0.21')
        BILLING_CURRENCY = 'ARS'
        GRACE_PERIOD_DAYS = 2
        TRIAL_DAYS = 15
        DEFAULT_CYCLE_DAYS = 30

    return create_app(TestConfig)


@pytest.fixture(autouse=True)
def _schema(app):
    """Fresh schema for every test."""
    create_schema(app)
    yield
    app.extensions['db_session'].remove()
    drop_schema(app)


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def session(app):
    """Database session for testing (same scoped session the requests use)."""
    with app.app_context():
        db_session = app.extensions['db_session']
        yield db_session
        db_session.rollback()


def make_cycle(session, tenant_id, plan_id, start, end, status=CycleStatus.ACTIVE.value, **kwargs):
    """Insert a subscription cycle and return its id."""
    cycle = SubscriptionCycle(
        tenant_id=tenant_id,
        plan_id=plan_id,
        cycle_start=start,
        cycle_end=end,
        status=status,
        **kwargs
    )
    session.add(cycle)
    session.commit()
    return cycle.id


def login(client, user_id):
    """Seed the session cookie with the given user."""
    with client.session_transaction() as sess:
        sess['user_id'] = user_id


@pytest.fixture(scope='function')
def plans(session):
    """Plan catalog: trial, basic (1000), pro (1500) and premium (3000). Returns ids by key."""
    catalog = {
        'trial': Plan(name='Prueba', net_price=Decimal('0'), max_advisors=1, duration_days=15, is_trial=True),
        'basic': Plan(name='Básico', net_price=Decimal('1000.00'), max_advisors=2, duration_days=30),
        'pro': Plan(name='Pro', net_price=Decimal('1500.00'), max_advisors=5, duration_days=30),
        'premium': Plan(name='Premium', net_price=Decimal('3000.00'), max_advisors=20, duration_days=30),
    }
    session.add_all(catalog.values())
    session.commit()
    return {key: plan.id for key, plan in catalog.items()}


@pytest.fixture(scope='function')
def tenant_id(session):
    """Tenant owned by user 'owner-1'."""
    tenant = Tenant(owner_user_id='owner-1', trade_name='Inmobiliaria Uno', legal_name='Uno SRL')
    session.add(tenant)
    session.commit()
    return tenant.id


@pytest.fixture(scope='function')
def other_tenant_id(session):
    tenant = Tenant(owner_user_id='owner-2', trade_name='Inmobiliaria Dos')
    session.add(tenant)
    session.commit()
    return tenant.id


@pytest.fixture(scope='function')
def users(session, tenant_id):
    """Profiles for every role. Returns user ids by role name."""
    profiles = [
        Profile(user_id='owner-1', email='duenio@uno.com', role=Role.EMPRESA.value, tenant_id=tenant_id),
        Profile(user_id='asesor-1', email='asesor@uno.com', role=Role.ASESOR.value),
        Profile(user_id='soporte-1', email='soporte@tasador.com', role=Role.SOPORTE.value),
        Profile(user_id='admin-1', email='admin@tasador.com', role=Role.SUPER_ADMIN.value),
        Profile(user_id='root-1', email='root@tasador.com', role=Role.SUPER_ADMIN_ROOT.value),
    ]
    session.add_all(profiles)
    session.add(Advisor(tenant_id=tenant_id, email='asesor@uno.com', full_name='Asesor Uno'))
    session.commit()
    return {
        'empresa': 'owner-1',
        'asesor': 'asesor-1',
        'soporte': 'soporte-1',
        'super_admin': 'admin-1',
        'super_admin_root': 'root-1',
    }


@pytest.fixture(scope='function')
def january_cycle(session, tenant_id, plans):
    """Tenant on the basic plan, cycle 2024-01-01..2024-01-31."""
    return make_cycle(session, tenant_id, plans['basic'], date(2024, 1, 1), date(2024, 1, 31))


@pytest.fixture(scope='function')
def current_cycle(session, tenant_id, plans):
    """Tenant on the basic plan, 30-day cycle containing today."""
    start = date.today() - timedelta(days=10)
    return make_cycle(session, tenant_id, plans['basic'], start, start + timedelta(days=29))


@pytest.fixture(scope='function')
def override_pro_1200(session, tenant_id, plans):
    """Negotiated price: the tenant pays 1200 for the pro plan."""
    session.add(TenantPlanOverride(tenant_id=tenant_id, plan_id=plans['pro'], net_price_override=Decimal('1200.00')))
    session.commit()


@pytest.fixture(scope='function')
def empresa_client(client, users):
    """Client authenticated as the tenant owner."""
    login(client, users['empresa'])
    return client


@pytest.fixture(scope='function')
def admin_client(client, users):
    """Client authenticated as super_admin."""
    login(client, users['super_admin'])
    return client


@pytest.fixture(scope='function')
def cycle_factory(session):
    """Insert cycles: cycle_factory(tenant_id, plan_id, start, end, status=..., **columns) -> id."""
    def factory(tenant_id, plan_id, start, end, **kwargs):
        return make_cycle(session, tenant_id, plan_id, start, end, **kwargs)
    return factory


@pytest.fixture(scope='function')
def login_as(client):
    """Authenticate the test client as a user id."""
    def _login(user_id):
        login(client, user_id)
        return client
    return _login
