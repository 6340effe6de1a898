import os, sys, pytest
# Ensure project root is on path so 'sigap' and 'tests' can be imported from a checkout
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), '..'))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)
from sigap import create_app, get_db
from sigap.models.base import Base
import sigap.models.audit  # noqa: F401
from tests.test_utils_backend import BACKEND


@pytest.fixture(scope='session', autouse=True)
def app_instance():
    app = create_app({
        'DATABASE_URL': 'sqlite+pysqlite:///:memory:',
        'JWT_SECRET_KEY': 'test-secret-key-with-enough-length-for-hs256',
        'REPOSITORY_FACTORY': BACKEND.client,
        'TESTING': True,
    })
    # After app and blueprints are registered, ensure the audit table exists
    with app.app_context():
        engine = get_db().get_bind()
        Base.metadata.create_all(engine)
    yield app


@pytest.fixture()
def app_context(app_instance):
    with app_instance.app_context():
        yield app_instance


@pytest.fixture()
def client(app_instance):
    return app_instance.test_client()


@pytest.fixture(autouse=True)
def backend():
    BACKEND.reset()
    yield BACKEND
