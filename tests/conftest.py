import os, sys, pytest
# Ensure project root is on path so 'service_report' can be imported
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), '..'))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)
from service_report import create_app, get_db
from service_report.models.base import Base
# Import model modules to ensure tables are registered before create_all
import service_report.models.report  # noqa: F401

@pytest.fixture(scope='session')
def upload_root(tmp_path_factory):
    return str(tmp_path_factory.mktemp('uploads'))

@pytest.fixture(scope='session', autouse=True)
def app_instance(upload_root):
    app = create_app({
        'DATABASE_URL': 'sqlite+pysqlite:///:memory:',
        'UPLOAD_DIR': upload_root,
        'JWT_SECRET_KEY': 'test-secret-key-with-enough-length-for-hs256',
        'TESTING': True,
    })
    # After app and blueprints are registered, ensure all tables exist
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

@pytest.fixture()
def session(app_instance):
    return get_db()
