"""
Test configuration and fixtures for the Club Events application.
"""
import pytest
import os
from app import create_app, db
from tests.fixtures.factories import FIXED_NOW, MemberFactory

# Set environment variables for testing
os.environ['SECRET_KEY'] = 'test-secret-key-for-testing-only'


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app('testing')

    # Create application context and set up database
    with app.app_context():
        # Ensure all models are registered with SQLAlchemy
        from app import models

        # Create all database tables
        db.create_all()

        import sqlalchemy as sa
        inspector = sa.inspect(db.engine)
        tables = inspector.get_table_names()
        if 'events' not in tables or 'blog_posts' not in tables:
            raise RuntimeError(f"Database setup failed. Tables created: {tables}")

        yield app

        # Clean up after all tests in session
        db.drop_all()


@pytest.fixture
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture
def db_session(app):
    """Create database session for testing."""
    with app.app_context():
        yield db.session

        # Clear the data for the next test, tables are session-scoped
        try:
            for table in reversed(db.metadata.sorted_tables):
                db.session.execute(table.delete())
            db.session.commit()
        except Exception:
            db.session.rollback()
        finally:
            db.session.remove()


@pytest.fixture
def now():
    """Fixed 'now' for feed queries."""
    return FIXED_NOW


@pytest.fixture
def test_member(db_session):
    """Create a basic test member."""
    member = MemberFactory.create(
        firstname='Test',
        lastname='User',
        password='testpassword123'
    )
    return member


@pytest.fixture
def other_member(db_session):
    """Create a second member."""
    member = MemberFactory.create(
        firstname='Other',
        lastname='Member',
        password='otherpassword123'
    )
    return member


@pytest.fixture
def authenticated_client(client, test_member):
    """Create an authenticated client session."""
    with client.session_transaction() as sess:
        sess['_user_id'] = str(test_member.id)
        sess['_fresh'] = True
    yield client
    with client.session_transaction() as sess:
        sess.clear()
