import pytest

from backend.db import Base, init_db, make_engine, make_session_factory
from backend.stores import InMemoryStore
from eligibility_engine.loader import load_bundled_rules, to_eligibility_rule


GEORGIA_PROFILE = {
    "id": "ga-family",
    "householdIncome": 30000,
    "incomePeriod": "annual",
    "householdSize": 3,
    "dateOfBirth": "1990-06-15",
    "state": "Georgia",
    "county": "Fulton",
    "isCitizen": True,
    "isStudent": False,
    "isPregnant": False,
    "hasChildren": True,
}


@pytest.fixture
def session_factory():
    engine = make_engine("sqlite://")
    init_db(engine)
    yield make_session_factory(engine)
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def db_session(session_factory):
    with session_factory() as session:
        yield session


@pytest.fixture
def bundled_store():
    store = InMemoryStore()
    programs, definitions = load_bundled_rules()
    for program in programs:
        store.save_program(program)
    for definition in definitions:
        store.save_rule(to_eligibility_rule(definition))
    store.add_profile(GEORGIA_PROFILE)
    return store
