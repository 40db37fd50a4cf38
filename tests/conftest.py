import pytest
from fastapi.testclient import TestClient

from horario.api.main import create_app
from horario.api.store import InMemoryStore
from horario.core.config import Settings
from horario.schemas.proposal import AcademicPeriodRef, CourseRef, ProposalCreate
from horario.schemas.timetable import ScheduleSlotCatalog
from horario.services.cache import QueryCache, get_query_cache
from horario.services.notifications import InMemoryNotifier
from horario.services.remote import HttpRemoteAuthority
from tests.factories import CATALOG_PAYLOAD, COURSE_ID, PERIOD_ID, FakeRemote, make_section


@pytest.fixture(autouse=True)
def clear_shared_cache():
    get_query_cache.cache_clear()
    yield
    get_query_cache.cache_clear()


@pytest.fixture
def catalog():
    return ScheduleSlotCatalog.model_validate(CATALOG_PAYLOAD)


@pytest.fixture
def sections():
    return {
        "alg": make_section("alg", "ALG-A", professor_id="prof-ana", professor_name="Ana"),
        "bd": make_section("bd", "BD-A", professor_id="prof-ana", professor_name="Ana"),
        "web": make_section("web", "WEB-A", professor_id="prof-bruno", professor_name="Bruno"),
        "redes": make_section("redes", "RED-A", professor_id="prof-carla", professor_name="Carla"),
        "etica": make_section("etica", "ETI-A"),
    }


@pytest.fixture
def store(catalog, sections):
    store = InMemoryStore(catalog)
    for section in sections.values():
        store.add_section(section)
    store.add_course(CourseRef(id=COURSE_ID, name="Analysis and Systems Development", code="ADS"))
    store.add_period(AcademicPeriodRef(id=PERIOD_ID, year=2025, semester=1))
    return store


@pytest.fixture
def proposal(store):
    return store.create_proposal(ProposalCreate(course_id=COURSE_ID, period_id=PERIOD_ID))


@pytest.fixture
def fake_remote(store):
    return FakeRemote(store)


@pytest.fixture
def cache():
    return QueryCache()


@pytest.fixture
def notifier():
    return InMemoryNotifier()


@pytest.fixture
def settings():
    return Settings(conflict_scope="proposal", allow_sub_slot_ranges=False)


@pytest.fixture
def client(store):
    with TestClient(create_app(store)) as test_client:
        yield test_client


@pytest.fixture
def http_remote(client):
    return HttpRemoteAuthority(client)
