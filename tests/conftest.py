import pytest
import pytest_asyncio

from memoryshare.core.config import Settings
from memoryshare.main import create_app
from memoryshare.services.codec import CatalogCodec
from memoryshare.services.file_store import FileStore
from memoryshare.services.file_type_policy import FileTypePolicy
from memoryshare.services.session import SessionAuthority
from memoryshare.services.storage import BlobStorage
from memoryshare.services.user_store import UserStore
from tests.helpers import add_user, login, make_client


@pytest.fixture
def settings(tmp_path):
    return Settings(root_path=tmp_path)


@pytest.fixture
def storage(tmp_path):
    blob_storage = BlobStorage(tmp_path)
    blob_storage.ensure_layout()
    return blob_storage


@pytest.fixture
def codec():
    return CatalogCodec()


@pytest_asyncio.fixture
async def file_store(settings, storage, codec):
    store = FileStore(storage, codec, FileTypePolicy.from_settings(settings), version=settings.version)
    await store.start()
    yield store
    await store.stop()


@pytest.fixture
def sessions(storage, codec, settings):
    return SessionAuthority.load_or_create(storage.session_key_file, codec, settings.session_max_age_seconds)


@pytest.fixture
def user_store(storage, codec, sessions):
    store = UserStore(storage.user_catalog, codec, sessions=sessions)
    store.deserialize()
    return store


@pytest_asyncio.fixture
async def app(settings):
    application = create_app(settings)
    async with application.router.lifespan_context(application):
        yield application


@pytest_asyncio.fixture
async def client(app):
    async with make_client(app) as c:
        yield c


@pytest_asyncio.fixture
async def alice(app):
    return add_user(app, "Alice", "Smith", "alice@example.com")


@pytest_asyncio.fixture
async def bob(app):
    return add_user(app, "Bob", "Jones", "bob@example.com")


@pytest_asyncio.fixture
async def alice_client(app, alice):
    async with make_client(app) as c:
        await login(c, alice.email)
        yield c


@pytest_asyncio.fixture
async def bob_client(app, bob):
    async with make_client(app) as c:
        await login(c, bob.email)
        yield c
