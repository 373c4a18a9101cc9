from httpx import ASGITransport, AsyncClient

from memoryshare.db.models import AccountState, AccountType

PASSWORD = "Abcd1!efgh"


def add_user(app, forename, surname, email, account_type=AccountType.STANDARD, password=PASSWORD):
    return app.state.user_store.add_user(
        forename, surname, email, password, account_type=account_type, state=AccountState.COMPLETE
    )


def make_client(app) -> AsyncClient:
    return AsyncClient(transport=ASGITransport(app=app), base_url="http://testserver")


async def login(client: AsyncClient, email: str, password: str = PASSWORD):
    resp = await client.post("/login", data={"email": email, "password": password})
    assert resp.text == "success"
    return resp


async def stage(client: AsyncClient, filename: str, content: bytes):
    return await client.post("/upload/temp", files={"file-input": (filename, content)})


def publish_form(file_id: str, tags="holiday", people="jem", description="beach", date="2021-06-01") -> dict:
    return {
        "fileUUID": file_id,
        "description-input": description,
        "tags-input": tags,
        "people-input": people,
        "date-input": date,
    }
