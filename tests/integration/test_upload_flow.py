import threading

import pytest

from memoryshare.db.models import AccountState, AccountType, TransactionType
from tests.helpers import add_user, login, make_client, publish_form, stage

PHOTO = b"\xff\xd8\xff" + b"p" * 1021


async def stage_id(app, client, username, filename, content) -> str:
    resp = await stage(client, filename, content)
    assert resp.status_code == 200, resp.text
    staged = await app.state.file_store.files_by_user(username)
    return next(f.id for f in staged if f.full_file_name == filename)


@pytest.mark.asyncio
async def test_login_and_logout(app, alice, client):
    resp = await client.post("/login", data={"email": alice.email, "password": "wrong"})
    assert resp.text == "unauthorised"

    await login(client, alice.email)
    assert (await client.get("/")).status_code == 200

    resp = await client.get("/logout")
    assert resp.status_code == 302
    assert resp.headers["location"] == "/login"
    assert (await client.get("/")).status_code == 302


@pytest.mark.asyncio
async def test_publish_dedup_flow(app, alice, alice_client):
    first_id = await stage_id(app, alice_client, alice.username, "photo.jpg", PHOTO)
    resp = await alice_client.post("/upload/publish", data=publish_form(first_id))
    assert resp.text == "success"

    second_id = await stage_id(app, alice_client, alice.username, "photo2.jpg", PHOTO)
    resp = await alice_client.post("/upload/publish", data=publish_form(second_id))
    assert resp.status_code == 409
    assert resp.text == "duplicate_content"

    transactions = await app.state.file_store.transactions()
    assert [(t.type, t.file_id) for t in transactions] == [(TransactionType.CREATE, first_id)]

    resp = await alice_client.get("/search", params={"tags": "holiday", "format": "json"})
    body = resp.json()
    assert body["total"] == 1
    assert [f["id"] for f in body["files"]] == [first_id]
    assert body["files"][0]["metadata"] == {
        "description": "beach",
        "tags": ["holiday"],
        "people": ["jem"],
        "memory_date": "2021-06-01",
    }

    # the published blob is now served from the content tree
    resp = await alice_client.get(f"/static/content/{first_id}.jpg")
    assert resp.content == PHOTO


@pytest.mark.asyncio
async def test_publish_validation_tags(app, alice, alice_client):
    file_id = await stage_id(app, alice_client, alice.username, "photo.jpg", PHOTO)

    resp = await alice_client.post("/upload/publish", data=publish_form(file_id, tags=" , "))
    assert resp.text == "no_tags"
    resp = await alice_client.post("/upload/publish", data=publish_form(file_id, people=""))
    assert resp.text == "no_people"
    resp = await alice_client.post("/upload/publish", data=publish_form(file_id, date="June"))
    assert resp.text == "invalid_date"
    resp = await alice_client.post("/upload/publish", data={"tags-input": "a"})
    assert resp.text == "no_fileUUID"


@pytest.mark.asyncio
async def test_stage_rejections(app, alice_client):
    resp = await stage(alice_client, "virus.exe", b"MZ")
    assert resp.text == "unsupported_format"

    resp = await stage(alice_client, "big.jpg", b"x" * (app.state.settings.max_upload_bytes + 1))
    assert resp.status_code == 413
    assert resp.text == "too_large"

    resp = await alice_client.post("/upload/temp", data={"nothing": "here"})
    assert resp.text == "invalid_request"


@pytest.mark.asyncio
async def test_guest_cannot_upload(app):
    guest = add_user(app, "Guest", "User", "guest@example.com", account_type=AccountType.GUEST)
    async with make_client(app) as c:
        await login(c, guest.email)
        resp = await stage(c, "photo.jpg", PHOTO)

    assert resp.status_code == 403
    assert resp.text == "forbidden"


@pytest.mark.asyncio
async def test_staged_delete_and_upload_page(app, alice, alice_client, bob_client):
    file_id = await stage_id(app, alice_client, alice.username, "photo.jpg", PHOTO)

    page = await alice_client.get("/upload")
    assert file_id in page.text

    resp = await bob_client.post("/upload/temp_delete", data={"fileUUID": file_id})
    assert resp.text == "file_not_found"

    resp = await alice_client.post("/upload/temp_delete", data={"fileUUID": file_id})
    assert resp.text == "success"
    assert file_id not in (await alice_client.get("/upload")).text


@pytest.mark.asyncio
async def test_edit_and_delete_endpoints(app, alice, alice_client, bob_client):
    file_id = await stage_id(app, alice_client, alice.username, "photo.jpg", PHOTO)
    await alice_client.post("/upload/publish", data=publish_form(file_id))

    resp = await bob_client.post("/upload/edit", data={"fileUUID": file_id, "description-input": "bob was here"})
    assert resp.text == "forbidden"

    resp = await alice_client.post("/upload/edit", data={"fileUUID": file_id, "tags-input": "sea, Sun"})
    assert resp.text == "success"
    assert (await app.state.file_store.get_file(file_id)).metadata.tags == ["sea", "sun"]

    resp = await alice_client.post("/upload/delete", data={"fileUUID": file_id, "hard": "true"})
    assert resp.text == "forbidden"

    resp = await alice_client.post("/upload/delete", data={"fileUUID": file_id})
    assert resp.text == "success"
    assert (await alice_client.get("/search", params={"format": "json"})).json()["total"] == 0
    assert (await alice_client.get(f"/static/content/{file_id}.jpg")).status_code == 404

    types = [t.type for t in await app.state.file_store.transactions()]
    assert types == [TransactionType.CREATE, TransactionType.EDIT, TransactionType.DELETE]


@pytest.mark.asyncio
async def test_search_html_formats(app, alice, alice_client):
    file_id = await stage_id(app, alice_client, alice.username, "photo.jpg", PHOTO)
    await alice_client.post("/upload/publish", data=publish_form(file_id))

    tiled = await alice_client.get("/search", params={"format": "html_tiled"})
    detailed = await alice_client.get("/search", params={"format": "html_detailed", "tags": "holiday"})
    empty = await alice_client.get("/search", params={"format": "html_tiled", "tags": "nothing"})

    assert f"/memory/{file_id}" in tiled.text
    assert "photo.jpg" in detailed.text
    assert "no-match" in empty.text

    pretty = await alice_client.get("/search", params={"pretty": "true"})
    assert pretty.text.startswith("{\n\t")

    resp = await alice_client.get("/search", params={"min_date": "soon"})
    assert resp.text == "invalid_min_date"


@pytest.mark.asyncio
async def test_data_endpoints(app, alice, alice_client):
    file_id = await stage_id(app, alice_client, alice.username, "photo.jpg", PHOTO)
    await alice_client.post("/upload/publish", data=publish_form(file_id, tags="sea,sun"))

    resp = await alice_client.get("/data", params={"fetch": "tags,people"})
    assert resp.json() == {"tags": ["sea", "sun"], "people": ["jem"]}
    resp = await alice_client.get("/data", params={"fetch": "passwords"})
    assert resp.text == "invalid_fetch"

    resp = await alice_client.post("/data", data={"type": "file"})
    assert resp.text == "no_UUID_provided"
    resp = await alice_client.post("/data", data={"UUID": file_id})
    assert resp.text == "no_type_provided"
    resp = await alice_client.post("/data", data={"UUID": "nope", "type": "file"})
    assert resp.text == "no_UUID_match"

    resp = await alice_client.post("/data", data={"UUID": "random", "type": "file"})
    assert resp.json()["id"] == file_id
    resp = await alice_client.post("/data", data={"UUID": file_id, "type": "file", "format": "json_pretty"})
    assert "\n\t" in resp.text
    resp = await alice_client.post("/data", data={"UUID": file_id, "type": "file", "format": "html"})
    assert f'data-file-uuid="{file_id}"' in resp.text

    resp = await alice_client.post("/data", data={"UUID": alice.username, "type": "user"})
    user = resp.json()
    assert user["username"] == alice.username
    assert "password" not in user
    resp = await alice_client.post("/data", data={"UUID": alice.username, "type": "user", "format": "html"})
    assert resp.text == "html_not_supported"


@pytest.mark.asyncio
async def test_favourites(app, alice, alice_client):
    file_id = await stage_id(app, alice_client, alice.username, "photo.jpg", PHOTO)
    await alice_client.post("/upload/publish", data=publish_form(file_id))

    resp = await alice_client.post("/user", data={"operation": "favourite", "fileUUID": "nope", "state": "true"})
    assert resp.text == "file_not_found"

    resp = await alice_client.post("/user", data={"operation": "favourite", "fileUUID": file_id, "state": "true"})
    assert resp.text == "favourite_successfully_added"

    profile = (await alice_client.get(f"/user/{alice.username}", params={"format": "json"})).json()
    assert profile["favourites"] == [file_id]
    assert [f["id"] for f in profile["favourite_files"]] == [file_id]

    # favourites survive the delete but are filtered on read
    await alice_client.post("/upload/delete", data={"fileUUID": file_id})
    profile = (await alice_client.get(f"/user/{alice.username}", params={"format": "json"})).json()
    assert profile["favourites"] == [file_id]
    assert profile["favourite_files"] == []
    assert "No favourite memories yet." in (await alice_client.get(f"/user/{alice.username}")).text

    resp = await alice_client.post("/user", data={"operation": "favourite", "fileUUID": file_id, "state": "false"})
    assert resp.text == "favourite_successfully_removed"


@pytest.mark.asyncio
async def test_admin_user_management(app, alice, alice_client):
    admin = add_user(app, "Ada", "Admin", "ada@example.com", account_type=AccountType.ADMIN)
    new_user = {
        "operation": "add",
        "forename": "Carl",
        "surname": "New",
        "email": "carl@example.com",
        "password": "Abcd1!efgh",
    }

    resp = await alice_client.post("/user", data=new_user)
    assert resp.text == "forbidden"

    async with make_client(app) as admin_client:
        await login(admin_client, admin.email)

        resp = await admin_client.post("/user", data={**new_user, "type": "ADMIN"})
        assert resp.text == "forbidden"
        resp = await admin_client.post("/user", data=new_user)
        assert resp.text == "success"
        resp = await admin_client.post("/user", data=new_user)
        assert resp.text == "account_already_exists"

        # added accounts start admin-confirmed and cannot log in until confirmed again
        async with make_client(app) as carl_client:
            resp = await carl_client.post("/login", data={"email": "carl@example.com", "password": "Abcd1!efgh"})
            assert resp.text == "unauthorised"

            resp = await admin_client.post("/user", data={"operation": "confirm", "username": "CarlNew"})
            assert resp.text == "success"
            assert app.state.user_store.get("CarlNew").state == AccountState.COMPLETE

            await login(carl_client, "carl@example.com", "Abcd1!efgh")
            assert (await carl_client.get("/users")).status_code == 200

        resp = await admin_client.post("/user", data={"operation": "confirm", "username": "CarlNew"})
        assert resp.text == "wrong_state"

        resp = await admin_client.post("/user", data={"operation": "block", "username": alice.username})
        assert resp.text == "success"
        assert (await alice_client.get("/users")).text == "unauthorised"

        resp = await admin_client.post("/user", data={"operation": "unblock", "username": alice.username})
        assert resp.text == "success"

        users_page = await admin_client.get("/users")
        assert "CarlNew" in users_page.text

    assert (await alice_client.get("/users")).status_code == 200


@pytest.mark.asyncio
async def test_user_catalog_writes_run_off_the_event_loop(app, alice, bob, alice_client, monkeypatch):
    admin = add_user(app, "Ada", "Admin", "ada@example.com", account_type=AccountType.ADMIN)
    store = app.state.user_store
    loop_thread = threading.get_ident()
    seen = {}

    def recording(name):
        original = getattr(store, name)

        def call(*args, **kwargs):
            seen[name] = threading.get_ident()
            return original(*args, **kwargs)

        monkeypatch.setattr(store, name, call)

    for name in ("set_favourite", "block", "unblock", "list_users"):
        recording(name)

    resp = await alice_client.post("/user", data={"operation": "favourite", "fileUUID": "gone", "state": "false"})
    assert resp.text == "favourite_successfully_removed"

    async with make_client(app) as admin_client:
        await login(admin_client, admin.email)
        assert (await admin_client.post("/user", data={"operation": "block", "username": bob.username})).text == "success"
        assert (await admin_client.post("/user", data={"operation": "unblock", "username": bob.username})).text == "success"
        assert (await admin_client.get("/users")).status_code == 200

    assert set(seen) == {"set_favourite", "block", "unblock", "list_users"}
    assert loop_thread not in seen.values()


@pytest.mark.asyncio
async def test_favourite_writes_prune_unknown_files(app, alice, alice_client):
    file_id = await stage_id(app, alice_client, alice.username, "keep.jpg", PHOTO)
    assert (await alice_client.post("/upload/publish", data=publish_form(file_id))).text == "success"
    app.state.user_store.set_favourite(alice.username, "never-existed", True)

    resp = await alice_client.post("/user", data={"operation": "favourite", "fileUUID": file_id, "state": "true"})
    assert resp.text == "favourite_successfully_added"

    assert app.state.user_store.get(alice.username).favourites == {file_id}
