"""File catalog behind a single-writer request broker.

Every operation is submitted as an ``AccessRequest`` onto one asyncio queue and
applied by a dedicated worker task in arrival order. Only the worker touches
``self.catalog``, the blob trees and the catalog file, so the index, the
on-disk layout and the transaction log always advance together.
"""

import asyncio
import contextlib
import datetime as dt
import inspect
import logging
import random
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any

from memoryshare.core import rbac
from memoryshare.core.errors import (
    DuplicateContent,
    FileNotFound,
    InternalError,
    InvalidField,
    InvalidRequest,
    MemoryShareError,
    MissingField,
    SerializationError,
    StoreIOError,
    TooLarge,
    UnsupportedFormat,
    WrongState,
)
from memoryshare.db.models import (
    AccountType,
    File,
    FileCatalog,
    FileState,
    MetaData,
    Transaction,
    TransactionType,
    day_of,
)
from memoryshare.services.codec import CatalogCodec, CatalogKind
from memoryshare.services.file_type_policy import (
    DEFAULT_MAX_SIZE_BYTES,
    FileTypePolicy,
    validate_upload_metadata,
)
from memoryshare.services.search import SearchQuery, SearchResult, paginate, run_search, sort_files
from memoryshare.services.state import can_transition
from memoryshare.services.storage import BlobStorage
from memoryshare.utils.checks import compute_checksum, is_safe_segment
from memoryshare.utils.inputs import normalise_tokens

logger = logging.getLogger(__name__)

AGGREGATE_SELECTORS = ("tags", "people", "file_types", "dates")
SHUTDOWN_TIMEOUT_SECONDS = 5.0

_VALIDATION_ERRORS = {
    "unsupported_format": UnsupportedFormat,
    "too_large": TooLarge,
    "invalid_request": InvalidRequest,
}


@dataclass
class AccessRequest:
    operation: str
    params: dict[str, Any] = field(default_factory=dict)
    future: asyncio.Future | None = None


def _discard_outcome(future: asyncio.Future) -> None:
    if not future.cancelled():
        future.exception()


class FileStore:
    def __init__(
        self,
        storage: BlobStorage,
        codec: CatalogCodec,
        policy: FileTypePolicy,
        version: str,
        max_upload_bytes: int = DEFAULT_MAX_SIZE_BYTES,
    ):
        self.storage = storage
        self.codec = codec
        self.policy = policy
        self.version = version
        self.max_upload_bytes = max_upload_bytes
        self.catalog = FileCatalog()
        self.dirty = False
        self._requests: asyncio.Queue[AccessRequest] | None = None
        self._worker: asyncio.Task | None = None
        self._operations = {
            "stage_upload": self._stage_upload,
            "delete_staged": self._delete_staged,
            "publish": self._publish,
            "edit": self._edit,
            "delete": self._delete,
            "search": self._search,
            "aggregate": self._aggregate,
            "random_pick": self._random_pick,
            "get_file": self._get_file,
            "get_files": self._get_files,
            "files_by_user": self._files_by_user,
            "file_ids": self._file_ids,
            "transactions": self._transactions,
            "serialize": self._serialize,
            "deserialize": self._deserialize,
            "destroy": self._destroy,
        }

    # lifecycle

    @property
    def running(self) -> bool:
        return self._worker is not None and not self._worker.done()

    async def start(self) -> None:
        # a corrupt catalog must stop startup rather than be replaced by an empty one
        await self._deserialize()
        self._requests = asyncio.Queue()
        self._worker = asyncio.create_task(self._poll(), name="file-store-worker")
        logger.info("File store started with %d files", len(self.catalog.files))

    async def stop(self, timeout: float = SHUTDOWN_TIMEOUT_SECONDS) -> None:
        if self._worker is None:
            return
        try:
            await asyncio.wait_for(self._requests.join(), timeout)
        except asyncio.TimeoutError:
            logger.warning("File store stopping with %d requests still queued", self._requests.qsize())
        self._worker.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._worker
        self._worker = None
        await self._persist()
        logger.info("File store stopped")

    # broker

    async def submit(self, operation: str, **params: Any) -> Any:
        if not self.running:
            raise InternalError("file store is not running")
        future = asyncio.get_running_loop().create_future()
        await self._requests.put(AccessRequest(operation=operation, params=params, future=future))
        try:
            return await asyncio.shield(future)
        except asyncio.CancelledError:
            # the operation still runs to completion; nobody is left to read it
            future.add_done_callback(_discard_outcome)
            raise

    async def _poll(self) -> None:
        while True:
            request = await self._requests.get()
            try:
                await self._process(request)
            finally:
                self._requests.task_done()

    async def _process(self, request: AccessRequest) -> None:
        handler = self._operations.get(request.operation)
        try:
            if handler is None:
                raise InternalError(f"unsupported file access operation: {request.operation}")
            result = handler(**request.params)
            if inspect.isawaitable(result):
                result = await result
        except MemoryShareError as exc:
            if exc.internal:
                logger.critical("File store operation %s failed: %s", request.operation, exc.detail)
            self._resolve(request, error=exc)
        except Exception as exc:
            logger.critical("File store operation %s crashed", request.operation, exc_info=True)
            self._resolve(request, error=InternalError(str(exc)))
        else:
            self._resolve(request, result=result)

    def _resolve(self, request: AccessRequest, result: Any = None, error: Exception | None = None) -> None:
        if request.future is None or request.future.done():
            return
        if error is not None:
            request.future.set_exception(error)
        else:
            request.future.set_result(result)

    # public operations

    async def stage_upload(self, filename: str, data: bytes, uploader: str) -> File:
        return await self.submit("stage_upload", filename=filename, data=data, uploader=uploader)

    async def delete_staged(self, file_id: str, username: str) -> None:
        return await self.submit("delete_staged", file_id=file_id, username=username)

    async def publish(
        self,
        file_id: str,
        username: str,
        *,
        description: str = "",
        tags: Iterable[str] = (),
        people: Iterable[str] = (),
        memory_date: dt.date | None = None,
    ) -> File:
        return await self.submit(
            "publish",
            file_id=file_id,
            username=username,
            description=description,
            tags=list(tags),
            people=list(people),
            memory_date=memory_date,
        )

    async def edit(
        self,
        file_id: str,
        username: str,
        account_type: AccountType,
        *,
        description: str | None = None,
        tags: Iterable[str] | None = None,
        people: Iterable[str] | None = None,
        memory_date: dt.date | None = None,
    ) -> File:
        return await self.submit(
            "edit",
            file_id=file_id,
            username=username,
            account_type=account_type,
            description=description,
            tags=None if tags is None else list(tags),
            people=None if people is None else list(people),
            memory_date=memory_date,
        )

    async def delete(self, file_id: str, username: str, account_type: AccountType, hard: bool = False) -> File:
        return await self.submit("delete", file_id=file_id, username=username, account_type=account_type, hard=hard)

    async def search(self, query: SearchQuery) -> SearchResult:
        return await self.submit("search", query=query)

    async def aggregate(self, selectors: Iterable[str]) -> dict[str, list[str]]:
        return await self.submit("aggregate", selectors=list(selectors))

    async def random_pick(self, count: int = 1) -> list[File]:
        return await self.submit("random_pick", count=count)

    async def get_file(self, file_id: str) -> File:
        return await self.submit("get_file", file_id=file_id)

    async def get_files(self, file_ids: Iterable[str], page: int = 0, results_per_page: int = 0) -> SearchResult:
        return await self.submit("get_files", file_ids=list(file_ids), page=page, results_per_page=results_per_page)

    async def files_by_user(self, username: str, state: FileState = FileState.UPLOADED) -> list[File]:
        return await self.submit("files_by_user", username=username, state=state)

    async def file_ids(self) -> set[str]:
        return await self.submit("file_ids")

    async def transactions(self) -> list[Transaction]:
        return await self.submit("transactions")

    async def serialize(self) -> None:
        return await self.submit("serialize")

    async def deserialize(self) -> None:
        return await self.submit("deserialize")

    async def destroy(self) -> None:
        return await self.submit("destroy")

    # worker-side implementations

    async def _stage_upload(self, filename: str, data: bytes, uploader: str) -> File:
        result = validate_upload_metadata(
            self.policy,
            original_filename=filename,
            size_bytes=len(data),
            max_size_bytes=self.max_upload_bytes,
        )
        if not result.ok:
            raise _VALIDATION_ERRORS.get(result.reason, InvalidRequest)(f"{result.reason}: {result.details}")
        if not is_safe_segment(uploader):
            raise InvalidRequest("uploader name cannot be used as a staging directory")

        new_file = File(
            name=result.name,
            extension=result.extension,
            uploader=uploader,
            media_class=result.media_class,
            hash=compute_checksum(data),
            size=len(data),
        )
        try:
            await asyncio.to_thread(self.storage.write_staged, uploader, new_file.storage_name, data)
        except OSError as exc:
            raise StoreIOError(f"could not stage {new_file.storage_name}: {exc}") from exc

        self.catalog.files[new_file.id] = new_file
        logger.info("Staged %s for %s as %s", new_file.full_file_name, uploader, new_file.id)
        return new_file.model_copy(deep=True)

    def _owned_staged(self, file_id: str, username: str) -> File:
        file = self.catalog.files.get(file_id)
        # someone else's staged file is reported as missing, not forbidden
        if file is None or (file.state == FileState.UPLOADED and file.uploader != username):
            raise FileNotFound()
        if file.state != FileState.UPLOADED:
            raise WrongState(f"file {file_id} is {file.state.value}")
        return file

    def _visible(self, file_id: str) -> File:
        file = self.catalog.files.get(file_id)
        if file is None or file.state == FileState.UPLOADED:
            raise FileNotFound()
        return file

    async def _delete_staged(self, file_id: str, username: str) -> None:
        file = self._owned_staged(file_id, username)
        try:
            await asyncio.to_thread(self.storage.remove, self.storage.staged_path(username, file.storage_name))
        except OSError as exc:
            raise StoreIOError(f"could not remove staged {file.storage_name}: {exc}") from exc
        del self.catalog.files[file_id]
        logger.info("Removed staged file %s for %s", file_id, username)

    async def _publish(
        self,
        file_id: str,
        username: str,
        description: str,
        tags: list[str],
        people: list[str],
        memory_date: dt.date | None,
    ) -> File:
        file = self._owned_staged(file_id, username)
        tags = normalise_tokens(tags)
        people = normalise_tokens(people)
        if not tags:
            raise MissingField("tags")
        if not people:
            raise MissingField("people")
        self._check_transition(file, FileState.PUBLISHED)

        for other in self.catalog.files.values():
            if other.id != file.id and other.state == FileState.PUBLISHED and other.hash == file.hash:
                raise DuplicateContent(f"content already published as {other.id}")

        try:
            await asyncio.to_thread(self.storage.publish, username, file.storage_name)
        except OSError as exc:
            # record stays Uploaded and no transaction is written
            raise StoreIOError(f"could not publish {file.storage_name}: {exc}") from exc

        file.metadata = MetaData(
            description=(description or "").strip(),
            tags=tags,
            people=people,
            memory_date=memory_date or day_of(file.added_at),
        )
        file.state = FileState.PUBLISHED
        self._record(TransactionType.CREATE, file.id)
        await self._persist()
        return file.model_copy(deep=True)

    async def _edit(
        self,
        file_id: str,
        username: str,
        account_type: AccountType,
        description: str | None,
        tags: list[str] | None,
        people: list[str] | None,
        memory_date: dt.date | None,
    ) -> File:
        file = self._visible(file_id)
        if file.state != FileState.PUBLISHED:
            raise WrongState(f"file {file_id} is {file.state.value}")
        rbac.authorize_file_change(username, account_type, file)

        update: dict[str, Any] = {}
        if description is not None:
            update["description"] = description.strip()
        if tags is not None:
            update["tags"] = normalise_tokens(tags)
            if not update["tags"]:
                raise MissingField("tags")
        if people is not None:
            update["people"] = normalise_tokens(people)
            if not update["people"]:
                raise MissingField("people")
        if memory_date is not None:
            update["memory_date"] = memory_date
        if not update:
            raise InvalidRequest("no metadata supplied")

        file.metadata = file.metadata.model_copy(update=update)
        self._record(TransactionType.EDIT, file.id)
        await self._persist()
        return file.model_copy(deep=True)

    async def _delete(self, file_id: str, username: str, account_type: AccountType, hard: bool) -> File:
        file = self._visible(file_id)
        if hard:
            rbac.authorize_hard_delete(account_type)
        else:
            rbac.authorize_file_change(username, account_type, file)
            if file.state != FileState.PUBLISHED:
                raise WrongState(f"file {file_id} is already deleted")
        self._check_transition(file, FileState.DELETED)

        try:
            if hard:
                await asyncio.to_thread(self.storage.purge, file.storage_name)
            else:
                await asyncio.to_thread(self.storage.retire, file.storage_name)
        except OSError as exc:
            raise StoreIOError(f"could not delete {file.storage_name}: {exc}") from exc

        file.state = FileState.DELETED
        self._record(TransactionType.DELETE, file.id)
        await self._persist()
        return file.model_copy(deep=True)

    def _search(self, query: SearchQuery) -> SearchResult:
        result = run_search(self.catalog.files.values(), query)
        result.files = [f.model_copy(deep=True) for f in result.files]
        return result

    def _published(self) -> list[File]:
        return [f for f in self.catalog.files.values() if f.state == FileState.PUBLISHED]

    def _aggregate(self, selectors: list[str]) -> dict[str, list[str]]:
        for selector in selectors:
            if selector not in AGGREGATE_SELECTORS:
                raise InvalidField("fetch", f"unknown metadata selector {selector!r}")

        published = self._published()
        results: dict[str, list[str]] = {}
        for selector in selectors:
            values: set[str] = set()
            for file in published:
                if selector == "tags":
                    values.update(file.metadata.tags)
                elif selector == "people":
                    values.update(file.metadata.people)
                elif selector == "file_types":
                    values.add(file.media_class.value)
                elif file.metadata.memory_date is not None:
                    values.add(file.metadata.memory_date.isoformat())
            results[selector] = sorted(values)
        return results

    def _random_pick(self, count: int) -> list[File]:
        if count < 0:
            raise InvalidField("count")
        published = sort_files(self._published())
        picked = random.sample(published, min(count, len(published)))
        return [f.model_copy(deep=True) for f in picked]

    def _get_file(self, file_id: str) -> File:
        file = self.catalog.files.get(file_id)
        if file is None or file.state != FileState.PUBLISHED:
            raise FileNotFound()
        return file.model_copy(deep=True)

    def _get_files(self, file_ids: list[str], page: int, results_per_page: int) -> SearchResult:
        # dangling and deleted references are skipped, not reported
        found = []
        for file_id in set(file_ids):
            file = self.catalog.files.get(file_id)
            if file is not None and file.state == FileState.PUBLISHED:
                found.append(file)
        ordered = sort_files(found)
        return SearchResult(
            files=[f.model_copy(deep=True) for f in paginate(ordered, page, results_per_page)],
            total=len(ordered),
            page=page,
            results_per_page=results_per_page,
        )

    def _files_by_user(self, username: str, state: FileState) -> list[File]:
        files = [f for f in self.catalog.files.values() if f.uploader == username and f.state == state]
        return [f.model_copy(deep=True) for f in sort_files(files)]

    def _file_ids(self) -> set[str]:
        return set(self.catalog.files)

    def _transactions(self) -> list[Transaction]:
        return list(self.catalog.transactions)

    async def _serialize(self) -> None:
        await self._persist(strict=True)

    async def _deserialize(self) -> None:
        path = self.storage.file_catalog
        if not path.exists():
            self.catalog = FileCatalog()
            await self._persist(strict=True)
            return
        blob = await asyncio.to_thread(self.codec.read, path)
        self.catalog = self.codec.decode(CatalogKind.FILES, blob, FileCatalog)
        self.dirty = False

    async def _destroy(self) -> None:
        try:
            await asyncio.to_thread(self.storage.reset)
        except OSError as exc:
            raise StoreIOError(f"could not clear blob trees: {exc}") from exc
        self.catalog = FileCatalog()
        await self._persist(strict=True)
        logger.warning("File store has been reset")

    # helpers

    def _check_transition(self, file: File, target: FileState) -> None:
        if not can_transition(file.state, target):
            raise WrongState(f"cannot move {file.id} from {file.state.value} to {target.value}")

    def _record(self, transaction_type: TransactionType, file_id: str) -> Transaction:
        transaction = Transaction(file_id=file_id, type=transaction_type, version=self.version)
        self.catalog.transactions.append(transaction)
        logger.info("Recorded %s transaction for %s", transaction_type.value, file_id)
        return transaction

    async def _persist(self, strict: bool = False) -> None:
        blob = self.codec.encode(CatalogKind.FILES, self.catalog)
        try:
            await asyncio.to_thread(self.codec.write, self.storage.file_catalog, blob)
        except SerializationError:
            self.dirty = True
            if strict:
                raise
            logger.error("Could not serialize file catalog; retrying at shutdown", exc_info=True)
            return
        self.dirty = False
