"""User catalog guarded by a re-entrant lock.

Simple lookups and writes take the lock internally; compound work (searches,
add-if-absent) goes through ``perform`` so the inspector runs with the lock
held for its whole duration. Password hashing is deliberately slow and always
happens outside the lock, and catalog file writes queue on a separate write
lock so lookups never wait on disk.
"""

import logging
import re
import threading
import unicodedata
from collections.abc import Callable, Iterable
from pathlib import Path
from typing import TypeVar

from fastapi import Request, Response

from memoryshare.core.errors import (
    DuplicateEmail,
    InvalidField,
    NoSession,
    SerializationError,
    UserNotFound,
    WeakPassword,
    WrongState,
)
from memoryshare.core.security import get_password_hash, verify_password
from memoryshare.db.models import AccountState, AccountType, User, UserCatalog
from memoryshare.services.codec import CatalogCodec, CatalogKind
from memoryshare.services.session import SessionAuthority
from memoryshare.services.state import (
    after_admin_confirmation,
    after_email_confirmation,
    can_register_transition,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

NAME_PATTERN = re.compile(r"^[A-Za-z ,.'-]+$")
EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
USERNAME_DISALLOWED = re.compile(r"[^A-Za-z0-9-]")
MIN_PASSWORD_LENGTH = 8


def validate_password(password: str) -> None:
    has_upper = any(c.isupper() for c in password)
    has_digit = any(c.isdigit() for c in password)
    has_special = any(unicodedata.category(c)[0] in ("P", "S") for c in password)
    if len(password) < MIN_PASSWORD_LENGTH or not (has_upper and has_digit and has_special):
        raise WeakPassword()


def username_base(forename: str, surname: str) -> str:
    return USERNAME_DISALLOWED.sub("", forename + surname) or "user"


def _state_before_block(user: User) -> AccountState:
    if user.state != AccountState.BLOCKED:
        return user.state
    # records saved without blocked_from unblock to complete
    return user.blocked_from or AccountState.COMPLETE


class UserStore:
    def __init__(
        self,
        path: Path,
        codec: CatalogCodec,
        sessions: SessionAuthority | None = None,
        hash_rounds: int = 12,
        allow_incomplete_login: bool = False,
    ):
        self.path = path
        self.codec = codec
        self.sessions = sessions
        self.hash_rounds = hash_rounds
        self.allow_incomplete_login = allow_incomplete_login
        self._lock = threading.RLock()
        self._write_lock = threading.Lock()
        self._users: dict[str, User] = {}

    # locking primitives

    def perform(self, inspector: Callable[[dict[str, User]], T]) -> T:
        with self._lock:
            return inspector(self._users)

    def get(self, username: str) -> User | None:
        with self._lock:
            user = self._users.get(username)
            return user.model_copy(deep=True) if user else None

    def set(self, user: User) -> None:
        with self._lock:
            self._users[user.username] = user.model_copy(deep=True)

    def count(self) -> int:
        with self._lock:
            return len(self._users)

    def delete(self, username: str) -> bool:
        with self._lock:
            return self._users.pop(username, None) is not None

    # catalog operations

    def add_user(
        self,
        forename: str,
        surname: str,
        email: str,
        password: str,
        account_type: AccountType = AccountType.STANDARD,
        state: AccountState = AccountState.UNREGISTERED,
    ) -> User:
        forename, surname, email = forename.strip(), surname.strip(), email.strip()
        if not EMAIL_PATTERN.match(email):
            raise InvalidField("email")
        if not NAME_PATTERN.match(forename):
            raise InvalidField("forename")
        if not NAME_PATTERN.match(surname):
            raise InvalidField("surname")
        validate_password(password)
        if self._find_by_email(email) is not None:
            raise DuplicateEmail()

        hashed = get_password_hash(password, self.hash_rounds)

        def insert(users: dict[str, User]) -> User:
            # re-checked under the lock; another request may have won the race
            if any(u.email.lower() == email.lower() for u in users.values()):
                raise DuplicateEmail()
            base = username_base(forename, surname)
            username, counter = base, 1
            while username in users:
                counter += 1
                username = f"{base}{counter}"
            user = User(
                username=username,
                email=email,
                password=hashed,
                forename=forename,
                surname=surname,
                type=account_type,
                state=state,
            )
            users[username] = user
            return user.model_copy(deep=True)

        user = self.perform(insert)
        logger.info("New user created: %s", user.username)
        self._persist()
        return user

    def _find_by_email(self, email: str) -> User | None:
        def find(users: dict[str, User]) -> User | None:
            for user in users.values():
                if user.email.lower() == email.lower():
                    return user.model_copy(deep=True)
            return None

        return self.perform(find)

    def get_by_email(self, email: str) -> User:
        user = self._find_by_email(email.strip())
        if user is None:
            raise UserNotFound()
        return user

    def get_by_username(self, username: str) -> User:
        user = self.get(username)
        if user is None:
            raise UserNotFound()
        return user

    def list_users(self) -> list[User]:
        users = self.perform(lambda users: [u.model_copy(deep=True) for u in users.values()])
        return sorted(users, key=lambda u: (-u.created_at, u.username))

    def may_login(self, user: User) -> bool:
        if user.state == AccountState.COMPLETE:
            return True
        return self.allow_incomplete_login and user.state != AccountState.BLOCKED

    def verify_credentials(self, email: str, password: str) -> User | None:
        user = self._find_by_email(email.strip())
        if user is None or not verify_password(password, user.password):
            return None
        if not self.may_login(user):
            logger.info("Login refused for %s in state %s", user.username, user.state.value)
            return None
        return user

    # sessions

    def login(self, email: str, password: str, response: Response) -> bool:
        user = self.verify_credentials(email, password)
        if user is None:
            return False
        self.sessions.issue(response, user.email)
        return True

    def logout(self, response: Response) -> None:
        self.sessions.clear(response)

    def authenticate(self, request: Request) -> bool:
        return self.sessions.is_authenticated(request)

    def get_session_user(self, request: Request) -> User:
        user = self.get_by_email(self.sessions.session_email(request))
        if user.state == AccountState.BLOCKED:
            raise NoSession()
        return user

    # favourites

    def set_favourite(
        self, username: str, file_id: str, state: bool, known_file_ids: Iterable[str] | None = None
    ) -> User:
        def update(users: dict[str, User]) -> User:
            user = users.get(username)
            if user is None:
                raise UserNotFound()
            if state:
                user.favourites.add(file_id)
            else:
                user.favourites.discard(file_id)
            return user.model_copy(deep=True)

        user = self.perform(update)
        self._persist(known_file_ids)
        return user

    def prune_favourites(self, known_file_ids: Iterable[str]) -> int:
        known = set(known_file_ids)

        def prune(users: dict[str, User]) -> int:
            pruned = 0
            for user in users.values():
                dangling = user.favourites - known
                user.favourites -= dangling
                pruned += len(dangling)
            return pruned

        return self.perform(prune)

    # registration

    def _move_registration(self, username: str, target: Callable[[User], AccountState]) -> User:
        def move(users: dict[str, User]) -> User:
            user = users.get(username)
            if user is None:
                raise UserNotFound()
            new_state = target(user)
            if not can_register_transition(user.state, new_state):
                raise WrongState(f"{username} cannot move from {user.state.value} to {new_state.value}")
            user.blocked_from = user.state if new_state == AccountState.BLOCKED else None
            user.state = new_state
            return user.model_copy(deep=True)

        user = self.perform(move)
        logger.info("User %s is now %s", username, user.state.value)
        self._persist()
        return user

    def confirm_by_admin(self, username: str) -> User:
        return self._move_registration(username, lambda user: after_admin_confirmation(user.state))

    def confirm_email(self, username: str) -> User:
        return self._move_registration(username, lambda user: after_email_confirmation(user.state))

    def block(self, username: str) -> User:
        return self._move_registration(username, lambda _: AccountState.BLOCKED)

    def unblock(self, username: str) -> User:
        return self._move_registration(username, _state_before_block)

    # persistence

    def serialize(self, known_file_ids: Iterable[str] | None = None) -> None:
        # writers queue on the write lock; readers only wait for the snapshot
        with self._write_lock:
            with self._lock:
                if known_file_ids is not None:
                    self.prune_favourites(known_file_ids)
                blob = self.codec.encode(CatalogKind.USERS, UserCatalog(users=self._users))
            self.codec.write(self.path, blob)

    def deserialize(self) -> None:
        if not self.path.exists():
            with self._lock:
                self._users = {}
            self.serialize()
            return
        catalog = self.codec.decode(CatalogKind.USERS, self.codec.read(self.path), UserCatalog)
        with self._lock:
            self._users = catalog.users

    def _persist(self, known_file_ids: Iterable[str] | None = None) -> None:
        try:
            self.serialize(known_file_ids)
        except SerializationError:
            logger.error("Could not serialize user catalog; retrying at shutdown", exc_info=True)
