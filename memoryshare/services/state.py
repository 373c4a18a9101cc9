from memoryshare.db.models import AccountState, FileState

ALLOWED_TRANSITIONS: dict[FileState, set[FileState]] = {
    FileState.UPLOADED: {FileState.PUBLISHED},
    FileState.PUBLISHED: {FileState.DELETED},
    # hard delete of an already soft-deleted file
    FileState.DELETED: {FileState.DELETED},
}

REGISTRATION_TRANSITIONS: dict[AccountState, set[AccountState]] = {
    AccountState.UNREGISTERED: {
        AccountState.ADMIN_CONFIRMED,
        AccountState.EMAIL_CONFIRMED,
        AccountState.BLOCKED,
    },
    AccountState.ADMIN_CONFIRMED: {AccountState.COMPLETE, AccountState.BLOCKED},
    AccountState.EMAIL_CONFIRMED: {AccountState.COMPLETE, AccountState.BLOCKED},
    AccountState.COMPLETE: {AccountState.BLOCKED},
    # unblock restores whatever state the account was blocked from
    AccountState.BLOCKED: {
        AccountState.UNREGISTERED,
        AccountState.ADMIN_CONFIRMED,
        AccountState.EMAIL_CONFIRMED,
        AccountState.COMPLETE,
    },
}


def can_transition(current: FileState, target: FileState) -> bool:
    return target in ALLOWED_TRANSITIONS.get(current, set())


def can_register_transition(current: AccountState, target: AccountState) -> bool:
    return target in REGISTRATION_TRANSITIONS.get(current, set())


def after_admin_confirmation(current: AccountState) -> AccountState:
    # a second admin confirmation stands in for the email step
    if current in (AccountState.EMAIL_CONFIRMED, AccountState.ADMIN_CONFIRMED):
        return AccountState.COMPLETE
    return AccountState.ADMIN_CONFIRMED


def after_email_confirmation(current: AccountState) -> AccountState:
    if current == AccountState.ADMIN_CONFIRMED:
        return AccountState.COMPLETE
    return AccountState.EMAIL_CONFIRMED
