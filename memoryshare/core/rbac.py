from memoryshare.core.errors import Forbidden
from memoryshare.db.models import AccountType, File

ADMIN_TYPES = {AccountType.ADMIN, AccountType.SUPER_ADMIN}


def is_admin(account_type: AccountType) -> bool:
    return account_type in ADMIN_TYPES


def authorize_file_change(username: str, account_type: AccountType, file: File) -> None:
    """Owners may edit or soft-delete their own files; SuperAdmin may change any."""
    if account_type == AccountType.SUPER_ADMIN:
        return
    if file.uploader != username:
        raise Forbidden()


def authorize_hard_delete(account_type: AccountType) -> None:
    if account_type != AccountType.SUPER_ADMIN:
        raise Forbidden()


def authorize_admin(account_type: AccountType) -> None:
    if not is_admin(account_type):
        raise Forbidden()


def authorize_upload(account_type: AccountType) -> None:
    # guests browse and search only
    if account_type == AccountType.GUEST:
        raise Forbidden()
