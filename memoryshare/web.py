import datetime as dt
from pathlib import Path

from fastapi.templating import Jinja2Templates

from memoryshare.utils.inputs import format_byte_count

TEMPLATE_DIR = Path(__file__).parent / "templates"


def format_epoch(epoch_ns: int) -> str:
    return dt.datetime.fromtimestamp(epoch_ns / 1e9, tz=dt.timezone.utc).strftime("%d/%m/%Y [%H:%M]")


templates = Jinja2Templates(directory=str(TEMPLATE_DIR))
templates.env.filters["format_epoch"] = format_epoch
templates.env.filters["format_byte_count"] = format_byte_count


def page_context(title: str, brand_name: str, session_user=None, navbar_focus: str = "", **extra) -> dict:
    context = {
        "title": title,
        "brand_name": brand_name,
        "session_user": session_user,
        "navbar_focus": navbar_focus,
    }
    context.update(extra)
    return context
