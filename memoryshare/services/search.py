import datetime as dt
import json
from collections.abc import Iterable
from dataclasses import dataclass, field

from memoryshare.core.errors import InvalidField
from memoryshare.db.models import File, FileState, MediaClass
from memoryshare.utils.inputs import normalise_tokens, parse_date, process_input_list


@dataclass
class SearchQuery:
    description: str = ""
    tags: list[str] = field(default_factory=list)
    people: list[str] = field(default_factory=list)
    min_date: dt.date | None = None
    max_date: dt.date | None = None
    media_classes: set[MediaClass] = field(default_factory=set)
    page: int = 0
    results_per_page: int = 0

    def __post_init__(self):
        self.description = self.description.strip().lower()
        self.tags = normalise_tokens(self.tags)
        self.people = normalise_tokens(self.people)

    @classmethod
    def from_params(
        cls,
        desc: str | None = None,
        tags: str | None = None,
        people: str | None = None,
        min_date: str | None = None,
        max_date: str | None = None,
        file_types: str | None = None,
        page: str | int | None = None,
        results_per_page: str | int | None = None,
    ) -> "SearchQuery":
        try:
            lower = parse_date(min_date)
        except ValueError:
            raise InvalidField("min_date")
        try:
            upper = parse_date(max_date)
        except ValueError:
            raise InvalidField("max_date")

        media_classes = set()
        for name in process_input_list(file_types):
            try:
                media_classes.add(MediaClass(name))
            except ValueError:
                raise InvalidField("file_types")

        return cls(
            description=desc or "",
            tags=process_input_list(tags),
            people=process_input_list(people),
            min_date=lower,
            max_date=upper,
            media_classes=media_classes,
            page=_non_negative(page, "page"),
            results_per_page=_non_negative(results_per_page, "results_per_page"),
        )

    def matches(self, file: File) -> bool:
        if file.state != FileState.PUBLISHED:
            return False
        meta = file.metadata
        if self.description and self.description not in meta.description.lower():
            return False
        if self.tags and not set(self.tags).issubset(meta.tags):
            return False
        if self.people and not set(self.people).issubset(meta.people):
            return False
        if self.min_date or self.max_date:
            if meta.memory_date is None:
                return False
            if self.min_date and meta.memory_date < self.min_date:
                return False
            if self.max_date and meta.memory_date > self.max_date:
                return False
        if self.media_classes and file.media_class not in self.media_classes:
            return False
        return True


def _non_negative(value: str | int | None, name: str) -> int:
    if value is None or value == "":
        return 0
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise InvalidField(name)
    if number < 0:
        raise InvalidField(name)
    return number


def sort_files(files: Iterable[File]) -> list[File]:
    """Newest first; identical timestamps fall back to identifier order."""
    return sorted(files, key=lambda f: (-f.added_at, f.id))


def paginate(files: list[File], page: int, results_per_page: int) -> list[File]:
    if results_per_page <= 0:
        return files
    start = page * results_per_page
    return files[start:start + results_per_page]


@dataclass
class SearchResult:
    files: list[File]
    total: int
    page: int = 0
    results_per_page: int = 0

    def to_json(self, pretty: bool = False) -> str:
        payload = {
            "files": [f.to_json_dict() for f in self.files],
            "total": self.total,
            "page": self.page,
            "results_per_page": self.results_per_page,
        }
        if pretty:
            return json.dumps(payload, indent="\t")
        return json.dumps(payload)


def run_search(files: Iterable[File], query: SearchQuery) -> SearchResult:
    matched = sort_files(f for f in files if query.matches(f))
    return SearchResult(
        files=paginate(matched, query.page, query.results_per_page),
        total=len(matched),
        page=query.page,
        results_per_page=query.results_per_page,
    )
