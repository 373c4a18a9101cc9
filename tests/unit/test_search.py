import datetime as dt
import json

import pytest

from memoryshare.core.errors import InvalidField
from memoryshare.db.models import File, FileState, MediaClass, MetaData
from memoryshare.services.search import SearchQuery, paginate, run_search, sort_files


def published(name, tags, date, people=("jem",), description="", media_class=MediaClass.image, added_at=None):
    file = File(
        name=name,
        extension="jpg",
        uploader="JemGunay",
        media_class=media_class,
        state=FileState.PUBLISHED,
        metadata=MetaData(description=description, tags=list(tags), people=list(people), memory_date=date),
    )
    if added_at is not None:
        file.added_at = added_at
    return file


@pytest.fixture
def seeded():
    return [
        published("first", ["a", "b"], dt.date(2022, 1, 1), added_at=3),
        published("second", ["a"], dt.date(2022, 6, 1), added_at=2),
        published("third", ["b", "c"], dt.date(2022, 3, 1), added_at=1),
    ]


def names(result):
    return [f.name for f in result.files]


def test_tags_must_all_be_present(seeded):
    result = run_search(seeded, SearchQuery.from_params(tags="a,b"))

    assert names(result) == ["first"]


def test_date_range_is_inclusive_and_bounded(seeded):
    result = run_search(seeded, SearchQuery.from_params(min_date="2022-02-01", max_date="2022-05-01"))
    assert names(result) == ["third"]

    result = run_search(seeded, SearchQuery.from_params(min_date="2022-03-01", max_date="2022-06-01"))
    assert names(result) == ["second", "third"]


def test_zero_bounds_mean_unbounded(seeded):
    result = run_search(seeded, SearchQuery.from_params(min_date="0", max_date=""))

    assert names(result) == ["first", "second", "third"]


def test_unix_second_bounds_are_accepted(seeded):
    lower = int(dt.datetime(2022, 5, 1, tzinfo=dt.timezone.utc).timestamp())

    result = run_search(seeded, SearchQuery.from_params(min_date=str(lower)))

    assert names(result) == ["second"]


def test_description_is_a_case_insensitive_substring():
    files = [published("x", ["t"], None, description="Sunny BEACH day"), published("y", ["t"], None, description="park")]

    result = run_search(files, SearchQuery.from_params(desc="beach"))

    assert names(result) == ["x"]


def test_tokens_are_normalised_like_ingest(seeded):
    result = run_search(seeded, SearchQuery.from_params(tags=" A , b,a", people="JEM"))

    assert names(result) == ["first"]


def test_media_class_filter(seeded):
    seeded.append(published("clip", ["a"], dt.date(2022, 1, 1), media_class=MediaClass.video, added_at=4))

    assert names(run_search(seeded, SearchQuery.from_params(file_types="video"))) == ["clip"]
    assert len(run_search(seeded, SearchQuery.from_params(file_types="")).files) == 4


def test_unpublished_files_never_match(seeded):
    seeded[0].state = FileState.DELETED
    seeded[1].state = FileState.UPLOADED

    assert names(run_search(seeded, SearchQuery())) == ["third"]


def test_ordering_is_newest_first_then_identifier():
    a = published("a", ["t"], None, added_at=5)
    b = published("b", ["t"], None, added_at=5)
    c = published("c", ["t"], None, added_at=9)
    a.id, b.id = "0000", "ffff"

    assert [f.name for f in sort_files([b, a, c])] == ["c", "a", "b"]


def test_pagination_is_zero_based(seeded):
    ordered = sort_files(seeded)

    assert [f.name for f in paginate(ordered, 0, 2)] == ["first", "second"]
    assert [f.name for f in paginate(ordered, 1, 2)] == ["third"]
    assert paginate(ordered, 5, 2) == []
    assert paginate(ordered, 3, 0) == ordered


def test_result_total_counts_every_match(seeded):
    result = run_search(seeded, SearchQuery.from_params(page="1", results_per_page="1"))

    assert names(result) == ["second"]
    assert result.total == 3


@pytest.mark.parametrize(
    ("params", "field"),
    [
        ({"min_date": "yesterday"}, "min_date"),
        ({"max_date": "2022-13-01"}, "max_date"),
        ({"file_types": "hologram"}, "file_types"),
        ({"page": "-1"}, "page"),
        ({"results_per_page": "ten"}, "results_per_page"),
    ],
)
def test_invalid_parameters_name_the_field(params, field):
    with pytest.raises(InvalidField) as exc_info:
        SearchQuery.from_params(**params)

    assert exc_info.value.tag == f"invalid_{field}"


def test_json_envelope(seeded):
    result = run_search(seeded, SearchQuery.from_params(tags="c"))

    payload = json.loads(result.to_json())

    assert payload["total"] == 1
    assert payload["page"] == 0
    assert payload["results_per_page"] == 0
    assert payload["files"][0]["full_file_name"] == "third.jpg"
    assert payload["files"][0]["metadata"]["memory_date"] == "2022-03-01"
    assert "\n\t" in result.to_json(pretty=True)
