import json
import os

import pytest

from error_utils import ExportError, NotFoundError, ValidationError
from models import ContentType
from seed_archive import (
    archive_path,
    concept_candidates,
    export_to_archive,
    find_concepts,
    load_archive_records,
    read_all_metadata,
    read_category_metadata,
    write_category_metadata,
)


def _read(path):
    with open(path, "r", encoding="utf-8") as f:
        return json.load(f)


def test_export_creates_archive(tmp_path, candidate_factory):
    batch = [candidate_factory("What is a closure?", idx=1), candidate_factory("What is hoisting?", idx=2)]

    report = export_to_archive(batch, "JavaScript", "Closures", seeds_dir=str(tmp_path))

    path = tmp_path / "javascript" / "javascript-mcq.json"
    assert report.exported_count == 2
    assert report.target_location == os.path.join("javascript", "javascript-mcq.json")
    data = _read(path)
    assert data["category"] == "javascript"
    concept = data["concepts"][0]
    assert concept["name"] == "Closures"
    assert [q["id"] for q in concept["questions"]] == ["javascript-closures-1", "javascript-closures-2"]
    assert concept["questions"][0]["correctAnswer"] == 0


def test_export_appends_to_matching_concept_without_rewriting(tmp_path, candidate_factory):
    path = tmp_path / "javascript" / "javascript-mcq.json"
    path.parent.mkdir(parents=True)
    existing = {
        "category": "javascript",
        "language": "JavaScript",
        "concepts": [
            {"name": "closures", "difficulty": "beginner",
             "questions": [{"id": "javascript-closures-1", "question": "Old question?"}], "problems": []},
            {"name": "Promises", "difficulty": "intermediate", "questions": [], "problems": []},
        ],
    }
    path.write_text(json.dumps(existing), encoding="utf-8")

    export_to_archive([candidate_factory("New question?")], "JavaScript", "Closures", seeds_dir=str(tmp_path))

    data = _read(path)
    assert len(data["concepts"]) == 2
    questions = data["concepts"][0]["questions"]
    assert questions[0] == {"id": "javascript-closures-1", "question": "Old question?"}
    assert questions[1]["id"] == "javascript-closures-2"
    assert data["concepts"][1]["name"] == "Promises"


def test_export_adds_new_concept(tmp_path, candidate_factory):
    export_to_archive([candidate_factory("Q1?")], "Python", "Functions", seeds_dir=str(tmp_path))
    export_to_archive([candidate_factory("Q2?")], "Python", "Data Structures", seeds_dir=str(tmp_path))

    data = _read(archive_path(str(tmp_path), "Python"))
    assert [c["name"] for c in data["concepts"]] == ["Functions", "Data Structures"]
    assert data["concepts"][1]["questions"][0]["id"] == "python-data-structures-1"


def test_problems_are_archived_separately(tmp_path, candidate_factory):
    problem = candidate_factory(
        "Reverse a linked list", content_type=ContentType.PROBLEM, options=[], correct_answer=""
    )
    export_to_archive([problem], "Java", "Collections Framework", seeds_dir=str(tmp_path))

    concept = _read(archive_path(str(tmp_path), "Java"))["concepts"][0]
    assert concept["questions"] == []
    assert concept["problems"][0]["title"] == "Reverse a linked list"


def test_corrupt_archive_is_not_overwritten(tmp_path, candidate_factory):
    path = tmp_path / "javascript" / "javascript-mcq.json"
    path.parent.mkdir(parents=True)
    path.write_text("{not json", encoding="utf-8")

    with pytest.raises(ExportError):
        export_to_archive([candidate_factory()], "JavaScript", "Closures", seeds_dir=str(tmp_path))
    assert path.read_text(encoding="utf-8") == "{not json"


def test_unwritable_location(tmp_path, candidate_factory):
    blocker = tmp_path / "seeds"
    blocker.write_text("a file, not a directory", encoding="utf-8")

    with pytest.raises(ExportError):
        export_to_archive([candidate_factory()], "JavaScript", "Closures", seeds_dir=str(blocker))


@pytest.mark.parametrize("language,topic", [("", "Closures"), ("JavaScript", "  ")])
def test_export_requires_scope(tmp_path, candidate_factory, language, topic):
    with pytest.raises(ValidationError):
        export_to_archive([candidate_factory()], language, topic, seeds_dir=str(tmp_path))


def test_export_requires_items(tmp_path):
    with pytest.raises(ValidationError):
        export_to_archive([], "JavaScript", "Closures", seeds_dir=str(tmp_path))


def test_unknown_language_uses_slug_folder(tmp_path, candidate_factory):
    report = export_to_archive([candidate_factory()], "Node.js", "Streams", seeds_dir=str(tmp_path))
    assert report.target_location == os.path.join("nodejs", "nodejs-mcq.json")


def test_load_archive_records(tmp_path, candidate_factory):
    export_to_archive([candidate_factory("What is a closure?")], "JavaScript", "Closures", seeds_dir=str(tmp_path))
    (tmp_path / "broken.json").write_text("nope", encoding="utf-8")

    records = load_archive_records(str(tmp_path))

    assert len(records) == 1
    assert records[0].question_text == "What is a closure?"
    assert records[0].topic == "Closures"
    assert records[0].persisted is False


def test_load_archive_records_missing_dir(tmp_path):
    assert load_archive_records(str(tmp_path / "missing")) == []


def test_category_metadata_round_trip(tmp_path):
    written = write_category_metadata("javascript", {"displayName": "JavaScript"}, seeds_dir=str(tmp_path))

    assert "lastUpdated" in written
    assert read_category_metadata("javascript", seeds_dir=str(tmp_path))["displayName"] == "JavaScript"


def test_read_all_metadata_requires_master(tmp_path):
    write_category_metadata("python", {"displayName": "Python"}, seeds_dir=str(tmp_path))
    assert read_all_metadata(str(tmp_path)) is None

    (tmp_path / "metadata" / "master.json").write_text(json.dumps({"categories": ["python"]}), encoding="utf-8")
    documents = read_all_metadata(str(tmp_path))
    assert documents["master"] == {"categories": ["python"]}
    assert documents["categories"][0]["displayName"] == "Python"


@pytest.mark.parametrize("category", ["../etc", "Java Script", ""])
def test_metadata_category_must_be_slug(tmp_path, category):
    with pytest.raises(ValidationError):
        write_category_metadata(category, {"a": 1}, seeds_dir=str(tmp_path))


def _write_archive(path, language, concepts):
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps({"category": language.lower(), "language": language, "concepts": concepts}),
                    encoding="utf-8")


def test_find_concepts_prefers_fuller_copy(tmp_path):
    _write_archive(tmp_path / "java" / "java-mcq.json", "Java", [
        {"name": "OOP", "questions": [{"question": "Q1"}]},
        {"name": "Streams", "questions": []},
    ])
    _write_archive(tmp_path / "java" / "java-extra.json", "Java", [
        {"name": "OOP", "questions": [{"question": "Q1"}, {"question": "Q2"}]},
    ])
    _write_archive(tmp_path / "python" / "python-mcq.json", "Python", [{"name": "Functions"}])

    found, files = find_concepts(["OOP"], seeds_dir=str(tmp_path))

    assert len(found["OOP"]["questions"]) == 2
    assert found["OOP"]["language"] == "Java"
    assert found["OOP"]["sourceFile"] == "java-extra.json"
    assert sorted(files) == ["java-extra.json", "java-mcq.json"]


def test_find_concepts_reports_missing(tmp_path):
    _write_archive(tmp_path / "java" / "java-mcq.json", "Java", [{"name": "OOP"}])

    with pytest.raises(NotFoundError) as exc:
        find_concepts(["OOP", "Generics", "Lambdas"], seeds_dir=str(tmp_path))
    assert exc.value.message == "Could not find concepts: Generics, Lambdas"
    assert exc.value.status_code == 404


def test_concept_candidates_accepts_both_answer_formats():
    concept = {
        "name": "Closures",
        "language": "JavaScript",
        "difficulty": "advanced",
        "questions": [
            {"id": "js-1", "question": "Q1?", "options": ["a", "b", "c"], "correctAnswer": "b"},
            {"question": "Q2?", "options": '["x", "y"]', "correctAnswer": 1, "tags": '["scope"]'},
            {"question": "Q3?", "options": ["m", "n"], "correctAnswer": "missing"},
        ],
        "problems": [{"id": "js-p1", "title": "Build a counter", "description": "Use a closure."}],
    }

    items = concept_candidates(concept)

    assert [i.correct_answer for i in items[:3]] == ["b", "y", "m"]
    assert items[0].id == "seed_js-1"
    assert items[1].id.startswith("seed_")
    assert items[1].tags == ["scope"]
    assert {i.topic for i in items} == {"Closures"}
    assert {i.difficulty for i in items} == {"advanced"}
    assert items[3].content_type == ContentType.PROBLEM
    assert items[3].question_text == "Build a counter"
    assert items[3].explanation == "Use a closure."


def test_unparseable_options_yield_empty_list():
    items = concept_candidates({"name": "Basics", "language": "Python", "questions": [{"question": "Q?", "options": "[oops"}]})
    assert items[0].options == []
    assert items[0].correct_answer == ""
