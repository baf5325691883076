"""Tests for session documents and the generation lifecycle

Run with pytest from project root:
    pytest tests/test_session_store.py -v
"""

import json
import re

import pytest

from managers.artifact_store import THUMBNAIL_FOLDER
from managers.errors import (
    InvalidPathError,
    InvalidTransitionError,
    PayloadDecodeError,
    RecordNotFoundError,
)
from managers.input_store import INPUT_FOLDER
from managers.path_sandbox import SESSIONS_FOLDER
from managers.session_store import validate_session_id
from models.session import GenerationStatus, Session
from models.user import UserIdentity

FAR_FUTURE = "2990-01-01T00:00:00.000Z"


class TestSessionIds:
    """Tests for session id validation"""

    @pytest.mark.parametrize("session_id", ["abc", "3f2a-11", "a.b_c-d", "A" * 128])
    def test_valid(self, session_id):
        assert validate_session_id(session_id) == session_id

    @pytest.mark.parametrize("session_id", ["", "../x", ".hidden", "a/b", "a b", "A" * 129])
    def test_invalid(self, session_id):
        with pytest.raises(InvalidPathError):
            validate_session_id(session_id)


class TestSessionDocuments:
    """Tests for save/load/list/delete"""

    def test_create_persists_document(self, scope, identity):
        session = scope.sessions.create_session("Portraits")

        path = scope.root.path / SESSIONS_FOLDER / f"{session.session_id}.json"
        stored = json.loads(path.read_text())
        assert stored["title"] == "Portraits"
        assert stored["generations"] == []
        assert stored["user"] == identity.to_dict()
        assert stored["graph"] == {"nodes": [], "edges": []}

    def test_load_round_trip(self, scope):
        session = scope.sessions.create_session("Portraits")
        loaded = scope.sessions.load_session(session.session_id)
        assert loaded.to_dict() == session.to_dict()

    def test_load_missing_returns_none(self, scope):
        assert scope.sessions.load_session("does-not-exist") is None

    def test_delete_then_load_returns_none(self, scope):
        session = scope.sessions.create_session("Temp")

        assert scope.sessions.delete_session(session.session_id) is True
        assert scope.sessions.load_session(session.session_id) is None
        assert scope.sessions.delete_session(session.session_id) is False

    def test_delete_non_empty_session(self, scope):
        session = scope.sessions.create_session("Busy")
        scope.sessions.create_generation(session.session_id, "a cat")

        assert scope.sessions.delete_session(session.session_id) is True
        assert scope.sessions.list_sessions() == []

    def test_list_sorted_by_updated_at_descending(self, scope):
        older = Session.new("older")
        older.updated_at = "2980-01-01T00:00:00.000Z"
        newer = Session.new("newer")
        newer.updated_at = FAR_FUTURE
        scope.sessions.save_session(older.session_id, older)
        scope.sessions.save_session(newer.session_id, newer)
        current = scope.sessions.create_session("current")

        titles = [s.title for s in scope.sessions.list_sessions()]
        assert titles == ["newer", "older", "current"]
        assert current.updated_at < "2980"

    def test_corrupt_document_skipped(self, scope):
        good = scope.sessions.create_session("good")
        (scope.root.path / SESSIONS_FOLDER / "broken.json").write_text("{ truncated")

        sessions = scope.sessions.list_sessions()

        assert [s.session_id for s in sessions] == [good.session_id]
        assert scope.sessions.load_session("broken") is None

    @pytest.mark.parametrize("document", [
        {"session_id": "bad", "user": "bob"},
        {"session_id": "bad", "user": ["x"]},
        {"session_id": "bad", "user": 7},
        {"session_id": "bad", "generations": ["not a record"]},
        {"session_id": "bad", "generations": [{"generation_id": "g", "control_images": ["x"]}]},
        ["not", "an", "object"],
    ])
    def test_wrongly_shaped_document_skipped(self, scope, document):
        good = scope.sessions.create_session("good")
        (scope.root.path / SESSIONS_FOLDER / "bad.json").write_text(json.dumps(document))

        sessions = scope.sessions.list_sessions()

        assert [s.session_id for s in sessions] == [good.session_id]
        assert scope.sessions.load_session("bad") is None

    def test_save_id_mismatch_rejected(self, scope):
        session = Session.new("x")
        with pytest.raises(InvalidPathError):
            scope.sessions.save_session("other-id", session)

    def test_save_fills_in_user(self, scope, identity):
        session = Session.new("no owner")
        saved = scope.sessions.save_session(session.session_id, session)
        assert saved.user == identity

    def test_save_keeps_explicit_user(self, scope):
        owner = UserIdentity(display_name="Carol", id="u3")
        session = Session.new("owned", user=owner)
        assert scope.sessions.save_session(session.session_id, session).user == owner

    def test_updated_at_never_moves_backwards(self, scope):
        session = Session.new("clock")
        session.updated_at = FAR_FUTURE
        scope.sessions.save_session(session.session_id, session)

        stale = Session.from_dict(session.to_dict())
        stale.updated_at = "2000-01-01T00:00:00.000Z"
        saved = scope.sessions.save_session(stale.session_id, stale)

        assert saved.updated_at == FAR_FUTURE
        assert scope.sessions.load_session(session.session_id).updated_at == FAR_FUTURE

    def test_updated_at_advances_on_save(self, scope):
        session = scope.sessions.create_session("tick")
        session.updated_at = "2000-01-01T00:00:00.000Z"
        saved = scope.sessions.save_session(session.session_id, session)
        assert saved.updated_at > "2000-01-01T00:00:00.000Z"

    def test_concurrent_writers_last_writer_wins(self, scope):
        session = scope.sessions.create_session("original")
        first = scope.sessions.load_session(session.session_id)
        second = scope.sessions.load_session(session.session_id)

        first.title = "from first writer"
        scope.sessions.save_session(first.session_id, first)
        second.title = "from second writer"
        scope.sessions.save_session(second.session_id, second)

        assert scope.sessions.load_session(session.session_id).title == "from second writer"

    def test_rename(self, scope):
        session = scope.sessions.create_session("before")
        scope.sessions.rename_session(session.session_id, "after")
        assert scope.sessions.load_session(session.session_id).title == "after"

    def test_rename_missing_session(self, scope):
        with pytest.raises(RecordNotFoundError):
            scope.sessions.rename_session("missing", "x")

    def test_update_graph(self, scope):
        session = scope.sessions.create_session("graph")
        graph = {"nodes": [{"id": "n1"}], "edges": []}
        scope.sessions.update_session_graph(session.session_id, graph)
        assert scope.sessions.load_session(session.session_id).graph == graph

    def test_document_is_mirrored(self, mirrored_scope, tmp_path):
        session = mirrored_scope.sessions.create_session("shared")
        shared = tmp_path / "shared" / mirrored_scope.root.folder_name / SESSIONS_FOLDER
        assert (shared / f"{session.session_id}.json").exists()

        mirrored_scope.sessions.delete_session(session.session_id)
        assert not (shared / f"{session.session_id}.json").exists()


class TestGenerationLifecycle:
    """Tests for pending -> completed/failed transitions"""

    def test_create_generation_pending(self, scope):
        session = scope.sessions.create_session("gen")

        generation = scope.sessions.create_generation(
            session.session_id, "a red fox", parameters={"steps": 20, "seed": 7}
        )

        assert generation.status == GenerationStatus.PENDING
        stored = scope.sessions.get_generation(session.session_id, generation.generation_id)
        assert stored.prompt == "a red fox"
        assert stored.parameters == {"steps": 20, "seed": 7}

    def test_generation_uploads_go_through_input_store(self, scope, png_payload):
        session = scope.sessions.create_session("gen")
        upload = {"data": png_payload, "original_name": "pose.png", "size_bytes": 321}

        generation = scope.sessions.create_generation(
            session.session_id, "a dancer", control_images=[upload], reference_images=[upload]
        )

        control = generation.control_images[0]
        assert control.original_name == "pose.png"
        assert control.size_bytes == 321
        assert (scope.root.path / INPUT_FOLDER / control.filename).exists()
        # Same (name, size) upload deduplicates to the same stored input
        assert generation.reference_images[0].id == control.id
        assert len(scope.inputs.list_inputs()) == 1

    def test_bare_string_upload(self, scope, png_payload):
        session = scope.sessions.create_session("gen")
        generation = scope.sessions.create_generation(session.session_id, "x", control_images=[png_payload])
        assert generation.control_images[0].original_name == "control_image.png"

    def test_create_generation_missing_session(self, scope):
        with pytest.raises(RecordNotFoundError):
            scope.sessions.create_generation("missing", "x")

    def test_complete_generation(self, scope, png_bytes, png_payload):
        session = scope.sessions.create_session("gen")
        generation = scope.sessions.create_generation(session.session_id, "a red fox")

        completed = scope.sessions.complete_generation(
            session.session_id, generation.generation_id, [png_payload], generation_time_ms=1500
        )

        assert completed.status == GenerationStatus.COMPLETED
        assert completed.generation_time_ms == 1500
        output = completed.output_image
        assert re.fullmatch(r"output_\d+_[0-9a-f-]{36}\.png", output.filename)
        assert output.size_bytes == len(png_bytes)
        assert (scope.root.path / "outputs" / output.filename).read_bytes() == png_bytes
        assert (scope.root.path / THUMBNAIL_FOLDER / output.filename.replace(".png", ".jpg")).exists()
        assert completed.output_images == [output]

        stored = scope.sessions.get_generation(session.session_id, generation.generation_id)
        assert stored.status == GenerationStatus.COMPLETED

    def test_complete_with_texts_only(self, scope):
        session = scope.sessions.create_session("gen")
        generation = scope.sessions.create_generation(session.session_id, "describe")

        completed = scope.sessions.complete_generation(
            session.session_id, generation.generation_id, output_texts=["a caption"]
        )

        assert completed.output_image is None
        assert completed.output_texts == ["a caption"]

    def test_complete_twice_rejected(self, scope, png_payload):
        session = scope.sessions.create_session("gen")
        generation = scope.sessions.create_generation(session.session_id, "x")
        scope.sessions.complete_generation(session.session_id, generation.generation_id, [png_payload])

        with pytest.raises(InvalidTransitionError):
            scope.sessions.complete_generation(session.session_id, generation.generation_id, [png_payload])

    def test_fail_after_complete_rejected(self, scope):
        session = scope.sessions.create_session("gen")
        generation = scope.sessions.create_generation(session.session_id, "x")
        scope.sessions.complete_generation(session.session_id, generation.generation_id)

        with pytest.raises(InvalidTransitionError):
            scope.sessions.fail_generation(session.session_id, generation.generation_id, "boom")

    def test_fail_pending(self, scope):
        session = scope.sessions.create_session("gen")
        generation = scope.sessions.create_generation(session.session_id, "x")

        failed = scope.sessions.fail_generation(session.session_id, generation.generation_id, "service timeout")

        assert failed.status == GenerationStatus.FAILED
        assert failed.error == "service timeout"

    def test_unknown_generation(self, scope):
        session = scope.sessions.create_session("gen")
        with pytest.raises(RecordNotFoundError):
            scope.sessions.complete_generation(session.session_id, "nope")
        assert scope.sessions.get_generation(session.session_id, "nope") is None

    def test_bad_output_payload_leaves_generation_pending(self, scope):
        session = scope.sessions.create_session("gen")
        generation = scope.sessions.create_generation(session.session_id, "x")

        with pytest.raises(PayloadDecodeError):
            scope.sessions.complete_generation(session.session_id, generation.generation_id, ["@@@"])

        stored = scope.sessions.get_generation(session.session_id, generation.generation_id)
        assert stored.status == GenerationStatus.PENDING

    def test_save_cannot_reopen_terminal_generation(self, scope):
        session = scope.sessions.create_session("gen")
        generation = scope.sessions.create_generation(session.session_id, "x")
        scope.sessions.fail_generation(session.session_id, generation.generation_id, "boom")

        edited = scope.sessions.load_session(session.session_id)
        edited.generations[0].status = GenerationStatus.PENDING

        with pytest.raises(InvalidTransitionError):
            scope.sessions.save_session(edited.session_id, edited)

    @pytest.mark.parametrize("field,value", [
        ("prompt", "rewritten prompt"),
        ("error", "different error"),
        ("parameters", {"steps": 99}),
        ("output_texts", ["added later"]),
    ])
    def test_save_cannot_rewrite_terminal_generation(self, scope, field, value):
        session = scope.sessions.create_session("gen")
        generation = scope.sessions.create_generation(session.session_id, "x")
        scope.sessions.fail_generation(session.session_id, generation.generation_id, "boom")

        edited = scope.sessions.load_session(session.session_id)
        setattr(edited.generations[0], field, value)

        with pytest.raises(InvalidTransitionError):
            scope.sessions.save_session(edited.session_id, edited)
        stored = scope.sessions.get_generation(session.session_id, generation.generation_id)
        assert stored.prompt == "x"
        assert stored.error == "boom"

    def test_save_cannot_drop_terminal_generation(self, scope, png_payload):
        session = scope.sessions.create_session("gen")
        generation = scope.sessions.create_generation(session.session_id, "x")
        scope.sessions.complete_generation(session.session_id, generation.generation_id, [png_payload])

        edited = scope.sessions.load_session(session.session_id)
        edited.generations = []

        with pytest.raises(InvalidTransitionError):
            scope.sessions.save_session(edited.session_id, edited)
        assert scope.sessions.get_generation(session.session_id, generation.generation_id) is not None

    def test_save_with_unchanged_terminal_generation(self, scope):
        session = scope.sessions.create_session("gen")
        done = scope.sessions.create_generation(session.session_id, "done")
        scope.sessions.fail_generation(session.session_id, done.generation_id, "boom")
        pending = scope.sessions.create_generation(session.session_id, "still running")

        edited = scope.sessions.load_session(session.session_id)
        edited.title = "renamed"
        edited.find_generation(pending.generation_id).prompt = "edited while pending"

        saved = scope.sessions.save_session(edited.session_id, edited)

        assert saved.title == "renamed"
        assert scope.sessions.get_generation(session.session_id, pending.generation_id).prompt == "edited while pending"


class TestExportImport:
    """Tests for session bundles"""

    def test_export_contains_all_sessions(self, scope):
        first = scope.sessions.create_session("one")
        second = scope.sessions.create_session("two")

        bundle = scope.sessions.export_sessions()

        assert {s["session_id"] for s in bundle["sessions"]} == {first.session_id, second.session_id}

    def test_import_into_another_user(self, engine, scope):
        session = scope.sessions.create_session("portable")
        scope.sessions.create_generation(session.session_id, "x")
        bundle = scope.sessions.export_sessions()

        other = engine.open_scope(UserIdentity(display_name="Bob", id="u2"))
        result = other.sessions.import_sessions(bundle)

        assert result == {"imported": [session.session_id], "failed": []}
        imported = other.sessions.load_session(session.session_id)
        assert imported.title == "portable"
        assert len(imported.generations) == 1

    def test_import_collects_failures(self, scope):
        good = Session.new("good").to_dict()
        bundle = {"sessions": [good, {"title": "no id"}, {"session_id": "../escape", "title": "bad"}]}

        result = scope.sessions.import_sessions(bundle)

        assert result["imported"] == [good["session_id"]]
        assert [f["session_id"] for f in result["failed"]] == [None, "../escape"]

    def test_import_empty_bundle(self, scope):
        assert scope.sessions.import_sessions({}) == {"imported": [], "failed": []}
