"""Notes language index test suite."""
from __future__ import annotations

import os
from concurrent.futures import ThreadPoolExecutor

from meetnotes.errors import InvalidInputError, NotFoundError
from meetnotes.services.artifact_store import ArtifactStore
from meetnotes.services.metadata_index import METADATA_KEY, NotesMetadataIndex, derive_metadata
from meetnotes.tests.base import TestResult, TestStatus, TestSuite
from meetnotes.tests.fakes import sample_notes, seed_meeting


class MetadataIndexSuite(TestSuite):
    """Derivation of metadata from artifact listings and concurrent language registration."""

    suite_id = "metadata-index"
    name = "Notes Metadata Index"
    description = "metadata.json derivation, registration and per-meeting locking"

    def _register_tests(self):
        self.add_test("MI-001", "Derivation puts canonical notes first as 'en'", self._test_derive_canonical_first)
        self.add_test("MI-002", "Derivation with no notes assumes 'en'", self._test_derive_empty)
        self.add_test("MI-003", "Derivation does not duplicate 'en'", self._test_derive_no_duplicate_en)
        self.add_test("MI-004", "Unknown meeting is NotFound", self._test_unknown_meeting)
        self.add_test("MI-005", "Explicit metadata returned verbatim", self._test_explicit_verbatim)
        self.add_test("MI-006", "Derived metadata is never written", self._test_derive_read_only)
        self.add_test("MI-007", "First registration seeds from notes on disk", self._test_seed_from_disk)
        self.add_test("MI-008", "Registration is idempotent", self._test_idempotent)
        self.add_test("MI-009", "Default language stays a member of the list", self._test_default_is_member)
        self.add_test("MI-010", "Concurrent registrations are all kept", self._test_concurrent_registrations)
        self.add_test("MI-011", "Traversal meeting ids are rejected", self._test_rejects_traversal)

    async def setup(self):
        self.context["store"] = ArtifactStore(os.path.join(self.context["tmp_dir"], "meetings"))
        self.context["index"] = NotesMetadataIndex(self.context["store"])

    def _test_derive_canonical_first(self, ctx: dict):
        derived = derive_metadata(["notes-zh", "notes", "transcription"])
        assert derived == {"availableLanguages": ["en", "zh"], "defaultLanguage": "en", "createdAt": None}, derived

    def _test_derive_empty(self, ctx: dict):
        derived = derive_metadata(["transcription"])
        assert derived["availableLanguages"] == ["en"]
        assert derived["defaultLanguage"] == "en"
        assert derived["createdAt"] is None

    def _test_derive_no_duplicate_en(self, ctx: dict):
        derived = derive_metadata(["notes-ms", "notes", "notes-en"])
        assert derived["availableLanguages"] == ["en", "ms"], derived

    def _test_unknown_meeting(self, ctx: dict):
        try:
            ctx["index"].get("no-such-meeting")
        except NotFoundError:
            return True
        raise AssertionError("expected NotFoundError")

    def _test_explicit_verbatim(self, ctx: dict):
        store = ctx["store"]
        record = {"availableLanguages": ["ja", "en"], "defaultLanguage": "ja", "createdAt": "2024-05-01T00:00:00Z", "extra": 1}
        seed_meeting(store, "explicit")
        store.write("explicit", METADATA_KEY, record)
        store.write("explicit", "notes-zh", sample_notes("zh"))
        assert ctx["index"].get("explicit") == record

    def _test_derive_read_only(self, ctx: dict):
        store = ctx["store"]
        seed_meeting(store, "legacy")
        store.write("legacy", "notes", sample_notes(None))
        store.write("legacy", "notes-fr", sample_notes("fr"))
        derived = ctx["index"].get("legacy")
        assert derived["availableLanguages"] == ["en", "fr"]
        assert not store.exists("legacy", METADATA_KEY), "derivation must not create metadata.json"

    def _test_seed_from_disk(self, ctx: dict):
        store = ctx["store"]
        seed_meeting(store, "seeded")
        store.write("seeded", "notes", sample_notes(None))
        store.write("seeded", "notes-zh", sample_notes("zh"))
        store.write("seeded", "notes-ms", sample_notes("ms"))
        metadata = ctx["index"].register_language("seeded", "ms")
        assert metadata["availableLanguages"] == ["en", "zh", "ms"], metadata
        assert metadata["defaultLanguage"] == "en"
        assert metadata["createdAt"]
        assert store.read("seeded", METADATA_KEY) == metadata

    def _test_idempotent(self, ctx: dict):
        store = ctx["store"]
        seed_meeting(store, "idem")
        store.write("idem", "notes-zh", sample_notes("zh"))
        first = ctx["index"].register_language("idem", "zh")
        second = ctx["index"].register_language("idem", "zh")
        assert second["availableLanguages"].count("zh") == 1
        assert first == second

    def _test_default_is_member(self, ctx: dict):
        store = ctx["store"]
        seed_meeting(store, "french-only")
        store.write("french-only", "notes-fr", sample_notes("fr"))
        metadata = ctx["index"].register_language("french-only", "fr")
        assert metadata["availableLanguages"] == ["fr"]
        assert metadata["defaultLanguage"] == "fr"

    def _test_concurrent_registrations(self, ctx: dict) -> TestResult:
        store, index = ctx["store"], ctx["index"]
        languages = ["zh", "ms", "ja", "ko", "es", "fr", "de", "pt"]
        seed_meeting(store, "busy")
        for language in languages:
            store.write("busy", f"notes-{language}", sample_notes(language))
        store.write("busy", METADATA_KEY, {"availableLanguages": ["en"], "defaultLanguage": "en", "createdAt": None})

        for _ in range(5):
            with ThreadPoolExecutor(max_workers=len(languages)) as pool:
                list(pool.map(lambda lang: index.register_language("busy", lang), languages))

        available = store.read("busy", METADATA_KEY)["availableLanguages"]
        assert sorted(available) == sorted(["en"] + languages), available
        return TestResult(
            test_id="MI-010",
            name="Concurrent registrations are all kept",
            status=TestStatus.PASSED,
            message=f"{len(available)} languages registered",
            details={"availableLanguages": available},
        )

    def _test_rejects_traversal(self, ctx: dict):
        for meeting_id in ("..", "..%2Fsecrets", "a/b", "%2E%2E", ""):
            try:
                ctx["index"].get(meeting_id)
            except InvalidInputError:
                continue
            raise AssertionError(f"{meeting_id!r} was accepted")
