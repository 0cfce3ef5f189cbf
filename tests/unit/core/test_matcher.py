"""Unit tests for counterpart matching."""

from src.identity_sync.core.models.provider import ExternalIdentity
from src.identity_sync.core.services.sync.matcher import IdentityMatcher, MatchKey
from src.identity_sync.entities.core.identity_record import IdentityRecord


class TestIdentityMatcher:
    def test_no_match(self, matcher: IdentityMatcher, make_record):
        make_record("someone@example.com")

        assert matcher.match("ext-1", "nobody@example.com") is None

    def test_external_id_match(self, matcher: IdentityMatcher, make_record):
        record = make_record("a@example.com", external_id="ext-1")

        match = matcher.match("ext-1", "different@example.com")

        assert match.record.id == record.id
        assert match.matched_by == MatchKey.EXTERNAL_ID

    def test_exact_email_match(self, matcher: IdentityMatcher, make_record):
        record = make_record("a@example.com")

        match = matcher.match("ext-unknown", "a@example.com")

        assert match.record.id == record.id
        assert match.matched_by == MatchKey.EMAIL

    def test_case_insensitive_email_is_the_last_resort(self, matcher, make_record):
        record = make_record("Jane.Doe@Example.com")

        match = matcher.match(None, "jane.doe@example.com")

        assert match.record.id == record.id
        assert match.matched_by == MatchKey.EMAIL_INSENSITIVE

    def test_exact_email_beats_case_insensitive(self, matcher, make_record):
        make_record("Jane@example.com")
        exact = make_record("jane@example.com")

        match = matcher.match(None, "jane@example.com")

        assert match.record.id == exact.id
        assert match.matched_by == MatchKey.EMAIL

    def test_external_id_wins_over_email_match(self, matcher, make_record):
        linked = make_record("a@x.com", external_id="X")
        make_record("A@x.com")

        match = matcher.match_external(ExternalIdentity(external_id="X", email="A@x.com"))

        assert match.record.id == linked.id
        assert match.matched_by == MatchKey.EXTERNAL_ID

    def test_match_record_resolves_unsaved_record(self, matcher, make_record):
        stored = make_record("a@example.com", external_id="ext-1")

        match = matcher.match_record(IdentityRecord(email="A@EXAMPLE.COM"))

        assert match.record.id == stored.id
        assert match.matched_by == MatchKey.EMAIL_INSENSITIVE

    def test_matching_is_read_only(self, matcher, repository, make_record):
        make_record("a@example.com")

        matcher.match("ext-1", "a@example.com")

        assert repository.get_by_external_id("ext-1") is None
        assert repository.count() == 1
