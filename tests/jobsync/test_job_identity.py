"""
Test cases for the job identity codec.
Covers label parsing, rendering and artifact filename mapping.
"""

import pytest

from jobsync.errors import InvalidFormat
from jobsync.job_identity import (
    DASH_VARIANTS, artifact_filename, identity_from_filename, normalize_category,
    parse_category, render_category
)
from jobsync.models import JobIdentity


class TestParseCategory:
    """Test cases for parse_category."""

    def test_simple_label(self):
        identity = parse_category("Category:roapid-badges-123", "roapid")

        assert identity.endpoint_type == "badges"
        assert identity.instance_id == "123"

    def test_prefix_is_case_insensitive(self):
        """MediaWiki capitalizes the first letter of category names."""
        identity = parse_category("Category:Roapid-users-42", "roapid")
        assert identity == JobIdentity(endpoint_type="users", instance_id="42")

    def test_id_keeps_later_separators(self):
        """Only the first dash after the prefix splits type from id."""
        identity = parse_category("Category:roapid-places-111-222", "roapid")

        assert identity.endpoint_type == "places"
        assert identity.instance_id == "111-222"

    def test_surrounding_whitespace_is_trimmed(self):
        identity = parse_category("  Category:roapid-badges-123\n", "roapid")
        assert identity.instance_id == "123"

    def test_commas_and_nonbreaking_spaces_are_stripped(self):
        assert parse_category("Category:roapid-badges-1,234", "roapid").instance_id == "1234"
        assert parse_category("Category:roapid-badges-1\u00a0234", "roapid").instance_id == "1234"
        assert parse_category("Category:roapid-badges-1\u202f234", "roapid").instance_id == "1234"

    @pytest.mark.parametrize("dash", DASH_VARIANTS)
    def test_unicode_dashes_stay_in_the_id(self, dash):
        identity = parse_category(f"Category:roapid-badges-12{dash}34", "roapid")
        assert identity.instance_id == f"12{dash}34"

    @pytest.mark.parametrize("dash", DASH_VARIANTS)
    def test_unicode_dash_does_not_separate_type(self, dash):
        with pytest.raises(InvalidFormat):
            parse_category(f"Category:roapid-badges{dash}123", "roapid")

    @pytest.mark.parametrize("label", [
        "",
        "   ",
        "Category:roapid-badges",
        "Category:roapid-badges-",
        "Category:roapid--123",
        "Category:roapid-",
        "Category:roapid",
        "Category:other-badges-123",
        "roapid-badges-123",
        "Template:roapid-badges-123",
    ])
    def test_malformed_labels(self, label):
        """Malformed labels raise InvalidFormat and nothing else."""
        with pytest.raises(InvalidFormat):
            parse_category(label, "roapid")

    def test_non_string_label(self):
        with pytest.raises(InvalidFormat):
            parse_category(None, "roapid")


class TestRenderCategory:
    """Test cases for render_category."""

    def test_render_capitalizes_prefix(self):
        assert render_category("badges", "123", "roapid") == "Category:Roapid-badges-123"

    @pytest.mark.parametrize("endpoint_type,instance_id", [
        ("badges", "123"),
        ("places", "111-222"),
        ("users", "9\u201310"),
        ("groups", "id with spaces"),
    ])
    def test_round_trip(self, endpoint_type, instance_id):
        label = render_category(endpoint_type, instance_id, "roapid")
        identity = parse_category(label, "roapid")

        assert identity.endpoint_type == endpoint_type
        assert identity.instance_id == instance_id

    def test_normalize_category(self):
        assert normalize_category(" Category:Roapid-badges-1,0\u00a00 ") == "Category:Roapid-badges-100"


class TestArtifactFilenames:
    """Test cases for artifact filename mapping."""

    def test_artifact_filename(self):
        identity = JobIdentity(endpoint_type="places", instance_id="1-2")
        assert identity.artifact_filename() == "places-1-2.json"
        assert artifact_filename(identity) == "places-1-2.json"

    def test_identity_from_filename(self):
        identity = identity_from_filename("places-1-2.json")
        assert identity == JobIdentity(endpoint_type="places", instance_id="1-2")

    @pytest.mark.parametrize("filename", [
        "about.json",
        "badges.json",
        "badges-123.txt",
        "badges-.json",
        "-123.json",
        "badges-123.json.tmp",
    ])
    def test_non_matching_filenames(self, filename):
        assert identity_from_filename(filename) is None
