"""Tests for pure helpers"""

from dataclasses import dataclass

from topology import _helpers


class TestMergeTags:
    def test_defaults_only(self):
        assert _helpers.merge_tags(_helpers.default_tags("dev")) == {
            "Environment": "dev",
            "ManagedBy": "Pulumi",
        }

    def test_override_wins_over_defaults(self):
        merged = _helpers.merge_tags(
            {"Environment": "x", "ManagedBy": "y"},
            {"Environment": "z", "Team": "core"},
        )
        assert merged == {"Environment": "z", "ManagedBy": "y", "Team": "core"}

    def test_inputs_unchanged(self):
        defaults = {"Environment": "x"}
        overrides = {"Environment": "z"}
        _helpers.merge_tags(defaults, overrides)
        assert defaults == {"Environment": "x"}
        assert overrides == {"Environment": "z"}


class TestSplitPath:
    def test_splits_segments(self):
        assert _helpers.split_path("/users/{id}/profile") == ["users", "{id}", "profile"]

    def test_skips_empty_segments(self):
        assert _helpers.split_path("//a//b/") == ["a", "b"]

    def test_root(self):
        assert _helpers.split_path("/") == []
        assert _helpers.split_path("") == []


class TestNormalizePath:
    def test_equivalent_forms(self):
        assert _helpers.normalize_path("/a/b/") == "/a/b"
        assert _helpers.normalize_path("//a//b") == "/a/b"
        assert _helpers.normalize_path("a/b") == "/a/b"

    def test_root(self):
        assert _helpers.normalize_path("") == "/"
        assert _helpers.normalize_path("/") == "/"


class TestCumulativePaths:
    def test_prefixes_root_first(self):
        assert _helpers.cumulative_paths("/users/{id}/profile") == [
            "/users",
            "/users/{id}",
            "/users/{id}/profile",
        ]

    def test_root_has_none(self):
        assert _helpers.cumulative_paths("/") == []


class TestFingerprint:
    def test_order_independent(self):
        a = {"path": "/a", "method": "GET"}
        b = {"method": "POST", "path": "/b"}
        assert _helpers.fingerprint([a, b]) == _helpers.fingerprint([b, a])

    def test_content_sensitive(self):
        assert _helpers.fingerprint([{"path": "/a"}]) != _helpers.fingerprint([{"path": "/b"}])

    def test_is_sha256_hex(self):
        value = _helpers.fingerprint([])
        assert len(value) == 64
        int(value, 16)


class TestUrls:
    def test_execute_api_url(self):
        assert (
            _helpers.execute_api_url("abc123", "us-east-1", "dev")
            == "https://abc123.execute-api.us-east-1.amazonaws.com/dev"
        )

    def test_execute_api_host(self):
        assert (
            _helpers.execute_api_host("abc123", "eu-west-1")
            == "abc123.execute-api.eu-west-1.amazonaws.com"
        )

    def test_domain_url_drops_trailing_dot(self):
        assert _helpers.domain_url("api.example.com.") == "https://api.example.com"


@dataclass(frozen=True)
class _Sized:
    memory: int = 0
    label: str = ""
    retention: int = 7


class TestFillDefaults:
    def test_fills_unset_fields_only(self):
        defaults = {"memory": 128, "label": "default", "retention": 14}
        result = _helpers.fill_defaults(_Sized(label="set"), defaults)
        assert result == _Sized(memory=128, label="set", retention=7)

    def test_returns_same_instance_when_nothing_to_fill(self):
        sized = _Sized(memory=256, label="x")
        assert _helpers.fill_defaults(sized, {"memory": 128}) is sized

    def test_input_unchanged(self):
        sized = _Sized()
        _helpers.fill_defaults(sized, {"memory": 128})
        assert sized.memory == 0
