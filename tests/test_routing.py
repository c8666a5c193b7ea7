"""
Tests for Discubot domain routing.
"""

import pytest

from conftest import make_output
from discubot.errors import ConfigurationError
from discubot.pipeline import DomainRouter, RoutingError, find_default_output, validate_outputs


@pytest.fixture
def router():
    return DomainRouter()


class TestDomainRouter:
    """Tests for DomainRouter.route."""

    def test_matching_filter_selects_output(self, router):
        outputs = [make_output("design", domains=["design"]), make_output("default", is_default=True)]

        decision = router.route("design", outputs)

        assert decision.output_ids == ["design"]
        assert decision.matched_by == "domain"

    def test_default_not_added_when_filter_matches(self, router):
        outputs = [make_output("default", is_default=True, domains=[]), make_output("design", domains=["design"])]

        decision = router.route("design", outputs)

        assert "default" not in decision.output_ids

    def test_fan_out_to_every_matching_output(self, router):
        outputs = [
            make_output("a", domains=["design"]),
            make_output("b", domains=["design", "frontend"]),
            make_output("c", domains=["frontend"]),
            make_output("default", is_default=True),
        ]

        decision = router.route("design", outputs)

        assert decision.output_ids == ["a", "b"]

    def test_filter_match_is_case_insensitive(self, router):
        outputs = [make_output("design", domains=["Design"]), make_output("default", is_default=True)]

        assert router.route("design", outputs).output_ids == ["design"]

    def test_null_domain_uses_default(self, router):
        outputs = [make_output("design", domains=["design"]), make_output("default", is_default=True)]

        decision = router.route(None, outputs)

        assert decision.output_ids == ["default"]
        assert decision.matched_by == "default"
        assert decision.reason == "domain is null"

    def test_unmatched_domain_uses_default(self, router):
        outputs = [make_output("design", domains=["design"]), make_output("default", is_default=True)]

        decision = router.route("backend", outputs)

        assert decision.output_ids == ["default"]

    def test_inactive_outputs_are_ignored(self, router):
        outputs = [
            make_output("design", domains=["design"], active=False),
            make_output("default", is_default=True),
        ]

        assert router.route("design", outputs).output_ids == ["default"]

    def test_no_match_and_no_default_raises(self, router):
        outputs = [make_output("design", domains=["design"])]

        with pytest.raises(RoutingError) as exc_info:
            router.route("backend", outputs)

        assert exc_info.value.domain == "backend"
        assert isinstance(exc_info.value, ConfigurationError)
        assert exc_info.value.retryable is False

    def test_decision_to_dict(self, router):
        outputs = [make_output("default", is_default=True)]

        data = router.route(None, outputs).to_dict()

        assert data["output_ids"] == ["default"]
        assert data["matched_by"] == "default"
        assert data["domain"] is None


class TestValidateOutputs:
    """Tests for the exactly-one-default check."""

    def test_returns_default(self):
        default = make_output("default", is_default=True)
        assert validate_outputs([make_output("a", domains=["x"]), default]).id == "default"

    def test_no_outputs(self):
        with pytest.raises(RoutingError, match="no active outputs"):
            validate_outputs([])

    def test_no_default(self):
        with pytest.raises(RoutingError, match="no default output"):
            validate_outputs([make_output("a", domains=["x"])])

    def test_inactive_default_does_not_count(self):
        outputs = [make_output("a", domains=["x"]), make_output("default", is_default=True, active=False)]
        with pytest.raises(RoutingError):
            validate_outputs(outputs)

    def test_multiple_defaults(self):
        outputs = [make_output("d1", is_default=True), make_output("d2", is_default=True)]
        with pytest.raises(RoutingError, match="Multiple default outputs"):
            find_default_output(outputs)
