"""Unit tests for the pipeline data model and error taxonomy."""

import pytest
from pydantic import ValidationError as PydanticValidationError

from switchsage.src.core.errors import ConfigurationError, ProviderError, SwitchSageError, ValidationError
from switchsage.src.core.models import SECTION_ORDER, Candidate, ConversationTurn, RankedList, RerankedItem


class TestCandidate:
    """Tests for Candidate."""

    def test_key_prefers_id(self) -> None:
        """Should use the native id as identity key."""
        assert Candidate(id="sw-1", name="Gateron Yellow").key == "sw-1"

    def test_key_falls_back_to_name(self) -> None:
        """Should use the display name when the id is missing."""
        assert Candidate(name="Gateron Yellow").key == "Gateron Yellow"
        assert Candidate(id="", name="Gateron Yellow").key == "Gateron Yellow"

    def test_requires_id_or_name(self) -> None:
        """Should reject a candidate with neither id nor name."""
        with pytest.raises(ValidationError):
            Candidate(name="   ")

    def test_from_record_accepts_camel_case(self) -> None:
        """Should map the search layer's camelCase fields."""
        candidate = Candidate.from_record(
            {
                "id": "sw-9",
                "name": "Cherry MX Brown",
                "manufacturer": "Cherry",
                "type": "Tactile",
                "actuationForce": "55",
                "description_text": "Light tactile bump.",
                "similarity": 0.42,
            }
        )

        assert candidate.actuation_force == 55.0
        assert candidate.description == "Light tactile bump."
        assert candidate.similarity == 0.42
        assert candidate.spring is None

    def test_from_record_tolerates_bad_numbers(self) -> None:
        """Should treat non-numeric force and similarity as missing."""
        candidate = Candidate.from_record({"name": "Mystery", "actuation_force": "heavy", "similarity": True})

        assert candidate.actuation_force is None
        assert candidate.similarity is None


class TestRankedList:
    """Tests for RankedList."""

    def test_of_builds_from_records_and_candidates(self) -> None:
        """Should accept both raw records and candidates, preserving order."""
        ranked = RankedList.of("keyword", [{"id": "x", "name": "X"}, Candidate(id="y", name="Y")])

        assert ranked.source == "keyword"
        assert len(ranked) == 2
        assert [c.key for c in ranked] == ["x", "y"]


class TestRerankedItem:
    """Tests for RerankedItem validation."""

    def test_accepts_valid_item(self) -> None:
        """Should build from a well-formed model entry, ignoring extra keys."""
        item = RerankedItem.model_validate({"item_id": " a ", "relevance_score": 1, "justification": "exact match", "rank": 1})

        assert item.item_id == "a"
        assert item.relevance_score == 1.0

    def test_integer_id_read_as_text(self) -> None:
        """Should accept an unquoted integer id as its decimal text."""
        item = RerankedItem.model_validate({"item_id": 7, "relevance_score": 0.5, "justification": "x"})

        assert item.item_id == "7"

    def test_boolean_id_rejected(self) -> None:
        """Should not read a boolean as an id."""
        with pytest.raises(PydanticValidationError):
            RerankedItem.model_validate({"item_id": True, "relevance_score": 0.5, "justification": "x"})

    @pytest.mark.parametrize(
        "entry",
        [
            {"item_id": "a", "relevance_score": 1.2, "justification": "x"},
            {"item_id": "a", "relevance_score": -0.1, "justification": "x"},
            {"item_id": "a", "relevance_score": "0.5", "justification": "x"},
            {"item_id": "a", "relevance_score": True, "justification": "x"},
            {"item_id": "", "relevance_score": 0.5, "justification": "x"},
            {"item_id": "a", "relevance_score": 0.5, "justification": "   "},
            {"item_id": "a", "relevance_score": 0.5},
        ],
    )
    def test_rejects_invalid_item(self, entry: dict) -> None:
        """Should reject, never clamp or default, malformed entries."""
        with pytest.raises(PydanticValidationError):
            RerankedItem.model_validate(entry)

    def test_fallback_keeps_prior_similarity(self) -> None:
        """Should reuse an in-range prior similarity."""
        item = RerankedItem.fallback_for(Candidate(id="a", name="A", similarity=0.73))

        assert (item.item_id, item.relevance_score, item.justification) == ("a", 0.73, "fallback")

    @pytest.mark.parametrize("similarity", [None, 1.7, -0.2])
    def test_fallback_neutral_score(self, similarity) -> None:
        """Should use the neutral 0.5 when similarity is missing or out of range."""
        item = RerankedItem.fallback_for(Candidate(id="a", name="A", similarity=similarity))

        assert item.relevance_score == 0.5


class TestConversationTurn:
    """Tests for ConversationTurn."""

    def test_from_record_normalises_role(self) -> None:
        """Should map anything but 'user' to the assistant role."""
        assert ConversationTurn.from_record({"role": "user", "content": "hi"}).role == "user"
        assert ConversationTurn.from_record({"role": "model", "content": "hello"}).role == "assistant"


class TestPromptSections:
    """Tests for the fixed section order."""

    def test_section_order(self) -> None:
        """Should list the prompt sections in their fixed order."""
        assert SECTION_ORDER == ("role", "task", "history", "context", "query", "format_instructions", "constraints", "guideline")


class TestErrors:
    """Tests for the error taxonomy."""

    def test_default_codes(self) -> None:
        """Should carry a machine-readable default code per error type."""
        assert ValidationError("bad").code == "VALIDATION_ERROR"
        assert ConfigurationError("missing").code == "NOT_CONFIGURED"
        assert ProviderError("down").code == "PROVIDER_ERROR"

    def test_provider_error_is_retryable(self) -> None:
        """Should mark provider errors retryable and record the backend."""
        error = ProviderError("slow", code="TIMEOUT", provider="gemini")

        assert isinstance(error, SwitchSageError)
        assert error.is_retryable is True
        assert error.provider == "gemini"
        assert error.message == "slow"
