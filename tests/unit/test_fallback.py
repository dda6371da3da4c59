"""Tests for burn/donate classification and its two-phase commit."""

import pytest

from dust_vacuum.errors import ConfirmationRequired
from dust_vacuum.fallback import DisposalState, FallbackClassifier
from dust_vacuum.models import DisposalAction
from tests.helpers import DEEP, SCAM, make_balance


@pytest.fixture
def classifier() -> FallbackClassifier:
    classifier = FallbackClassifier()
    classifier.classify(
        [make_balance(SCAM, 100, "0.01"), make_balance(DEEP, 200, "0.40")],
        {DEEP: DisposalAction.DONATE},
    )
    return classifier


class TestClassify:
    def test_default_is_burn(self, classifier):
        assert classifier.action(SCAM) == DisposalAction.BURN
        assert classifier.action(DEEP) == DisposalAction.DONATE

    def test_classified_assets_await_confirmation(self, classifier):
        assert classifier.state(SCAM) == DisposalState.PENDING_CONFIRMATION
        assert classifier.committed() == {}

    def test_swap_is_not_a_fallback(self):
        with pytest.raises(ValueError):
            FallbackClassifier().classify([make_balance(SCAM, 1)], {SCAM: DisposalAction.SWAP})

    def test_unknown_asset_state(self, classifier):
        assert classifier.state("0x1::x::X") == DisposalState.UNCLASSIFIED


class TestTwoPhaseCommit:
    def test_commit_exact_preview(self, classifier):
        preview = classifier.preview()
        assert set(preview.asset_ids) == {SCAM, DEEP}

        committed = classifier.commit(preview)

        assert committed == {SCAM: DisposalAction.BURN, DEEP: DisposalAction.DONATE}
        assert classifier.state(SCAM) == DisposalState.COMMITTED
        assert classifier.pending() == []

    def test_changed_choice_invalidates_preview(self, classifier):
        """Switching burn to donate after the preview requires a new confirmation."""
        preview = classifier.preview()
        classifier.choose(SCAM, DisposalAction.DONATE)

        with pytest.raises(ConfirmationRequired) as exc_info:
            classifier.commit(preview)

        assert set(exc_info.value.pending) == {SCAM, DEEP}
        assert classifier.committed() == {}

    def test_rechoosing_committed_returns_to_pending(self, classifier):
        classifier.commit(classifier.preview())
        classifier.choose(DEEP, DisposalAction.BURN)
        assert classifier.state(DEEP) == DisposalState.PENDING_CONFIRMATION
        assert DEEP not in classifier.committed()

    def test_commit_with_nothing_pending(self):
        classifier = FallbackClassifier()
        with pytest.raises(ConfirmationRequired):
            classifier.commit(classifier.preview())

    def test_fingerprint_is_order_independent(self):
        first = FallbackClassifier()
        first.classify([make_balance(SCAM, 1), make_balance(DEEP, 2)])
        second = FallbackClassifier()
        second.classify([make_balance(DEEP, 2), make_balance(SCAM, 1)])
        assert first.preview().fingerprint == second.preview().fingerprint

    def test_decline_drops_pending(self, classifier):
        dropped = classifier.decline([SCAM])
        assert dropped == [SCAM]
        assert classifier.state(SCAM) == DisposalState.UNCLASSIFIED
        assert classifier.pending() == [DEEP]

    def test_preview_totals(self, classifier):
        preview = classifier.preview()
        assert str(preview.total_value_usd) == "0.41"
        assert len(preview.with_action(DisposalAction.DONATE)) == 1

    def test_choose_unclassified_raises(self):
        with pytest.raises(KeyError):
            FallbackClassifier().choose(SCAM, DisposalAction.BURN)
