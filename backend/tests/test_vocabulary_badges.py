import pytest

from spac_os.services.badge_catalog import (
    CATALOG,
    VARIANTS,
    Badge,
    badge_for,
    get_catalog_payload,
    missing_badges,
)
from spac_os.services.vocabulary import (
    InvalidVocabularyError,
    SpacPhase,
    SpacStatus,
    TargetStage,
    TaskStatus,
    parse_vocabulary,
    phase_index,
    stage_index,
)


def test_parse_vocabulary_accepts_members_values_and_padded_strings():
    assert parse_vocabulary(SpacStatus, SpacStatus.active) is SpacStatus.active
    assert parse_vocabulary(SpacStatus, "liquidated") is SpacStatus.liquidated
    assert parse_vocabulary(TargetStage, "  negotiation ") is TargetStage.negotiation


def test_parse_vocabulary_rejects_unknown_values_instead_of_bucketing():
    with pytest.raises(InvalidVocabularyError) as excinfo:
        parse_vocabulary(SpacStatus, "archived")
    assert excinfo.value.vocabulary == "SpacStatus"
    assert excinfo.value.value == "archived"

    with pytest.raises(InvalidVocabularyError):
        parse_vocabulary(TaskStatus, None)
    with pytest.raises(InvalidVocabularyError):
        parse_vocabulary(TaskStatus, "completed")  # values are case-sensitive


def test_ordered_vocabularies_follow_lifecycle_order():
    assert phase_index("formation") == 0
    assert phase_index(SpacPhase.post_merger) == len(SpacPhase) - 1
    assert stage_index("sourcing") < stage_index("negotiation") < stage_index("closed")


def test_every_catalogued_vocabulary_has_a_badge_for_every_member():
    for enum_cls, table in CATALOG.items():
        assert missing_badges(enum_cls, table) == []
        assert all(badge.variant in VARIANTS for badge in table.values())


def test_missing_badges_reports_gaps():
    partial = {SpacStatus.draft: Badge("secondary", "Draft")}
    assert missing_badges(SpacStatus, partial) == ["active", "completed", "liquidated"]


def test_badge_for_resolves_raw_values_and_rejects_unknowns():
    assert badge_for(SpacStatus, "completed").to_dict() == {"variant": "success", "label": "Completed"}
    assert badge_for(TargetStage, TargetStage.passed).variant == "danger"
    with pytest.raises(InvalidVocabularyError):
        badge_for(TargetStage, "on_hold")


def test_catalog_payload_is_keyed_by_vocabulary_name():
    payload = get_catalog_payload()
    assert payload["SpacPhase"]["pre_ipo"] == {"variant": "secondary", "label": "Pre-IPO"}
    assert set(payload["TargetStage"]) == {stage.value for stage in TargetStage}
