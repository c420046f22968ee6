from __future__ import annotations

import pytest

from papernb.domain import PaperDomain, detect_domain, domain_scores


@pytest.mark.parametrize(
    ("text", "expected"),
    [
        ("We study optimization of the gradient and the loss landscape.", PaperDomain.ML_TRAINING),
        ("A transformer language model trained on a large corpus of tokens.", PaperDomain.NLP_LANGUAGE),
        ("Pixel-level segmentation of each image with a CNN.", PaperDomain.VISION_PERCEPTION),
        ("The agent maximises reward under a learned policy.", PaperDomain.RL_CONTROL),
        ("A survey of sorting networks.", PaperDomain.OTHER),
        ("", PaperDomain.OTHER),
    ],
)
def test_detect_domain(text, expected):
    assert detect_domain(text) == expected


def test_keywords_match_as_case_insensitive_prefixes():
    scores = domain_scores("Images and IMAGE captions; Rewards everywhere.")

    assert scores[PaperDomain.VISION_PERCEPTION] == 2
    assert scores[PaperDomain.RL_CONTROL] == 1


def test_ties_keep_declaration_order():
    assert detect_domain("gradient attention") == PaperDomain.ML_TRAINING


@pytest.mark.parametrize("value", ["RL-Control", "rl_control", "  rl-control "])
def test_parse_accepts_value_or_name(value):
    assert PaperDomain.parse(value) is PaperDomain.RL_CONTROL


def test_parse_defaults_and_rejects_unknown():
    assert PaperDomain.parse(None) is PaperDomain.OTHER
    with pytest.raises(ValueError, match="Unknown paper domain"):
        PaperDomain.parse("astronomy")
