"""Keyword-based paper domain classification used to pick prompt guidance."""

from __future__ import annotations

import re
from enum import Enum
from typing import Mapping

__all__ = ["PaperDomain", "DOMAIN_KEYWORDS", "domain_scores", "detect_domain"]


class PaperDomain(str, Enum):
    ML_TRAINING = "ML-Training"
    NLP_LANGUAGE = "NLP-Language"
    VISION_PERCEPTION = "Vision-Perception"
    RL_CONTROL = "RL-Control"
    OTHER = "Other"

    @classmethod
    def parse(cls, value: "str | PaperDomain | None") -> "PaperDomain":
        if isinstance(value, PaperDomain):
            return value
        if not value:
            return cls.OTHER
        lowered = value.strip().lower()
        for member in cls:
            if lowered in {member.value.lower(), member.name.lower()}:
                return member
        raise ValueError(f"Unknown paper domain '{value}'")


DOMAIN_KEYWORDS: Mapping[PaperDomain, tuple[str, ...]] = {
    PaperDomain.ML_TRAINING: (
        "optimization",
        "optimizer",
        "gradient",
        "loss",
        "convergence",
        "regularization",
        "learning rate",
        "stochastic",
        "backpropagation",
        "sgd",
        "adam",
        "weight decay",
        "overfitting",
    ),
    PaperDomain.NLP_LANGUAGE: (
        "language model",
        "natural language",
        "transformer",
        "attention",
        "token",
        "vocabulary",
        "sentence",
        "translation",
        "corpus",
        "text classification",
        "nlp",
        "bert",
    ),
    PaperDomain.VISION_PERCEPTION: (
        "image",
        "pixel",
        "convolution",
        "cnn",
        "segmentation",
        "object detection",
        "visual",
        "vision",
        "camera",
        "bounding box",
    ),
    PaperDomain.RL_CONTROL: (
        "reinforcement",
        "policy",
        "reward",
        "agent",
        "q-learning",
        "markov decision",
        "bandit",
        "episode",
        "trajectory",
        "actor-critic",
    ),
}


def _keyword_pattern(keyword: str) -> re.Pattern[str]:
    return re.compile(r"\b" + re.escape(keyword), re.IGNORECASE)


_PATTERNS: dict[PaperDomain, tuple[re.Pattern[str], ...]] = {
    domain: tuple(_keyword_pattern(keyword) for keyword in keywords)
    for domain, keywords in DOMAIN_KEYWORDS.items()
}


def domain_scores(text: str) -> dict[PaperDomain, int]:
    """Count keyword hits per domain (prefix matches, case-insensitive)."""

    return {
        domain: sum(len(pattern.findall(text)) for pattern in patterns)
        for domain, patterns in _PATTERNS.items()
    }


def detect_domain(text: str) -> PaperDomain:
    """Return the domain with the most keyword hits; ties keep declaration order."""

    if not text:
        return PaperDomain.OTHER
    scores = domain_scores(text)
    best = PaperDomain.OTHER
    best_score = 0
    for domain in DOMAIN_KEYWORDS:
        if scores[domain] > best_score:
            best, best_score = domain, scores[domain]
    return best
