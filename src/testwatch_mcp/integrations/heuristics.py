"""Keyword heuristics for classifying review comments and scoring their resolution."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Protocol, Sequence

ACTION = "action"
CHANGE = "change"
CONCERN = "concern"
SUGGESTION = "suggestion"
NONE = "none"

ACTION_KEYWORDS: tuple[str, ...] = (
    "please", "could you", "can you", "would you",
    "fix", "change", "update", "modify", "add", "remove",
    "need", "needs", "require", "required", "must",
    "should", "todo", "fixme",
)
SUGGESTION_KEYWORDS: tuple[str, ...] = (
    "consider", "suggest", "recommend", "maybe",
    "perhaps", "might", "could be", "think about",
    "how about", "what if",
)
CONCERN_KEYWORDS: tuple[str, ...] = (
    "concern", "worried", "issue", "problem",
    "bug", "error", "incorrect", "wrong",
    "breaking", "regression", "failure",
)
RESOLVED_KEYWORDS: tuple[str, ...] = ("fixed", "done", "completed", "addressed", "implemented", "resolved")

RESOLVED_CONFIDENCE = 0.8
PARTIAL_CONFIDENCE = 0.5

_PATH_REFERENCE = re.compile(r"[\w\-/]+\.\w+")
_NAME_REFERENCE = re.compile(r"\b[A-Z]\w+(?:\.tsx?|\.jsx?)?\b")
_QUOTED_REFERENCE = re.compile(r"['\"`]([^'\"`]+)['\"`]")


@dataclass(slots=True)
class ResolutionEvidence:
    """What is known about one review item when scoring it."""

    text: str
    category: str
    changed_files: Sequence[str] = ()
    recent_commits: Sequence[str] = ()
    review_path: str | None = None
    related_files: list[str] = field(default_factory=list)


class ReviewHeuristics(Protocol):
    def classify(self, text: str) -> str: ...

    def score(self, evidence: ResolutionEvidence) -> float: ...


def file_references(text: str) -> list[str]:
    references = [
        *_PATH_REFERENCE.findall(text),
        *_NAME_REFERENCE.findall(text),
        *_QUOTED_REFERENCE.findall(text),
    ]
    return list(dict.fromkeys(references))


class KeywordHeuristics:
    """Default heuristics: keyword lists for classification, file and commit evidence for scoring."""

    def classify(self, text: str) -> str:
        lowered = text.lower()
        if any(keyword in lowered for keyword in ACTION_KEYWORDS):
            return ACTION
        if any(keyword in lowered for keyword in CONCERN_KEYWORDS):
            return CONCERN
        if any(keyword in lowered for keyword in SUGGESTION_KEYWORDS):
            return SUGGESTION
        return NONE

    def score(self, evidence: ResolutionEvidence) -> float:
        """Return a confidence in ``[0, 1]`` that the item has been addressed.

        Related changed files are appended to ``evidence.related_files``.
        """

        file_score = 0.0
        changed = list(evidence.changed_files)
        for reference in file_references(evidence.text):
            needle = reference.lower()
            matching = [path for path in changed if needle in path.lower() or path.lower() in needle]
            if matching:
                evidence.related_files.extend(path for path in matching if path not in evidence.related_files)
                file_score = 0.7

        if evidence.review_path and evidence.review_path in changed:
            if evidence.review_path not in evidence.related_files:
                evidence.related_files.append(evidence.review_path)
            file_score = 0.9

        keyword_score = 0.3
        words = [word for word in evidence.text.lower().split() if len(word) > 4]
        for commit in evidence.recent_commits:
            lowered = commit.lower()
            if any(keyword in lowered for keyword in RESOLVED_KEYWORDS):
                keyword_score = max(keyword_score, 0.6)
            if sum(1 for word in words if word in lowered) >= 2:
                keyword_score = max(keyword_score, 0.7)

        return min(1.0, file_score * 0.7 + keyword_score * 0.3)


def describe_confidence(confidence: float, category: str, related_files: Sequence[str]) -> str:
    if confidence >= RESOLVED_CONFIDENCE:
        return f"High confidence: changed files {', '.join(related_files)} directly address this {category}."
    if confidence >= PARTIAL_CONFIDENCE:
        where = f"in {', '.join(related_files)}" if related_files else "but no direct file matches"
        return f"Moderate confidence: some related changes detected {where}."
    return f"Low confidence: no clear evidence that this {category} has been addressed in recent changes."


__all__ = [
    "ACTION",
    "CHANGE",
    "CONCERN",
    "KeywordHeuristics",
    "NONE",
    "PARTIAL_CONFIDENCE",
    "RESOLVED_CONFIDENCE",
    "ResolutionEvidence",
    "ReviewHeuristics",
    "SUGGESTION",
    "describe_confidence",
    "file_references",
]
