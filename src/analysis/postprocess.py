# src/analysis/postprocess.py - v1
"""Turn raw capability outputs into an AnalysisResult.

Steps, in order: confidence filter, rank-weighted confidence, tags,
description, features. Every function here is pure.
"""

from __future__ import annotations

import re
from collections import Counter
from typing import TYPE_CHECKING, Sequence, Union

import numpy as np

from galleryai.analysis.models import AnalysisMetadata, AnalysisResult, ImageFeatures
from galleryai.analysis.vocabulary import Vocabulary
from galleryai.capabilities.models import Classification, Detection

if TYPE_CHECKING:
    from galleryai.resources.models import ImageResource

MAX_TAGS = 10
RANK_DECAY = 0.1
LANDSCAPE_RATIO = 1.2
PORTRAIT_RATIO = 0.8
TAG_COUNT_SCALE = 10
CATEGORY_DIVERSITY_SCALE = 5
DESCRIPTION_OBJECT_LIMIT = 3

# Keep ASCII letters, digits, whitespace and CJK ideographs
_LABEL_STRIP_RE = re.compile(r"[^A-Za-z0-9\u4e00-\u9fa5\s]")

Scored = Union[Classification, Detection]


def filter_by_confidence(items: Sequence[Scored], threshold: float) -> list:
    return [item for item in items if item.confidence >= threshold]


def aggregate_confidence(items: Sequence[Scored]) -> float:
    """Rank-weighted mean: item i weighs exp(-0.1 * i). Empty input gives 0."""
    if not items:
        return 0.0
    confidences = np.fromiter((item.confidence for item in items), dtype=float)
    weights = np.exp(-RANK_DECAY * np.arange(len(confidences)))
    return float(min(1.0, np.dot(confidences, weights) / weights.sum()))


def clean_label(label: str | None, vocabulary: Vocabulary) -> str:
    """Strip punctuation, then map known English labels through the synonym table."""
    if not label:
        return ""
    cleaned = _LABEL_STRIP_RE.sub("", label)
    lowered = cleaned.lower()
    for english, tag in vocabulary.synonyms:
        if english in lowered:
            return tag
    return cleaned.strip()


def combination_tags(tags: Sequence[str], vocabulary: Vocabulary) -> list[str]:
    present = set(tags)
    return [
        combined
        for required, combined in vocabulary.combinations
        if all(tag in present for tag in required)
    ]


def generate_tags(
    classifications: Sequence[Classification],
    detections: Sequence[Detection],
    vocabulary: Vocabulary,
    max_tags: int = MAX_TAGS,
) -> list[str]:
    """Cleaned, deduplicated labels (classifications first) plus combination tags."""
    tags: dict[str, None] = {}
    for item in [*classifications, *detections]:
        label = clean_label(item.label, vocabulary)
        if label:
            tags[label] = None
    for combined in combination_tags(list(tags), vocabulary):
        tags[combined] = None
    return list(tags)[:max_tags]


def generate_description(
    classifications: Sequence[Classification],
    detections: Sequence[Detection],
    vocabulary: Vocabulary,
) -> str:
    clauses: list[str] = []

    if classifications:
        subject = clean_label(classifications[0].label, vocabulary)
        if subject:
            clauses.append(vocabulary.subject_template.format(label=subject))

    counts = Counter(
        label
        for label in (clean_label(d.label, vocabulary) for d in detections)
        if label
    )
    if counts:
        objects = vocabulary.list_separator.join(
            vocabulary.count_template.format(count=count, label=label) if count > 1 else label
            for label, count in counts.most_common(DESCRIPTION_OBJECT_LIMIT)
        )
        clauses.append(vocabulary.objects_template.format(objects=objects))

    return vocabulary.clause_separator.join(clauses) or vocabulary.placeholder_description


def categorize(tags: Sequence[str], vocabulary: Vocabulary) -> str:
    """First category whose keywords intersect the tags."""
    present = set(tags)
    for category, keywords in vocabulary.categories:
        if any(keyword in present for keyword in keywords):
            return category
    return vocabulary.default_category


def complexity(tags: Sequence[str], vocabulary: Vocabulary) -> float:
    """Mean of a tag-count score and a category-diversity score, both in [0, 1]."""
    count_score = min(len(tags) / TAG_COUNT_SCALE, 1.0)
    unique_categories = {categorize([tag], vocabulary) for tag in tags}
    diversity_score = min(len(unique_categories) / CATEGORY_DIVERSITY_SCALE, 1.0)
    return (count_score + diversity_score) / 2


def derive_features(
    width: int, height: int, tags: Sequence[str], vocabulary: Vocabulary
) -> ImageFeatures:
    """Aspect ratio, orientation and resolution from the dimensions; category
    and complexity from the tags. Unknown dimensions give ratio 1, orientation
    "unknown" and resolution 0.
    """
    if width > 0 and height > 0:
        aspect_ratio = width / height
        if aspect_ratio > LANDSCAPE_RATIO:
            orientation = "landscape"
        elif aspect_ratio < PORTRAIT_RATIO:
            orientation = "portrait"
        else:
            orientation = "square"
        resolution = width * height
    else:
        aspect_ratio, orientation, resolution = 1.0, "unknown", 0

    return ImageFeatures(
        aspect_ratio=aspect_ratio,
        orientation=orientation,
        resolution=resolution,
        category=categorize(tags, vocabulary),
        complexity=complexity(tags, vocabulary),
    )


def build_result(
    classifications: Sequence[Classification],
    detections: Sequence[Detection],
    resource: ImageResource,
    threshold: float,
    vocabulary: Vocabulary,
    cache_key: str | None = None,
    analysis_time_ms: int | None = None,
) -> AnalysisResult:
    """Run the full post-processing chain over raw capability outputs."""
    kept_classifications = filter_by_confidence(classifications, threshold)
    kept_detections = filter_by_confidence(detections, threshold)
    tags = generate_tags(kept_classifications, kept_detections, vocabulary)

    return AnalysisResult(
        confidence=aggregate_confidence([*kept_classifications, *kept_detections]),
        tags=tuple(tags),
        description=generate_description(kept_classifications, kept_detections, vocabulary),
        features=derive_features(resource.width, resource.height, tags, vocabulary),
        classifications=tuple(kept_classifications),
        detections=tuple(kept_detections),
        metadata=AnalysisMetadata(
            source_id=resource.source_id,
            source_size=resource.size,
            cache_key=cache_key,
            analysis_time_ms=analysis_time_ms,
        ),
    )


def build_fallback(
    resource: ImageResource | None,
    error: BaseException | str | None,
    vocabulary: Vocabulary,
    cache_key: str | None = None,
) -> AnalysisResult:
    """Degraded result returned in place of an analysis error."""
    return AnalysisResult(
        confidence=0.0,
        tags=(vocabulary.fallback_tag,),
        description=vocabulary.fallback_description,
        features=ImageFeatures(
            aspect_ratio=1.0,
            orientation="unknown",
            resolution=0,
            category=vocabulary.default_category,
            complexity=0.0,
        ),
        metadata=AnalysisMetadata(
            source_id=resource.source_id if resource is not None else None,
            source_size=resource.size if resource is not None else None,
            cache_key=cache_key,
            fallback=True,
            error=None if error is None else str(error) or type(error).__name__,
        ),
    )
