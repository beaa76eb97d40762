# src/analysis/vocabulary.py - v1
"""Label vocabularies used to turn raw model labels into gallery tags.

``zh`` is the gallery's display language. Synonyms are matched by substring
on the lowercased label, in table order; the first match wins.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class Vocabulary:
    locale: str
    synonyms: tuple[tuple[str, str], ...]
    # (required tags, combined tag)
    combinations: tuple[tuple[tuple[str, ...], str], ...]
    # (category, keywords) checked in order
    categories: tuple[tuple[str, tuple[str, ...]], ...]
    default_category: str
    subject_template: str
    objects_template: str
    count_template: str
    list_separator: str
    clause_separator: str
    placeholder_description: str
    fallback_tag: str
    fallback_description: str


ZH = Vocabulary(
    locale="zh",
    synonyms=(
        ("person", "人物"),
        ("car", "汽车"),
        ("dog", "狗"),
        ("cat", "猫"),
        ("bird", "鸟"),
        ("flower", "花朵"),
        ("tree", "树木"),
        ("building", "建筑"),
        ("food", "食物"),
        ("animal", "动物"),
        ("nature", "自然"),
        ("landscape", "风景"),
        ("portrait", "肖像"),
        ("indoor", "室内"),
        ("outdoor", "户外"),
    ),
    combinations=(
        (("人物", "户外"), "户外人像"),
        (("动物", "自然"), "野生动物"),
        (("建筑", "风景"), "城市风光"),
    ),
    categories=(
        ("人物", ("人物", "肖像", "户外人像")),
        ("动物", ("动物", "狗", "猫", "鸟", "野生动物")),
        ("风景", ("风景", "自然", "树木", "户外", "城市风光")),
        ("建筑", ("建筑", "城市风光")),
        ("食物", ("食物",)),
    ),
    default_category="其他",
    subject_template="这是一张关于{label}的图片",
    objects_template="图中包含{objects}",
    count_template="{count}个{label}",
    list_separator="、",
    clause_separator="，",
    placeholder_description="这是一张图片",
    fallback_tag="图片",
    fallback_description="无法分析此图片",
)

EN = Vocabulary(
    locale="en",
    synonyms=(
        ("person", "people"),
        ("car", "vehicle"),
        ("dog", "dog"),
        ("cat", "cat"),
        ("bird", "bird"),
        ("flower", "flowers"),
        ("tree", "trees"),
        ("building", "architecture"),
        ("food", "food"),
        ("animal", "animal"),
        ("nature", "nature"),
        ("landscape", "landscape"),
        ("portrait", "portrait"),
        ("indoor", "indoor"),
        ("outdoor", "outdoor"),
    ),
    combinations=(
        (("people", "outdoor"), "outdoor portrait"),
        (("animal", "nature"), "wildlife"),
        (("architecture", "landscape"), "cityscape"),
    ),
    categories=(
        ("people", ("people", "portrait", "outdoor portrait")),
        ("animals", ("animal", "dog", "cat", "bird", "wildlife")),
        ("landscape", ("landscape", "nature", "trees", "outdoor", "cityscape")),
        ("architecture", ("architecture", "cityscape")),
        ("food", ("food",)),
    ),
    default_category="other",
    subject_template="A photo of {label}",
    objects_template="containing {objects}",
    count_template="{count} {label}",
    list_separator=", ",
    clause_separator=", ",
    placeholder_description="A photo",
    fallback_tag="photo",
    fallback_description="Unable to analyze this image",
)

_VOCABULARIES = {v.locale: v for v in (ZH, EN)}


def get_vocabulary(locale: str) -> Vocabulary:
    """Return the vocabulary for a locale (zh or en)."""
    try:
        return _VOCABULARIES[locale]
    except KeyError:
        raise ValueError(
            f"Unsupported tag locale: {locale!r} (expected one of {sorted(_VOCABULARIES)})"
        ) from None
