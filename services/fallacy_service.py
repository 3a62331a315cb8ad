"""
邏輯謬誤目錄：檢舉訊息時可以選擇的謬誤類型

純資料，不涉及狀態轉換
"""
from dataclasses import dataclass
from typing import Dict, List


@dataclass(frozen=True)
class Fallacy:
    type: str
    name: str
    description: str
    example: str


def _catalogue(*fallacies: Fallacy) -> Dict[str, Fallacy]:
    return {f.type: f for f in fallacies}


FALLACIES: Dict[str, Fallacy] = _catalogue(
    Fallacy("ad_hominem", "Ad Hominem",
            "Attacking the person instead of their argument",
            "You can't trust their climate opinion because they drive a car"),
    Fallacy("straw_man", "Straw Man",
            "Misrepresenting or exaggerating someone's argument",
            "They want healthcare reform, so they must want socialism"),
    Fallacy("false_dichotomy", "False Dichotomy",
            "Presenting only two options when more exist",
            "You're either with us or against us"),
    Fallacy("slippery_slope", "Slippery Slope",
            "Claiming one action will lead to extreme consequences without evidence",
            "If we allow this, next thing you know everything will collapse"),
    Fallacy("appeal_to_authority", "Appeal to Authority",
            "Using authority or celebrity status instead of evidence",
            "A famous actor said it, so it must be true"),
    Fallacy("cherry_picking", "Cherry Picking",
            "Selecting only favorable evidence while ignoring contradicting data",
            "Looking at only one study that supports your view"),
    Fallacy("circular_reasoning", "Circular Reasoning",
            "Using the conclusion as evidence for itself",
            "It's true because I said it's true"),
    Fallacy("red_herring", "Red Herring",
            "Introducing irrelevant information to distract from the main issue",
            "Why worry about healthcare when there are potholes to fix?"),
    Fallacy("hasty_generalization", "Hasty Generalization",
            "Drawing broad conclusions from insufficient evidence",
            "My friend had a bad experience, so the whole system is broken"),
    Fallacy("appeal_to_emotion", "Appeal to Emotion",
            "Using emotions to manipulate instead of logical reasoning",
            "Think of the children! How can you oppose this?"),
    Fallacy("misinformation", "Misinformation",
            "Stating false or misleading information",
            "Presenting fabricated statistics or debunked claims as facts"),
)


def is_known_fallacy(fallacy_type: str) -> bool:
    return fallacy_type in FALLACIES


def fallacy_name(fallacy_type: str) -> str:
    fallacy = FALLACIES.get(fallacy_type)
    return fallacy.name if fallacy else fallacy_type


def list_fallacies() -> List[Fallacy]:
    """目錄順序即前端選單順序"""
    return list(FALLACIES.values())
